from .run_context import RunContext, create_run_context
from .serialization import json_ready
from .vector_io import open_text, read_numeric_vector, read_vector_file, write_tuple_file, write_vector_file

__all__ = [
    "RunContext",
    "create_run_context",
    "json_ready",
    "open_text",
    "read_numeric_vector",
    "read_vector_file",
    "write_tuple_file",
    "write_vector_file",
]
