from __future__ import annotations

import gzip
from pathlib import Path
from typing import IO, Any, Iterable, Sequence

import numpy as np


def is_gzip_path(path: Path) -> bool:
    return path.suffix == ".gz"


def open_text(path: Path | str, mode: str = "r") -> IO[str]:
    path = Path(path)
    if mode.startswith("r") and not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if mode.startswith("w"):
        path.parent.mkdir(parents=True, exist_ok=True)
    if is_gzip_path(path):
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def read_vector_file(path: Path | str) -> list[str]:
    """One entry per line; the first whitespace-separated word of each non-empty line is kept."""
    names: list[str] = []
    with open_text(path, "r") as f:
        for line in f:
            words = line.split()
            if words:
                names.append(words[0])
    return names


def read_numeric_vector(path: Path | str) -> np.ndarray:
    values: list[float] = []
    with open_text(path, "r") as f:
        for line_no, line in enumerate(f, start=1):
            words = line.split()
            if not words:
                continue
            try:
                values.append(float(words[0]))
            except ValueError as exc:
                raise ValueError(f"Non-numeric value at {path}:{line_no}: '{words[0]}'") from exc
    return np.asarray(values, dtype=np.float64)


def format_real(value: float) -> str:
    """Shortest text that parses back to the same double; integral values drop the '.0'."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _format_value(value: Any) -> str:
    if isinstance(value, (float, np.floating)):
        return format_real(value)
    return str(value)


def write_vector_file(path: Path | str, values: Iterable[Any]) -> Path:
    path = Path(path)
    with open_text(path, "w") as f:
        for value in values:
            f.write(_format_value(value) + "\n")
    return path


def write_tuple_file(path: Path | str, rows: Iterable[Sequence[Any]]) -> Path:
    path = Path(path)
    with open_text(path, "w") as f:
        for row in rows:
            f.write(" ".join(_format_value(v) for v in row) + "\n")
    return path
