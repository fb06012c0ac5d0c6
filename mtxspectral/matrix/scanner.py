from __future__ import annotations

import codecs
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import IO, Any, Iterator

from .visitors import Dimensions, TripletVisitor
from ..errors import MalformedTripletError
from ..utilities.vector_io import open_text


logger = logging.getLogger(__name__)

COMMENT_MARKER = "%"
PROGRESS_INTERVAL = 1_000_000
READ_CHUNK_SIZE = 1 << 16


class ScanState(Enum):
    IN_COMMENT = "in_comment"
    IN_TOKEN = "in_token"
    AT_TOKEN_BOUNDARY = "at_token_boundary"
    AT_LINE_BOUNDARY = "at_line_boundary"


@dataclass(frozen=True)
class ScanSummary:
    dimensions: Dimensions
    n_triplets: int
    n_accepted: int
    n_out_of_range: int
    n_comment_lines: int


def iter_stream_chars(stream: IO[Any], chunk_size: int = READ_CHUNK_SIZE) -> Iterator[str]:
    decoder = None
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        if isinstance(chunk, (bytes, bytearray)):
            if decoder is None:
                decoder = codecs.getincrementaldecoder("utf-8")()
            chunk = decoder.decode(chunk)
        yield from chunk
    if decoder is not None:
        yield from decoder.decode(b"", final=True)


def _parse_int(text: str, line_no: int, what: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise MalformedTripletError(f"Line {line_no}: expected integer {what}, got '{text}'") from exc


def _parse_float(text: str, line_no: int) -> float:
    try:
        return float(text)
    except ValueError as exc:
        raise MalformedTripletError(f"Line {line_no}: expected real value, got '{text}'") from exc


class TripletScanner:
    """Single forward pass over a Matrix Market coordinate stream.

    The header is the first non-comment line (``rows cols nnz``); every later
    non-blank line is ``row col value`` with 1-based indices; further fields
    must be numeric and are ignored. Triplets outside the declared dimensions
    are dropped with a warning and still count toward ``nnz``.
    """

    def __init__(
        self,
        *,
        comment: str = COMMENT_MARKER,
        progress_interval: int = PROGRESS_INTERVAL,
        chunk_size: int = READ_CHUNK_SIZE,
        max_triplets: int | None = None,
    ) -> None:
        if len(comment) != 1 or comment.isspace():
            raise ValueError(f"comment marker must be a single non-space character, got {comment!r}")
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.comment = comment
        self.progress_interval = max(0, int(progress_interval))
        self.chunk_size = int(chunk_size)
        self.max_triplets = None if max_triplets is None else max(0, int(max_triplets))

    def scan(self, stream: IO[Any], visitor: TripletVisitor) -> ScanSummary:
        comment = self.comment
        state = ScanState.AT_LINE_BOUNDARY

        token: list[str] = []
        comment_text: list[str] = []
        fields: list[int | float] = []

        dims: Dimensions | None = None
        line_no = 1
        n_triplets = 0
        n_accepted = 0
        n_out_of_range = 0
        n_comment_lines = 0

        def flush_token() -> None:
            text = "".join(token)
            token.clear()
            pos = len(fields)
            if dims is None:
                fields.append(_parse_int(text, line_no, "dimension"))
            elif pos < 2:
                fields.append(_parse_int(text, line_no, "row" if pos == 0 else "column"))
            elif pos == 2:
                fields.append(_parse_float(text, line_no))
            else:
                # trailing numeric fields are checked, then ignored
                _parse_float(text, line_no)

        def end_line() -> None:
            nonlocal dims, n_triplets, n_accepted, n_out_of_range
            if not fields:
                return
            if dims is None:
                if len(fields) < 3:
                    raise MalformedTripletError(
                        f"Line {line_no}: header must declare rows, columns and nnz, got {len(fields)} value(s)"
                    )
                dims = Dimensions(int(fields[0]), int(fields[1]), int(fields[2]))
                if min(dims) < 0:
                    raise MalformedTripletError(f"Line {line_no}: negative dimension in header {tuple(dims)}")
                visitor.set_dimension(dims.max_row, dims.max_col, dims.max_nnz)
                fields.clear()
                return

            if len(fields) < 3:
                raise MalformedTripletError(
                    f"Line {line_no}: expected 'row col value', got {len(fields)} value(s)"
                )
            row = int(fields[0]) - 1
            col = int(fields[1]) - 1
            value = float(fields[2])
            fields.clear()
            n_triplets += 1

            if row < 0 or row >= dims.max_row or col < 0 or col >= dims.max_col:
                n_out_of_range += 1
                logger.warning(
                    "Ignore out-of-range triplet at line %d: row=%d col=%d (dimensions %d x %d)",
                    line_no,
                    row + 1,
                    col + 1,
                    dims.max_row,
                    dims.max_col,
                )
            else:
                visitor.eval(row, col, value)
                n_accepted += 1

            if self.progress_interval and n_triplets % self.progress_interval == 0:
                logger.info(
                    "Reading %d x %d triplets (total %d)",
                    n_triplets // self.progress_interval,
                    self.progress_interval,
                    dims.max_nnz,
                )

        def done() -> bool:
            if dims is None:
                return False
            limit = dims.max_nnz if self.max_triplets is None else min(dims.max_nnz, self.max_triplets)
            return n_triplets >= limit

        for c in iter_stream_chars(stream, self.chunk_size):
            if state is ScanState.IN_COMMENT:
                if c == "\n":
                    logger.debug("comment: %s", "".join(comment_text).rstrip())
                    comment_text.clear()
                    end_line()
                    line_no += 1
                    state = ScanState.AT_LINE_BOUNDARY
                    if done():
                        break
                else:
                    comment_text.append(c)
                continue

            if c == comment:
                if state is ScanState.IN_TOKEN:
                    flush_token()
                if not fields:
                    n_comment_lines += 1
                state = ScanState.IN_COMMENT
                continue

            if c == "\n":
                if state is ScanState.IN_TOKEN:
                    flush_token()
                end_line()
                line_no += 1
                state = ScanState.AT_LINE_BOUNDARY
                if done():
                    break
            elif c.isspace():
                if state is ScanState.IN_TOKEN:
                    flush_token()
                    state = ScanState.AT_TOKEN_BOUNDARY
            else:
                token.append(c)
                state = ScanState.IN_TOKEN
        else:
            # stream exhausted without a trailing newline
            if state is ScanState.IN_TOKEN:
                flush_token()
            if not done():
                end_line()

        if dims is None:
            raise MalformedTripletError("Missing header line 'rows cols nnz'")

        if n_triplets < dims.max_nnz:
            logger.debug("Stream ended after %d of %d declared triplets", n_triplets, dims.max_nnz)

        visitor.eval_end()
        return ScanSummary(
            dimensions=dims,
            n_triplets=n_triplets,
            n_accepted=n_accepted,
            n_out_of_range=n_out_of_range,
            n_comment_lines=n_comment_lines,
        )


def visit_triplet_stream(stream: IO[Any], visitor: TripletVisitor, **scanner_kwargs: Any) -> ScanSummary:
    return TripletScanner(**scanner_kwargs).scan(stream, visitor)


def visit_triplet_file(path: Path | str, visitor: TripletVisitor, **scanner_kwargs: Any) -> ScanSummary:
    with open_text(path, "r") as stream:
        summary = visit_triplet_stream(stream, visitor, **scanner_kwargs)
    logger.debug(
        "Scanned %s: %d triplets (%d out of range)", path, summary.n_triplets, summary.n_out_of_range
    )
    return summary


class _DimensionProbe:
    def __init__(self) -> None:
        self.dimensions: Dimensions | None = None

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        self.dimensions = Dimensions(rows, cols, nnz)

    def eval(self, row: int, col: int, value: float) -> None:
        pass

    def eval_end(self) -> None:
        pass


def read_dimensions(path: Path | str) -> Dimensions:
    """Header of a triplet file; stops reading right after it."""
    summary = visit_triplet_file(path, _DimensionProbe(), max_triplets=0)
    return summary.dimensions
