from __future__ import annotations

from typing import NamedTuple, Protocol


class Dimensions(NamedTuple):
    max_row: int
    max_col: int
    max_nnz: int


class Triplet(NamedTuple):
    row: int
    col: int
    value: float


class TripletVisitor(Protocol):
    """Consumer driven by exactly one scan: header first, then triplets, then the end signal."""

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None: ...

    def eval(self, row: int, col: int, value: float) -> None: ...

    def eval_end(self) -> None: ...
