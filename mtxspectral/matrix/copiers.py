from __future__ import annotations

from typing import IO

import numpy as np
from scipy import sparse

from .visitors import Triplet
from ..errors import EmptyIndexMapError
from ..utilities.vector_io import format_real


MATRIX_MARKET_BANNER = "%%MatrixMarket matrix coordinate real general"
FS = " "


def format_triplet(i: int, j: int, value: float) -> str:
    return f"{i}{FS}{j}{FS}{format_real(value)}\n"


def write_header(sink: IO[str], rows: int, cols: int, nnz: int) -> None:
    sink.write(MATRIX_MARKET_BANNER + "\n")
    sink.write(f"{rows}{FS}{cols}{FS}{nnz}\n")


def _require_non_empty(remap: dict[int, int], what: str) -> None:
    if not remap:
        raise EmptyIndexMapError(f"Empty {what} index map")


class TripletCopier:
    """Copies triplets whose row and column are both mapped; the header is the caller's job."""

    def __init__(self, sink: IO[str], remap_row: dict[int, int], remap_col: dict[int, int]) -> None:
        _require_non_empty(remap_row, "row")
        _require_non_empty(remap_col, "column")
        self.sink = sink
        self.remap_row = remap_row
        self.remap_col = remap_col
        self.n_written = 0

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        pass

    def eval(self, row: int, col: int, value: float) -> None:
        i = self.remap_row.get(row)
        j = self.remap_col.get(col)
        if i is None or j is None:
            return
        self.sink.write(format_triplet(i + 1, j + 1, value))
        self.n_written += 1

    def eval_end(self) -> None:
        pass


class RowRemappedCopier:
    """Keeps mapped rows only and writes its own header from the declared column count."""

    def __init__(self, sink: IO[str], remap_row: dict[int, int], nnz: int) -> None:
        _require_non_empty(remap_row, "row")
        self.sink = sink
        self.remap_row = remap_row
        self.nnz = int(nnz)
        self.max_row = len(remap_row)
        self.max_col = 0
        self.n_written = 0

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        self.max_col = int(cols)
        write_header(self.sink, self.max_row, self.max_col, self.nnz)

    def eval(self, row: int, col: int, value: float) -> None:
        i = self.remap_row.get(row)
        if i is None:
            return
        self.sink.write(format_triplet(i + 1, col + 1, value))
        self.n_written += 1

    def eval_end(self) -> None:
        pass


class TripletReader:
    """Collects every triplet of one scan into memory."""

    def __init__(self) -> None:
        self.max_row = 0
        self.max_col = 0
        self.max_elem = 0
        self._rows: list[int] = []
        self._cols: list[int] = []
        self._values: list[float] = []

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        self.max_row, self.max_col, self.max_elem = int(rows), int(cols), int(nnz)

    def eval(self, row: int, col: int, value: float) -> None:
        self._rows.append(row)
        self._cols.append(col)
        self._values.append(value)

    def eval_end(self) -> None:
        pass

    @property
    def n_cols_out(self) -> int:
        return self.max_col

    def triplets(self) -> list[Triplet]:
        return [Triplet(*t) for t in zip(self._rows, self._cols, self._values)]

    def to_sparse(self, dtype: np.dtype = np.float64) -> sparse.csc_matrix:
        """Assemble a CSC matrix; duplicate (row, col) entries are summed."""
        mat = sparse.coo_matrix(
            (
                np.asarray(self._values, dtype=dtype),
                (np.asarray(self._rows, dtype=np.int64), np.asarray(self._cols, dtype=np.int64)),
            ),
            shape=(self.max_row, self.n_cols_out),
        )
        return mat.tocsc()


class RemappedColumnsReader(TripletReader):
    """Collects triplets of mapped columns, renumbering the columns through ``remap_col``."""

    def __init__(self, remap_col: dict[int, int]) -> None:
        _require_non_empty(remap_col, "column")
        super().__init__()
        self.remap_col = remap_col

    def eval(self, row: int, col: int, value: float) -> None:
        j = self.remap_col.get(col)
        if j is None:
            return
        self._rows.append(row)
        self._cols.append(j)
        self._values.append(value)

    @property
    def n_cols_out(self) -> int:
        return max(self.remap_col.values()) + 1
