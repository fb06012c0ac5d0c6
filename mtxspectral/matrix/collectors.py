from __future__ import annotations

import numpy as np


EPS = 1e-8


class _AxisStatCollector:
    axis = 0

    def __init__(self) -> None:
        self.max_row = 0
        self.max_col = 0
        self.max_elem = 0
        self.n = np.zeros(0, dtype=np.int64)
        self.stored = np.zeros(0, dtype=np.int64)
        self.s1 = np.zeros(0, dtype=np.float64)
        self.s2 = np.zeros(0, dtype=np.float64)

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        self.max_row, self.max_col, self.max_elem = int(rows), int(cols), int(nnz)
        size = self.max_row if self.axis == 0 else self.max_col
        self.n = np.zeros(size, dtype=np.int64)
        self.stored = np.zeros(size, dtype=np.int64)
        self.s1 = np.zeros(size, dtype=np.float64)
        self.s2 = np.zeros(size, dtype=np.float64)

    def eval(self, row: int, col: int, value: float) -> None:
        i = row if self.axis == 0 else col
        self.stored[i] += 1
        if abs(value) <= EPS:
            return
        self.n[i] += 1
        self.s1[i] += value
        self.s2[i] += value * value

    def eval_end(self) -> None:
        pass

    @property
    def n_obs(self) -> int:
        """Observations per index: the size of the other axis."""
        return self.max_col if self.axis == 0 else self.max_row

    def variance(self, ddof: int = 1) -> np.ndarray:
        return axis_variance(self.s1, self.s2, self.n_obs, ddof=ddof)

    def sd(self, ddof: int = 1) -> np.ndarray:
        return np.sqrt(self.variance(ddof=ddof))


class RowStatCollector(_AxisStatCollector):
    """Per-row nonzero count, sum and sum of squares."""

    axis = 0


class ColStatCollector(_AxisStatCollector):
    """Per-column nonzero count, sum and sum of squares."""

    axis = 1


class ColCounterOnValidRows:
    """Counts nonzeros per column, restricted to rows present in ``valid_rows``."""

    def __init__(self, valid_rows: dict[int, int]) -> None:
        self.valid_rows = valid_rows
        self.max_row = 0
        self.max_col = 0
        self.max_elem = 0
        self.col_n = np.zeros(0, dtype=np.int64)
        self.col_stored = np.zeros(0, dtype=np.int64)

    def set_dimension(self, rows: int, cols: int, nnz: int) -> None:
        self.max_row, self.max_col, self.max_elem = int(rows), int(cols), int(nnz)
        self.col_n = np.zeros(self.max_col, dtype=np.int64)
        self.col_stored = np.zeros(self.max_col, dtype=np.int64)

    def eval(self, row: int, col: int, value: float) -> None:
        if row not in self.valid_rows:
            return
        self.col_stored[col] += 1
        if abs(value) > EPS:
            self.col_n[col] += 1

    def eval_end(self) -> None:
        pass


def axis_variance(s1: np.ndarray, s2: np.ndarray, n_obs: int, ddof: int = 1) -> np.ndarray:
    n = float(max(n_obs, 1))
    var = (np.asarray(s2, dtype=np.float64) - np.square(s1) / n) / max(n - ddof, 1.0)
    # cancellation can leave tiny negatives for constant rows
    return np.maximum(var, 0.0)


def axis_sd(s1: np.ndarray, s2: np.ndarray, n_obs: int, ddof: int = 1) -> np.ndarray:
    return np.sqrt(axis_variance(s1, s2, n_obs, ddof=ddof))


def rank_by_score_descending(scores: np.ndarray) -> np.ndarray:
    return np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")
