from __future__ import annotations

import logging

import numpy as np
from scipy import sparse


logger = logging.getLogger(__name__)


# With X the (features x points) data, the adjacency A = X'X and
# L = I - D^{-1/2} A D^{-1/2}; the leading singular vectors of the
# regularized D^{-1/2} X' are the bottom eigenvectors of L.


def normalize_columns(x: sparse.spmatrix, norm_target: float = 0.0) -> sparse.csc_matrix:
    """Rescale each column to a common total: ``norm_target`` if positive, else the median column total."""
    out = sparse.csc_matrix(x, dtype=np.float64, copy=True)
    col_sums = np.asarray(out.sum(axis=0), dtype=np.float64).ravel()
    positive = col_sums > 0.0

    if norm_target > 0.0:
        target = float(norm_target)
    elif np.any(positive):
        target = float(np.median(col_sums[positive]))
    else:
        return out

    scale = np.ones_like(col_sums)
    scale[positive] = target / col_sums[positive]
    return (out @ sparse.diags(scale)).tocsc()


def transform_values(x: sparse.csc_matrix, log_transform: bool) -> sparse.csc_matrix:
    out = x.copy()
    np.maximum(out.data, 0.0, out=out.data)
    if log_transform:
        np.log1p(out.data, out=out.data)
    out.eliminate_zeros()
    return out


def row_scaling(weights: np.ndarray) -> np.ndarray:
    w = np.asarray(weights, dtype=np.float64).ravel()
    inv = np.divide(1.0, w, out=np.zeros_like(w), where=w > 0.0)
    return np.sqrt(inv)


def column_scaling(x: sparse.csc_matrix, tau_scale: float) -> tuple[np.ndarray, float]:
    col_deg = np.asarray(x.multiply(x).sum(axis=0), dtype=np.float64).ravel()
    tau = float(col_deg.mean() * tau_scale) if col_deg.size else 0.0
    return 1.0 / np.maximum(1.0, np.sqrt(col_deg + tau)), tau


def make_normalized_laplacian(
    x: sparse.spmatrix,
    weights: np.ndarray | None = None,
    tau_scale: float = 1.0,
    norm_target: float = 0.0,
    log_transform: bool = True,
) -> np.ndarray:
    """Dense, regularized and degree-normalized transform of a (features x points) matrix.

    Returns an array of shape ``(n_points, n_features)``: rows are the input
    columns, scaled by ``1 / max(1, sqrt(deg + tau))``, and features are
    scaled by ``sqrt(1 / weight)``.
    """
    n_rows, n_cols = x.shape
    if weights is None:
        weights = np.ones(n_rows, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64).ravel()
    if weights.shape[0] != n_rows:
        raise ValueError(f"Row weights must match the number of rows: expected {n_rows}, got {weights.shape[0]}")

    xx = transform_values(normalize_columns(x, norm_target), log_transform)

    rows_denom = row_scaling(weights)
    cols_denom, tau = column_scaling(xx, tau_scale)
    logger.debug("Laplacian of X [%d x %d], tau=%.6g", n_rows, n_cols, tau)

    scaled = sparse.diags(rows_denom) @ xx @ sparse.diags(cols_denom)
    return np.ascontiguousarray(scaled.T.toarray(), dtype=np.float64)
