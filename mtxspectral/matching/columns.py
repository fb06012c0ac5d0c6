from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

import numpy as np
from scipy import sparse
from sklearn.neighbors import NearestNeighbors

from ..matrix.collectors import ColStatCollector
from ..matrix.copiers import TripletReader
from ..matrix.scanner import visit_triplet_file
from ..utilities.vector_io import read_vector_file, write_tuple_file


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnnParams:
    knn: int
    bilink: int
    nlist: int


def sanitize_knn_params(knn: int, bilink: int, nlist: int, vecdim: int) -> tuple[KnnParams, list[str]]:
    """Clamp index parameters to values the neighbour index accepts."""
    if knn <= 0:
        raise ValueError(f"knn must be positive, got {knn}")
    warnings: list[str] = []
    if bilink >= vecdim:
        warnings.append(f"Unnecessarily big bilink value: {bilink} vs. dimension {vecdim}")
        bilink = vecdim - 1
    if bilink < 2:
        warnings.append(f"Too small bilink value: {bilink}; using 2")
        bilink = 2
    if nlist <= knn:
        warnings.append(f"Too small nlist value: {nlist}; using {knn + 1}")
        nlist = knn + 1
    return KnnParams(knn=knn, bilink=bilink, nlist=nlist), warnings


def scale_rows(x: sparse.spmatrix) -> sparse.csr_matrix:
    """Divide each row by sqrt(max(sum of squares, 1))."""
    x = sparse.csr_matrix(x, dtype=np.float64)
    sumsq = np.asarray(x.multiply(x).sum(axis=1)).ravel()
    denom = np.sqrt(np.maximum(sumsq, 1.0))
    return sparse.diags(1.0 / denom) @ x


def search_knn(
    src_rows: sparse.spmatrix,
    tgt_rows: sparse.spmatrix,
    knn: int,
    bilink: int,
    nlist: int,
) -> tuple[list[tuple[int, int, float]], list[str]]:
    """For every source row, the ``knn`` closest target rows.

    Returns ``(i, j, d)`` with ``d`` the squared Euclidean distance between
    the scaled rows, nearest first for each ``i``.
    """
    if src_rows.shape[1] != tgt_rows.shape[1]:
        raise ValueError(
            f"Source and target must share the feature dimension, got {src_rows.shape[1]} and {tgt_rows.shape[1]}"
        )
    vecdim = int(tgt_rows.shape[1])
    params, warnings = sanitize_knn_params(knn, bilink, nlist, vecdim)
    for message in warnings:
        logger.warning(message)

    n_tgt = int(tgt_rows.shape[0])
    if n_tgt == 0 or src_rows.shape[0] == 0:
        return [], warnings
    n_neighbors = min(params.knn, n_tgt)
    if n_neighbors < params.knn:
        warnings.append(f"Only {n_tgt} target points; returning {n_neighbors} neighbours per source point")

    # exact search; bilink/nlist only shape approximate indexes
    index = NearestNeighbors(n_neighbors=n_neighbors, algorithm="brute", metric="euclidean")
    index.fit(scale_rows(tgt_rows))
    logger.info("Finding %d nearest neighbors for N = %d", n_neighbors, src_rows.shape[0])
    dist, ind = index.kneighbors(scale_rows(src_rows))

    out: list[tuple[int, int, float]] = []
    for i in range(dist.shape[0]):
        for d, j in zip(dist[i], ind[i]):
            out.append((i, int(j), float(d) ** 2))
    logger.info("Done kNN searches")
    return out, warnings


def read_columns_as_rows(mtx_file: Path) -> sparse.csr_matrix:
    reader = TripletReader()
    visit_triplet_file(mtx_file, reader)
    return reader.to_sparse().T.tocsr()


def find_nonzero_columns(mtx_file: Path) -> set[int]:
    collector = ColStatCollector()
    visit_triplet_file(mtx_file, collector)
    return {int(j) for j in np.flatnonzero(collector.n > 0)}


def match_columns(
    *,
    src_mtx: Path,
    src_cols: Path,
    tgt_mtx: Path,
    tgt_cols: Path,
    knn: int,
    bilink: int,
    nlist: int,
    output: Path,
) -> dict[str, Any]:
    for path in (src_mtx, src_cols, tgt_mtx, tgt_cols):
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

    src_names = read_vector_file(src_cols)
    tgt_names = read_vector_file(tgt_cols)

    src = read_columns_as_rows(src_mtx)
    tgt = read_columns_as_rows(tgt_mtx)
    if len(src_names) < src.shape[0]:
        raise ValueError(f"Column file {src_cols} has {len(src_names)} names, expected {src.shape[0]}")
    if len(tgt_names) < tgt.shape[0]:
        raise ValueError(f"Column file {tgt_cols} has {len(tgt_names)} names, expected {tgt.shape[0]}")

    pairs, warnings = search_knn(src, tgt, knn, bilink, nlist)

    valid_src = find_nonzero_columns(src_mtx)
    valid_tgt = find_nonzero_columns(tgt_mtx)
    logger.info("Filter out total zero columns")

    named = [
        (src_names[i], tgt_names[j], d)
        for i, j, d in pairs
        if i in valid_src and j in valid_tgt
    ]
    write_tuple_file(output, named)
    logger.info("Wrote the matching file: %s", output)
    return {
        "n_source": int(src.shape[0]),
        "n_target": int(tgt.shape[0]),
        "n_pairs": len(named),
        "warnings": warnings,
        "output": output,
    }
