from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np

from ..matrix.collectors import RowStatCollector, rank_by_score_descending
from ..matrix.copiers import RowRemappedCopier
from ..matrix.scanner import visit_triplet_file
from ..utilities.vector_io import open_text, read_vector_file, write_vector_file


logger = logging.getLogger(__name__)


def compute_row_sd(mtx_file: Path) -> tuple[np.ndarray, np.ndarray, int, int]:
    """Unbiased per-row standard deviation, counting implicit zeros as observations."""
    collector = RowStatCollector()
    visit_triplet_file(mtx_file, collector)
    return collector.sd(ddof=1), collector.stored.copy(), collector.max_row, collector.max_col


def filter_rows_by_sd(
    *,
    ntop: int,
    mtx_file: Path,
    row_file: Path,
    output: str,
) -> dict[str, Any]:
    if ntop <= 0:
        raise ValueError(f"ntop must be positive, got {ntop}")
    if not mtx_file.exists():
        raise FileNotFoundError(f"Matrix file not found: {mtx_file}")
    if not row_file.exists():
        raise FileNotFoundError(f"Row name file not found: {row_file}")

    row_scores, stored_row, max_row, max_col = compute_row_sd(mtx_file)
    if max_row == 0:
        raise ValueError(f"No rows declared in {mtx_file}")

    order = rank_by_score_descending(row_scores)
    logger.info("row scores: %.6g ~ %.6g", row_scores[order[0]], row_scores[order[-1]])

    features = read_vector_file(row_file)
    if len(features) < max_row:
        raise ValueError(f"Row name file {row_file} has {len(features)} names, expected {max_row}")

    n_out = min(ntop, max_row)
    selected = order[:n_out]
    remap = {int(j): i for i, j in enumerate(selected)}
    nnz = int(stored_row[selected].sum())

    output_mtx_file = Path(f"{output}.mtx.gz")
    with open_text(output_mtx_file, "w") as sink:
        copier = RowRemappedCopier(sink, remap, nnz)
        visit_triplet_file(mtx_file, copier)

    outputs = {
        "mtx": output_mtx_file,
        "rows": write_vector_file(Path(f"{output}.rows.gz"), [features[j] for j in selected]),
        "scores": write_vector_file(Path(f"{output}.scores.gz"), row_scores[selected]),
        "full_scores": write_vector_file(Path(f"{output}.full_scores.gz"), row_scores[order]),
    }
    logger.info("Kept %d of %d rows (%d nonzeros) -> %s", n_out, max_row, copier.n_written, output_mtx_file)
    return {
        "n_rows_in": int(max_row),
        "n_rows_out": int(n_out),
        "n_cols": int(max_col),
        "nnz_out": int(copier.n_written),
        "outputs": outputs,
    }
