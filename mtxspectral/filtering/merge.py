from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np

from ..matrix.collectors import ColCounterOnValidRows
from ..matrix.copiers import TripletCopier, write_header
from ..matrix.scanner import visit_triplet_file
from ..utilities.vector_io import open_text, read_vector_file, write_tuple_file, write_vector_file


logger = logging.getLogger(__name__)


def _require_files(paths: list[Path], what: str) -> None:
    missing = [str(p) for p in paths if not p.exists()]
    if missing:
        raise FileNotFoundError(f"Missing {what} file(s): {missing}")


def map_rows_to_global(row_names: list[str], glob_positions: dict[str, int]) -> dict[int, int]:
    return {i: glob_positions[name] for i, name in enumerate(row_names) if name in glob_positions}


def merge_columns(
    *,
    glob_row_file: Path,
    column_threshold: int,
    output: str,
    mtx_files: list[Path],
    row_files: list[Path],
    col_files: list[Path],
) -> dict[str, Any]:
    """Stack the columns of several matrices onto one global row set.

    Rows are matched by name against ``glob_row_file``; a column is kept
    when it has at least ``column_threshold`` nonzeros on the matched rows.
    """
    n_batches = len(mtx_files)
    if n_batches == 0:
        raise ValueError("At least one matrix file is required")
    if len(row_files) != n_batches:
        raise ValueError(f"Expected {n_batches} row files, got {len(row_files)}")
    if len(col_files) != n_batches:
        raise ValueError(f"Expected {n_batches} column files, got {len(col_files)}")

    _require_files([glob_row_file], "global row")
    _require_files(mtx_files, "matrix")
    _require_files(row_files, "row")
    _require_files(col_files, "column")

    glob_rows = read_vector_file(glob_row_file)
    glob_positions = {name: r for r, name in enumerate(glob_rows)}
    logger.info("Read the global row names: %s (%d rows)", glob_row_file, len(glob_rows))

    warnings: list[str] = []
    row_maps: list[dict[int, int]] = []
    col_maps: list[dict[int, int]] = []
    column_records: list[tuple[str, int]] = []
    glob_max_col = 0
    glob_max_elem = 0

    for batch_index, (mtx_file, row_file, col_file) in enumerate(zip(mtx_files, row_files, col_files)):
        remap_row = map_rows_to_global(read_vector_file(row_file), glob_positions)
        if not remap_row:
            warnings.append(f"No global rows found in {row_file}; skipping {mtx_file}")
            row_maps.append({})
            col_maps.append({})
            continue

        counter = ColCounterOnValidRows(remap_row)
        visit_triplet_file(mtx_file, counter)

        column_names = read_vector_file(col_file)
        if len(column_names) < counter.max_col:
            raise ValueError(
                f"Column file {col_file} has {len(column_names)} names, expected at least {counter.max_col}"
            )

        valid_cols = np.flatnonzero(counter.col_n >= column_threshold)
        logger.info("Found %d columns (with nnz >= %d) in %s", valid_cols.size, column_threshold, mtx_file)

        remap_col = {int(j): glob_max_col + k for k, j in enumerate(valid_cols)}
        glob_max_elem += int(counter.col_stored[valid_cols].sum())
        glob_max_col += int(valid_cols.size)
        column_records.extend((column_names[j], batch_index + 1) for j in valid_cols)

        row_maps.append(remap_row)
        col_maps.append(remap_col)

    output_columns = write_tuple_file(Path(f"{output}.columns.gz"), column_records)

    output_mtx = Path(f"{output}.mtx.gz")
    logger.info("[%d x %d] %d nonzeros -> %s", len(glob_rows), glob_max_col, glob_max_elem, output_mtx)
    with open_text(output_mtx, "w") as sink:
        write_header(sink, len(glob_rows), glob_max_col, glob_max_elem)
        for mtx_file, remap_row, remap_col in zip(mtx_files, row_maps, col_maps):
            if not remap_row or not remap_col:
                continue
            visit_triplet_file(mtx_file, TripletCopier(sink, remap_row, remap_col))

    output_rows = write_vector_file(Path(f"{output}.rows.gz"), glob_rows)

    return {
        "n_rows": len(glob_rows),
        "n_cols": glob_max_col,
        "nnz": glob_max_elem,
        "warnings": warnings,
        "outputs": {"mtx": output_mtx, "columns": output_columns, "rows": output_rows},
    }
