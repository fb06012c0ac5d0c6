from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from time import perf_counter
from typing import Any

import numpy as np

from .embedding_io import save_embedding
from .nystrom import take_spectrum_laplacian, take_spectrum_nystrom
from ..matrix.copiers import TripletReader
from ..matrix.scanner import read_dimensions, visit_triplet_file
from ..utilities.run_context import create_run_context
from ..utilities.vector_io import read_numeric_vector


logger = logging.getLogger(__name__)

SCRIPT_VERSION = "1.0.0"


def sanitize_rank(requested: int, n_points: int, n_features: int) -> tuple[int, list[str]]:
    if requested <= 0:
        raise ValueError(f"rank must be positive, got {requested}")
    max_rank = max(1, min(n_points, n_features))
    warnings: list[str] = []
    if requested > max_rank:
        warnings.append(f"Clipped rank from {requested} to {max_rank} (rank limit={max_rank})")
        return max_rank, warnings
    return requested, warnings


def load_row_weights(row_weight_file: Path | None, n_rows: int) -> np.ndarray | None:
    if row_weight_file is None:
        return None
    weights = read_numeric_vector(row_weight_file)
    if weights.shape[0] != n_rows:
        raise ValueError(
            f"Row weight file {row_weight_file} has {weights.shape[0]} values, expected one per row ({n_rows})"
        )
    return weights


def run_spectral_pipeline(
    *,
    mtx_file: Path,
    output_root: Path,
    run_id: str | None,
    rank: int,
    n_iter: int,
    tau_scale: float,
    col_norm: float,
    log_scale: bool,
    row_weight_file: Path | None,
    nystrom_sample: int,
    nystrom_batch: int,
    full: bool,
    seed: int | None,
) -> dict[str, Any]:
    if not mtx_file.exists():
        raise FileNotFoundError(f"Matrix file not found: {mtx_file}")
    if row_weight_file is not None and not row_weight_file.exists():
        raise FileNotFoundError(f"Row weight file not found: {row_weight_file}")

    ctx = create_run_context(
        pipeline="spectral",
        output_root=output_root,
        run_id=run_id,
    )

    dims = read_dimensions(mtx_file)
    weights = load_row_weights(row_weight_file, dims.max_row)

    n_points = dims.max_col if full else min(dims.max_col, nystrom_sample)
    resolved_rank, warnings = sanitize_rank(rank, n_points, dims.max_row)
    for message in warnings:
        logger.warning(message)

    rng = np.random.default_rng(seed)
    start = perf_counter()
    if full:
        reader = TripletReader()
        visit_triplet_file(mtx_file, reader)
        embedding = take_spectrum_laplacian(
            reader.to_sparse(),
            rank=resolved_rank,
            weights=weights,
            tau_scale=tau_scale,
            norm_target=col_norm,
            n_iter=n_iter,
            log_transform=log_scale,
            rng=rng,
        )
        method = "full"
    else:
        embedding = take_spectrum_nystrom(
            mtx_file,
            rank=resolved_rank,
            weights=weights,
            tau_scale=tau_scale,
            norm_target=col_norm,
            n_iter=n_iter,
            sample_size=nystrom_sample,
            batch_size=nystrom_batch,
            log_transform=log_scale,
            rng=rng,
        )
        method = "nystrom"
    ctx.add_timing("embedding_seconds", perf_counter() - start)

    for key, path in save_embedding(embedding, ctx.embedding_dir).items():
        ctx.add_artifact(key, path)

    report = {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "data_info": {
            "mtx_file": str(mtx_file),
            "n_rows": int(dims.max_row),
            "n_cols": int(dims.max_col),
            "nnz": int(dims.max_nnz),
        },
        "embedding_info": {
            "method": method,
            "rank": int(embedding.rank),
            "u_shape": [int(x) for x in embedding.u.shape],
            "v_shape": [int(x) for x in embedding.v.shape],
            "singular_values": embedding.singular_values,
            "n_training_columns": int(n_points),
        },
        "warnings": warnings,
    }
    report_path = ctx.write_json(ctx.reports_dir / "spectral_report.json", report)
    ctx.add_artifact("report", report_path)

    run_config = {
        "pipeline": "spectral",
        "script_version": SCRIPT_VERSION,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "mtx_file": str(mtx_file),
        "rank": rank,
        "resolved_rank": resolved_rank,
        "n_iter": n_iter,
        "tau_scale": tau_scale,
        "col_norm": col_norm,
        "log_scale": log_scale,
        "row_weight_file": str(row_weight_file) if row_weight_file is not None else None,
        "nystrom_sample": nystrom_sample,
        "nystrom_batch": nystrom_batch,
        "full": full,
        "seed": seed,
        "warnings": warnings,
    }
    ctx.finalize(run_config)

    return {
        "run_dir": str(ctx.run_dir),
        "report": str(report_path),
        "embedding": ctx.artifacts["embedding"],
        "embedding_text": ctx.artifacts["embedding_text"],
    }
