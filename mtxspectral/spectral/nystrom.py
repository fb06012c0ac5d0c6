from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

import numpy as np
from scipy import sparse

from .laplacian import make_normalized_laplacian
from .rsvd import randomized_svd
from ..errors import SingularSpectrumError
from ..matrix.collectors import ColStatCollector
from ..matrix.copiers import RemappedColumnsReader
from ..matrix.scanner import visit_triplet_file


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpectralEmbedding:
    u: np.ndarray
    v: np.ndarray
    singular_values: np.ndarray

    @property
    def rank(self) -> int:
        return int(self.singular_values.size)


def read_columns(mtx_path: Path | str, remap_col: dict[int, int]) -> sparse.csc_matrix:
    reader = RemappedColumnsReader(remap_col)
    visit_triplet_file(mtx_path, reader)
    return reader.to_sparse()


def nystrom_projection(v: np.ndarray, singular_values: np.ndarray, n_points: int = 0) -> np.ndarray:
    """Feature-space to rank-k map ``V diag(1/D)``.

    A singular value at or below ``max(D) * max(n, m) * eps`` is numerically
    zero and raises ``SingularSpectrumError``.
    """
    d = np.asarray(singular_values, dtype=np.float64)
    d_max = float(d.max()) if d.size else 0.0
    tol = d_max * max(v.shape[0], v.shape[1], n_points) * np.finfo(np.float64).eps
    singular = d <= tol
    if d_max <= 0.0 or np.any(singular):
        zero_at = np.flatnonzero(singular).tolist()
        raise SingularSpectrumError(
            f"Zero singular value(s) at {zero_at} for a [{v.shape[0]} x {v.shape[1]}] basis; "
            "reduce the rank or enlarge the sample"
        )
    return v / d[None, :]


def take_spectrum_laplacian(
    x: sparse.spmatrix,
    *,
    rank: int,
    weights: np.ndarray | None = None,
    tau_scale: float = 1.0,
    norm_target: float = 0.0,
    n_iter: int = 5,
    log_transform: bool = True,
    rng: np.random.Generator | int | None = None,
) -> SpectralEmbedding:
    """In-memory embedding of a full (features x points) matrix."""
    laplacian = make_normalized_laplacian(
        x,
        weights=weights,
        tau_scale=tau_scale,
        norm_target=norm_target,
        log_transform=log_transform,
    )
    logger.info("Running SVD on X [%d x %d]", laplacian.shape[0], laplacian.shape[1])
    svd = randomized_svd(laplacian, rank, n_iter=n_iter, rng=rng)
    return SpectralEmbedding(u=svd.u, v=svd.v, singular_values=svd.singular_values)


def take_spectrum_nystrom(
    mtx_path: Path | str,
    *,
    rank: int,
    weights: np.ndarray | None = None,
    tau_scale: float = 1.0,
    norm_target: float = 0.0,
    n_iter: int = 5,
    sample_size: int = 10000,
    batch_size: int = 10000,
    log_transform: bool = True,
    rng: np.random.Generator | int | None = None,
) -> SpectralEmbedding:
    """Out-of-core embedding: train on a random column sample, project every column batch by batch.

    The file is scanned once for column statistics, once for the sample and
    once per batch; at most ``max(sample_size, batch_size)`` columns are held
    densely at any time.
    """
    if sample_size <= 0:
        raise ValueError(f"sample_size must be positive, got {sample_size}")
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    gen = np.random.default_rng(rng)

    logger.info("Collecting stats from the matrix file %s", mtx_path)
    collector = ColStatCollector()
    visit_triplet_file(mtx_path, collector)
    nnz_col = collector.n
    n_total = collector.max_col
    n_sample = min(n_total, sample_size)
    if n_sample == 0:
        raise ValueError(f"No columns declared in {mtx_path}")

    logger.info(
        "Randomly select %d columns (N: %d, NNZ: %d)", n_sample, n_total, int(nnz_col.sum())
    )
    order = gen.permutation(n_total)
    sample_remap = {int(old): new for new, old in enumerate(order[:n_sample])}
    x_sample = read_columns(mtx_path, sample_remap)
    logger.info("Found a stochastic X [%d x %d]", x_sample.shape[0], x_sample.shape[1])

    if weights is None:
        weights = np.ones(x_sample.shape[0], dtype=np.float64)

    laplacian = make_normalized_laplacian(
        x_sample,
        weights=weights,
        tau_scale=tau_scale,
        norm_target=norm_target,
        log_transform=log_transform,
    )
    svd = randomized_svd(laplacian, rank, n_iter=n_iter, rng=gen)
    n_points = laplacian.shape[0]
    del laplacian, x_sample
    logger.info("Trained SVD on the sampled matrix")

    proj = nystrom_projection(svd.v, svd.singular_values, n_points=n_points)

    u = np.zeros((n_total, rank), dtype=np.float64)
    for lb in range(0, n_total, batch_size):
        ub = min(n_total, lb + batch_size)
        logger.info("Projection on the batch [%d, %d)", lb, ub)
        batch_remap = {old: old - lb for old in range(lb, ub)}
        x_batch = read_columns(mtx_path, batch_remap)
        batch_laplacian = make_normalized_laplacian(
            x_batch,
            weights=weights,
            tau_scale=tau_scale,
            norm_target=norm_target,
            log_transform=log_transform,
        )
        u[lb:ub] += batch_laplacian @ proj

    logger.info("Finished Nystrom approximation")
    return SpectralEmbedding(u=u, v=svd.v, singular_values=svd.singular_values)


@dataclass(frozen=True)
class NystromExtender:
    rank: int = 50
    n_iter: int = 5
    tau_scale: float = 1.0
    norm_target: float = 10000.0
    sample_size: int = 10000
    batch_size: int = 10000
    log_transform: bool = True

    def run(
        self,
        mtx_path: Path | str,
        weights: np.ndarray | None = None,
        rng: np.random.Generator | int | None = None,
    ) -> SpectralEmbedding:
        return take_spectrum_nystrom(
            mtx_path,
            rank=self.rank,
            weights=weights,
            tau_scale=self.tau_scale,
            norm_target=self.norm_target,
            n_iter=self.n_iter,
            sample_size=self.sample_size,
            batch_size=self.batch_size,
            log_transform=self.log_transform,
            rng=rng,
        )
