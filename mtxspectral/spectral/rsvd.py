from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np
from sklearn.utils.extmath import svd_flip

from ..errors import RankError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpectralDecomposition:
    u: np.ndarray
    singular_values: np.ndarray
    v: np.ndarray

    @property
    def rank(self) -> int:
        return int(self.singular_values.size)


def check_rank(rank: int, n_rows: int, n_cols: int) -> None:
    if rank <= 0:
        raise RankError(f"rank must be positive, got {rank}")
    if rank > min(n_rows, n_cols):
        raise RankError(f"rank={rank} exceeds min(n, m) for a [{n_rows} x {n_cols}] matrix")


def randomized_svd(
    a: np.ndarray,
    rank: int,
    n_iter: int = 5,
    oversample: int = 10,
    rng: np.random.Generator | int | None = None,
) -> SpectralDecomposition:
    """Rank-``rank`` SVD of a dense matrix by randomized range finding.

    A Gaussian test matrix spans ``min(rank + oversample, min(n, m))``
    directions, ``n_iter`` power iterations (re-orthonormalized by QR each
    time) sharpen the range, and the small projected matrix is factorized
    exactly. Pass a seed or a ``numpy.random.Generator`` for reproducible
    results.
    """
    a = np.asarray(a, dtype=np.float64)
    if a.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape={a.shape}")
    n_rows, n_cols = a.shape
    check_rank(rank, n_rows, n_cols)
    if n_iter < 0:
        raise ValueError(f"n_iter must be non-negative, got {n_iter}")

    gen = np.random.default_rng(rng)
    n_random = min(rank + max(0, oversample), n_rows, n_cols)

    omega = gen.standard_normal((n_cols, n_random))
    q, _ = np.linalg.qr(a @ omega)
    for _ in range(n_iter):
        z, _ = np.linalg.qr(a.T @ q)
        q, _ = np.linalg.qr(a @ z)

    b = q.T @ a
    ub, s, vt = np.linalg.svd(b, full_matrices=False)
    u = q @ ub[:, :rank]
    vt = vt[:rank]
    u, vt = svd_flip(u, vt)

    logger.debug("Randomized SVD of [%d x %d]: top singular value %.6g", n_rows, n_cols, s[0])
    return SpectralDecomposition(u=u, singular_values=np.clip(s[:rank], 0.0, None), v=vt.T.copy())


class RandomizedSVD:
    def __init__(
        self,
        rank: int,
        n_iter: int = 5,
        oversample: int = 10,
        rng: np.random.Generator | int | None = None,
    ) -> None:
        self.rank = int(rank)
        self.n_iter = int(n_iter)
        self.oversample = int(oversample)
        self.rng = np.random.default_rng(rng)
        self._result: SpectralDecomposition | None = None

    def compute(self, a: np.ndarray) -> SpectralDecomposition:
        self._result = randomized_svd(
            a,
            self.rank,
            n_iter=self.n_iter,
            oversample=self.oversample,
            rng=self.rng,
        )
        return self._result

    def _require(self) -> SpectralDecomposition:
        if self._result is None:
            raise RuntimeError("RandomizedSVD.compute() has not been called")
        return self._result

    def matrix_u(self) -> np.ndarray:
        return self._require().u

    def matrix_v(self) -> np.ndarray:
        return self._require().v

    def singular_values(self) -> np.ndarray:
        return self._require().singular_values
