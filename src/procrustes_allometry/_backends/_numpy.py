"""NumPy backend (always available).

Permutations are processed in chunks.  Within a chunk the permuted
responses form a ``(c, n, v)`` stack and each design's residuals are
obtained with two batched matrix products against its orthonormal
basis, so the Python overhead is per chunk rather than per
permutation.

Parallelism
~~~~~~~~~~~
When ``n_jobs != 1`` chunks are dispatched with
``joblib.Parallel(prefer="threads")``.  NumPy's BLAS calls release the
GIL, so threads overlap without copying the inputs to worker
processes.  Each chunk writes a fixed slice of the output, so the
result is identical for every ``n_jobs``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from joblib import Parallel, delayed

_CHUNK_SIZE = 256


def _chunk_rss(
    bases: Sequence[np.ndarray],
    fitted: np.ndarray,
    residuals: np.ndarray,
    idx: np.ndarray,
) -> np.ndarray:
    """RSS of every design for one chunk of permutation rows."""
    y_star = fitted[np.newaxis, :, :] + residuals[idx]  # (c, n, v)
    out = np.empty((len(bases), idx.shape[0]))
    for j, Q in enumerate(bases):
        if Q.shape[1] == 0:
            resid = y_star
        else:
            resid = y_star - Q @ (Q.T @ y_star)
        out[j] = np.einsum("cnv,cnv->c", resid, resid)
    return out


@dataclass(frozen=True)
class NumpyBackend:
    """NumPy compute backend.

    Frozen and stateless, so a single instance is cached and shared.
    """

    chunk_size: int = _CHUNK_SIZE

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return True

    def batch_rss(
        self,
        bases: Sequence[np.ndarray],
        fitted: np.ndarray,
        residuals: np.ndarray,
        perm_indices: np.ndarray,
        n_jobs: int = 1,
    ) -> np.ndarray:
        """Chunked residual sums of squares (see ``BackendProtocol``)."""
        fitted = np.asarray(fitted, dtype=float)
        residuals = np.asarray(residuals, dtype=float)
        perm_indices = np.asarray(perm_indices, dtype=np.intp)
        bases = [np.asarray(Q, dtype=float) for Q in bases]

        n_perm = perm_indices.shape[0]
        if n_perm == 0:
            return np.empty((len(bases), 0))

        starts = range(0, n_perm, self.chunk_size)
        chunks = [perm_indices[s : s + self.chunk_size] for s in starts]

        if n_jobs == 1 or len(chunks) == 1:
            blocks = [_chunk_rss(bases, fitted, residuals, c) for c in chunks]
        else:
            blocks = Parallel(n_jobs=n_jobs, prefer="threads")(
                delayed(_chunk_rss)(bases, fitted, residuals, c) for c in chunks
            )
        return np.concatenate(blocks, axis=1)
