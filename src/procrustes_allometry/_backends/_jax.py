"""JAX backend for the permutation inner loop.

The per-permutation residual sum of squares is a pure function of the
permutation row, so ``jax.vmap`` maps it over every row and ``jit``
fuses the batch into one XLA computation.

All arithmetic runs in float64 (``jax_enable_x64``): sums of squares
of Procrustes coordinates are small numbers and the observed
statistic is compared with its permuted copies at a relative
tolerance far below float32 precision.

If JAX is not installed the module still imports; ``is_available``
returns ``False`` and :func:`~._backends.resolve_backend` refuses an
explicit ``"jax"`` request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

try:
    import jax

    jax.config.update("jax_enable_x64", True)

    import jax.numpy as jnp
    from jax import jit, vmap

    _CAN_IMPORT_JAX = True
except ImportError:
    _CAN_IMPORT_JAX = False


if _CAN_IMPORT_JAX:

    @jit
    def _batch_rss(
        Q: jax.Array,
        fitted: jax.Array,
        residuals: jax.Array,
        perm_indices: jax.Array,
    ) -> jax.Array:
        def _one(perm: jax.Array) -> jax.Array:
            y_star = fitted + residuals[perm]
            resid = y_star - Q @ (Q.T @ y_star)
            return jnp.sum(resid * resid)

        return vmap(_one)(perm_indices)


@dataclass(frozen=True)
class JaxBackend:
    """JAX-accelerated compute backend.

    Inputs are converted to float64 JAX arrays at the method boundary
    and results are returned as NumPy arrays; callers never see JAX
    types.
    """

    @property
    def name(self) -> str:
        return "jax"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return _CAN_IMPORT_JAX

    def batch_rss(
        self,
        bases: Sequence[np.ndarray],
        fitted: np.ndarray,
        residuals: np.ndarray,
        perm_indices: np.ndarray,
        n_jobs: int = 1,  # noqa: ARG002
    ) -> np.ndarray:
        """vmap'd residual sums of squares (see ``BackendProtocol``)."""
        perm_indices = np.asarray(perm_indices, dtype=np.intp)
        if perm_indices.shape[0] == 0:
            return np.empty((len(bases), 0))

        fitted_j = jnp.asarray(fitted, dtype=jnp.float64)
        residuals_j = jnp.asarray(residuals, dtype=jnp.float64)
        perm_j = jnp.asarray(perm_indices)

        rows = []
        for Q in bases:
            Q_j = jnp.asarray(np.asarray(Q, dtype=float), dtype=jnp.float64)
            rows.append(np.asarray(_batch_rss(Q_j, fitted_j, residuals_j, perm_j)))
        return np.vstack(rows)
