"""Compute engines for the permutation inner loop.

Every permutation test reduces to the same kernel: for each
permutation row ``perm`` build the permuted response

    Y* = fitted + residuals[perm]

and return, for each of a handful of designs, the residual sum of
squares of ``Y*`` (the trace of its residual SSCP).  Residual
randomisation (RRPP) passes the reduced model's fitted values and
residuals; raw randomisation passes zeros and the shape matrix itself.

Designs are supplied as orthonormal bases ``Q`` of their column
spaces, so each residual is ``Y* - Q (Q' Y*)`` and no solve is needed
inside the loop.

Which engine runs by default is decided in :mod:`._config`.  Asking
for ``"jax"`` by name on a machine without JAX is an error rather
than a silent switch to NumPy.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

import numpy as np

from .._config import get_backend


@runtime_checkable
class BackendProtocol(Protocol):
    """What :class:`~procrustes_allometry.tester.PermutationTester` needs
    from an engine."""

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool: ...

    def batch_rss(
        self,
        bases: Sequence[np.ndarray],
        fitted: np.ndarray,
        residuals: np.ndarray,
        perm_indices: np.ndarray,
        n_jobs: int = 1,
    ) -> np.ndarray:
        """Residual sums of squares of every permuted response.

        Args:
            bases: Orthonormal column-space bases, one ``(n, r_j)``
                matrix per design.
            fitted: Fixed part of the permuted response ``(n, v)``.
            residuals: Part of the response that is permuted ``(n, v)``.
            perm_indices: Permutation matrix ``(B, n)``.
            n_jobs: Parallel workers (ignored by vectorised backends).

        Returns:
            Array ``(len(bases), B)``; column ``b`` belongs to
            permutation row ``b`` regardless of how work was split.
        """
        ...


def _make_numpy() -> BackendProtocol:
    from ._numpy import NumpyBackend

    return NumpyBackend()


def _make_jax() -> BackendProtocol:
    from ._jax import JaxBackend

    engine = JaxBackend()
    if not engine.is_available:
        raise ImportError(
            "JAX is not installed, so backend 'jax' cannot be used; "
            "install the 'jax' extra or select the NumPy engine instead"
        )
    return engine


_FACTORIES: dict[str, Callable[[], BackendProtocol]] = {
    "numpy": _make_numpy,
    "jax": _make_jax,
}

# One engine object per name for the life of the process.
_instances: dict[str, BackendProtocol] = {}


def resolve_backend(name: str | None = None) -> BackendProtocol:
    """Engine object for *name*, or for the configured default.

    Raises:
        ImportError: ``"jax"`` was named but JAX cannot be imported.
        ValueError: *name* is not an engine this package provides.
    """
    key = (get_backend() if name is None else name).strip().lower()
    engine = _instances.get(key)
    if engine is None:
        factory = _FACTORIES.get(key)
        if factory is None:
            raise ValueError(
                f"Unknown backend {name!r}; available: {sorted(_FACTORIES)}"
            )
        engine = _instances[key] = factory()
    return engine


__all__ = ["BackendProtocol", "resolve_backend"]
