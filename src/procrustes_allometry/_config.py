"""Choice of compute backend for the permutation loop.

Two engines can evaluate the residual sums of squares of every
permuted response: a JAX path compiled with ``jit``/``vmap`` and a
chunked NumPy path.  The engine in force is decided, highest priority
first, by

    1. a name passed to :func:`set_backend`,
    2. the ``PROCRUSTES_ALLOMETRY_BACKEND`` environment variable,
    3. whether ``jax`` can be found on the import path.

Examples:
    From the shell, for every process started afterwards::

        export PROCRUSTES_ALLOMETRY_BACKEND=numpy

    From Python, for the current session::

        import procrustes_allometry
        procrustes_allometry.set_backend("numpy")
        ...
        procrustes_allometry.set_backend("auto")  # back to detection
"""

from __future__ import annotations

import importlib.util
import os

BACKEND_ENV_VAR = "PROCRUSTES_ALLOMETRY_BACKEND"

ENGINES = ("jax", "numpy")

# ``None`` and ``"auto"`` both mean the session has no pinned engine.
_pinned: str | None = None


def _jax_importable() -> bool:
    return importlib.util.find_spec("jax") is not None


def _from_environment() -> str | None:
    value = os.environ.get(BACKEND_ENV_VAR, "").strip().lower()
    return value if value in ENGINES else None


def get_backend() -> str:
    """Name of the engine that the next analysis will use.

    Unrecognised values of the environment variable are ignored.
    """
    if _pinned in ENGINES:
        return _pinned
    env = _from_environment()
    if env is not None:
        return env
    return "jax" if _jax_importable() else "numpy"


def set_backend(name: str) -> None:
    """Pin the engine for this session.

    Args:
        name: ``"jax"`` or ``"numpy"``, in any letter case.  Passing
            ``"auto"`` clears the pin so the environment variable and
            detection apply again.

    Raises:
        ValueError: *name* is none of the accepted values.
    """
    global _pinned
    choice = name.strip().lower()
    if choice != "auto" and choice not in ENGINES:
        raise ValueError(
            f"Unknown backend {name!r}; expected one of "
            f"{', '.join(ENGINES)} or 'auto'"
        )
    _pinned = None if choice == "auto" else choice
