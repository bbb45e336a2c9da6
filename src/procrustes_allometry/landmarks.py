"""Landmark array helpers.

Shape data arrive either as an ``(n, v)`` matrix of shape variables or
as a 3-D landmark array of shape ``(p, k, n)``: *p* landmarks in *k*
dimensions for each of *n* specimens.  The two layouts are converted
with the geomorph conventions:

* :func:`two_d_array` flattens each specimen's ``(p, k)`` configuration
  row-wise, so a row reads ``x1, y1, [z1,] x2, y2, ...``.
* :func:`arrayspecs` is its exact inverse.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from ._compat import _to_pandas
from .exceptions import AllometryError, DimensionMismatch


def two_d_array(A: np.ndarray) -> np.ndarray:
    """Flatten a ``(p, k, n)`` landmark array to an ``(n, p*k)`` matrix."""
    A = np.asarray(A, dtype=float)
    if A.ndim != 3:
        raise DimensionMismatch(
            f"Expected a (p, k, n) landmark array, got {A.ndim} dimension(s)."
        )
    p, k, n = A.shape
    return np.transpose(A, (2, 0, 1)).reshape(n, p * k)


def arrayspecs(Y: np.ndarray, p: int, k: int) -> np.ndarray:
    """Reshape an ``(n, p*k)`` matrix into a ``(p, k, n)`` landmark array."""
    Y = np.asarray(Y, dtype=float)
    if Y.ndim == 1:
        Y = Y[np.newaxis, :]
    n, v = Y.shape
    if v != p * k:
        raise DimensionMismatch(
            f"Cannot reshape {v} shape variables into {p} landmarks "
            f"in {k} dimensions."
        )
    return np.transpose(Y.reshape(n, p, k), (1, 2, 0))


def mean_shape(A: np.ndarray) -> np.ndarray:
    """Consensus shape: the mean over specimens.

    Works on both layouts: a ``(p, k, n)`` array yields a ``(p, k)``
    configuration, an ``(n, v)`` matrix a length-``v`` vector.
    """
    A = np.asarray(A, dtype=float)
    if A.ndim == 3:
        return A.mean(axis=2)
    return A.mean(axis=0)


@dataclass(frozen=True)
class ShapeData:
    """Shape variables in matrix form plus the layout they came from."""

    values: np.ndarray
    """Read-only ``(n, v)`` matrix of shape variables."""

    p: int | None = None
    """Number of landmarks (``None`` for 2-D input)."""

    k: int | None = None
    """Landmark dimensionality (``None`` for 2-D input)."""

    columns: tuple[str, ...] = ()
    """Shape variable names when the input was a DataFrame."""

    @property
    def is_landmark_array(self) -> bool:
        return self.p is not None

    @property
    def n_specimens(self) -> int:
        return int(self.values.shape[0])

    def restore(self, Y: np.ndarray) -> np.ndarray:
        """Return *Y* in the input layout (3-D when the input was 3-D)."""
        if self.p is None or self.k is None:
            return np.asarray(Y)
        return arrayspecs(Y, self.p, self.k)

    def restore_row(self, row: np.ndarray) -> np.ndarray:
        """Return a single specimen row as a ``(p, k)`` configuration."""
        if self.p is None or self.k is None:
            return np.asarray(row)
        return np.asarray(row).reshape(self.p, self.k)


def as_shape_matrix(shape: object) -> ShapeData:
    """Coerce any supported shape input to :class:`ShapeData`.

    Accepts a 3-D ``(p, k, n)`` landmark array, a 2-D array, a 1-D
    vector (one shape variable), or a pandas / Polars DataFrame.

    Raises:
        DimensionMismatch: If the input has more than three dimensions.
        AllometryError: If the shape data contain non-finite values.
    """
    shape = _to_pandas(shape)
    columns: tuple[str, ...] = ()
    if isinstance(shape, pd.DataFrame):
        columns = tuple(str(c) for c in shape.columns)
        arr = shape.to_numpy(dtype=float)
    else:
        arr = np.asarray(shape, dtype=float)

    p: int | None = None
    k: int | None = None
    if arr.ndim == 3:
        p, k = int(arr.shape[0]), int(arr.shape[1])
        values = two_d_array(arr)
    elif arr.ndim == 2:
        values = arr.copy()
    elif arr.ndim == 1:
        values = arr.reshape(-1, 1).copy()
    else:
        raise DimensionMismatch(
            f"Shape data must be a 2-D matrix or a (p, k, n) array, "
            f"got {arr.ndim} dimensions."
        )

    if not np.all(np.isfinite(values)):
        raise AllometryError("Shape data contain missing or non-finite values.")

    values.setflags(write=False)
    return ShapeData(values=values, p=p, k=k, columns=columns)


__all__ = [
    "ShapeData",
    "arrayspecs",
    "as_shape_matrix",
    "mean_shape",
    "two_d_array",
]
