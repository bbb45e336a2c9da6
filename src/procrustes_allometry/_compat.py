"""Optional Polars inputs.

The public API works on pandas and NumPy objects.  When a caller
passes a ``polars.DataFrame``, ``polars.LazyFrame`` or
``polars.Series`` as shape data, size or groups, it is converted to
pandas at the boundary so that internal code only ever sees pandas or
NumPy.

Polars is an optional extra; without it the converter returns every
object unchanged.
"""

from __future__ import annotations

from typing import Any

try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _to_pandas(obj: Any) -> Any:
    """Convert Polars containers to pandas; return anything else as-is."""
    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            return obj.collect().to_pandas()
        if isinstance(obj, (pl.DataFrame, pl.Series)):
            return obj.to_pandas()
    return obj
