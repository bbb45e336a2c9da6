"""Formatted ASCII table display utilities for allometry results.

The tables follow the geomorph summary layout: a header panel with
the analysis settings, the homogeneity-of-slopes table (grouped
analyses only) and the Procrustes ANOVA table of the accepted model.
Empirical p-values carry significance stars so the two tables can be
read at a glance.
"""

from __future__ import annotations

import math
import textwrap
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from ._results import HomogeneityOfSlopesResult

if TYPE_CHECKING:
    from ._results import AllometryResult

_THRESHOLDS = (0.05, 0.01, 0.001)


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_diag_val(val: object) -> str:
    """Format a header value; ``nan`` and ``None`` become ``'N/A'``."""
    if val is None:
        return "N/A"
    if isinstance(val, float) and math.isnan(val):
        return "N/A"
    return str(val)


def _wrap(text: str, width: int = 80, indent: int = 2) -> str:
    """Word-wrap *text*, indenting continuation lines only."""
    return textwrap.fill(
        text,
        width=width,
        initial_indent="",
        subsequent_indent=" " * indent,
    )


def _stars(p: float) -> str:
    if not math.isfinite(p):
        return ""
    low, mid, high = _THRESHOLDS
    if p < high:
        return "***"
    if p < mid:
        return "**"
    if p < low:
        return "*"
    return ""


def _fmt_num(val: float, width: int, decimals: int = 4) -> str:
    """Right-aligned number that fits *width*; blank for ``nan``.

    Decimals are dropped until the value fits, then e-notation is
    used.  Values below ``10**-decimals`` go straight to e-notation.
    """
    if math.isnan(val):
        return f"{'':>{width}}"
    if val == 0 or abs(val) >= 10 ** (-decimals):
        for d in range(decimals, -1, -1):
            text = f"{val:.{d}f}"
            if len(text) <= width:
                return f"{text:>{width}}"
    for d in range(decimals, -1, -1):
        text = f"{val:.{d}e}"
        if len(text) <= width:
            break
    return f"{text:>{width}}"


def _print_frame(table: pd.DataFrame, label_width: int) -> None:
    """Print *table* on the 80-column grid.

    Integer-valued columns (``Df``, ``ResDf``) are printed without
    decimals; ``P`` is followed by its significance stars.
    """
    columns = list(table.columns)
    int_cols = {c for c in columns if c in ("Df", "ResDf")}
    avail = 80 - label_width - 4
    width = max(min(avail // len(columns), 11), 6)

    header = f"{'':<{label_width}}" + "".join(f"{c:>{width}}" for c in columns)
    print(header)
    print("-" * 80)
    for label, row in table.iterrows():
        cells = []
        for c in columns:
            val = row[c]
            if c in int_cols:
                cells.append(
                    f"{'':>{width}}" if pd.isna(val) else f"{int(val):>{width}d}"
                )
            else:
                cells.append(_fmt_num(float(val), width))
        p = float(row["P"]) if "P" in columns else float("nan")
        print(
            f"{_truncate(str(label), label_width):<{label_width}}"
            + "".join(cells)
            + f" {_stars(p):<3}"
        )


def print_hos_table(
    result: AllometryResult | HomogeneityOfSlopesResult,
    *,
    title: str = "Homogeneity of Slopes Test",
) -> None:
    """Print the homogeneity-of-slopes table and the decision it led to.

    Accepts a full analysis result or the output of
    :func:`~.slopes.decide`.  Prints a one-line note instead when the
    analysis had no groups.
    """
    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)

    hos = result if isinstance(result, HomogeneityOfSlopesResult) else result.hos
    if hos is None:
        print("No grouping factor: a single allometry was fitted.")
        print("=" * 80)
        print()
        return

    _print_frame(hos.table, label_width=18)
    print("-" * 80)
    verb = ">" if hos.p_value > hos.alpha else "<="
    print(
        _wrap(
            f"Decision: {hos.decision} allometries (P = {hos.p_value:.4f} {verb} "
            f"alpha = {hos.alpha:g}).",
            width=80,
            indent=10,
        )
    )
    print(_wrap(f"Model adopted: {hos.model.formula}", width=80, indent=15))
    print("=" * 80)
    print()


def print_anova_table(
    result: AllometryResult,
    *,
    title: str = "Procrustes ANOVA",
) -> None:
    """Print the Procrustes ANOVA table of the accepted model."""
    table = result.aov_table

    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)

    col1 = 40
    col2 = 38
    summary = result.diagnostics.get("model_summary", {})
    print(
        f"{'Permutation:':<16}{result.perm_method:<{col1 - 16}}"
        f"{'No. Specimens:':>{col2 - 11}} "
        f"{_fmt_diag_val(summary.get('n_specimens')):>10}"
    )
    print(
        f"{'SS Type:':<16}{result.ss_type:<{col1 - 16}}"
        f"{'Shape Vars:':>{col2 - 11}} "
        f"{_fmt_diag_val(summary.get('n_shape_variables')):>10}"
    )
    print(
        f"{'Effect Type:':<16}{result.effect_type:<{col1 - 16}}"
        f"{'Permutations:':>{col2 - 11}} {result.permutations:>10}"
    )
    print(f"{'Seed:':<16}{result.seed}")
    print(_wrap(f"Model: {result.formula.formula}", width=80, indent=7))
    print("-" * 80)

    _print_frame(table, label_width=18)

    print("=" * 80)
    low, mid, high = _THRESHOLDS
    print(f"(***) p < {high}   (**) p < {mid}   (*) p < {low}")
    print()


def print_allometry_summary(result: AllometryResult) -> None:
    """Print every table of an allometry analysis.

    Adds a classical MANOVA panel when the model left enough residual
    degrees of freedom for one to be computed.
    """
    if result.hos_test is not None:
        print_hos_table(result)
    print_anova_table(result)

    manova = result.diagnostics.get("classical_manova") or {}
    if not manova:
        return
    print("=" * 80)
    print(f"{'Classical MANOVA (Pillai trace)':^80}")
    print("=" * 80)
    frame = pd.DataFrame(
        {
            label: {
                "Pillai": vals["pillai"],
                "F": vals["f_value"],
                "Num Df": vals["num_df"],
                "Den Df": vals["den_df"],
                "P": vals["p_value"],
            }
            for label, vals in manova.items()
        }
    ).T
    _print_frame(frame, label_width=18)
    print("-" * 80)
    print(
        _wrap(
            "  [!] Parametric tests assume multivariate normal errors; "
            "compare with the permutation p-values above.",
            width=80,
            indent=6,
        )
    )
    print("=" * 80)
    print()


_PLOT_METHODS = ("CAC", "RegScore", "PredLine")


def allometry_plot_data(result: AllometryResult, method: str = "CAC") -> pd.DataFrame:
    """Tidy frame of the scores behind an allometry plot.

    Args:
        result: A finished allometry analysis.
        method: ``"CAC"`` (common allometric component plus the first
            residual shape component), ``"RegScore"`` or ``"PredLine"``.

    Returns:
        One row per specimen with the size variable on the model scale
        (column ``log(size)`` or ``size``), the score column(s) named
        after *method*, and ``gps`` when the analysis was grouped.

    Raises:
        ValueError: If *method* is not recognised.
    """
    lookup = {m.lower(): m for m in _PLOT_METHODS}
    key = str(method).strip().lower()
    if key not in lookup:
        raise ValueError(f"method must be one of {list(_PLOT_METHODS)}, got {method!r}.")
    method = lookup[key]

    size_label = "log(size)" if result.log_size else "size"
    frame = pd.DataFrame({size_label: np.asarray(result.size_variable, dtype=float)})
    if method == "CAC":
        frame["CAC"] = result.cac
        rsc = np.asarray(result.rsc)
        frame["RSC1"] = rsc[:, 0] if rsc.ndim == 2 and rsc.shape[1] else np.nan
    elif method == "RegScore":
        frame["RegScore"] = result.reg_proj
    else:
        frame["PredLine"] = result.pred_val
    if result.gps is not None:
        frame["gps"] = result.gps.reset_index(drop=True)
    return frame


__all__ = [
    "allometry_plot_data",
    "print_allometry_summary",
    "print_anova_table",
    "print_hos_table",
]
