"""Supplementary diagnostics for allometry analyses.

* **Model summary** -- sample size, number of shape variables, design
  rank, residual degrees of freedom and the multivariate R^2
  ``1 - RSS / TSS`` of the accepted model.

* **Monte Carlo standard error** -- the precision of each empirical
  p-value due to the finite number of permutations B:
  ``SE = sqrt(p (1 - p) / (B + 1))``.

* **Classical MANOVA** -- Pillai's trace with its F approximation for
  each model term, computed with statsmodels.  These parametric tests
  assume multivariate normal errors and need more residual degrees of
  freedom than shape variables, which Procrustes data rarely have
  (``v`` often exceeds ``n``).  They are reported only when
  ``df_resid > v``, for comparison with the permutation p-values.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any

import numpy as np
import pandas as pd
from statsmodels.multivariate.manova import MANOVA

from .design import ModelSpec
from .fitting import LinearFitResult, total_ss

logger = logging.getLogger(__name__)


def compute_model_summary(Y: np.ndarray, fit: LinearFitResult) -> dict[str, Any]:
    """Size and goodness of fit of the accepted model."""
    Y = np.asarray(Y, dtype=float)
    tss = total_ss(Y)
    return {
        "n_specimens": int(Y.shape[0]),
        "n_shape_variables": int(Y.shape[1]),
        "design_rank": int(fit.rank),
        "df_resid": int(fit.df_resid),
        "rss": fit.rss,
        "total_ss": tss,
        "r_squared": 1.0 - fit.rss / tss if tss > 0 else float("nan"),
    }


def compute_monte_carlo_se(
    raw_p_values: np.ndarray,
    n_permutations: int,
) -> np.ndarray:
    """Monte Carlo standard error of empirical p-values.

    Args:
        raw_p_values: Empirical p-values.
        n_permutations: Number of random permutations (B), excluding
            the observed ordering.

    Returns:
        ``sqrt(p (1 - p) / (B + 1))`` element-wise.
    """
    p = np.asarray(raw_p_values, dtype=float)
    result: np.ndarray = np.sqrt(p * (1.0 - p) / (n_permutations + 1))
    return result


def classical_manova(
    Y: np.ndarray,
    data: pd.DataFrame,
    model: ModelSpec,
) -> dict[str, dict[str, float]]:
    """Pillai's trace test of each term of *model* (statsmodels).

    Returns:
        ``{term_label: {"pillai", "f_value", "num_df", "den_df",
        "p_value"}}``, or an empty dict when the model leaves too few
        residual degrees of freedom or the fit fails.
    """
    Y = np.asarray(Y, dtype=float)
    design = model.design_matrix(data)
    n, q = design.values.shape
    if n - q <= Y.shape[1]:
        logger.debug(
            "Classical MANOVA skipped: %d residual df for %d shape variables.",
            n - q,
            Y.shape[1],
        )
        return {}

    hypotheses = []
    for term in model.terms:
        cols = design.columns_for(term.label)
        L = np.zeros((len(cols), q))
        for row, col in enumerate(cols):
            L[row, col] = 1.0
        hypotheses.append((term.label, L))

    out: dict[str, dict[str, float]] = {}
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            mv = MANOVA(Y, design.values).mv_test(hypotheses=hypotheses)
        for label, _ in hypotheses:
            row = mv.results[label]["stat"].loc["Pillai's trace"]
            out[label] = {
                "pillai": float(row["Value"]),
                "f_value": float(row["F Value"]),
                "num_df": float(row["Num DF"]),
                "den_df": float(row["Den DF"]),
                "p_value": float(row["Pr > F"]),
            }
    except Exception as exc:
        logger.debug("Classical MANOVA failed: %s", exc)
        return {}
    return out


def compute_all_diagnostics(
    Y: np.ndarray,
    data: pd.DataFrame,
    model: ModelSpec,
    fit: LinearFitResult,
    aov_table: pd.DataFrame,
    iterations: int,
) -> dict[str, Any]:
    """Collect every diagnostic for the published result."""
    term_labels = list(model.term_labels)
    p_values = aov_table.loc[term_labels, "P"].to_numpy(dtype=float)
    return {
        "model_summary": compute_model_summary(Y, fit),
        "monte_carlo_se": dict(
            zip(
                term_labels,
                compute_monte_carlo_se(p_values, iterations).tolist(),
                strict=True,
            )
        ),
        "classical_manova": classical_manova(Y, data, model),
    }


__all__ = [
    "classical_manova",
    "compute_all_diagnostics",
    "compute_model_summary",
    "compute_monte_carlo_se",
]
