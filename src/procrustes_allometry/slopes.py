"""Homogeneity of allometric slopes.

With a grouping factor the allometry can be described by three nested
models over the size covariate (``log(size)`` or ``size``):

a. ``size``                    common allometry, no group effect
b. ``size + gps``              parallel allometries (group intercepts)
c. ``size + gps + size:gps``   group-specific allometries

The homogeneity-of-slopes (HOS) test compares (b) with (c).  The
interaction term is tested by residual randomisation of model (b) and
the F statistic, whatever the settings of the main analysis.  If the
interaction p-value exceeds ``alpha`` the slopes are pooled and (b) is
adopted; otherwise (c) is adopted.
"""

from __future__ import annotations

import logging

import pandas as pd

from ._results import HomogeneityOfSlopesResult, PermutationResult
from ._typing import SeedLike
from .design import allometry_models, as_group_factor, as_size_vector, model_data
from .fitting import total_ss
from .landmarks import as_shape_matrix
from .tester import PermutationTester

logger = logging.getLogger(__name__)

HOS_ROWS = ("Common Allometry", "Group Allometries", "Total")
HOS_COLUMNS = ("ResDf", "Df", "RSS", "SS", "Rsq", "F", "Z", "P")


def _check_alpha(alpha: float) -> float:
    alpha = float(alpha)
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must lie strictly between 0 and 1, got {alpha}.")
    return alpha


def decide(
    size: object,
    shape: object,
    group: object,
    *,
    log_size: bool = True,
    alpha: float = 0.05,
    iterations: int = 999,
    seed: SeedLike = None,
    n_jobs: int = 1,
    backend: str | None = None,
    tester: PermutationTester | None = None,
) -> HomogeneityOfSlopesResult:
    """Test slope homogeneity and choose the final allometry model.

    Args:
        size: Positive size covariate, one value per specimen.
        shape: Shape data (``(n, v)`` matrix or ``(p, k, n)`` array).
        group: Grouping labels, or a frame of categorical columns that
            are combined into one composite factor.
        log_size: Model ``log(size)`` instead of ``size``.
        alpha: Significance level of the interaction test.
        iterations: Number of random permutations.
        seed: ``None``, ``"random"`` or an integer.
        n_jobs: Parallel workers for the NumPy backend.
        backend: ``"numpy"``, ``"jax"`` or ``None`` for the default.
        tester: Reuse an existing RRPP / F tester built on the same
            model data; *iterations*, *seed*, *n_jobs* and *backend*
            are then ignored.

    Returns:
        The HOS table, interaction p-value, decision and adopted model.

    Raises:
        NonFactorGrouping: If a grouping column is numeric.
        SingleCovariateRequired: If *size* has more than one column.
        NonPositiveSize: If any size is not strictly positive.
        InvalidModel: If the group factor has fewer than two levels.
    """
    alpha = _check_alpha(alpha)
    models = allometry_models(log_size=log_size, grouped=True)

    if tester is None:
        Y = as_shape_matrix(shape).values
        sz = as_size_vector(size, Y.shape[0])
        gps = as_group_factor(group, Y.shape[0])
        tester = PermutationTester(
            Y,
            model_data(sz, gps),
            iterations=iterations,
            seed=seed,
            rrpp=True,
            effect_type="F",
            n_jobs=n_jobs,
            backend=backend,
        )

    parallel, group_specific = models["parallel"], models["group_specific"]
    result = tester.test(parallel, group_specific, effect_type="F")

    p_value = result.p_value
    # A tie at alpha keeps the interaction.
    pooled = p_value > alpha
    decision = "parallel" if pooled else "group-specific"
    chosen = parallel if pooled else group_specific
    logger.info(
        "Homogeneity of slopes: p = %.4g (alpha = %g); adopting %s allometries (%s).",
        p_value,
        alpha,
        decision,
        chosen.formula,
    )

    table = hos_table(result, total_ss(tester.response), tester.n_specimens)
    table.attrs["decision"] = decision
    table.attrs["formula"] = chosen.formula

    return HomogeneityOfSlopesResult(
        table=table,
        p_value=p_value,
        alpha=alpha,
        decision=decision,
        model=chosen,
        test=result,
    )


def hos_table(result: PermutationResult, tss: float, n_specimens: int) -> pd.DataFrame:
    """Lay out a parallel-vs-group-specific test as the HOS table."""
    nan = float("nan")
    rsq = result.ss / tss if tss > 0 else nan
    rows = [
        [result.df_resid + result.df, nan, result.rss_reduced, nan, nan, nan, nan, nan],
        [
            result.df_resid,
            result.df,
            result.rss_full,
            result.ss,
            rsq,
            result.f,
            result.z,
            result.p_value,
        ],
        [n_specimens - 1, nan, tss, nan, nan, nan, nan, nan],
    ]
    table = pd.DataFrame(rows, index=list(HOS_ROWS), columns=list(HOS_COLUMNS))
    table["ResDf"] = table["ResDf"].astype(int)
    return table


__all__ = ["HOS_COLUMNS", "HOS_ROWS", "decide", "hos_table"]
