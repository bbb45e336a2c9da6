"""Allometry analysis: the public entry point.

An allometry analysis relates Procrustes shape variables to a single
size covariate and, optionally, a grouping factor:

1. **Validate** the shape data, the size vector (one strictly positive
   value per specimen) and the grouping columns (categorical only).
   Everything is checked before a single permutation is drawn.
2. **Resolve the seed.**  ``None`` reuses the iteration count so the
   default run is reproducible; ``"random"`` draws one and reports it.
3. **Homogeneity of slopes** (groups only): test whether the
   size-by-group interaction is needed and adopt the pooled-slope or
   the group-specific model accordingly (:mod:`.slopes`).
4. **Procrustes ANOVA** of the accepted model with residual or raw
   randomisation (:mod:`.tester`).
5. **Projections** for plotting: CAC / RSC, RegScore, PredLine and the
   fitted shapes at the size extremes (:mod:`.projections`).
6. **Diagnostics** and assembly of the :class:`~._results.AllometryResult`.

Example::

    from procrustes_allometry import procd_allometry, print_allometry_summary

    result = procd_allometry(coords, centroid_size, groups=species,
                             iterations=999, seed=1)
    print_allometry_summary(result)
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import pandas as pd

from ._results import AllometryResult
from ._typing import ArrayLike, SeedLike
from .design import (
    ModelSpec,
    allometry_models,
    as_group_factor,
    as_size_vector,
    model_data,
)
from .diagnostics import compute_all_diagnostics
from .exceptions import InvalidIterationCount
from .landmarks import ShapeData, as_shape_matrix
from .permutations import resolve_seed
from .projections import AllometryProjector
from .slopes import decide
from .tester import PermutationTester, _normalise_effect_type

logger = logging.getLogger(__name__)

_SS_TYPES = ("I", "II", "III")


def _per_term(random: np.ndarray) -> np.ndarray:
    """Flatten a one-term distribution to a vector."""
    return random[:, 0] if random.shape[1] == 1 else random

# ------------------------------------------------------------------ #
# Options
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class AllometryOptions:
    """Settings of one allometry analysis, validated on construction.

    Raises:
        InvalidIterationCount: If *iterations* is negative or not an
            integer.
        ValueError: For any other out-of-range setting.
    """

    log_size: bool = True
    """Model ``log(size)`` rather than ``size``."""

    iterations: int = 999
    """Number of random permutations (the observed ordering is added)."""

    seed: SeedLike = None
    """``None`` (reproducible default), ``"random"`` or an integer."""

    alpha: float = 0.05
    """Significance level of the homogeneity-of-slopes test."""

    rrpp: bool = True
    """Residual randomisation (``True``) or raw randomisation."""

    effect_type: str = "F"
    """Statistic behind p-values and Z scores: ``F``, ``SS`` or ``cohen``."""

    ss_type: str = "I"
    """Sum-of-squares type of the ANOVA table: ``I``, ``II`` or ``III``."""

    n_jobs: int = 1
    """Parallel workers for the NumPy backend (``-1`` for all cores)."""

    backend: str | None = None
    """``"numpy"``, ``"jax"`` or ``None`` for the configured default."""

    def __post_init__(self) -> None:
        if isinstance(self.iterations, bool) or not isinstance(
            self.iterations, numbers.Integral
        ):
            raise InvalidIterationCount(
                f"iterations must be a non-negative integer, got {self.iterations!r}."
            )
        if self.iterations < 0:
            raise InvalidIterationCount(
                f"iterations must be >= 0, got {self.iterations}."
            )
        if not 0.0 < float(self.alpha) < 1.0:
            raise ValueError(f"alpha must lie strictly between 0 and 1, got {self.alpha}.")
        object.__setattr__(self, "effect_type", _normalise_effect_type(self.effect_type))
        ss_type = str(self.ss_type).upper()
        if ss_type not in _SS_TYPES:
            raise ValueError(f"ss_type must be one of {_SS_TYPES}, got {self.ss_type!r}.")
        object.__setattr__(self, "ss_type", ss_type)
        if isinstance(self.seed, str):
            if self.seed.strip().lower() != "random":
                raise ValueError(
                    f"seed must be None, 'random', or an integer, got {self.seed!r}."
                )
        elif self.seed is not None and (
            isinstance(self.seed, bool) or not isinstance(self.seed, numbers.Integral)
        ):
            raise ValueError(
                f"seed must be None, 'random', or an integer, got {self.seed!r}."
            )
        if not isinstance(self.n_jobs, numbers.Integral) or self.n_jobs == 0:
            raise ValueError(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}.")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ------------------------------------------------------------------ #
# Analysis
# ------------------------------------------------------------------ #


class AllometryAnalysis:
    """Run allometry analyses with fixed options.

    Args:
        options: Analysis settings; defaults to :class:`AllometryOptions`.
    """

    def __init__(self, options: AllometryOptions | None = None) -> None:
        self.options = options if options is not None else AllometryOptions()

    def _validate(
        self,
        shape: object,
        size: object,
        groups: object | None,
    ) -> tuple[ShapeData, pd.DataFrame, pd.Series | None]:
        shape_data = as_shape_matrix(shape)
        n = shape_data.n_specimens
        sz = as_size_vector(size, n)
        gps = as_group_factor(groups, n) if groups is not None else None
        return shape_data, model_data(sz, gps), gps

    def run(
        self,
        shape: object,
        size: object,
        groups: object | None = None,
    ) -> AllometryResult:
        """Analyse the allometry of *shape* on *size*.

        Args:
            shape: ``(n, v)`` matrix / DataFrame of shape variables or a
                ``(p, k, n)`` landmark array.
            size: Strictly positive size values, one per specimen.
            groups: Optional grouping labels, or a frame of
                categorical columns combined into one factor.

        Returns:
            The complete :class:`~._results.AllometryResult`.

        Raises:
            NonPositiveSize: If a size value is not strictly positive.
            SingleCovariateRequired: If *size* has several columns.
            NonFactorGrouping: If a grouping column is numeric.
            DimensionMismatch: If the inputs disagree on ``n``.
            RankDeficientDesign: If the accepted design is singular.
            DegenerateAllometricDirection: If shape does not covary
                with size.
        """
        opts = self.options
        shape_data, data, gps = self._validate(shape, size, groups)
        Y = shape_data.values

        seed = resolve_seed(opts.seed, opts.iterations)
        logger.debug(
            "Allometry analysis: n=%d, v=%d, groups=%s, seed=%d",
            Y.shape[0],
            Y.shape[1],
            None if gps is None else list(gps.cat.categories),
            seed,
        )

        # ---- Model selection --------------------------------------
        hos = None
        if gps is None:
            final: ModelSpec = allometry_models(opts.log_size)["common"]
        else:
            hos_tester = PermutationTester(
                Y,
                data,
                iterations=opts.iterations,
                seed=seed,
                rrpp=True,
                effect_type="F",
                n_jobs=opts.n_jobs,
                backend=opts.backend,
            )
            hos = decide(
                data["size"],
                Y,
                gps,
                log_size=opts.log_size,
                alpha=opts.alpha,
                tester=hos_tester,
            )
            final = hos.model

        # ---- ANOVA ------------------------------------------------
        tester = PermutationTester(
            Y,
            data,
            iterations=opts.iterations,
            seed=seed,
            rrpp=opts.rrpp,
            effect_type=opts.effect_type,
            n_jobs=opts.n_jobs,
            backend=opts.backend,
        )
        design, fit = tester.fit(final)
        anova = tester.anova(final, ss_type=opts.ss_type)

        # ---- Projections ------------------------------------------
        sz = data["size"].to_numpy(dtype=float)
        sz_model = design.values[:, design.columns_for(final.terms[0].label)[0]]
        proj = AllometryProjector(final, design, fit).project(Y, sz_model)

        diagnostics = compute_all_diagnostics(
            Y, data, final, fit, anova.table, opts.iterations
        )
        diagnostics["backend"] = tester.backend_name

        coefficients = pd.DataFrame(
            fit.coefficients,
            index=list(design.columns),
            columns=list(shape_data.columns)
            or [f"V{j + 1}" for j in range(Y.shape[1])],
        )

        return AllometryResult(
            hos_test=None if hos is None else hos.table,
            aov_table=anova.table,
            alpha=float(opts.alpha),
            perm_method=tester.perm_method,
            permutations=tester.n_permutations,
            seed=seed,
            effect_type=opts.effect_type,
            ss_type=opts.ss_type,
            formula=final,
            data=data,
            coefficients=coefficients,
            random_ss=_per_term(anova.random_ss),
            random_f=_per_term(anova.random_f),
            random_cohenf=_per_term(anova.random_cohenf),
            cac=proj.cac,
            rsc=proj.rsc,
            allometric_direction=proj.allometric_direction,
            reg_proj=proj.reg_proj,
            pred_val=proj.pred_val,
            ref=shape_data.restore_row(proj.ref),
            A=shape_data.restore(Y),
            Ahat=shape_data.restore(proj.fitted),
            Ahat_at_min=shape_data.restore_row(proj.at_min),
            Ahat_at_max=shape_data.restore_row(proj.at_max),
            gps=gps,
            size=sz,
            log_size=opts.log_size,
            p=shape_data.p,
            k=shape_data.k,
            hos=hos,
            anova=anova,
            diagnostics=diagnostics,
        )


def procd_allometry(
    shape: ArrayLike,
    size: ArrayLike,
    groups: ArrayLike | None = None,
    *,
    log_size: bool = True,
    iterations: int = 999,
    seed: SeedLike = None,
    alpha: float = 0.05,
    rrpp: bool = True,
    effect_type: str = "F",
    ss_type: str = "I",
    n_jobs: int = 1,
    backend: str | None = None,
) -> AllometryResult:
    """Procrustes ANOVA of shape on size with an optional group factor.

    Convenience wrapper around :class:`AllometryAnalysis`; see
    :class:`AllometryOptions` for the meaning of each keyword.

    Returns:
        The :class:`~._results.AllometryResult` of the accepted model.
    """
    options = AllometryOptions(
        log_size=log_size,
        iterations=iterations,
        seed=seed,
        alpha=alpha,
        rrpp=rrpp,
        effect_type=effect_type,
        ss_type=ss_type,
        n_jobs=n_jobs,
        backend=backend,
    )
    return AllometryAnalysis(options).run(shape, size, groups)


__all__ = ["AllometryAnalysis", "AllometryOptions", "procd_allometry"]
