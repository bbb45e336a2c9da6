"""Permutation tests for nested multivariate linear models.

:class:`PermutationTester` centralises everything that is shared by the
tests of one analysis:

1. **Response** -- the ``(n, v)`` shape matrix, copied read-only.
2. **Model data** -- the frame the :class:`~.design.ModelSpec` terms
   are evaluated on.
3. **Seed resolution and permutation indices** -- generated once; row 0
   is the identity so the observed statistic is the first entry of
   every random distribution.  All tests on the same tester reuse the
   same rows.
4. **Backend resolution** -- NumPy or JAX for the batch RSS kernel.

Residual randomisation (RRPP)
-----------------------------
Under the null hypothesis that the extra terms of the full model have
no effect, the residuals ``E_r`` of the reduced model are exchangeable.
Each permutation builds

    Y* = Yhat_r + E_r[perm]

and refits both models to ``Y*`` (Collyer & Adams, 2018).  With raw
randomisation the response rows themselves are shuffled,
``Y* = Y[perm]``, which is exact only when the reduced model is the
intercept alone.

For each ``Y*`` the tester records

    SS    = RSS_r(Y*) - RSS_f(Y*)
    F     = (SS / df) / (RSS_e(Y*) / df_e)
    f^2   = SS / RSS_e(Y*)

where ``e`` is the residual model: the full model for a single test,
the complete model for every row of an ANOVA table.

Reference:
    Collyer, M. L. & Adams, D. C. (2018). RRPP: An R package for
    fitting linear models to high-dimensional data using residual
    randomization. *Methods in Ecology and Evolution*, 9, 1772-1779.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd

from ._backends import resolve_backend
from ._results import AnovaResult, PermutationResult
from ._typing import SeedLike
from .design import DesignMatrix, ModelSpec
from .exceptions import DimensionMismatch, InvalidModel, RankDeficientDesign
from .fitting import (
    LinearFitResult,
    fit_linear_model,
    orthonormal_basis,
    term_comparisons,
    total_ss,
)
from .permutations import permutation_indices, resolve_seed
from .pvalues import effect_size, empirical_p_value

logger = logging.getLogger(__name__)

_EFFECT_TYPES = ("F", "SS", "cohen")


def _normalise_effect_type(effect_type: str) -> str:
    lookup = {e.lower(): e for e in _EFFECT_TYPES}
    key = str(effect_type).strip().lower()
    if key not in lookup:
        raise ValueError(
            f"effect_type must be one of {list(_EFFECT_TYPES)}, got {effect_type!r}."
        )
    return lookup[key]


@dataclass(frozen=True)
class _NullDistribution:
    """Per-permutation statistics of one comparison."""

    df: int
    df_resid: int
    rss_reduced: np.ndarray
    rss_full: np.ndarray
    ss: np.ndarray
    f: np.ndarray
    cohen: np.ndarray

    def statistic(self, effect_type: str) -> np.ndarray:
        return {"F": self.f, "SS": self.ss, "cohen": self.cohen}[effect_type]


class PermutationTester:
    """Permutation tests of nested models for one response.

    The tester is immutable after construction: the permutation rows,
    resolved seed and backend are fixed, so every test it runs draws
    from the same reference set.

    Attributes:
        seed: Resolved integer seed.
        iterations: Number of random permutations.
        perm_indices: ``(iterations + 1, n)`` permutation rows, identity
            first.
        perm_method: ``"RRPP"`` or ``"raw"``.
        effect_type: Statistic behind p-values and Z scores.
        backend_name: ``"numpy"`` or ``"jax"``.
    """

    def __init__(
        self,
        response: np.ndarray,
        data: pd.DataFrame,
        *,
        iterations: int = 999,
        seed: SeedLike = None,
        rrpp: bool = True,
        effect_type: str = "F",
        n_jobs: int = 1,
        backend: str | None = None,
    ) -> None:
        Y = np.array(response, dtype=float)
        if Y.ndim == 1:
            Y = Y.reshape(-1, 1)
        if Y.ndim != 2:
            raise DimensionMismatch("The response must be an (n, v) matrix.")
        if len(data) != Y.shape[0]:
            raise DimensionMismatch(
                f"Model data have {len(data)} rows but the response has "
                f"{Y.shape[0]} specimens."
            )
        Y.setflags(write=False)
        self.response: np.ndarray = Y
        self.data: pd.DataFrame = data.reset_index(drop=True)

        self.effect_type: str = _normalise_effect_type(effect_type)
        self.rrpp: bool = bool(rrpp)
        self.perm_method: str = "RRPP" if self.rrpp else "raw"

        # ---- Backend ----------------------------------------------
        self._backend = resolve_backend(backend)
        self.backend_name: str = self._backend.name
        self._n_jobs = n_jobs
        if n_jobs != 1 and self.backend_name == "jax":
            warnings.warn(
                "n_jobs is ignored when the JAX backend is active because "
                "JAX uses vmap vectorisation for the permutation loop.  "
                "Falling back to n_jobs=1.",
                UserWarning,
                stacklevel=2,
            )
            self._n_jobs = 1

        # ---- Permutations -----------------------------------------
        self.iterations: int = iterations
        self.seed: int = resolve_seed(seed, iterations)
        self.perm_indices: np.ndarray = permutation_indices(
            n_samples=Y.shape[0],
            iterations=iterations,
            seed=self.seed,
        )
        logger.debug(
            "PermutationTester: n=%d, v=%d, %d permutations (%s), seed=%d, backend=%s",
            Y.shape[0],
            Y.shape[1],
            self.perm_indices.shape[0],
            self.perm_method,
            self.seed,
            self.backend_name,
        )

    # ---- Properties -----------------------------------------------

    @property
    def n_permutations(self) -> int:
        """Size of the reference set, ``iterations + 1``."""
        return int(self.perm_indices.shape[0])

    @property
    def n_specimens(self) -> int:
        return int(self.response.shape[0])

    # ---- Fitting helpers ------------------------------------------

    def design(self, model: ModelSpec) -> DesignMatrix:
        return model.design_matrix(self.data)

    def fit(self, model: ModelSpec) -> tuple[DesignMatrix, LinearFitResult]:
        """Fit *model* to the observed response."""
        design = self.design(model)
        result = fit_linear_model(design.values, self.response, columns=design.columns)
        return design, result

    # ---- Core permutation loop ------------------------------------

    def _null_distribution(
        self,
        reduced: ModelSpec,
        full: ModelSpec,
        residual: ModelSpec | None = None,
    ) -> _NullDistribution:
        if not full.nests(reduced):
            raise InvalidModel(
                f"The reduced model '{reduced.formula}' is not strictly "
                f"nested in the full model '{full.formula}'."
            )

        design_r, fit_r = self.fit(reduced)
        design_f, fit_f = self.fit(full)
        df = fit_f.rank - fit_r.rank
        if df <= 0:
            raise InvalidModel(
                f"'{full.formula}' adds no estimable columns to "
                f"'{reduced.formula}'."
            )

        bases = [orthonormal_basis(design_r.values), orthonormal_basis(design_f.values)]
        if residual is None or residual == full:
            df_resid = fit_f.df_resid
        else:
            design_e, fit_e = self.fit(residual)
            df_resid = fit_e.df_resid
            bases.append(orthonormal_basis(design_e.values))

        if df_resid <= 0:
            raise RankDeficientDesign(
                "The residual model leaves no residual degrees of freedom.",
                rank=self.n_specimens - df_resid,
                expected_rank=self.n_specimens - 1,
            )

        if self.rrpp:
            fixed, permuted = fit_r.fitted, fit_r.residuals
        else:
            fixed, permuted = np.zeros_like(self.response), self.response

        rss = self._backend.batch_rss(
            bases, fixed, permuted, self.perm_indices, n_jobs=self._n_jobs
        )
        rss_r, rss_f = rss[0], rss[1]
        rss_e = rss[2] if rss.shape[0] > 2 else rss_f

        # Round-off can push an exactly-zero effect slightly negative.
        ss = np.clip(rss_r - rss_f, 0.0, None)
        with np.errstate(divide="ignore", invalid="ignore"):
            f = (ss / df) / (rss_e / df_resid)
            cohen = ss / rss_e

        return _NullDistribution(
            df=df,
            df_resid=df_resid,
            rss_reduced=rss_r,
            rss_full=rss_f,
            ss=ss,
            f=f,
            cohen=cohen,
        )

    # ---- Public API -----------------------------------------------

    def test(
        self,
        reduced: ModelSpec,
        full: ModelSpec,
        *,
        effect_type: str | None = None,
    ) -> PermutationResult:
        """Permutation test of *full* against the nested *reduced* model.

        Args:
            reduced: Null model; its terms must be a strict subset of
                *full*'s.
            full: Alternative model.
            effect_type: Override the tester's statistic for this test.

        Returns:
            Observed statistics, random distributions (observed first),
            p-value and effect size.

        Raises:
            InvalidModel: If *reduced* is not strictly nested in *full*.
            RankDeficientDesign: If either design is singular.
        """
        etype = self.effect_type if effect_type is None else _normalise_effect_type(effect_type)
        null = self._null_distribution(reduced, full)
        stat = null.statistic(etype)
        p_value = empirical_p_value(stat)
        logger.debug(
            "test %s vs %s: SS=%.6g F=%.6g p=%.4g",
            reduced.formula,
            full.formula,
            null.ss[0],
            null.f[0],
            p_value,
        )
        return PermutationResult(
            reduced=reduced,
            full=full,
            df=null.df,
            df_resid=null.df_resid,
            rss_reduced=float(null.rss_reduced[0]),
            rss_full=float(null.rss_full[0]),
            ss=float(null.ss[0]),
            f=float(null.f[0]),
            cohen_f2=float(null.cohen[0]),
            random_ss=null.ss,
            random_f=null.f,
            random_cohenf=null.cohen,
            effect_type=etype,
            p_value=p_value,
            z=effect_size(stat),
            perm_method=self.perm_method,
            seed=self.seed,
            n_permutations=self.n_permutations,
        )

    def anova(self, model: ModelSpec, ss_type: str = "I") -> AnovaResult:
        """Procrustes ANOVA table of *model* with permutation inference.

        Each term is tested with the comparison its SS type defines
        (see :func:`~.fitting.term_comparisons`); every test uses the
        same permutation rows and the complete model as residual model.

        Args:
            model: The complete model (at least one term).
            ss_type: ``"I"`` (sequential), ``"II"`` or ``"III"``.

        Returns:
            Table with rows per term plus ``Residuals`` and ``Total``,
            and ``(iterations + 1, n_terms)`` random distributions.
        """
        if not model.terms:
            raise InvalidModel("The ANOVA model has no terms to test.")
        comparisons = term_comparisons(model, ss_type)
        ss_type = str(ss_type).upper()

        _, fit_c = self.fit(model)
        tss = total_ss(self.response)
        n = self.n_specimens

        rows: list[dict[str, float]] = []
        ss_cols, f_cols, cohen_cols = [], [], []
        for term, reduced, full in comparisons:
            null = self._null_distribution(reduced, full, residual=model)
            stat = null.statistic(self.effect_type)
            ss_obs = float(null.ss[0])
            rows.append(
                {
                    "Df": null.df,
                    "SS": ss_obs,
                    "MS": ss_obs / null.df,
                    "Rsq": ss_obs / tss if tss > 0 else np.nan,
                    "F": float(null.f[0]),
                    "Z": effect_size(stat),
                    "P": empirical_p_value(stat),
                }
            )
            ss_cols.append(null.ss)
            f_cols.append(null.f)
            cohen_cols.append(null.cohen)
            logger.debug("anova term %s: SS=%.6g F=%.6g", term.label, ss_obs, null.f[0])

        rss_c = fit_c.rss
        nan = float("nan")
        rows.append(
            {
                "Df": fit_c.df_resid,
                "SS": rss_c,
                "MS": rss_c / fit_c.df_resid,
                "Rsq": rss_c / tss if tss > 0 else nan,
                "F": nan,
                "Z": nan,
                "P": nan,
            }
        )
        rows.append(
            {"Df": n - 1, "SS": tss, "MS": nan, "Rsq": nan, "F": nan, "Z": nan, "P": nan}
        )
        table = pd.DataFrame(
            rows,
            index=[t.label for t, _, _ in comparisons] + ["Residuals", "Total"],
            columns=["Df", "SS", "MS", "Rsq", "F", "Z", "P"],
        )
        table["Df"] = table["Df"].astype(int)
        table.attrs["ss_type"] = ss_type
        table.attrs["effect_type"] = self.effect_type
        table.attrs["perm_method"] = self.perm_method

        return AnovaResult(
            model=model,
            table=table,
            random_ss=np.column_stack(ss_cols),
            random_f=np.column_stack(f_cols),
            random_cohenf=np.column_stack(cohen_cols),
            ss_type=ss_type,
            effect_type=self.effect_type,
            perm_method=self.perm_method,
            seed=self.seed,
            n_permutations=self.n_permutations,
        )


__all__ = ["PermutationTester"]
