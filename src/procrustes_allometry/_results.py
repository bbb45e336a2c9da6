"""Result records returned by the allometry pipeline.

Each record is a frozen dataclass: once a computation finishes its
result cannot be edited.  Besides attribute access, every record can be
read like a read-only mapping (``result["cac"]``, ``result.get(...)``,
``name in result``) and flattened with ``to_dict()`` into builtin
types that :mod:`json` accepts.

:class:`PermutationResult`
    One reduced-versus-full permutation test.
:class:`AnovaResult`
    A per-term Procrustes ANOVA table and its null distributions.
:class:`HomogeneityOfSlopesResult`
    The parallel-versus-group-specific slope test and its verdict.
:class:`AllometryResult`
    Everything :func:`~procrustes_allometry.procd_allometry` publishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

import numpy as np
import pandas as pd

from .design import ModelSpec


def _to_native(value: Any) -> Any:
    """Replace NumPy, pandas and model objects with builtin equivalents."""
    if isinstance(value, pd.DataFrame):
        # Row labels become an "index" column so term names survive.
        return _to_native(value.reset_index().to_dict(orient="list"))
    if isinstance(value, (pd.Series, pd.Categorical)):
        return [_to_native(v) for v in value]
    if isinstance(value, ModelSpec):
        return value.formula
    if isinstance(value, _MappingAccess):
        return value.to_dict()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, dict):
        return {key: _to_native(v) for key, v in value.items()}
    if isinstance(value, tuple):
        return tuple(_to_native(v) for v in value)
    if isinstance(value, list):
        return [_to_native(v) for v in value]
    return value


class _MappingAccess:
    """Read-only mapping view over the dataclass fields."""

    _SKIP_IN_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, name: str) -> Any:
        if isinstance(name, str) and hasattr(self, name):
            return getattr(self, name)
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and hasattr(self, name)

    def get(self, name: str, default: Any = None) -> Any:
        return self[name] if name in self else default

    def to_dict(self) -> dict[str, Any]:
        """Field values converted by :func:`_to_native`; linked sub-results
        listed in ``_SKIP_IN_DICT`` are left out."""
        return {
            f.name: _to_native(getattr(self, f.name))
            for f in fields(self)  # type: ignore[arg-type]
            if f.name not in self._SKIP_IN_DICT
        }


# ------------------------------------------------------------------ #
# PermutationResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PermutationResult(_MappingAccess):
    """Permutation test of a full model against a nested reduced model."""

    # ---- Models ----------------------------------------------------
    reduced: ModelSpec
    """The null (reduced) model."""

    full: ModelSpec
    """The alternative (full) model."""

    # ---- Observed statistics ---------------------------------------
    df: int
    """Rank difference between the full and reduced designs."""

    df_resid: int
    """Residual degrees of freedom of the residual model."""

    rss_reduced: float
    """Observed RSS of the reduced model."""

    rss_full: float
    """Observed RSS of the full model."""

    ss: float
    """Observed effect sum of squares, ``rss_reduced - rss_full``."""

    f: float
    """Observed F ratio."""

    cohen_f2: float
    """Observed Cohen's f^2 (effect SS over residual SS)."""

    # ---- Null distributions ----------------------------------------
    random_ss: np.ndarray
    """Effect SS for every permutation, observed first, ``(iterations + 1,)``."""

    random_f: np.ndarray
    """F ratio for every permutation, observed first."""

    random_cohenf: np.ndarray
    """Cohen's f^2 for every permutation, observed first."""

    # ---- Inference -------------------------------------------------
    effect_type: str
    """Statistic the p-value and Z are based on (``F``, ``SS``, ``cohen``)."""

    p_value: float
    """Inclusive empirical p-value of the chosen statistic."""

    z: float
    """Effect size (standard deviate) of the chosen statistic."""

    # ---- Metadata --------------------------------------------------
    perm_method: str
    """``"RRPP"`` or ``"raw"``."""

    seed: int
    """Seed that generated the permutations."""

    n_permutations: int
    """Size of the reference set, ``iterations + 1``."""

    @property
    def random_statistic(self) -> np.ndarray:
        """Distribution of the statistic chosen by ``effect_type``."""
        return {
            "F": self.random_f,
            "SS": self.random_ss,
            "cohen": self.random_cohenf,
        }[self.effect_type]


# ------------------------------------------------------------------ #
# AnovaResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class AnovaResult(_MappingAccess):
    """Procrustes ANOVA of one model with permutation inference per term."""

    model: ModelSpec
    """The complete model."""

    table: pd.DataFrame
    """Rows: one per term, then ``Residuals`` and ``Total``.
    Columns: ``Df, SS, MS, Rsq, F, Z, P``."""

    random_ss: np.ndarray
    """Term SS per permutation, ``(iterations + 1, n_terms)``."""

    random_f: np.ndarray
    """Term F ratios per permutation, ``(iterations + 1, n_terms)``."""

    random_cohenf: np.ndarray
    """Term Cohen's f^2 per permutation, ``(iterations + 1, n_terms)``."""

    ss_type: str
    """``"I"``, ``"II"`` or ``"III"``."""

    effect_type: str
    perm_method: str
    seed: int
    n_permutations: int


# ------------------------------------------------------------------ #
# HomogeneityOfSlopesResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class HomogeneityOfSlopesResult(_MappingAccess):
    """Outcome of the homogeneity-of-slopes test."""

    table: pd.DataFrame
    """Rows ``Common Allometry``, ``Group Allometries``, ``Total``;
    columns ``ResDf, Df, RSS, SS, Rsq, F, Z, P``."""

    p_value: float
    """P-value of the slope-by-group interaction."""

    alpha: float
    """Significance level the decision was taken at."""

    decision: str
    """``"parallel"`` (common slope) or ``"group-specific"``."""

    model: ModelSpec
    """The adopted model."""

    test: PermutationResult
    """The underlying permutation test."""

    @property
    def pooled(self) -> bool:
        """``True`` when the common-slope model was adopted."""
        return self.decision == "parallel"

    @property
    def decision_formula(self) -> ModelSpec:
        return self.model

    @property
    def hos_table(self) -> pd.DataFrame:
        return self.table


# ------------------------------------------------------------------ #
# AllometryResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class AllometryResult(_MappingAccess):
    """Published record of an allometry analysis.

    Shape-valued fields (``A``, ``Ahat``, ``Ahat_at_min``,
    ``Ahat_at_max``, ``ref``) keep the layout of the input: 3-D
    landmark arrays when a ``(p, k, n)`` array was analysed, 2-D
    matrices / vectors otherwise.
    """

    # ---- Tests -----------------------------------------------------
    hos_test: pd.DataFrame | None
    """Homogeneity-of-slopes table, ``None`` without groups."""

    aov_table: pd.DataFrame
    """Procrustes ANOVA table of the accepted model."""

    alpha: float
    """Significance level of the homogeneity-of-slopes decision."""

    perm_method: str
    """``"RRPP"`` or ``"raw"``."""

    permutations: int
    """Size of the reference set, ``iterations + 1``."""

    seed: int
    """Seed that generated the permutations."""

    effect_type: str
    ss_type: str

    # ---- Accepted model --------------------------------------------
    formula: ModelSpec
    """The accepted model; reusable with ``PermutationTester.anova``."""

    data: pd.DataFrame
    """Model frame: ``size`` and, when grouped, ``gps``."""

    coefficients: pd.DataFrame
    """Coefficients of the accepted model, one row per design column."""

    # ---- Null distributions ----------------------------------------
    random_ss: np.ndarray
    """Term SS per permutation, observed first.  A vector for one-term
    models, ``(permutations, n_terms)`` otherwise."""

    random_f: np.ndarray
    random_cohenf: np.ndarray

    # ---- Projections -----------------------------------------------
    cac: np.ndarray
    """Common allometric component scores ``(n,)``."""

    rsc: np.ndarray
    """Residual shape component scores ``(n, m)``."""

    allometric_direction: np.ndarray
    """Unit vector ``a`` defining the CAC, ``(v,)``."""

    reg_proj: np.ndarray
    """Regression scores: shapes projected on the size slope ``(n,)``."""

    pred_val: np.ndarray
    """PredLine: first principal component of the fitted shapes ``(n,)``."""

    # ---- Shapes ----------------------------------------------------
    ref: np.ndarray
    """Mean shape."""

    A: np.ndarray
    """Input shapes."""

    Ahat: np.ndarray
    """Fitted shapes of the accepted model."""

    Ahat_at_min: np.ndarray
    """Fitted shape of the smallest specimen."""

    Ahat_at_max: np.ndarray
    """Fitted shape of the largest specimen."""

    # ---- Covariates ------------------------------------------------
    gps: pd.Series | None
    size: np.ndarray
    log_size: bool
    p: int | None
    k: int | None

    # ---- Extras ----------------------------------------------------
    hos: HomogeneityOfSlopesResult | None = None
    """Full homogeneity-of-slopes result (decision, test), if grouped."""

    anova: AnovaResult | None = None
    """Full ANOVA result behind ``aov_table``."""

    diagnostics: dict[str, Any] = field(default_factory=dict)
    """Model summary, Monte Carlo SE and classical MANOVA comparison."""

    _SKIP_IN_DICT: ClassVar[frozenset[str]] = frozenset({"anova", "hos"})

    @property
    def size_variable(self) -> np.ndarray:
        """The size covariate on the scale the models used."""
        return np.log(self.size) if self.log_size else self.size

    @property
    def hos_decision(self) -> str | None:
        return None if self.hos is None else self.hos.decision


__all__ = [
    "AllometryResult",
    "AnovaResult",
    "HomogeneityOfSlopesResult",
    "PermutationResult",
]
