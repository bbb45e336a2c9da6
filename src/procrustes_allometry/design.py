"""Explicit model descriptions and design matrices.

Models are described by a :class:`ModelSpec`: an intercept plus an
ordered tuple of :class:`Term` objects.  A term is one of

* ``continuous`` -- a numeric covariate, optionally log-transformed;
* ``categorical`` -- a factor coded with treatment contrasts (the
  first level is the baseline and gets no column);
* ``interaction`` -- the element-wise product of the columns of two or
  more continuous / categorical terms.

Nesting between models is plain set containment on term labels, so a
reduced model is nested in a full model exactly when every reduced
term also appears in the full model.  No formula strings are parsed;
:attr:`ModelSpec.formula` only renders one for display.

Design-matrix column names follow the patsy convention
(``gps[T.b]``, ``log(size):gps[T.b]``) so tables line up with what
statsmodels users expect.

The module also owns the coercion of the covariates that feed the
designs: the size vector and the group factor.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ._compat import _to_pandas
from .exceptions import (
    AllometryError,
    DimensionMismatch,
    InvalidModel,
    NonFactorGrouping,
    NonPositiveSize,
    SingleCovariateRequired,
)

_KINDS = ("continuous", "categorical", "interaction")
_TRANSFORMS = (None, "log")

# ------------------------------------------------------------------ #
# Terms
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Term:
    """One model term.

    Use the :meth:`continuous`, :meth:`categorical` and
    :meth:`interaction` constructors rather than the raw initialiser.
    """

    kind: str
    variable: str | None = None
    transform: str | None = None
    factors: tuple[Term, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in _KINDS:
            raise ValueError(f"Unknown term kind {self.kind!r}.")
        if self.transform not in _TRANSFORMS:
            raise ValueError(f"Unknown transform {self.transform!r}.")
        if self.kind == "interaction":
            if len(self.factors) < 2:
                raise ValueError("An interaction needs at least two factors.")
            if any(f.kind == "interaction" for f in self.factors):
                raise ValueError("Interaction factors must be main-effect terms.")
        elif self.variable is None:
            raise ValueError(f"A {self.kind} term needs a variable name.")

    @classmethod
    def continuous(cls, variable: str, transform: str | None = None) -> Term:
        return cls(kind="continuous", variable=variable, transform=transform)

    @classmethod
    def categorical(cls, variable: str) -> Term:
        return cls(kind="categorical", variable=variable)

    @classmethod
    def interaction(cls, *factors: Term) -> Term:
        return cls(kind="interaction", factors=tuple(factors))

    @property
    def label(self) -> str:
        if self.kind == "interaction":
            return ":".join(f.label for f in self.factors)
        if self.transform is not None:
            return f"{self.transform}({self.variable})"
        return str(self.variable)

    @property
    def factor_labels(self) -> frozenset[str]:
        """Labels of the main effects this term is built from."""
        if self.kind == "interaction":
            return frozenset(f.label for f in self.factors)
        return frozenset({self.label})

    def contains(self, other: Term) -> bool:
        """Marginality: *self* is a higher-order relative of *other*."""
        return self.factor_labels > other.factor_labels

    def __str__(self) -> str:
        return self.label


# ------------------------------------------------------------------ #
# Design matrices
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class DesignMatrix:
    """A numeric design together with its column bookkeeping."""

    values: np.ndarray
    """``(n, q)`` float matrix, intercept first when present."""

    columns: tuple[str, ...]
    """Column names, ``"(Intercept)"`` first when present."""

    term_columns: dict[str, tuple[int, ...]] = field(default_factory=dict)
    """Maps each term label to the positions of its columns."""

    intercept: bool = True

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape  # type: ignore[return-value]

    def columns_for(self, label: str) -> tuple[int, ...]:
        try:
            return self.term_columns[label]
        except KeyError:
            raise KeyError(f"Term {label!r} is not part of this design.") from None


def _term_block(term: Term, data: pd.DataFrame) -> tuple[np.ndarray, list[str]]:
    """Columns contributed by one term."""
    if term.kind == "interaction":
        blocks = [_term_block(f, data) for f in term.factors]
        cols: list[np.ndarray] = []
        names: list[str] = []
        for combo in itertools.product(*[range(b[0].shape[1]) for b in blocks]):
            product = np.ones(len(data))
            for (values, _), j in zip(blocks, combo, strict=True):
                product = product * values[:, j]
            cols.append(product)
            names.append(
                ":".join(blk_names[j] for (_, blk_names), j in zip(blocks, combo, strict=True))
            )
        return np.column_stack(cols), names

    if term.variable not in data.columns:
        raise InvalidModel(f"Variable {term.variable!r} is not in the model data.")
    column = data[term.variable]

    if term.kind == "continuous":
        values = column.to_numpy(dtype=float)
        if term.transform == "log":
            values = np.log(values)
        return values.reshape(-1, 1), [term.label]

    codes = pd.Categorical(column)
    levels = list(codes.categories)
    if len(levels) < 2:
        return np.empty((len(data), 0)), []
    dummies = np.column_stack(
        [(codes == lvl).astype(float) for lvl in levels[1:]]
    )
    return dummies, [f"{term.label}[T.{lvl}]" for lvl in levels[1:]]


# ------------------------------------------------------------------ #
# ModelSpec
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ModelSpec:
    """An explicit linear model: intercept plus an ordered term tuple."""

    terms: tuple[Term, ...] = ()
    intercept: bool = True
    response: str = "Y"

    def __post_init__(self) -> None:
        labels = [t.label for t in self.terms]
        if len(set(labels)) != len(labels):
            raise InvalidModel(f"Duplicate terms in model: {labels}.")

    # ---- Term-set algebra -----------------------------------------

    @property
    def term_labels(self) -> tuple[str, ...]:
        return tuple(t.label for t in self.terms)

    def has_term(self, label: str) -> bool:
        return label in self.term_labels

    def nests(self, reduced: ModelSpec) -> bool:
        """``True`` when *reduced* is a strict subset of this model."""
        mine, theirs = set(self.term_labels), set(reduced.term_labels)
        if not theirs <= mine:
            return False
        if reduced.intercept and not self.intercept:
            return False
        return theirs < mine or (self.intercept and not reduced.intercept)

    def select(self, labels: set[str] | frozenset[str]) -> ModelSpec:
        """Sub-model keeping the terms in *labels*, in model order."""
        return ModelSpec(
            terms=tuple(t for t in self.terms if t.label in labels),
            intercept=self.intercept,
            response=self.response,
        )

    def drop(self, label: str) -> ModelSpec:
        return self.select(set(self.term_labels) - {label})

    def add(self, term: Term) -> ModelSpec:
        return ModelSpec(
            terms=self.terms + (term,),
            intercept=self.intercept,
            response=self.response,
        )

    def terms_of_kind(self, kind: str) -> tuple[Term, ...]:
        return tuple(t for t in self.terms if t.kind == kind)

    @property
    def formula(self) -> str:
        rhs = list(self.term_labels)
        if not self.intercept:
            rhs = ["0"] + rhs
        if not rhs:
            rhs = ["1"]
        return f"{self.response} ~ " + " + ".join(rhs)

    def __str__(self) -> str:
        return self.formula

    # ---- Design ---------------------------------------------------

    def design_matrix(self, data: pd.DataFrame) -> DesignMatrix:
        """Build the numeric design for *data*."""
        n = len(data)
        blocks: list[np.ndarray] = []
        columns: list[str] = []
        term_columns: dict[str, tuple[int, ...]] = {}

        if self.intercept:
            blocks.append(np.ones((n, 1)))
            columns.append("(Intercept)")

        for term in self.terms:
            values, names = _term_block(term, data)
            start = len(columns)
            blocks.append(values)
            columns.extend(names)
            term_columns[term.label] = tuple(range(start, len(columns)))

        values = np.hstack(blocks) if blocks else np.empty((n, 0))
        return DesignMatrix(
            values=values,
            columns=tuple(columns),
            term_columns=term_columns,
            intercept=self.intercept,
        )


def allometry_models(
    log_size: bool = True,
    grouped: bool = False,
) -> dict[str, ModelSpec]:
    """The nested allometry models over ``size`` and ``gps``.

    Returns a dict with ``"common"`` (size only) and, when *grouped*,
    ``"parallel"`` (size + gps) and ``"group_specific"``
    (size + gps + size:gps).
    """
    size = Term.continuous("size", transform="log" if log_size else None)
    models = {"common": ModelSpec(terms=(size,))}
    if grouped:
        gps = Term.categorical("gps")
        models["parallel"] = ModelSpec(terms=(size, gps))
        models["group_specific"] = ModelSpec(
            terms=(size, gps, Term.interaction(size, gps))
        )
    return models


# ------------------------------------------------------------------ #
# Input coercion
# ------------------------------------------------------------------ #


def as_size_vector(size: object, n_specimens: int | None = None) -> np.ndarray:
    """Validate and return the size covariate as a float vector.

    Raises:
        SingleCovariateRequired: If *size* has more than one column or
            is not numeric.
        DimensionMismatch: If its length differs from *n_specimens*.
        NonPositiveSize: If any value is zero, negative, or not finite.
    """
    size = _to_pandas(size)
    if isinstance(size, pd.DataFrame):
        if size.shape[1] != 1:
            raise SingleCovariateRequired(
                f"Only a single covariate for size is permitted; "
                f"got {size.shape[1]} columns."
            )
        size = size.iloc[:, 0]
    if isinstance(size, pd.Series) and not pd.api.types.is_numeric_dtype(size):
        raise SingleCovariateRequired("The size covariate must be numeric.")

    try:
        arr = np.asarray(size, dtype=float)
    except (TypeError, ValueError) as exc:
        raise SingleCovariateRequired(
            "The size covariate must be a single numeric vector."
        ) from exc

    if arr.ndim == 2:
        if arr.shape[1] != 1:
            raise SingleCovariateRequired(
                f"Only a single covariate for size is permitted; "
                f"got {arr.shape[1]} columns."
            )
        arr = arr[:, 0]
    elif arr.ndim != 1:
        raise SingleCovariateRequired(
            "The size covariate must be a single numeric vector."
        )

    if n_specimens is not None and arr.shape[0] != n_specimens:
        raise DimensionMismatch(
            f"size has {arr.shape[0]} values but the shape data have "
            f"{n_specimens} specimens."
        )

    bad = ~np.isfinite(arr) | (arr <= 0)
    if np.any(bad):
        idx = np.flatnonzero(bad).tolist()
        raise NonPositiveSize(
            f"Size values must be finite and strictly positive; "
            f"{len(idx)} offending value(s) at positions {idx[:10]}.",
            indices=idx,
        )
    return arr.copy()


def _is_numeric_column(column: pd.Series) -> bool:
    return (
        pd.api.types.is_numeric_dtype(column)
        and not pd.api.types.is_bool_dtype(column)
        and not isinstance(column.dtype, pd.CategoricalDtype)
    )


def as_group_factor(groups: object, n_specimens: int | None = None) -> pd.Series:
    """Validate grouping columns and combine them into one factor.

    Several columns are merged row-wise into a composite factor whose
    labels join the per-column labels with ``":"``.

    Returns:
        A categorical ``pd.Series`` named ``"gps"`` with unused levels
        dropped.

    Raises:
        NonFactorGrouping: If any grouping column is numeric.
        DimensionMismatch: If the length differs from *n_specimens*.
        InvalidModel: If fewer than two levels remain.
        AllometryError: If any group label is missing.
    """
    groups = _to_pandas(groups)
    if isinstance(groups, np.ndarray) and groups.ndim == 2:
        groups = pd.DataFrame(groups)
    if not isinstance(groups, (pd.DataFrame, pd.Series)):
        groups = pd.Series(np.asarray(groups))

    if isinstance(groups, pd.DataFrame):
        numeric = [str(c) for c in groups.columns if _is_numeric_column(groups[c])]
        if numeric:
            raise NonFactorGrouping(
                f"Grouping columns must be categorical; numeric column(s): {numeric}."
            )
        if groups.isna().to_numpy().any():
            raise AllometryError("Group labels contain missing values.")
        if groups.shape[1] == 1:
            series = groups.iloc[:, 0]
        else:
            series = groups.astype(str).agg(":".join, axis=1)
    else:
        if _is_numeric_column(groups):
            raise NonFactorGrouping(
                "The grouping variable is numeric; pass labels or a "
                "pandas Categorical instead."
            )
        if groups.isna().any():
            raise AllometryError("Group labels contain missing values.")
        series = groups

    if n_specimens is not None and len(series) != n_specimens:
        raise DimensionMismatch(
            f"groups has {len(series)} labels but the shape data have "
            f"{n_specimens} specimens."
        )

    if isinstance(series.dtype, pd.CategoricalDtype):
        factor = series.cat.remove_unused_categories()
    else:
        factor = series.astype("category")
    factor = factor.reset_index(drop=True).rename("gps")

    if len(factor.cat.categories) < 2:
        raise InvalidModel(
            "The grouping factor needs at least two levels; got "
            f"{list(factor.cat.categories)}."
        )
    return factor


def model_data(size: np.ndarray, gps: pd.Series | None = None) -> pd.DataFrame:
    """Assemble the frame the allometry models are evaluated on."""
    frame = pd.DataFrame({"size": np.asarray(size, dtype=float)})
    if gps is not None:
        frame["gps"] = gps.reset_index(drop=True)
    return frame


__all__ = [
    "DesignMatrix",
    "ModelSpec",
    "Term",
    "allometry_models",
    "as_group_factor",
    "as_size_vector",
    "model_data",
]
