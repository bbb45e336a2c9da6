"""Multivariate least-squares fitting and sum-of-squares decompositions.

Procrustes ANOVA treats the ``v`` shape variables as one multivariate
response.  A model's residual sum of squares is the trace of its
residual SSCP matrix, i.e. the sum of squared residuals over all
specimens and all shape variables:

    RSS = tr(E'E) = sum_i sum_j e_ij^2

and the sum of squares of a term is the drop in RSS when the term is
added to a reduced model:

    SS = RSS_reduced - RSS_full

Fits use scikit-learn's ``LinearRegression`` on the explicit design
(intercept column included, so ``fit_intercept=False``), which handles
all ``v`` responses in one least-squares solve.

Sum-of-squares types
--------------------
:func:`term_comparisons` turns a model into one ``(reduced, full)``
pair per term:

* **Type I** (sequential): each term is added to the terms before it.
* **Type II**: each term is added to every term that is not a
  higher-order relative of it (marginality is respected).
* **Type III**: each term is dropped from the complete model.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.linalg
from sklearn.linear_model import LinearRegression

from .design import ModelSpec, Term
from .exceptions import DimensionMismatch, RankDeficientDesign

_SS_TYPES = ("I", "II", "III")

# Relative tolerance for the numerical rank of a design.
_RANK_RTOL = 1e-10


@dataclass(frozen=True)
class LinearFitResult:
    """Multivariate OLS fit of one design."""

    coefficients: np.ndarray
    """Coefficient matrix ``(q, v)``; row order matches the design columns."""

    fitted: np.ndarray
    """Fitted values ``(n, v)``."""

    residuals: np.ndarray
    """Residuals ``(n, v)``."""

    rank: int
    """Numerical rank of the design."""

    df_resid: int
    """Residual degrees of freedom, ``n - rank``."""

    columns: tuple[str, ...] = ()
    """Design column names, if known."""

    @property
    def rss(self) -> float:
        """Trace of the residual SSCP matrix."""
        return float(np.sum(self.residuals**2))

    def coefficient_row(self, column: str) -> np.ndarray:
        """Return the coefficient vector of one design column."""
        try:
            return self.coefficients[self.columns.index(column)]
        except ValueError:
            raise KeyError(f"Column {column!r} is not in the fitted design.") from None


def design_rank(X: np.ndarray) -> int:
    """Numerical rank of *X* (SVD based)."""
    X = np.asarray(X, dtype=float)
    if X.size == 0:
        return 0
    s = np.linalg.svd(X, compute_uv=False)
    return int(np.sum(s > _RANK_RTOL * s[0])) if s[0] > 0 else 0


def orthonormal_basis(X: np.ndarray) -> np.ndarray:
    """Orthonormal basis of the column space of *X*.

    Uses a column-pivoted QR decomposition and keeps the leading
    ``rank`` columns of Q, so collinear columns are dropped silently.

    Returns:
        ``(n, rank)`` matrix with orthonormal columns.
    """
    X = np.asarray(X, dtype=float)
    n = X.shape[0]
    if X.shape[1] == 0:
        return np.empty((n, 0))
    Q, R, _ = scipy.linalg.qr(X, mode="economic", pivoting=True)
    diag = np.abs(np.diag(R))
    if diag.size == 0 or diag[0] == 0:
        return np.empty((n, 0))
    rank = int(np.sum(diag > _RANK_RTOL * diag[0]))
    return Q[:, :rank]


def fit_linear_model(
    X: np.ndarray,
    Y: np.ndarray,
    *,
    columns: tuple[str, ...] = (),
    check_rank: bool = True,
) -> LinearFitResult:
    """Fit ``Y ~ X`` by least squares.

    Args:
        X: Design matrix ``(n, q)`` including any intercept column.
        Y: Response ``(n, v)`` or ``(n,)``.
        columns: Design column names, stored on the result.
        check_rank: Raise when the design is singular.

    Returns:
        The fitted model.

    Raises:
        DimensionMismatch: If *X* and *Y* disagree on ``n``.
        RankDeficientDesign: If *check_rank* and ``rank(X) < q``.
    """
    X = np.asarray(X, dtype=float)
    Y = np.asarray(Y, dtype=float)
    if Y.ndim == 1:
        Y = Y.reshape(-1, 1)
    if X.shape[0] != Y.shape[0]:
        raise DimensionMismatch(
            f"Design has {X.shape[0]} rows but the response has {Y.shape[0]}."
        )

    n, q = X.shape
    rank = design_rank(X)
    if check_rank and rank < q:
        raise RankDeficientDesign(
            f"Design matrix is singular: rank {rank} < {q} columns"
            + (f" ({', '.join(columns)})." if columns else "."),
            rank=rank,
            expected_rank=q,
        )

    if q == 0:
        coefficients = np.empty((0, Y.shape[1]))
        fitted = np.zeros_like(Y)
    else:
        model = LinearRegression(fit_intercept=False)
        model.fit(X, Y)
        coefficients = np.atleast_2d(model.coef_).T
        fitted = model.predict(X).reshape(Y.shape)

    return LinearFitResult(
        coefficients=coefficients,
        fitted=fitted,
        residuals=Y - fitted,
        rank=rank,
        df_resid=n - rank,
        columns=tuple(columns),
    )


def total_ss(Y: np.ndarray) -> float:
    """Total sum of squares about the column means."""
    Y = np.asarray(Y, dtype=float)
    return float(np.sum((Y - Y.mean(axis=0)) ** 2))


# ------------------------------------------------------------------ #
# Sum-of-squares decompositions
# ------------------------------------------------------------------ #


def term_comparisons(
    model: ModelSpec,
    ss_type: str = "I",
) -> list[tuple[Term, ModelSpec, ModelSpec]]:
    """One ``(term, reduced, full)`` comparison per model term.

    Args:
        model: The complete model.
        ss_type: ``"I"``, ``"II"`` or ``"III"``.

    Returns:
        Comparisons in model term order.

    Raises:
        ValueError: If *ss_type* is not recognised.
    """
    ss_type = str(ss_type).upper()
    if ss_type not in _SS_TYPES:
        raise ValueError(f"ss_type must be one of {_SS_TYPES}, got {ss_type!r}.")

    comparisons: list[tuple[Term, ModelSpec, ModelSpec]] = []
    for i, term in enumerate(model.terms):
        if ss_type == "I":
            reduced = model.select({t.label for t in model.terms[:i]})
            full = reduced.add(term)
        elif ss_type == "II":
            keep = {
                t.label
                for t in model.terms
                if t.label != term.label and not t.contains(term)
            }
            reduced = model.select(keep)
            full = model.select(keep | {term.label})
        else:
            reduced = model.drop(term.label)
            full = model
        comparisons.append((term, reduced, full))
    return comparisons


__all__ = [
    "LinearFitResult",
    "design_rank",
    "fit_linear_model",
    "orthonormal_basis",
    "term_comparisons",
    "total_ss",
]
