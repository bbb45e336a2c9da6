"""Exception hierarchy for procrustes_allometry.

Every error raised for bad input or a degenerate analysis derives from
:class:`AllometryError`, which is itself a :class:`ValueError` so that
callers already catching ``ValueError`` keep working.

Validation errors (:class:`NonPositiveSize`, :class:`NonFactorGrouping`,
:class:`SingleCovariateRequired`, :class:`DimensionMismatch`,
:class:`InvalidIterationCount`) are raised at the API boundary before
any permutation is drawn.  Numerical errors
(:class:`RankDeficientDesign`, :class:`DegenerateAllometricDirection`)
abort the analysis where they are detected; no partial result is
returned.
"""

from __future__ import annotations


class AllometryError(ValueError):
    """Base exception for all procrustes_allometry errors."""


class InvalidModel(AllometryError):
    """The reduced model is not strictly nested in the full model.

    Also raised when a grouping factor has fewer than two levels, since
    the group term would then add nothing to the size-only model.
    """


class InvalidIterationCount(AllometryError):
    """The iteration count is negative or not an integer, or more
    distinct orderings were asked of
    :func:`~procrustes_allometry.permutations.generate_unique_permutations`
    than the specimens admit."""


class NonFactorGrouping(AllometryError):
    """A grouping column is numeric rather than categorical."""


class SingleCovariateRequired(AllometryError):
    """The size term resolved to more than one column."""


class NonPositiveSize(AllometryError):
    """A size value is zero, negative, or not finite.

    Attributes:
        indices: Positions of the offending specimens.
    """

    def __init__(self, message: str, indices: list[int] | None = None) -> None:
        super().__init__(message)
        self.indices = indices if indices is not None else []


class DegenerateAllometricDirection(AllometryError):
    """The allometric direction has (numerically) zero length.

    Happens when size carries no variance once group means are removed,
    or when the fitted size slope is exactly zero.
    """


class RankDeficientDesign(AllometryError):
    """The design matrix is singular.

    Attributes:
        rank: Numerical rank of the design matrix.
        expected_rank: Number of design columns.
    """

    def __init__(
        self,
        message: str,
        rank: int | None = None,
        expected_rank: int | None = None,
    ) -> None:
        super().__init__(message)
        self.rank = rank
        self.expected_rank = expected_rank


class DimensionMismatch(AllometryError):
    """Inputs disagree on the number of specimens, or a shape array is
    neither a 2-D matrix nor a 3-D landmark array."""


__all__ = [
    "AllometryError",
    "DegenerateAllometricDirection",
    "DimensionMismatch",
    "InvalidIterationCount",
    "InvalidModel",
    "NonFactorGrouping",
    "NonPositiveSize",
    "RankDeficientDesign",
    "SingleCovariateRequired",
]
