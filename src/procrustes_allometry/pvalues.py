"""Empirical p-values and effect sizes for permutation distributions.

Every random distribution in the package has ``iterations + 1``
entries, the first of which is the observed statistic (the identity
permutation).  Both functions here take such a distribution.

Empirical p-values
------------------
The observed arrangement is itself one of the equally likely
orderings, so it is counted in the reference set:

    p = #{s_b >= s_0 : b = 0..B} / (B + 1)

which is never zero (minimum ``1 / (B + 1)``) and gives a test of
correct size (Phipson & Smyth, 2010).  Sums of squares computed from
permuted data can differ from the observed value in the last few bits
even when the permutation leaves the statistic unchanged, so ties are
judged with a small relative tolerance.

Effect sizes
------------
The effect size is a standard deviate of the observed statistic
within its own permutation distribution:

    Z = (log s_0 - mean(log s)) / sd(log s)

F ratios, sums of squares and Cohen's f^2 are strictly positive and
right-skewed, and the log transform brings their permutation
distributions close enough to normal for Z to be comparable across
analyses (Collyer, Sekora & Adams, 2015).  Distributions with zeros
or negative entries are used untransformed.

References:
    Phipson, B. & Smyth, G. K. (2010). Permutation p-values should
    never be zero: calculating exact p-values when permutations are
    randomly drawn. *Statistical Applications in Genetics and
    Molecular Biology*, 9(1), Article 39.

    Collyer, M. L., Sekora, D. J. & Adams, D. C. (2015). A method for
    analysis of phenotypic change for phenotypes described by
    high-dimensional data. *Heredity*, 115, 357-365.
"""

from __future__ import annotations

import numpy as np

_TIE_RTOL = 1e-10


def empirical_p_value(statistics: np.ndarray, rtol: float = _TIE_RTOL) -> float:
    """Upper-tail p-value of the first entry of *statistics*.

    Args:
        statistics: Distribution with the observed value first.
        rtol: Relative tolerance under which a permuted value counts
            as a tie with the observed value.

    Returns:
        The proportion of entries (observed included) that are at
        least as large as the observed value, or ``nan`` when the
        observed value is not finite.
    """
    s = np.asarray(statistics, dtype=float).ravel()
    if s.size == 0 or not np.isfinite(s[0]):
        return float("nan")
    observed = s[0]
    threshold = observed - rtol * abs(observed)
    return float(np.sum(s >= threshold) / s.size)


def effect_size(statistics: np.ndarray) -> float:
    """Z score of the first entry of *statistics* within the distribution.

    Args:
        statistics: Distribution with the observed value first.

    Returns:
        ``(x_0 - mean(x)) / sd(x)`` on the log scale when every entry
        is strictly positive, on the raw scale otherwise; ``nan`` when
        the distribution has fewer than two finite entries or zero
        spread.
    """
    s = np.asarray(statistics, dtype=float).ravel()
    if s.size < 2 or not np.isfinite(s[0]):
        return float("nan")
    # Observed value stays first; non-finite permuted values are dropped.
    s = s[np.isfinite(s)]
    if s.size < 2:
        return float("nan")
    if np.all(s > 0):
        s = np.log(s)
    sd = np.std(s, ddof=1)
    if not np.isfinite(sd) or sd <= 0:
        return float("nan")
    return float((s[0] - np.mean(s)) / sd)


__all__ = ["effect_size", "empirical_p_value"]
