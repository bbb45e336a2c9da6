"""Seed policy and permutation index generation.

Every permutation test in the package draws its specimen orderings
from a single index matrix built once per analysis:

* **Row 0 is the identity.**  The observed data are one member of the
  reference set, so the first entry of every random distribution is
  the observed statistic and the smallest attainable p-value is
  ``1 / (iterations + 1)``.
* **Rows 1..iterations are distinct non-identity permutations.**  A
  repeated ordering adds no information to the reference set, so
  duplicates are removed before the matrix is returned.  Tiny samples
  are the exception: once all ``n! - 1`` non-identity orderings are in
  the matrix, the remaining rows are drawn with replacement.

Seeds
-----
The seed policy reproduces the convention of the geomorph routines:

* ``None``: the iteration count is used as the seed, so repeated runs
  with the same number of iterations give identical p-values.
* ``"random"``: a seed is drawn from fresh OS entropy in
  ``[1, max(iterations, 1)]`` and published on the result so the run
  can still be repeated.
* an integer: used as-is.

Sampling strategies
-------------------
For small samples (n <= ``max_exhaustive``) the n! orderings are
addressed by their lexicographic rank and ranks are drawn without
replacement, then decoded with the factorial number system.  For
larger samples all orderings are produced by one vectorised
``Generator.permuted`` call and de-duplicated with a hash set only
when the birthday bound ``B(B-1) / (2 n!)`` makes a collision
plausible.
"""

from __future__ import annotations

import math
import numbers
import warnings

import numpy as np

from ._typing import SeedLike
from .exceptions import InvalidIterationCount

# ------------------------------------------------------------------ #
# Seed resolution
# ------------------------------------------------------------------ #


def resolve_seed(seed: SeedLike, iterations: int) -> int:
    """Turn a seed policy into a concrete integer seed.

    Args:
        seed: ``None``, ``"random"``, or an integer.
        iterations: Number of random permutations requested.

    Returns:
        The integer seed that drives the permutation sequence.

    Raises:
        ValueError: If *seed* is none of the accepted forms.
    """
    if seed is None:
        return int(iterations)
    if isinstance(seed, str):
        if seed.strip().lower() != "random":
            raise ValueError(
                f"seed must be None, 'random', or an integer, got {seed!r}."
            )
        upper = max(int(iterations), 1)
        return int(np.random.default_rng().integers(1, upper + 1))
    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral):
        raise ValueError(
            f"seed must be None, 'random', or an integer, got {seed!r}."
        )
    return int(seed)


# ------------------------------------------------------------------ #
# Lehmer code
# ------------------------------------------------------------------ #
#
# Rank k of a permutation of [0..n-1] written in the factorial number
# system, k = d1*(n-1)! + d2*(n-2)! + ... + dn*0!, gives digits that
# index into a shrinking pool of unused elements.  Rank 0 is the
# identity.


def _unrank_permutation(k: int, n: int) -> list[int]:
    """Return the *k*-th lexicographic permutation of ``[0..n-1]``."""
    pool = list(range(n))
    out: list[int] = []
    for i in range(n, 0, -1):
        digit, k = divmod(k, math.factorial(i - 1))
        out.append(pool.pop(digit))
    return out


def available_permutations(n_samples: int) -> int:
    """Number of non-identity orderings of *n_samples* specimens."""
    return math.factorial(n_samples) - 1


def generate_unique_permutations(
    n_samples: int,
    n_permutations: int,
    random_state: int | np.random.Generator | None = None,
    exclude_identity: bool = True,
    max_exhaustive: int = 10,
) -> np.ndarray:
    """Draw a matrix of distinct permutations of ``range(n_samples)``.

    Args:
        n_samples: Number of specimens.
        n_permutations: Number of distinct permutations requested.
        random_state: Seed for the generator, or a generator to draw from.
        exclude_identity: Never return the identity ordering.
        max_exhaustive: Use rank sampling when
            ``n_samples <= max_exhaustive``.

    Returns:
        Integer array of shape ``(n_permutations, n_samples)``.

    Raises:
        InvalidIterationCount: If fewer distinct permutations exist
            than were requested.
    """
    rng = np.random.default_rng(random_state)

    if n_permutations == 0:
        return np.empty((0, n_samples), dtype=np.intp)

    if n_samples <= max_exhaustive:
        total = math.factorial(n_samples)
        offset = 1 if exclude_identity else 0
        if n_permutations > total - offset:
            raise InvalidIterationCount(
                f"Requested {n_permutations} unique permutations but only "
                f"{total - offset} are available for n_samples={n_samples}."
            )
        ranks = rng.choice(total - offset, size=n_permutations, replace=False)
        return np.array(
            [_unrank_permutation(int(r) + offset, n_samples) for r in ranks],
            dtype=np.intp,
        )

    return _shuffled_rows(rng, n_samples, n_permutations, exclude_identity)


def _shuffled_rows(
    rng: np.random.Generator,
    n_samples: int,
    n_rows: int,
    exclude_identity: bool,
) -> np.ndarray:
    """Shuffle ``n_rows`` copies of the identity and weed out repeats."""
    rows = np.tile(np.arange(n_samples, dtype=np.intp), (n_rows, 1))
    rng.permuted(rows, axis=1, out=rows)

    # Birthday bound on the expected number of repeated rows.
    expected_repeats = n_rows * (n_rows - 1) / (2 * math.factorial(n_samples))
    if expected_repeats < 1e-9 and not exclude_identity:
        return rows

    taken: set[bytes] = set()
    if exclude_identity:
        taken.add(np.arange(n_samples, dtype=np.intp).tobytes())
    keep = np.zeros(n_rows, dtype=bool)
    for i, row in enumerate(rows):
        signature = row.tobytes()
        if signature not in taken:
            taken.add(signature)
            keep[i] = True
    out = rows[keep]

    # Top up whatever was lost to identity hits or repeats.
    budget = 20 * n_rows + 1000
    extra: list[np.ndarray] = []
    while len(out) + len(extra) < n_rows and budget > 0:
        budget -= 1
        candidate = rng.permutation(n_samples).astype(np.intp)
        signature = candidate.tobytes()
        if signature not in taken:
            taken.add(signature)
            extra.append(candidate)
    if extra:
        out = np.vstack([out, np.asarray(extra)])

    if len(out) < n_rows:
        raise InvalidIterationCount(
            f"Could only draw {len(out)} distinct permutations of "
            f"{n_samples} specimens; {n_rows} were requested."
        )
    return out


def permutation_indices(
    n_samples: int,
    iterations: int,
    seed: int | None,
) -> np.ndarray:
    """Build the shared permutation matrix with the identity as row 0.

    When *iterations* exceeds the number of distinct non-identity
    orderings, every such ordering is used once and the remaining rows
    are drawn with replacement from all ``n!`` orderings, so the matrix
    always has ``iterations + 1`` rows.  A ``UserWarning`` reports the
    shortfall.

    Args:
        n_samples: Number of specimens.
        iterations: Number of random permutations (excluding the
            observed ordering).
        seed: Integer seed (see :func:`resolve_seed`).

    Returns:
        Integer array of shape ``(iterations + 1, n_samples)``.

    Raises:
        InvalidIterationCount: If *iterations* is negative or not an
            integer.
    """
    if isinstance(iterations, bool) or not isinstance(iterations, numbers.Integral):
        raise InvalidIterationCount(
            f"iterations must be a non-negative integer, got {iterations!r}."
        )
    if iterations < 0:
        raise InvalidIterationCount(
            f"iterations must be >= 0, got {iterations}."
        )
    iterations = int(iterations)
    rng = np.random.default_rng(seed)

    # 21! exceeds any feasible iteration count.
    n_distinct = iterations
    if n_samples <= 20:
        n_distinct = min(iterations, available_permutations(n_samples))

    identity = np.arange(n_samples, dtype=np.intp)
    random_rows = generate_unique_permutations(
        n_samples=n_samples,
        n_permutations=n_distinct,
        random_state=rng,
        exclude_identity=True,
    )

    shortfall = iterations - n_distinct
    if shortfall:
        warnings.warn(
            f"Only {n_distinct} distinct non-identity permutations of "
            f"{n_samples} specimens exist, but {iterations} were requested.  "
            f"The remaining {shortfall} are drawn with replacement.",
            UserWarning,
            stacklevel=2,
        )
        repeats = np.tile(identity, (shortfall, 1))
        rng.permuted(repeats, axis=1, out=repeats)
        random_rows = np.vstack([random_rows, repeats])

    return np.vstack([identity[np.newaxis, :], random_rows])


__all__ = [
    "available_permutations",
    "generate_unique_permutations",
    "permutation_indices",
    "resolve_seed",
]
