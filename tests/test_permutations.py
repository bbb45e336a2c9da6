"""Tests for seed handling and permutation matrices."""

import numpy as np
import pytest

from procrustes_allometry.exceptions import InvalidIterationCount
from procrustes_allometry.permutations import (
    _unrank_permutation,
    available_permutations,
    generate_unique_permutations,
    permutation_indices,
    resolve_seed,
)


class TestResolveSeed:
    def test_none_uses_iteration_count(self):
        assert resolve_seed(None, 99) == 99

    def test_integer_is_used_as_is(self):
        assert resolve_seed(1234, 99) == 1234

    def test_random_draws_within_range(self):
        for _ in range(20):
            seed = resolve_seed("random", 10)
            assert 1 <= seed <= 10

    def test_random_with_zero_iterations(self):
        assert resolve_seed("RANDOM", 0) == 1

    def test_rejects_other_strings(self):
        with pytest.raises(ValueError, match="seed must be"):
            resolve_seed("fixed", 99)

    def test_rejects_bool_and_float(self):
        with pytest.raises(ValueError):
            resolve_seed(True, 99)
        with pytest.raises(ValueError):
            resolve_seed(1.5, 99)


class TestLehmerDecoding:
    def test_first_rank(self):
        assert _unrank_permutation(0, 5) == list(range(5))

    def test_final_rank(self):
        assert _unrank_permutation(119, 5) == [4, 3, 2, 1, 0]

    def test_ranks_are_a_bijection(self):
        perms = {tuple(_unrank_permutation(k, 4)) for k in range(24)}
        assert len(perms) == 24


class TestDistinctPermutations:
    def test_shape(self):
        drawn = generate_unique_permutations(10, 50, random_state=42)
        assert drawn.shape == (50, 10) and drawn.dtype == np.intp

    def test_uniqueness_and_no_identity(self):
        result = generate_unique_permutations(6, 300, random_state=3)
        rows = {tuple(r) for r in result}
        assert len(rows) == 300
        assert tuple(range(6)) not in rows

    def test_large_n_path(self):
        result = generate_unique_permutations(25, 200, random_state=1)
        assert result.shape == (200, 25)
        assert len({tuple(r) for r in result}) == 200
        assert all(sorted(r) == list(range(25)) for r in result.tolist())

    def test_exhausts_small_sample(self):
        result = generate_unique_permutations(3, 5, random_state=0)
        assert len({tuple(r) for r in result}) == 5

    def test_too_many_requested(self):
        with pytest.raises(InvalidIterationCount):
            generate_unique_permutations(3, 6, random_state=0)

    def test_zero_requested(self):
        assert generate_unique_permutations(5, 0).shape == (0, 5)

    def test_reproducible(self):
        a = generate_unique_permutations(12, 40, random_state=9)
        b = generate_unique_permutations(12, 40, random_state=9)
        assert np.array_equal(a, b)


class TestPermutationIndices:
    def test_identity_first(self):
        idx = permutation_indices(8, 20, seed=1)
        assert idx.shape == (21, 8)
        np.testing.assert_array_equal(idx[0], np.arange(8))

    def test_random_rows_are_distinct(self):
        idx = permutation_indices(8, 50, seed=1)
        assert len({tuple(r) for r in idx}) == 51

    def test_zero_iterations(self):
        idx = permutation_indices(5, 0, seed=0)
        assert idx.shape == (1, 5)

    @pytest.mark.parametrize("bad", [-1, 2.5, True])
    def test_invalid_iterations(self, bad):
        with pytest.raises(InvalidIterationCount):
            permutation_indices(5, bad, seed=0)

    def test_different_seeds_differ(self):
        a = permutation_indices(15, 30, seed=1)
        b = permutation_indices(15, 30, seed=2)
        assert not np.array_equal(a, b)

    def test_small_sample_uses_every_ordering_then_repeats(self):
        with pytest.warns(UserWarning, match="drawn with replacement"):
            idx = permutation_indices(4, 30, seed=1)
        assert idx.shape == (31, 4)
        np.testing.assert_array_equal(idx[0], np.arange(4))
        assert len({tuple(r) for r in idx[:24]}) == 24
        assert all(sorted(r) == [0, 1, 2, 3] for r in idx.tolist())

    def test_small_sample_is_reproducible(self):
        with pytest.warns(UserWarning):
            a = permutation_indices(3, 20, seed=8)
        with pytest.warns(UserWarning):
            b = permutation_indices(3, 20, seed=8)
        assert np.array_equal(a, b)

    def test_no_warning_when_orderings_suffice(self, recwarn):
        permutation_indices(5, 119, seed=0)
        assert not [w for w in recwarn if issubclass(w.category, UserWarning)]

    def test_available_permutations(self):
        assert available_permutations(4) == 23
