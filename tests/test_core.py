"""End-to-end tests for procd_allometry and AllometryAnalysis."""

import numpy as np
import pandas as pd
import pytest

import procrustes_allometry.core as core_mod
import procrustes_allometry.tester as tester_mod
from procrustes_allometry import AllometryAnalysis, AllometryOptions, procd_allometry
from procrustes_allometry.exceptions import (
    DimensionMismatch,
    InvalidIterationCount,
    NonFactorGrouping,
    NonPositiveSize,
    SingleCovariateRequired,
)
from procrustes_allometry.landmarks import arrayspecs


def _run(size, Y, gps=None, **kwargs):
    kwargs.setdefault("iterations", 99)
    kwargs.setdefault("seed", 1)
    kwargs.setdefault("backend", "numpy")
    return procd_allometry(Y, size, gps, **kwargs)


class TestOptions:
    def test_defaults(self):
        opts = AllometryOptions()
        assert opts.iterations == 999
        assert opts.seed is None
        assert opts.effect_type == "F"
        assert opts.ss_type == "I"

    def test_normalises_names(self):
        opts = AllometryOptions(effect_type="Cohen", ss_type="iii")
        assert opts.effect_type == "cohen"
        assert opts.ss_type == "III"

    @pytest.mark.parametrize("iterations", [-1, 2.5, True])
    def test_bad_iterations(self, iterations):
        with pytest.raises(InvalidIterationCount):
            AllometryOptions(iterations=iterations)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"alpha": 0.0},
            {"alpha": 1.5},
            {"effect_type": "Rsq"},
            {"ss_type": "IV"},
            {"seed": "fixed"},
            {"seed": 1.5},
            {"n_jobs": 0},
        ],
    )
    def test_bad_settings(self, kwargs):
        with pytest.raises(ValueError):
            AllometryOptions(**kwargs)

    def test_to_dict(self):
        assert AllometryOptions(iterations=9).to_dict()["iterations"] == 9


class TestSingleGroup:
    def test_scenario(self, single_group_data):
        result = _run(*single_group_data)
        assert result.permutations == 100
        assert result.hos_test is None
        assert result.hos is None
        assert list(result.aov_table.index) == ["log(size)", "Residuals", "Total"]
        p = result.aov_table.loc["log(size)", "P"]
        assert 0.01 <= p <= 1.0
        assert result.formula.formula == "Y ~ log(size)"

    def test_random_arrays(self, single_group_data):
        result = _run(*single_group_data)
        for arr in (result.random_ss, result.random_f, result.random_cohenf):
            assert arr.shape == (100,)
        assert result.random_f[0] == result.aov_table.loc["log(size)", "F"]
        assert result.random_ss[0] == result.aov_table.loc["log(size)", "SS"]

    def test_shapes_and_projections(self, single_group_data):
        size, Y = single_group_data
        result = _run(size, Y)
        assert result.A.shape == (20, 4)
        assert result.Ahat.shape == (20, 4)
        assert result.cac.shape == (20,)
        assert result.reg_proj.shape == (20,)
        assert result.pred_val.shape == (20,)
        assert np.isclose(np.linalg.norm(result.allometric_direction), 1.0)
        np.testing.assert_array_equal(result.Ahat_at_min, result.Ahat[np.argmin(size)])
        np.testing.assert_array_equal(result.Ahat_at_max, result.Ahat[np.argmax(size)])
        np.testing.assert_allclose(result.ref, Y.mean(axis=0))
        assert result.p is None and result.k is None

    def test_coefficients_frame(self, single_group_data):
        result = _run(*single_group_data)
        assert list(result.coefficients.index) == ["(Intercept)", "log(size)"]
        assert list(result.coefficients.columns) == ["V1", "V2", "V3", "V4"]

    def test_raw_size_scale(self, single_group_data):
        size, Y = single_group_data
        result = _run(size, Y, log_size=False)
        assert list(result.aov_table.index)[0] == "size"
        np.testing.assert_array_equal(result.size_variable, size)

    def test_raw_randomisation(self, single_group_data):
        result = _run(*single_group_data, rrpp=False)
        assert result.perm_method == "raw"
        assert result.aov_table.attrs["perm_method"] == "raw"


class TestGrouped:
    def test_parallel_slopes(self, parallel_data):
        result = _run(*parallel_data)
        assert result.hos_decision == "parallel"
        assert result.formula.formula == "Y ~ log(size) + gps"
        assert list(result.aov_table.index) == ["log(size)", "gps", "Residuals", "Total"]
        assert result.random_f.shape == (100, 2)
        assert list(result.hos_test.index) == [
            "Common Allometry",
            "Group Allometries",
            "Total",
        ]

    def test_divergent_slopes(self, divergent_data):
        result = _run(*divergent_data)
        assert result.hos_decision == "group-specific"
        assert result.formula.has_term("log(size):gps")
        assert result.aov_table.loc["log(size):gps", "P"] == pytest.approx(0.01)
        np.testing.assert_allclose(result.random_f[0], result.aov_table["F"].iloc[:3])

    def test_hos_and_anova_share_permutations(self, divergent_data):
        result = _run(*divergent_data)
        hos_f = result.hos.test.random_f
        np.testing.assert_allclose(hos_f, result.random_f[:, 2])

    def test_gps_published(self, divergent_data):
        result = _run(*divergent_data)
        assert result.gps.name == "gps"
        assert list(result.data.columns) == ["size", "gps"]


class TestLandmarkInput:
    def test_three_d_round_trip(self, single_group_data):
        size, Y = single_group_data
        A = arrayspecs(Y, 2, 2)
        result = _run(size, A)
        assert (result.p, result.k) == (2, 2)
        assert result.A.shape == (2, 2, 20)
        assert result.Ahat.shape == (2, 2, 20)
        assert result.Ahat_at_min.shape == (2, 2)
        assert result.ref.shape == (2, 2)
        np.testing.assert_allclose(result.A, A)
        np.testing.assert_array_equal(
            result.Ahat_at_max, result.Ahat[:, :, int(np.argmax(size))]
        )


class TestDeterminism:
    def test_same_seed_same_result(self, parallel_data):
        a = _run(*parallel_data)
        b = _run(*parallel_data)
        np.testing.assert_array_equal(a.random_f, b.random_f)
        pd.testing.assert_frame_equal(a.aov_table, b.aov_table)

    def test_default_seed_is_iterations(self, single_group_data):
        result = _run(*single_group_data, seed=None)
        assert result.seed == 99

    def test_random_seed_is_published(self, single_group_data):
        result = _run(*single_group_data, seed="random")
        assert 1 <= result.seed <= 99

    def test_n_jobs_invariance(self, divergent_data):
        a = _run(*divergent_data, iterations=300)
        b = _run(*divergent_data, iterations=300, n_jobs=2)
        np.testing.assert_array_equal(a.random_f, b.random_f)


class TestValidation:
    def test_non_positive_size_before_any_draw(self, single_group_data, monkeypatch):
        size, Y = single_group_data
        bad = size.copy()
        bad[[2, 5]] = [-1.0, 0.0]

        def _no_draws(*args, **kwargs):
            raise AssertionError("permutations drawn before validation")

        monkeypatch.setattr(core_mod, "resolve_seed", _no_draws)
        monkeypatch.setattr(tester_mod, "permutation_indices", _no_draws)
        with pytest.raises(NonPositiveSize) as exc_info:
            _run(bad, Y)
        assert exc_info.value.indices == [2, 5]

    def test_numeric_groups(self, single_group_data):
        size, Y = single_group_data
        with pytest.raises(NonFactorGrouping):
            _run(size, Y, np.tile([1, 2], 10))

    def test_two_size_columns(self, single_group_data):
        size, Y = single_group_data
        with pytest.raises(SingleCovariateRequired):
            _run(np.column_stack([size, size]), Y)

    def test_length_mismatch(self, single_group_data):
        size, Y = single_group_data
        with pytest.raises(DimensionMismatch):
            _run(size[:-1], Y)

    def test_more_iterations_than_orderings(self):
        rng = np.random.default_rng(0)
        size, Y = rng.uniform(1, 2, 4), rng.normal(size=(4, 2))
        with pytest.warns(UserWarning, match="drawn with replacement"):
            result = _run(size, Y, iterations=30)
        assert result.permutations == 31
        assert result.random_f.shape == (31,)
        assert result.random_f[0] == result.aov_table.loc["log(size)", "F"]
        assert 1 / 31 <= result.aov_table.loc["log(size)", "P"] <= 1.0

    def test_default_iterations_with_six_specimens(self):
        rng = np.random.default_rng(2)
        size, Y = rng.uniform(1, 3, 6), rng.normal(size=(6, 3))
        with pytest.warns(UserWarning):
            result = _run(size, Y, iterations=999, seed=None)
        assert result.permutations == 1000
        assert result.seed == 999

    def test_analysis_object(self, single_group_data):
        size, Y = single_group_data
        analysis = AllometryAnalysis(AllometryOptions(iterations=19, seed=2, backend="numpy"))
        result = analysis.run(Y, size)
        assert result.permutations == 20


@pytest.mark.slow
class TestLargerRuns:
    def test_default_iterations(self, divergent_data):
        size, Y, gps = divergent_data
        result = procd_allometry(Y, size, gps, backend="numpy")
        assert result.permutations == 1000
        assert result.seed == 999
        assert result.aov_table.loc["log(size):gps", "P"] == pytest.approx(0.001)
