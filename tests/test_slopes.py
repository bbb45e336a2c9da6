"""Tests for the homogeneity-of-slopes decision."""

import numpy as np
import pandas as pd
import pytest

from procrustes_allometry.design import allometry_models, as_group_factor, model_data
from procrustes_allometry.exceptions import NonFactorGrouping, NonPositiveSize
from procrustes_allometry.slopes import HOS_COLUMNS, HOS_ROWS, decide
from procrustes_allometry.tester import PermutationTester


def _decide(data, **kwargs):
    size, Y, gps = data
    kwargs.setdefault("iterations", 99)
    kwargs.setdefault("seed", 1)
    kwargs.setdefault("backend", "numpy")
    return decide(size, Y, gps, **kwargs)


class TestDecision:
    def test_parallel_slopes_are_pooled(self, parallel_data):
        hos = _decide(parallel_data)
        assert hos.decision == "parallel"
        assert hos.pooled
        assert hos.p_value > 0.05
        assert hos.model == allometry_models(grouped=True)["parallel"]

    def test_divergent_slopes_are_group_specific(self, divergent_data):
        hos = _decide(divergent_data)
        assert hos.decision == "group-specific"
        assert not hos.pooled
        assert hos.p_value == pytest.approx(0.01)
        assert hos.model.has_term("log(size):gps")

    def test_tie_at_alpha_keeps_interaction(self, divergent_data):
        hos = _decide(divergent_data, alpha=0.01)
        assert hos.p_value == pytest.approx(0.01)
        assert hos.decision == "group-specific"

    def test_decision_is_monotone_in_alpha(self, parallel_data):
        size, Y, gps = parallel_data
        tester = PermutationTester(
            Y, model_data(size, as_group_factor(gps)), iterations=99, seed=1, backend="numpy"
        )
        p = decide(size, Y, gps, tester=tester).p_value
        assert 0.05 < p < 1.0
        alphas = (0.01, p - 1e-6, p, p + 1e-6, 0.999)
        pooled = [decide(size, Y, gps, alpha=a, tester=tester).pooled for a in alphas]
        assert pooled == [True, True, False, False, False]

    def test_observed_interaction_is_not_degenerate(self, parallel_data):
        hos = _decide(parallel_data)
        assert hos.test.f > 0.0
        assert hos.test.random_f[0] == hos.test.f

    def test_uses_rrpp_and_f(self, divergent_data):
        hos = _decide(divergent_data)
        assert hos.test.perm_method == "RRPP"
        assert hos.test.effect_type == "F"


class TestHosTable:
    def test_layout(self, divergent_data):
        hos = _decide(divergent_data)
        table = hos.table
        assert tuple(table.index) == HOS_ROWS
        assert tuple(table.columns) == HOS_COLUMNS
        assert table["ResDf"].tolist() == [21, 20, 23]
        assert table.loc["Group Allometries", "Df"] == 1
        assert table.attrs["decision"] == "group-specific"
        assert table.attrs["formula"] == "Y ~ log(size) + gps + log(size):gps"

    def test_values_match_test(self, divergent_data):
        hos = _decide(divergent_data)
        row = hos.table.loc["Group Allometries"]
        assert row["F"] == hos.test.f
        assert row["P"] == hos.p_value
        assert np.isclose(row["SS"], hos.table.loc["Common Allometry", "RSS"] - row["RSS"])
        assert np.isnan(hos.table.loc["Common Allometry", "P"])


class TestValidation:
    def test_numeric_groups_rejected(self, parallel_data):
        size, Y, _ = parallel_data
        with pytest.raises(NonFactorGrouping):
            decide(size, Y, np.repeat([1.0, 2.0], 12), iterations=9, backend="numpy")

    def test_non_positive_size(self, parallel_data):
        size, Y, gps = parallel_data
        bad = size.copy()
        bad[3] = 0.0
        with pytest.raises(NonPositiveSize):
            decide(bad, Y, gps, iterations=9, backend="numpy")

    @pytest.mark.parametrize("alpha", [0.0, 1.0, -0.1])
    def test_alpha_range(self, parallel_data, alpha):
        with pytest.raises(ValueError, match="alpha"):
            _decide(parallel_data, alpha=alpha)

    def test_composite_groups(self, parallel_data):
        size, Y, gps = parallel_data
        frame = pd.DataFrame({"species": gps, "sex": np.tile(["f", "m"], 12)})
        hos = decide(size, Y, frame, iterations=19, seed=3, backend="numpy")
        assert hos.table.loc["Group Allometries", "Df"] == 3
