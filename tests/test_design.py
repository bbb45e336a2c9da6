"""Tests for model descriptions, design matrices and covariate coercion."""

import numpy as np
import pandas as pd
import pytest

from procrustes_allometry.design import (
    ModelSpec,
    Term,
    allometry_models,
    as_group_factor,
    as_size_vector,
    model_data,
)
from procrustes_allometry.exceptions import (
    AllometryError,
    DimensionMismatch,
    InvalidModel,
    NonFactorGrouping,
    NonPositiveSize,
    SingleCovariateRequired,
)


class TestTerm:
    def test_labels(self):
        size = Term.continuous("size", transform="log")
        gps = Term.categorical("gps")
        assert size.label == "log(size)"
        assert gps.label == "gps"
        assert Term.interaction(size, gps).label == "log(size):gps"

    def test_marginality(self):
        size = Term.continuous("size")
        gps = Term.categorical("gps")
        inter = Term.interaction(size, gps)
        assert inter.contains(size)
        assert inter.contains(gps)
        assert not size.contains(inter)
        assert not inter.contains(inter)

    def test_invalid_terms(self):
        with pytest.raises(ValueError):
            Term(kind="spline", variable="x")
        with pytest.raises(ValueError):
            Term.interaction(Term.continuous("x"))
        with pytest.raises(ValueError):
            Term.continuous("x", transform="sqrt")


class TestModelSpec:
    def test_allometry_models(self):
        models = allometry_models(log_size=True, grouped=True)
        assert models["common"].formula == "Y ~ log(size)"
        assert models["parallel"].formula == "Y ~ log(size) + gps"
        assert models["group_specific"].formula == "Y ~ log(size) + gps + log(size):gps"
        assert set(allometry_models(grouped=False)) == {"common"}

    def test_raw_size_labels(self):
        assert allometry_models(log_size=False)["common"].formula == "Y ~ size"

    def test_nesting(self):
        models = allometry_models(grouped=True)
        assert models["group_specific"].nests(models["parallel"])
        assert models["parallel"].nests(models["common"])
        assert models["parallel"].nests(ModelSpec())
        assert not models["parallel"].nests(models["parallel"])
        assert not models["parallel"].nests(models["group_specific"])

    def test_empty_formula(self):
        assert ModelSpec().formula == "Y ~ 1"

    def test_duplicate_terms_rejected(self):
        size = Term.continuous("size")
        with pytest.raises(InvalidModel):
            ModelSpec(terms=(size, size))

    def test_select_keeps_model_order(self):
        full = allometry_models(grouped=True)["group_specific"]
        sub = full.select({"gps", "log(size)"})
        assert sub.term_labels == ("log(size)", "gps")
        assert full.drop("gps").term_labels == ("log(size)", "log(size):gps")


class TestDesignMatrix:
    def _data(self):
        size = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        gps = pd.Series(["a", "b", "c", "a", "b", "c"], dtype="category")
        return model_data(size, gps)

    def test_columns_and_values(self):
        data = self._data()
        design = allometry_models(grouped=True)["group_specific"].design_matrix(data)
        assert design.columns == (
            "(Intercept)",
            "log(size)",
            "gps[T.b]",
            "gps[T.c]",
            "log(size):gps[T.b]",
            "log(size):gps[T.c]",
        )
        assert design.shape == (6, 6)
        np.testing.assert_allclose(design.values[:, 1], np.log(data["size"]))
        np.testing.assert_allclose(
            design.values[:, 4], np.log(data["size"]) * (data["gps"] == "b")
        )
        assert design.columns_for("gps") == (2, 3)
        assert design.columns_for("log(size):gps") == (4, 5)

    def test_unknown_term(self):
        design = allometry_models()["common"].design_matrix(self._data())
        with pytest.raises(KeyError):
            design.columns_for("gps")

    def test_missing_variable(self):
        model = ModelSpec(terms=(Term.categorical("sex"),))
        with pytest.raises(InvalidModel):
            model.design_matrix(self._data())


class TestAsSizeVector:
    def test_valid(self):
        out = as_size_vector([1.0, 2.5, 3.0], 3)
        np.testing.assert_array_equal(out, [1.0, 2.5, 3.0])

    def test_single_column_frame(self):
        out = as_size_vector(pd.DataFrame({"cs": [1.0, 2.0]}), 2)
        np.testing.assert_array_equal(out, [1.0, 2.0])

    def test_non_positive_reports_indices(self):
        with pytest.raises(NonPositiveSize) as exc_info:
            as_size_vector([1.0, 0.0, 2.0, -3.0])
        assert exc_info.value.indices == [1, 3]

    def test_non_finite(self):
        with pytest.raises(NonPositiveSize):
            as_size_vector([1.0, np.inf])

    def test_two_columns_rejected(self):
        with pytest.raises(SingleCovariateRequired):
            as_size_vector(np.ones((4, 2)), 4)
        with pytest.raises(SingleCovariateRequired):
            as_size_vector(pd.DataFrame({"a": [1.0], "b": [2.0]}), 1)

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch):
            as_size_vector([1.0, 2.0], 3)


class TestAsGroupFactor:
    def test_series_to_categorical(self):
        gps = as_group_factor(pd.Series(["x", "y", "x"], index=[10, 11, 12]), 3)
        assert gps.name == "gps"
        assert list(gps.cat.categories) == ["x", "y"]
        assert list(gps.index) == [0, 1, 2]

    def test_numeric_rejected(self):
        with pytest.raises(NonFactorGrouping):
            as_group_factor(np.array([1, 2, 1, 2]))
        with pytest.raises(NonFactorGrouping):
            as_group_factor(pd.DataFrame({"sex": ["m", "f"], "age": [1.0, 2.0]}))

    def test_categorical_numbers_allowed(self):
        gps = as_group_factor(pd.Series(pd.Categorical([1, 2, 1, 2])))
        assert len(gps.cat.categories) == 2

    def test_composite_factor(self):
        frame = pd.DataFrame({"sex": ["m", "f", "m", "f"], "site": ["a", "a", "b", "b"]})
        gps = as_group_factor(frame, 4)
        assert list(gps) == ["m:a", "f:a", "m:b", "f:b"]
        assert len(gps.cat.categories) == 4

    def test_unused_levels_dropped(self):
        cat = pd.Categorical(["a", "b", "a"], categories=["a", "b", "c"])
        assert list(as_group_factor(pd.Series(cat)).cat.categories) == ["a", "b"]

    def test_single_level_rejected(self):
        with pytest.raises(InvalidModel):
            as_group_factor(["a", "a", "a"])

    def test_missing_labels_rejected(self):
        with pytest.raises(AllometryError):
            as_group_factor(pd.Series(["a", None, "b"]))

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch):
            as_group_factor(["a", "b"], 3)
