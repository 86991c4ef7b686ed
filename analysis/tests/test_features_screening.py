"""
Tests for univariate association tests and in-fold block filtering.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from biomm.features.screening import (
    association_table,
    correlation_scan,
    filter_block_features,
    two_group_test,
)


@pytest.fixture
def block():
    """30 samples: col0 strongly positive, col1 strongly negative, cols 2-4 noise."""
    rng = np.random.default_rng(0)
    y = np.array([0, 1] * 15)
    X = rng.normal(size=(30, 5))
    X[:, 0] += 3 * y
    X[:, 1] -= 3 * y
    return X, y


class TestCorrelationScan:
    def test_matches_scipy(self, block):
        X, y = block
        r, p, n = correlation_scan(X, y)
        for j in range(X.shape[1]):
            ref = stats.pearsonr(X[:, j], y)
            assert r[j] == pytest.approx(ref[0], abs=1e-10)
            assert p[j] == pytest.approx(ref[1], rel=1e-6)
        assert n.tolist() == [30] * 5

    def test_pairwise_missing(self, block):
        X, y = block
        X = X.copy()
        X[:5, 0] = np.nan
        r, p, n = correlation_scan(X, y)
        ref = stats.pearsonr(X[5:, 0], y[5:])
        assert n[0] == 25
        assert r[0] == pytest.approx(ref[0], abs=1e-10)

    def test_constant_column_undefined(self):
        X = np.column_stack([np.ones(10), np.arange(10.0)])
        r, p, _ = correlation_scan(X, np.arange(10.0))
        assert np.isnan(r[0]) and np.isnan(p[0])
        assert r[1] == pytest.approx(1.0)


class TestTwoGroupTest:
    def test_wilcox_effect_sign(self, block):
        X, y = block
        effect, p, n = two_group_test(X[:, 1], y, "wilcox")
        assert effect < 0
        assert p < 0.001
        assert n == 30

    def test_ttest_matches_welch(self, block):
        X, y = block
        effect, p, _ = two_group_test(X[:, 0], y, "ttest")
        ref = stats.ttest_ind(X[y == 1, 0], X[y == 0, 0], equal_var=False)
        assert p == pytest.approx(ref.pvalue)
        assert effect > 0

    def test_too_few_per_class(self):
        effect, p, _ = two_group_test(np.arange(4.0), np.array([0, 0, 0, 1]), "wilcox")
        assert np.isnan(effect) and np.isnan(p)

    def test_unknown_test(self, block):
        X, y = block
        with pytest.raises(ValueError, match="Unknown two-group test"):
            two_group_test(X[:, 0], y, "anova")


class TestAssociationTable:
    def test_columns_and_order(self, block):
        X, y = block
        df = pd.DataFrame(X, columns=list("abcde"))
        table = association_table(df, y, test="wilcox")
        assert table.columns.tolist() == ["feature", "effect", "p_value", "n"]
        assert table["feature"].tolist() == list("abcde")

    def test_unknown_test(self, block):
        X, y = block
        with pytest.raises(ValueError, match="Unknown association test"):
            association_table(pd.DataFrame(X), y, test="chisq")


class TestFilterBlockFeatures:
    def test_none_keeps_all(self, block):
        X, y = block
        assert filter_block_features(X, y, "none").tolist() == [0, 1, 2, 3, 4]

    def test_positive(self, block):
        X, y = block
        keep = filter_block_features(X, y, "positive")
        assert 0 in keep and 1 not in keep

    def test_cor_cutoff(self, block):
        X, y = block
        keep = filter_block_features(X, y, "cor", p_cutoff=1e-4)
        assert keep.tolist() == [0, 1]

    def test_wilcox_cutoff(self, block):
        X, y = block
        keep = filter_block_features(X, y, "wilcox", p_cutoff=1e-3)
        assert keep.tolist() == [0, 1]

    def test_top_cor_fraction(self, block):
        X, y = block
        keep = filter_block_features(X, y, "top_cor", top_fraction=0.4)
        assert keep.tolist() == [0, 1]

    def test_empty_result_falls_back_to_best_column(self, block):
        X, y = block
        keep = filter_block_features(X[:, 2:], y, "cor", p_cutoff=1e-12)
        r, p, _ = correlation_scan(X[:, 2:], y)
        assert keep.tolist() == [int(np.argmin(p))]

    def test_unknown_method(self, block):
        X, y = block
        with pytest.raises(ValueError, match="Unknown stage-1 filter"):
            filter_block_features(X, y, "lasso")
