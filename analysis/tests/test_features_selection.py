"""
Tests for stage-2 column selection.
"""

import numpy as np
import pandas as pd
import pytest

from biomm.data.schema import Stage2Dataset
from biomm.features.selection import NoFeaturesRetainedError, select_stage2_features


@pytest.fixture
def stage2():
    """Five columns: two strongly positive, two strongly negative, one null."""
    rng = np.random.default_rng(0)
    y = np.array([0, 1] * 20)
    index = [f"S{i}" for i in range(40)]
    X = pd.DataFrame(
        {
            "neg1": -2 * y + rng.normal(scale=0.5, size=40),
            "pos1": 2 * y + rng.normal(scale=0.5, size=40),
            "null": np.tile([5.0, 5.0, -5.0, -5.0], 10) + 0.01 * y,
            "pos2": 2 * y + rng.normal(scale=0.5, size=40),
            "neg2": -2 * y + rng.normal(scale=0.5, size=40),
        },
        index=index,
    )
    return Stage2Dataset(X=X, y=pd.Series(y, index=index, name="label"))


def test_positive_sign_with_fdr_keeps_two_in_order(stage2):
    filtered, stats = select_stage2_features(stage2, sign="positive", fdr=0.1)
    assert filtered.columns == ["pos1", "pos2"]
    assert stats["retained"].tolist() == [False, True, False, True, False]
    assert filtered.y.equals(stage2.y)


def test_fdr_without_sign_keeps_strong_associations(stage2):
    filtered, _ = select_stage2_features(stage2, fdr=0.1)
    assert filtered.columns == ["neg1", "pos1", "pos2", "neg2"]


def test_raw_cutoff_when_no_fdr(stage2):
    filtered, _ = select_stage2_features(stage2, p_cutoff=0.05)
    assert "null" not in filtered.columns
    assert len(filtered.columns) == 4


def test_fdr_takes_precedence_over_cutoff(stage2):
    filtered, _ = select_stage2_features(stage2, p_cutoff=1.0, fdr=0.1)
    assert "null" not in filtered.columns


def test_no_threshold_keeps_sign_survivors(stage2):
    filtered, _ = select_stage2_features(stage2, sign="positive")
    # "null" has a tiny positive effect and survives the sign step
    assert filtered.columns == ["pos1", "null", "pos2"]
    unfiltered, _ = select_stage2_features(stage2)
    assert unfiltered.columns == stage2.columns


def test_stats_table(stage2):
    _, stats = select_stage2_features(stage2, fdr=0.1)
    assert stats.columns.tolist() == ["feature", "effect", "p_value", "p_adjusted", "retained"]
    assert np.all(stats["p_adjusted"] >= stats["p_value"] - 1e-12)
    assert stats.set_index("feature").loc["pos1", "effect"] > 0


def test_idempotent(stage2):
    once, _ = select_stage2_features(stage2, sign="positive", fdr=0.1)
    twice, _ = select_stage2_features(once, sign="positive", fdr=0.1)
    assert once.columns == twice.columns


def test_wilcox(stage2):
    filtered, stats = select_stage2_features(stage2, test="wilcox", sign="positive", fdr=0.1)
    assert filtered.columns[:1] == ["pos1"]
    assert "pos2" in filtered.columns
    assert not {"neg1", "neg2"} & set(filtered.columns)
    assert (stats["effect"] > 0).sum() == 3


def test_nothing_retained_raises(stage2):
    only_neg = stage2.subset(["neg1", "neg2"])
    with pytest.raises(NoFeaturesRetainedError, match="No stage-2 column"):
        select_stage2_features(only_neg, sign="positive")


def test_two_group_test_rejected_for_regression(stage2):
    with pytest.raises(ValueError, match="binary outcome"):
        select_stage2_features(stage2, pred_mode="regression", test="ttest")


def test_missing_values_use_complete_rows(stage2):
    X = stage2.X.copy()
    X.iloc[:3, 1] = np.nan
    filtered, stats = select_stage2_features(Stage2Dataset(X, stage2.y), sign="positive", fdr=0.1)
    assert filtered.columns == ["pos1", "pos2"]
