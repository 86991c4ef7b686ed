"""
Tests for resampling plans.
"""

import numpy as np
import pytest

from biomm.config.schema import ResamplingConfig
from biomm.data.splits import ResamplingError, make_plan, plan_from_config

# ============================================================================
# Cross-validation
# ============================================================================


class TestCVPlan:
    """k-fold partitions."""

    def test_ten_folds_of_four(self):
        """40 samples, 10 folds -> 10 test sets of 4 covering every index once."""
        y = np.array([0, 1] * 20)
        plan = make_plan(40, "cv", n_inner=10, seed=0, y=y)

        assert len(plan) == 10
        assert [len(s.test) for s in plan] == [4] * 10
        all_test = np.concatenate([s.test for s in plan])
        assert sorted(all_test.tolist()) == list(range(40))
        assert plan.coverage().tolist() == [1] * 40

    def test_train_is_complement_of_test(self):
        plan = make_plan(23, "cv", n_inner=4, seed=3)
        for split in plan:
            assert set(split.train) | set(split.test) == set(range(23))
            assert not set(split.train) & set(split.test)

    def test_repeats_cover_each_sample_once_per_repeat(self):
        plan = make_plan(30, "cv", n_inner=5, n_repeats=3, seed=0)
        assert len(plan) == 15
        assert plan.coverage().tolist() == [3] * 30
        assert [s.repeat for s in plan] == [r for r in range(3) for _ in range(5)]
        assert [s.inner for s in plan] == list(range(5)) * 3

    def test_stratified_folds_balance_classes(self):
        y = np.array([0] * 30 + [1] * 10)
        plan = make_plan(40, "cv", n_inner=5, seed=0, y=y)
        for split in plan:
            assert y[split.test].sum() == 2

    def test_small_class_falls_back_to_unstratified(self):
        y = np.array([0] * 18 + [1] * 2)
        plan = make_plan(20, "cv", n_inner=5, seed=0, y=y)
        assert plan.coverage().tolist() == [1] * 20

    def test_same_seed_same_plan(self):
        a = make_plan(30, "cv", n_inner=5, seed=7)
        b = make_plan(30, "cv", n_inner=5, seed=7)
        c = make_plan(30, "cv", n_inner=5, seed=8)
        assert all(np.array_equal(x.test, z.test) for x, z in zip(a, b, strict=True))
        assert not all(np.array_equal(x.test, z.test) for x, z in zip(a, c, strict=True))

    def test_more_folds_than_samples_raises(self):
        with pytest.raises(ResamplingError, match="folds"):
            make_plan(5, "cv", n_inner=10)

    def test_single_fold_raises(self):
        with pytest.raises(ResamplingError, match="at least 2 folds"):
            make_plan(10, "cv", n_inner=1)


# ============================================================================
# Bootstrap
# ============================================================================


class TestBootstrapPlan:
    """Draws with replacement and out-of-bag complements."""

    def test_draws_and_oob_complement(self):
        n = 20
        plan = make_plan(n, "bootstrap", n_inner=50, seed=0)
        assert len(plan) == 50
        for split in plan:
            assert len(split.train) == n
            assert split.test.size > 0
            assert set(split.test.tolist()) == set(range(n)) - set(split.train.tolist())
            assert np.all(np.diff(split.test) > 0)

    def test_mean_oob_fraction_near_expected(self):
        plan = make_plan(100, "bootstrap", n_inner=200, seed=1)
        frac = np.mean([s.test.size for s in plan]) / 100
        assert 0.33 < frac < 0.40

    def test_deterministic_for_seed(self):
        a = make_plan(20, "bootstrap", n_inner=10, n_repeats=2, seed=5)
        b = make_plan(20, "bootstrap", n_inner=10, n_repeats=2, seed=5)
        assert all(np.array_equal(x.train, z.train) for x, z in zip(a, b, strict=True))

    def test_repeats_are_distinct_draws(self):
        plan = make_plan(20, "bootstrap", n_inner=2, n_repeats=2, seed=0)
        trains = [tuple(s.train.tolist()) for s in plan]
        assert len(set(trains)) == 4

    def test_few_draws_leave_uncovered_samples(self):
        plan = make_plan(40, "bootstrap", n_inner=2, seed=0)
        uncovered = plan.uncovered()
        assert uncovered.size > 0
        assert np.all(plan.coverage()[uncovered] == 0)

    def test_degenerate_draws_exhaust_attempts(self):
        # two samples: P(no out-of-bag) = 1/2 per attempt, so some draw fails
        with pytest.raises(ResamplingError, match="no out-of-bag samples"):
            make_plan(2, "bootstrap", n_inner=200, seed=0, max_attempts=1)

    def test_rare_class_present_in_every_training_draw(self):
        y = np.array([1] * 3 + [0] * 37)
        plan = make_plan(40, "bootstrap", n_inner=100, seed=0, y=y)
        assert len(plan) == 100
        for split in plan:
            assert set(y[split.train].tolist()) == {0, 1}
            assert split.test.size > 0

    def test_single_class_draws_redrawn_only_for_binary_outcome(self):
        y = np.array([1] * 3 + [0] * 37)
        unchecked = make_plan(40, "bootstrap", n_inner=100, seed=0)
        assert any(np.unique(y[s.train]).size < 2 for s in unchecked)

        continuous = np.linspace(0.0, 1.0, 40)
        same = make_plan(40, "bootstrap", n_inner=100, seed=0, y=continuous)
        assert all(np.array_equal(a.train, b.train) for a, b in zip(unchecked, same, strict=True))

    def test_single_class_draws_exhaust_attempts(self):
        # one case in 40: P(draw misses it) = (39/40)**40, about 0.36 per attempt
        y = np.array([1] + [0] * 39)
        with pytest.raises(ResamplingError, match="single outcome class"):
            make_plan(40, "bootstrap", n_inner=200, seed=0, y=y, max_attempts=1)


class TestPlanContract:
    """Immutability and argument validation."""

    def test_index_arrays_are_read_only(self):
        plan = make_plan(10, "cv", n_inner=2)
        with pytest.raises(ValueError):
            plan.splits[0].test[0] = 99

    def test_plan_is_frozen(self):
        plan = make_plan(10, "cv", n_inner=2)
        with pytest.raises(AttributeError):
            plan.seed = 3

    def test_too_few_samples(self):
        with pytest.raises(ResamplingError, match="at least 2 samples"):
            make_plan(1, "bootstrap", n_inner=3)

    def test_unknown_method(self):
        with pytest.raises(ResamplingError, match="Unknown resampling method"):
            make_plan(10, "jackknife", n_inner=3)

    def test_outcome_length_mismatch(self):
        with pytest.raises(ResamplingError, match="n_samples"):
            make_plan(10, "cv", n_inner=2, y=np.zeros(5))

    def test_plan_from_config(self):
        cfg = ResamplingConfig(method="cv", n_inner=4, n_repeats=2, seed=11)
        plan = plan_from_config(cfg, 20)
        assert (plan.method, plan.n_inner, plan.n_repeats, plan.seed) == ("cv", 4, 2, 11)
        assert len(plan) == 8
