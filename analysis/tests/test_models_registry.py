"""Tests for models.registry module.

Tests cover:
- Adapter construction per family and prediction mode
- fit/predict contract and score shapes
- Degenerate training data surfacing as ModelFitError
- Registry extension
- sklearn version compatibility
"""

import numpy as np
import pytest
from sklearn.dummy import DummyClassifier
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import ElasticNet, LogisticRegression

from biomm.config.defaults import VALID_MODELS
from biomm.config.schema import ModelSpec
from biomm.models.registry import (
    MODEL_ADAPTERS,
    SKLEARN_VER,
    ModelAdapter,
    ModelFitError,
    PCAAdapter,
    build_adapter,
    build_logistic_regression,
    register_adapter,
)


@pytest.fixture
def toy_binary():
    rng = np.random.default_rng(0)
    y = np.array([0, 1] * 15)
    X = rng.normal(size=(30, 4)) + y[:, None]
    return X, y


# ----------------------------
# Builders
# ----------------------------
def test_build_logistic_regression():
    lr = build_logistic_regression(C=0.1, max_iter=1000, tol=1e-3, random_state=123, l1_ratio=0.5)
    assert isinstance(lr, LogisticRegression)
    assert lr.solver == "saga"
    assert lr.C == 0.1
    assert lr.max_iter == 1000
    assert lr.l1_ratio == 0.5
    assert lr.random_state == 123


def test_sklearn_version_tuple():
    assert len(SKLEARN_VER) == 3
    assert SKLEARN_VER >= (1, 0, 0)


@pytest.mark.parametrize(
    "family,pred_mode,final",
    [
        ("glmnet", "probability", LogisticRegression),
        ("glmnet", "regression", ElasticNet),
        ("rf", "classification", RandomForestClassifier),
    ],
)
def test_build_adapter_estimators(family, pred_mode, final):
    adapter = build_adapter(ModelSpec(family=family, pred_mode=pred_mode))
    estimator = adapter.build(adapter.resolve_params())
    assert isinstance(estimator[-1], final)


def test_params_layering():
    adapter = build_adapter(ModelSpec(family="rf", params={"n_estimators": 7}))
    params = adapter.resolve_params({"min_samples_leaf": 3})
    assert params["n_estimators"] == 7
    assert params["min_samples_leaf"] == 3
    assert params["max_features"] == "sqrt"


def test_extra_params_forwarded():
    adapter = build_adapter(ModelSpec(family="rf", params={"n_estimators": 5, "max_depth": 2}))
    estimator = adapter.build(adapter.resolve_params())
    assert estimator[-1].max_depth == 2


def test_unknown_family():
    with pytest.raises(ValueError, match="Unknown model family"):
        build_adapter(ModelSpec(family="xgb"))


# ----------------------------
# fit / predict
# ----------------------------
@pytest.mark.parametrize("family", ["glmnet", "rf", "svm"])
def test_probability_scores_in_unit_interval(family, toy_binary):
    X, y = toy_binary
    adapter = build_adapter(ModelSpec(family=family, params={"n_estimators": 20}))
    model = adapter.fit(X, y)
    scores = adapter.predict(model, X)
    assert scores.shape == (30,)
    assert np.all((scores >= 0) & (scores <= 1))


def test_classification_returns_labels(toy_binary):
    X, y = toy_binary
    adapter = build_adapter(ModelSpec(family="glmnet", pred_mode="classification"))
    scores = adapter.predict(adapter.fit(X, y), X)
    assert set(np.unique(scores)) <= {0.0, 1.0}


def test_regression_values():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(40, 3))
    y = X[:, 0] * 2 + rng.normal(scale=0.1, size=40)
    adapter = build_adapter(ModelSpec(family="glmnet", pred_mode="regression"))
    pred = adapter.predict(adapter.fit(X, y), X)
    assert np.corrcoef(pred, y)[0, 1] > 0.9


def test_missing_values_imputed(toy_binary):
    X, y = toy_binary
    X = X.copy()
    X[0, 0] = np.nan
    adapter = build_adapter(ModelSpec(family="glmnet"))
    scores = adapter.predict(adapter.fit(X, y), X)
    assert np.isfinite(scores).all()


class TestDegenerateTraining:
    """Degenerate partitions raise ModelFitError instead of crashing a run."""

    def test_single_class(self):
        adapter = build_adapter(ModelSpec(family="glmnet"))
        with pytest.raises(ModelFitError, match="single outcome class"):
            adapter.fit(np.ones((10, 2)), np.zeros(10))

    def test_zero_variance_outcome(self):
        adapter = build_adapter(ModelSpec(family="glmnet", pred_mode="regression"))
        with pytest.raises(ModelFitError, match="zero-variance"):
            adapter.fit(np.random.default_rng(0).normal(size=(10, 2)), np.full(10, 3.0))

    def test_no_columns(self):
        adapter = build_adapter(ModelSpec(family="rf"))
        with pytest.raises(ModelFitError, match="no feature columns"):
            adapter.fit(np.empty((10, 0)), np.array([0, 1] * 5))

    def test_too_many_components(self):
        adapter = PCAAdapter(params={"n_components": 5})
        with pytest.raises(ModelFitError, match="Cannot extract 5 components"):
            adapter.fit(np.random.default_rng(0).normal(size=(10, 3)))


# ----------------------------
# Unsupervised components
# ----------------------------
class TestPCAAdapter:
    def test_component_sign_follows_row_mean(self):
        rng = np.random.default_rng(0)
        latent = rng.normal(size=50)
        X = latent[:, None] + rng.normal(scale=0.2, size=(50, 6))
        adapter = build_adapter(ModelSpec(family="pca"))
        model = adapter.fit(X)
        pc1 = adapter.predict(model, X)
        assert pc1.shape == (50,)
        assert np.corrcoef(pc1, latent)[0, 1] > 0.9

    def test_multiple_components(self):
        X = np.random.default_rng(0).normal(size=(30, 5))
        adapter = build_adapter(ModelSpec(family="pca", params={"n_components": 2}))
        scores = adapter.predict(adapter.fit(X), X)
        assert scores.shape == (30, 2)

    def test_sparse_variant(self):
        X = np.random.default_rng(0).normal(size=(30, 5))
        adapter = build_adapter(ModelSpec(family="pca", params={"sparse": True, "alpha": 0.1}))
        assert adapter.predict(adapter.fit(X), X).shape == (30,)

    def test_outcome_ignored(self):
        X = np.random.default_rng(0).normal(size=(20, 4))
        adapter = PCAAdapter()
        a = adapter.predict(adapter.fit(X, np.zeros(20)), X)
        b = adapter.predict(adapter.fit(X), X)
        np.testing.assert_allclose(a, b)


# ----------------------------
# Registry
# ----------------------------
class PriorAdapter(ModelAdapter):
    family = "prior"

    def build(self, params):
        return DummyClassifier(strategy="prior")


def test_register_adapter(toy_binary):
    X, y = toy_binary
    register_adapter("prior", PriorAdapter)
    try:
        adapter = build_adapter(ModelSpec(family="prior"))
        scores = adapter.predict(adapter.fit(X, y), X)
        np.testing.assert_allclose(scores, 0.5)
    finally:
        MODEL_ADAPTERS.pop("prior", None)


def test_register_rejects_non_adapter():
    with pytest.raises(TypeError):
        register_adapter("bad", object)


def test_builtin_families_registered():
    assert set(VALID_MODELS) <= set(MODEL_ADAPTERS)
