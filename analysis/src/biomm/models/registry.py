"""Model adapters and the family registry.

Every supported algorithm family implements the same contract:

    fit(X, y, params) -> model
    predict(model, X) -> scores

The pipeline only talks to adapters, never to estimator internals. New
families are added with :func:`register_adapter`.

Families:
- glmnet: elastic-net logistic regression / elastic-net regression
- rf: random forest classifier / regressor
- svm: support vector classifier (Platt probabilities) / regressor
- pca: (sparse) principal components, outcome ignored

References:
- scikit-learn 1.8+ deprecates penalty= in LogisticRegression (use l1_ratio=)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

import numpy as np
import sklearn
from sklearn.decomposition import PCA, SparsePCA
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.impute import SimpleImputer
from sklearn.linear_model import ElasticNet, LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC, SVR

from ..config.defaults import DEFAULT_MODEL_PARAMS
from ..config.schema import ModelSpec

logger = logging.getLogger(__name__)


class ModelFitError(Exception):
    """Raised when a model cannot be fit on a training partition."""

    pass


# ----------------------------
# sklearn version compatibility
# ----------------------------
def _sklearn_version_tuple(ver: str) -> Tuple[int, int, int]:
    """Parse sklearn version string (robust to rc/dev suffixes)."""
    nums = re.findall(r"\d+", ver)
    nums = (nums + ["0", "0", "0"])[:3]
    return (int(nums[0]), int(nums[1]), int(nums[2]))


SKLEARN_VER = _sklearn_version_tuple(getattr(sklearn, "__version__", "0.0.0"))

# Failures of a single fit that should exclude a block rather than abort a run
FIT_FAILURES = (ValueError, np.linalg.LinAlgError, FloatingPointError)


def _as_matrix(X) -> np.ndarray:
    arr = np.asarray(X, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    return arr


def _apply_extra_params(estimator, params: Dict[str, Any], used: set) -> None:
    """Forward params the builder did not consume, if the estimator accepts them."""
    valid = estimator.get_params()
    extra = {k: v for k, v in params.items() if k not in used and k in valid}
    if extra:
        estimator.set_params(**extra)
    ignored = sorted(k for k in params if k not in used and k not in valid)
    if ignored:
        logger.debug(f"{type(estimator).__name__} ignores params: {ignored}")


# ----------------------------
# Adapter contract
# ----------------------------
class ModelAdapter(ABC):
    """Uniform fit/predict capability for one algorithm family."""

    family: str = ""
    supervised: bool = True

    def __init__(self, pred_mode: str = "probability", params: Optional[Dict[str, Any]] = None):
        if pred_mode not in ("classification", "probability", "regression"):
            raise ValueError(f"Unknown pred_mode='{pred_mode}'")
        self.pred_mode = pred_mode
        self.params = dict(params or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pred_mode={self.pred_mode!r}, params={self.params!r})"

    @property
    def is_classifier(self) -> bool:
        return self.pred_mode in ("classification", "probability")

    def resolve_params(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Family defaults, then adapter params, then call-time params."""
        merged = dict(DEFAULT_MODEL_PARAMS.get(self.family, {}))
        merged.update(self.params)
        merged.update(params or {})
        return merged

    @abstractmethod
    def build(self, params: Dict[str, Any]):
        """Return an unfitted estimator for this family and prediction mode."""

    def _check_training_data(self, X: np.ndarray, y: Optional[np.ndarray]) -> None:
        if X.shape[1] == 0:
            raise ModelFitError("Training matrix has no feature columns")
        if X.shape[0] < 2:
            raise ModelFitError(f"Training partition has {X.shape[0]} samples")
        if not self.supervised:
            return
        if y is None:
            raise ModelFitError(f"{self.family} needs an outcome to fit")
        if self.is_classifier:
            if np.unique(y).size < 2:
                raise ModelFitError("Training partition contains a single outcome class")
        elif np.nanstd(y) == 0:
            raise ModelFitError("Training partition has a zero-variance outcome")

    def fit(self, X, y=None, params: Optional[Dict[str, Any]] = None):
        """Fit a fresh estimator; failures surface as ModelFitError."""
        X = _as_matrix(X)
        y = None if y is None else np.asarray(y)
        self._check_training_data(X, y)

        estimator = self.build(self.resolve_params(params))
        try:
            if self.supervised:
                estimator.fit(X, y.astype(int) if self.is_classifier else y.astype(float))
            else:
                estimator.fit(X)
        except FIT_FAILURES as e:
            raise ModelFitError(f"{self.family} fit failed: {type(e).__name__}: {e}") from e
        return estimator

    def predict(self, model, X) -> np.ndarray:
        """Scores for ``X``: labels, positive-class probabilities or values."""
        X = _as_matrix(X)
        try:
            if self.pred_mode == "probability":
                return model.predict_proba(X)[:, 1].astype(float)
            return np.asarray(model.predict(X), dtype=float)
        except FIT_FAILURES as e:
            raise ModelFitError(f"{self.family} predict failed: {type(e).__name__}: {e}") from e


# ----------------------------
# Families
# ----------------------------
class GlmnetAdapter(ModelAdapter):
    """Elastic-net penalized linear model on standardized features."""

    family = "glmnet"

    def build(self, params: Dict[str, Any]):
        if self.is_classifier:
            used = {"C", "l1_ratio", "max_iter", "random_state", "alpha"}
            clf = build_logistic_regression(
                C=float(params["C"]),
                l1_ratio=float(params["l1_ratio"]),
                max_iter=int(params["max_iter"]),
                random_state=int(params["random_state"]),
            )
        else:
            used = {"alpha", "l1_ratio", "max_iter", "random_state", "C"}
            clf = ElasticNet(
                alpha=float(params["alpha"]),
                l1_ratio=float(params["l1_ratio"]),
                max_iter=int(params["max_iter"]),
                random_state=int(params["random_state"]),
            )
        _apply_extra_params(clf, params, used)
        return Pipeline(
            [
                ("impute", SimpleImputer(strategy="median")),
                ("scale", StandardScaler()),
                ("clf", clf),
            ]
        )


class RandomForestAdapter(ModelAdapter):
    """Random forest classifier or regressor."""

    family = "rf"

    def build(self, params: Dict[str, Any]):
        cls = RandomForestClassifier if self.is_classifier else RandomForestRegressor
        kwargs = {
            "n_estimators": int(params["n_estimators"]),
            "max_features": params["max_features"],
            "min_samples_leaf": params["min_samples_leaf"],
            "random_state": int(params["random_state"]),
            "n_jobs": int(max(1, params["n_jobs"])),
        }
        clf = cls(**kwargs)
        _apply_extra_params(clf, params, set(kwargs))
        return Pipeline([("impute", SimpleImputer(strategy="median")), ("clf", clf)])


class SVMAdapter(ModelAdapter):
    """Kernel SVM on standardized features."""

    family = "svm"

    def build(self, params: Dict[str, Any]):
        kwargs = {
            "C": float(params["C"]),
            "kernel": params["kernel"],
            "gamma": params["gamma"],
        }
        if self.is_classifier:
            clf = SVC(
                probability=self.pred_mode == "probability",
                random_state=int(params["random_state"]),
                **kwargs,
            )
            used = set(kwargs) | {"random_state", "probability"}
        else:
            clf = SVR(**kwargs)
            used = set(kwargs) | {"random_state"}
        _apply_extra_params(clf, params, used)
        return Pipeline(
            [
                ("impute", SimpleImputer(strategy="median")),
                ("scale", StandardScaler()),
                ("clf", clf),
            ]
        )


@dataclass
class ComponentModel:
    """Fitted decomposition plus per-component sign convention."""

    pipeline: Pipeline
    signs: np.ndarray


class PCAAdapter(ModelAdapter):
    """Leading principal components of a standardized block (outcome ignored).

    Component signs are fixed so each component correlates non-negatively
    with the standardized row mean of the block, which keeps directions
    comparable across resampled fits.
    """

    family = "pca"
    supervised = False

    def build(self, params: Dict[str, Any]):
        n_components = int(params["n_components"])
        if params.get("sparse"):
            decomposer = SparsePCA(
                n_components=n_components,
                alpha=float(params["alpha"]),
                random_state=int(params["random_state"]),
            )
        else:
            decomposer = PCA(n_components=n_components, random_state=int(params["random_state"]))
        return Pipeline(
            [
                ("impute", SimpleImputer(strategy="median")),
                ("scale", StandardScaler()),
                ("decompose", decomposer),
            ]
        )

    def fit(self, X, y=None, params: Optional[Dict[str, Any]] = None):
        X = _as_matrix(X)
        self._check_training_data(X, None)
        resolved = self.resolve_params(params)
        n_components = int(resolved["n_components"])
        if n_components > min(X.shape):
            raise ModelFitError(
                f"Cannot extract {n_components} components from a {X.shape[0]}x{X.shape[1]} block"
            )

        pipeline = self.build(resolved)
        try:
            scores = pipeline.fit_transform(X)
        except FIT_FAILURES as e:
            raise ModelFitError(f"pca fit failed: {type(e).__name__}: {e}") from e

        row_mean = pipeline[:-1].transform(X).mean(axis=1)
        signs = np.ones(scores.shape[1])
        for k in range(scores.shape[1]):
            if np.std(scores[:, k]) > 0 and np.std(row_mean) > 0:
                r = np.corrcoef(scores[:, k], row_mean)[0, 1]
                if np.isfinite(r) and r < 0:
                    signs[k] = -1.0
        return ComponentModel(pipeline=pipeline, signs=signs)

    def predict(self, model: ComponentModel, X) -> np.ndarray:
        scores = model.pipeline.transform(_as_matrix(X)) * model.signs
        return scores[:, 0] if scores.shape[1] == 1 else scores


# ----------------------------
# Builders and registry
# ----------------------------
def build_logistic_regression(
    solver: str = "saga",
    C: float = 1.0,
    max_iter: int = 5000,
    tol: float = 1e-4,
    random_state: int = 0,
    l1_ratio: float = 0.5,
    penalty: str = "elasticnet",
) -> LogisticRegression:
    """Build elastic-net Logistic Regression (sklearn 1.8+ compatible).

    Args:
        solver: Optimization algorithm
        C: Inverse regularization strength
        max_iter: Maximum iterations
        tol: Convergence tolerance
        random_state: Random seed
        l1_ratio: ElasticNet mixing (0=L2, 1=L1)
        penalty: Penalty type (ignored in sklearn >=1.8)

    Returns:
        Configured LogisticRegression estimator
    """
    lr_common = {
        "solver": solver,
        "C": C,
        "max_iter": int(max_iter),
        "tol": float(tol),
        "random_state": int(random_state),
    }

    # sklearn >=1.8 deprecates penalty=, uses l1_ratio
    if SKLEARN_VER >= (1, 8, 0):
        return LogisticRegression(l1_ratio=l1_ratio, **lr_common)
    else:
        return LogisticRegression(penalty=penalty, l1_ratio=l1_ratio, **lr_common)


MODEL_ADAPTERS: Dict[str, Type[ModelAdapter]] = {
    "glmnet": GlmnetAdapter,
    "rf": RandomForestAdapter,
    "svm": SVMAdapter,
    "pca": PCAAdapter,
}


def register_adapter(family: str, adapter_cls: Type[ModelAdapter]) -> None:
    """Register an adapter class under a family tag."""
    if not issubclass(adapter_cls, ModelAdapter):
        raise TypeError(f"{adapter_cls!r} does not implement ModelAdapter")
    MODEL_ADAPTERS[family] = adapter_cls


def build_adapter(spec: ModelSpec) -> ModelAdapter:
    """Instantiate the adapter for a ModelSpec.

    Raises:
        ValueError: If the family tag is not registered
    """
    try:
        adapter_cls = MODEL_ADAPTERS[spec.family]
    except KeyError:
        raise ValueError(
            f"Unknown model family '{spec.family}'. Valid: {sorted(MODEL_ADAPTERS)}"
        ) from None
    return adapter_cls(pred_mode=spec.pred_mode, params=dict(spec.params))
