"""
Stage 2: final supervised model over the filtered stage-2 matrix.

The stage-2 matrix is treated as a single block and run through the same
held-out loop as stage 1, under its own independently seeded plan. With an
independent test set, one model fit on the full stage-2 training matrix
scores the test rows.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from ..config.schema import ModelSpec
from ..data.schema import Stage2Dataset
from ..data.splits import ResamplingPlan
from .registry import build_adapter
from .training import held_out_predictions

logger = logging.getLogger(__name__)


@dataclass
class Stage2Prediction:
    """Stage-2 scores.

    Attributes:
        cv: Held-out predictions for the training samples with columns
            y_true, score, predicted, n_held_out
        test: Test-set predictions with columns y_true (when known), score,
            predicted; None without a test set
        features: Stage-2 columns the model used
        pred_mode: Prediction mode of the scores
        model: Model fit on all training rows (only when a test set is scored)
    """

    cv: pd.DataFrame
    test: pd.DataFrame | None
    features: list[str]
    pred_mode: str
    model: Any = None


def _predicted_labels(scores: np.ndarray, pred_mode: str) -> np.ndarray:
    if pred_mode == "regression":
        return scores
    labels = np.where(scores >= 0.5, 1.0, 0.0)
    return np.where(np.isnan(scores), np.nan, labels)


def predict_stage2(
    train: Stage2Dataset,
    model_spec: ModelSpec,
    plan: ResamplingPlan,
    test: Stage2Dataset | None = None,
    parallel=None,
) -> Stage2Prediction:
    """
    Cross-validated (and optionally test-set) stage-2 predictions.

    In ``classification`` mode each split model votes a label and the
    aggregated score is the vote fraction; the predicted label is
    ``score >= 0.5``. ``probability`` averages positive-class probabilities
    and ``regression`` averages predicted values.

    Args:
        train: Filtered stage-2 training data (outcome required)
        model_spec: Stage-2 family, prediction mode and hyperparameters
        plan: Stage-2 resampling plan (independent of the stage-1 plan)
        test: Stage-2 test data; must contain every training column
        parallel: joblib.Parallel over splits; sequential when None

    Returns:
        Stage2Prediction

    Raises:
        ModelFitError: If a stage-2 model cannot be fit
    """
    if train.y is None:
        raise ValueError("Stage-2 prediction needs the training outcome")
    if not train.columns:
        raise ValueError("Stage-2 training matrix has no columns")

    adapter = build_adapter(model_spec)
    if not adapter.supervised:
        raise ValueError(f"Stage-2 family '{model_spec.family}' cannot predict an outcome")

    features = train.columns
    X = train.X.to_numpy(dtype=float)
    y = train.y.to_numpy()
    logger.info(
        f"Stage 2: {len(features)} columns, family={model_spec.family}, "
        f"pred_mode={model_spec.pred_mode}, splits={len(plan)}"
    )

    held_out = held_out_predictions(X, y, plan, adapter, parallel=parallel)
    cv_scores = held_out.scores[:, 0]
    cv = pd.DataFrame(
        {
            "y_true": train.y.to_numpy(),
            "score": cv_scores,
            "predicted": _predicted_labels(cv_scores, model_spec.pred_mode),
            "n_held_out": held_out.counts,
        },
        index=train.X.index,
    )

    test_frame = None
    model = None
    if test is not None:
        missing = [c for c in features if c not in test.X.columns]
        if missing:
            raise ValueError(f"Stage-2 test data lacks columns: {missing[:5]}")
        X_test = test.X.loc[:, features].to_numpy(dtype=float)
        model = adapter.fit(X, y)
        test_scores = np.asarray(adapter.predict(model, X_test), dtype=float)
        test_frame = pd.DataFrame(
            {
                "score": test_scores,
                "predicted": _predicted_labels(test_scores, model_spec.pred_mode),
            },
            index=test.X.index,
        )
        if test.y is not None:
            test_frame.insert(0, "y_true", test.y.to_numpy())

    return Stage2Prediction(
        cv=cv,
        test=test_frame,
        features=list(features),
        pred_mode=model_spec.pred_mode,
        model=model,
    )
