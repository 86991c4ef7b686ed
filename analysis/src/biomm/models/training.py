"""
Held-out prediction loop shared by both BioMM stages.

Provides:
- Out-of-fold / out-of-bag score accumulation over a ResamplingPlan
- Optional in-fold feature filtering (computed on training rows only)
- Test-set scoring from one full-data fit or from the per-split models

Scores recorded for a sample across the outer x inner grid are averaged.
A sample never held out keeps NaN; it is not imputed here.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from joblib import delayed

from ..data.splits import ResamplingPlan, Split
from ..features.screening import filter_block_features
from .registry import ModelAdapter

logger = logging.getLogger(__name__)


@dataclass
class HeldOutScores:
    """Aggregated held-out scores for one matrix.

    Attributes:
        scores: (n_samples, n_outputs) mean held-out score, NaN if never held out
        counts: (n_samples,) number of splits in which each sample was held out
        test_scores: (n_test, n_outputs) mean of per-split model scores on
            the test rows, only filled when test rows were passed
    """

    scores: np.ndarray
    counts: np.ndarray
    test_scores: np.ndarray | None = None

    @property
    def missing(self) -> np.ndarray:
        return self.counts == 0


def _as_columns(pred: np.ndarray) -> np.ndarray:
    pred = np.asarray(pred, dtype=float)
    return pred.reshape(-1, 1) if pred.ndim == 1 else pred


def _select_columns(X_train: np.ndarray, y_train, feature_filter) -> np.ndarray | None:
    if feature_filter is None or feature_filter.method == "none" or y_train is None:
        return None
    return filter_block_features(
        X_train,
        y_train,
        method=feature_filter.method,
        p_cutoff=feature_filter.p_cutoff,
        top_fraction=feature_filter.top_fraction,
    )


def fit_and_predict(
    adapter: ModelAdapter,
    X_train: np.ndarray,
    y_train: np.ndarray | None,
    X_eval: list[np.ndarray],
    params: dict[str, Any] | None = None,
    feature_filter=None,
) -> list[np.ndarray]:
    """
    Fit one model on a training partition and score several matrices.

    The in-fold filter, when given, picks columns from the training rows and
    the same columns are used for every evaluated matrix.

    Returns:
        One (n_rows, n_outputs) score array per matrix in ``X_eval``
    """
    cols = _select_columns(X_train, y_train, feature_filter)
    if cols is not None:
        X_train = X_train[:, cols]
        X_eval = [X[:, cols] for X in X_eval]

    model = adapter.fit(X_train, y_train, params)
    return [_as_columns(adapter.predict(model, X)) for X in X_eval]


def _run_split(
    split: Split,
    X: np.ndarray,
    y: np.ndarray | None,
    adapter: ModelAdapter,
    params: dict[str, Any] | None,
    feature_filter,
    X_test: np.ndarray | None,
):
    y_train = None if y is None else y[split.train]
    X_eval = [X[split.test]] if X_test is None else [X[split.test], X_test]
    preds = fit_and_predict(adapter, X[split.train], y_train, X_eval, params, feature_filter)
    return split.test, preds[0], (preds[1] if X_test is not None else None)


def held_out_predictions(
    X,
    y,
    plan: ResamplingPlan,
    adapter: ModelAdapter,
    params: dict[str, Any] | None = None,
    feature_filter=None,
    X_test=None,
    parallel=None,
) -> HeldOutScores:
    """
    Fit ``adapter`` on every split of ``plan`` and average held-out scores.

    Parameters
    ----------
    X : array-like
        Samples x features (may contain NaN; adapters impute in-fold)
    y : array-like or None
        Outcome (None for unsupervised adapters)
    plan : ResamplingPlan
        Shared, read-only resampling plan
    adapter : ModelAdapter
        Family adapter; one fresh model is fit per split
    params : dict, optional
        Call-time hyperparameters
    feature_filter : Stage1FilterConfig, optional
        In-fold filter applied to each training partition
    X_test : array-like, optional
        Independent rows scored by every split model (averaged)
    parallel : joblib.Parallel, optional
        Pool over splits; sequential when None

    Returns
    -------
    HeldOutScores

    Raises
    ------
    ModelFitError
        If any split fails to fit (callers decide whether that is fatal)
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    y = None if y is None else np.asarray(y)
    X_test = None if X_test is None else np.asarray(X_test, dtype=float)
    if X.shape[0] != plan.n_samples:
        raise ValueError(f"Plan covers {plan.n_samples} samples but X has {X.shape[0]} rows")

    if parallel is None:
        results = [
            _run_split(split, X, y, adapter, params, feature_filter, X_test) for split in plan
        ]
    else:
        results = parallel(
            delayed(_run_split)(split, X, y, adapter, params, feature_filter, X_test)
            for split in plan
        )

    n_outputs = results[0][1].shape[1]
    sums = np.zeros((plan.n_samples, n_outputs))
    counts = np.zeros(plan.n_samples, dtype=int)
    test_sum = None if X_test is None else np.zeros((X_test.shape[0], n_outputs))

    # bootstrap test sets are unique indices, so fancy-index accumulation is safe
    for test_idx, pred, test_pred in results:
        sums[test_idx] += pred
        counts[test_idx] += 1
        if test_sum is not None:
            test_sum += test_pred

    scores = np.full_like(sums, np.nan)
    covered = counts > 0
    scores[covered] = sums[covered] / counts[covered, None]
    test_scores = None if test_sum is None else test_sum / len(results)

    if not covered.all():
        logger.debug(f"{int((~covered).sum())} samples never held out; scores left missing")
    return HeldOutScores(scores=scores, counts=counts, test_scores=test_scores)
