"""
Performance metrics for stage-2 predictions.

Binary outcomes (classification / probability modes):
- AUC: area under the ROC curve
- ACC: accuracy at threshold 0.5
- R2: Nagelkerke pseudo-R2 of the scores taken as predicted probabilities

Continuous outcomes (regression mode):
- R2: coefficient of determination
- Cor: Pearson correlation of predictions with the outcome
- MSE: mean squared error

Samples without a score (never held out) are dropped and counted in
``n_missing``.

References:
    - Nagelkerke (1991). A note on a general definition of the coefficient
      of determination.
"""

import warnings

import numpy as np
from scipy import stats
from sklearn.metrics import accuracy_score, mean_squared_error, r2_score, roc_auc_score

EPS = 1e-15


def _validate_binary_labels(y_true: np.ndarray, metric_name: str) -> bool:
    """Check both classes are present; warn and return False otherwise."""
    unique_classes = np.unique(y_true)
    if len(unique_classes) < 2:
        warnings.warn(
            f"{metric_name} requires both classes (0 and 1) in y_true, "
            f"but only found {unique_classes.tolist()}. Returning NaN.",
            UserWarning,
            stacklevel=3,
        )
        return False
    return True


def auroc(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """
    Area under the ROC curve.

    Examples:
        >>> auroc(np.array([0, 0, 1, 1]), np.array([0.1, 0.4, 0.6, 0.9]))
        1.0
    """
    y_true = np.asarray(y_true).astype(int)
    if not _validate_binary_labels(y_true, "AUC"):
        return np.nan
    return float(roc_auc_score(y_true, np.asarray(y_score, dtype=float)))


def nagelkerke_r2(y_true: np.ndarray, y_prob: np.ndarray) -> float:
    """
    Nagelkerke pseudo-R2 of predicted probabilities against an intercept-only model.

    Probabilities are clipped to (EPS, 1 - EPS) so perfectly separated
    scores stay finite.

    Args:
        y_true: Binary labels (0/1)
        y_prob: Predicted probabilities of class 1

    Returns:
        Pseudo-R2 in [0, 1] for calibrated scores, NaN for a single class
    """
    y = np.asarray(y_true, dtype=float)
    p = np.clip(np.asarray(y_prob, dtype=float), EPS, 1 - EPS)
    n = len(y)
    prevalence = y.mean()
    if n == 0 or prevalence in (0.0, 1.0):
        return np.nan

    ll_model = np.sum(y * np.log(p) + (1 - y) * np.log(1 - p))
    ll_null = n * (prevalence * np.log(prevalence) + (1 - prevalence) * np.log(1 - prevalence))
    cox_snell = 1.0 - np.exp(2.0 * (ll_null - ll_model) / n)
    max_cox_snell = 1.0 - np.exp(2.0 * ll_null / n)
    return float(cox_snell / max_cox_snell)


def _pearson(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    if len(y_true) < 2 or np.std(y_true) == 0 or np.std(y_pred) == 0:
        return np.nan
    return float(stats.pearsonr(y_true, y_pred)[0])


def compute_metrics(y_true, y_score, pred_mode: str = "probability") -> dict[str, float]:
    """
    Summary metrics for aligned labels and scores.

    Args:
        y_true: Outcome (0/1 for classification modes)
        y_score: Held-out or test scores (NaN marks a missing score)
        pred_mode: "classification", "probability" or "regression"

    Returns:
        Dict with AUC, ACC, R2 (binary) or R2, Cor, MSE (regression),
        plus n and n_missing
    """
    y_true = np.asarray(y_true, dtype=float)
    y_score = np.asarray(y_score, dtype=float)
    if y_true.shape != y_score.shape:
        raise ValueError(f"Shape mismatch: y_true {y_true.shape} vs y_score {y_score.shape}")

    ok = np.isfinite(y_score) & np.isfinite(y_true)
    y_true, y_score = y_true[ok], y_score[ok]
    metrics: dict[str, float] = {"n": int(ok.sum()), "n_missing": int((~ok).sum())}

    if pred_mode == "regression":
        if len(y_true) == 0:
            metrics.update({"R2": np.nan, "Cor": np.nan, "MSE": np.nan})
            return metrics
        metrics["R2"] = float(r2_score(y_true, y_score)) if len(y_true) > 1 else np.nan
        metrics["Cor"] = _pearson(y_true, y_score)
        metrics["MSE"] = float(mean_squared_error(y_true, y_score))
        return metrics

    if pred_mode not in ("classification", "probability"):
        raise ValueError(f"Unknown pred_mode='{pred_mode}'")
    if len(y_true) == 0:
        metrics.update({"AUC": np.nan, "ACC": np.nan, "R2": np.nan})
        return metrics

    y_true = y_true.astype(int)
    metrics["AUC"] = auroc(y_true, y_score)
    metrics["ACC"] = float(accuracy_score(y_true, (y_score >= 0.5).astype(int)))
    metrics["R2"] = nagelkerke_r2(y_true, y_score)
    return metrics
