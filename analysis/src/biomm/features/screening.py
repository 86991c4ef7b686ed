"""
Univariate association tests between features and the outcome.

Pure functions used in two places:
- stage-1 in-fold filtering of block features (training rows only)
- stage-2 column selection (see ``biomm.features.selection``)
"""

import logging

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)

VALID_TESTS = ("cor", "wilcox", "ttest")


def correlation_scan(X: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Pearson correlation of every column of ``X`` with ``y``.

    Missing values are handled pairwise (per column, rows where either value
    is missing are ignored). Two-sided p-values use the t distribution with
    ``n - 2`` degrees of freedom, matching ``scipy.stats.pearsonr``.

    Returns
    -------
    r : np.ndarray
        Correlation per column (NaN when undefined)
    p_value : np.ndarray
        Two-sided p-value per column (NaN when undefined)
    n : np.ndarray
        Pairwise-complete sample count per column

    Examples
    --------
    >>> X = np.array([[1.0, 3.0], [2.0, 2.0], [3.0, 1.0]])
    >>> r, p, n = correlation_scan(X, np.array([0.0, 1.0, 2.0]))
    >>> r.round(3).tolist()
    [1.0, -1.0]
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    y = np.asarray(y, dtype=float)

    mask = np.isfinite(X) & np.isfinite(y)[:, None]
    n = mask.sum(axis=0)
    safe_n = np.maximum(n, 1)
    Yb = np.broadcast_to(y[:, None], X.shape)

    mx = np.where(mask, X, 0.0).sum(axis=0) / safe_n
    my = np.where(mask, Yb, 0.0).sum(axis=0) / safe_n
    dx = np.where(mask, X - mx, 0.0)
    dy = np.where(mask, Yb - my, 0.0)
    sxy = (dx * dy).sum(axis=0)
    sxx = (dx**2).sum(axis=0)
    syy = (dy**2).sum(axis=0)

    undefined = (n < 3) | (sxx <= 0) | (syy <= 0)
    with np.errstate(invalid="ignore", divide="ignore"):
        r = np.where(undefined, np.nan, sxy / np.sqrt(sxx * syy))
        r = np.clip(r, -1.0, 1.0)
        df = np.maximum(n - 2, 1)
        t = r * np.sqrt(df / np.maximum(1.0 - r**2, np.finfo(float).tiny))
        p = 2.0 * stats.t.sf(np.abs(t), df)
    p = np.where(undefined, np.nan, p)
    return r, p, n


def two_group_test(x: np.ndarray, y: np.ndarray, test: str = "wilcox") -> tuple[float, float, int]:
    """
    Compare one feature between outcome classes 1 and 0.

    Args:
        x: Feature values
        y: Binary outcome (0/1)
        test: "wilcox" (Mann-Whitney U) or "ttest" (Welch)

    Returns:
        (mean difference class1 - class0, two-sided p-value, n complete)
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    ok = np.isfinite(x) & np.isfinite(y)
    x, y = x[ok], y[ok]
    x1 = x[y == 1]
    x0 = x[y == 0]
    n = int(ok.sum())
    if len(x1) < 2 or len(x0) < 2:
        return np.nan, np.nan, n

    effect = float(np.mean(x1) - np.mean(x0))
    if np.ptp(x) == 0:
        return effect, np.nan, n
    try:
        if test == "wilcox":
            _, p = stats.mannwhitneyu(x1, x0, alternative="two-sided", method="asymptotic")
        elif test == "ttest":
            _, p = stats.ttest_ind(x1, x0, equal_var=False)
        else:
            raise ValueError(f"Unknown two-group test='{test}'. Valid: 'wilcox', 'ttest'")
    except (ValueError, RuntimeError) as e:
        logger.warning(f"{test} test failed: {type(e).__name__}: {e}")
        p = np.nan
    return effect, float(p), n


def association_table(X: pd.DataFrame, y: np.ndarray, test: str = "cor") -> pd.DataFrame:
    """
    Univariate association of every column with the outcome.

    Parameters
    ----------
    X : pd.DataFrame
        Samples x columns (may contain NaN)
    y : np.ndarray
        Outcome (0/1 for "wilcox"/"ttest")
    test : str, default="cor"
        "cor" (Pearson), "wilcox" (Mann-Whitney U) or "ttest" (Welch)

    Returns
    -------
    pd.DataFrame
        Columns: feature, effect, p_value, n (one row per column, input order).
        ``effect`` is the correlation for "cor" and the class mean difference
        otherwise.
    """
    test = (test or "").strip().lower()
    if test not in VALID_TESTS:
        raise ValueError(f"Unknown association test='{test}'. Valid: {list(VALID_TESTS)}")

    if test == "cor":
        r, p, n = correlation_scan(X.to_numpy(dtype=float), y)
        return pd.DataFrame({"feature": X.columns, "effect": r, "p_value": p, "n": n})

    rows = [(col, *two_group_test(X[col].to_numpy(), y, test)) for col in X.columns]
    return pd.DataFrame(rows, columns=["feature", "effect", "p_value", "n"])


def filter_block_features(
    X: np.ndarray,
    y: np.ndarray,
    method: str = "none",
    p_cutoff: float = 0.05,
    top_fraction: float = 0.1,
) -> np.ndarray:
    """
    Choose block columns on a training partition before fitting a block model.

    Parameters
    ----------
    X : np.ndarray
        Training rows of one block (samples x features)
    y : np.ndarray
        Training outcome
    method : str, default="none"
        - "none": keep all columns
        - "positive": keep positively correlated columns
        - "cor": keep columns with Pearson p < ``p_cutoff``
        - "wilcox": keep columns with Mann-Whitney p < ``p_cutoff`` (binary y)
        - "top_cor": keep the top ``top_fraction`` of columns by |r|
    p_cutoff : float, default=0.05
    top_fraction : float, default=0.1

    Returns
    -------
    np.ndarray
        Sorted column indices (never empty: when nothing passes, the single
        most associated column is kept)
    """
    X = np.asarray(X, dtype=float)
    n_cols = X.shape[1]
    all_cols = np.arange(n_cols)
    method = (method or "none").strip().lower()
    if method == "none" or n_cols <= 1:
        return all_cols

    if method == "wilcox":
        rows = [two_group_test(X[:, j], y, "wilcox") for j in range(n_cols)]
        effect = np.array([row[0] for row in rows], dtype=float)
        p = np.array([row[1] for row in rows], dtype=float)
    else:
        effect, p, _ = correlation_scan(X, y)

    if method == "positive":
        keep = np.flatnonzero(effect > 0)
    elif method in ("cor", "wilcox"):
        keep = np.flatnonzero(p < p_cutoff)
    elif method == "top_cor":
        n_top = max(1, int(np.ceil(top_fraction * n_cols)))
        strength = np.nan_to_num(np.abs(effect), nan=-1.0)
        keep = np.sort(np.argsort(-strength, kind="stable")[:n_top])
    else:
        raise ValueError(
            f"Unknown stage-1 filter='{method}'. "
            "Valid: 'none', 'positive', 'cor', 'wilcox', 'top_cor'"
        )

    if keep.size == 0:
        ranking = np.nan_to_num(p, nan=np.inf)
        if method == "positive":
            ranking = -np.nan_to_num(effect, nan=-np.inf)
        keep = np.array([int(np.argmin(ranking))])
        logger.debug(f"No block feature passed '{method}'; keeping column {keep[0]}")
    return keep
