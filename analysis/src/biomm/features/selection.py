"""
Univariate filtering of stage-2 columns.

Rule precedence:
1. ``sign="positive"`` drops columns whose effect is not positive
2. ``fdr`` keeps Benjamini-Hochberg adjusted p < fdr; otherwise
   ``p_cutoff`` keeps raw p < p_cutoff
3. With neither threshold, every column surviving step 1 is kept

Adjusted p-values are computed over all tested columns (statsmodels
``multipletests``). Retained columns keep their original relative order.
"""

import logging

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

from ..data.schema import Stage2Dataset
from .screening import association_table

logger = logging.getLogger(__name__)


class NoFeaturesRetainedError(Exception):
    """Raised when no block or stage-2 column is left to model.

    ``exclusions`` holds the groups dropped on the way (group, n_features,
    reason, message) when the error comes from block mapping or stage 1.
    """

    def __init__(self, message: str, exclusions: pd.DataFrame | None = None):
        super().__init__(message)
        self.exclusions = exclusions


def _adjust_pvalues(p_values: np.ndarray) -> np.ndarray:
    """BH-adjust the finite p-values; undefined tests stay NaN."""
    adjusted = np.full(len(p_values), np.nan)
    finite = np.isfinite(p_values)
    if finite.any():
        _, p_adj, _, _ = multipletests(p_values[finite], method="fdr_bh")
        adjusted[finite] = p_adj
    return adjusted


def select_stage2_features(
    stage2: Stage2Dataset,
    pred_mode: str = "probability",
    test: str = "cor",
    p_cutoff: float | None = None,
    fdr: float | None = None,
    sign: str = "any",
) -> tuple[Stage2Dataset, pd.DataFrame]:
    """
    Filter stage-2 columns by univariate association with the outcome.

    Parameters
    ----------
    stage2 : Stage2Dataset
        Stage-2 training data (outcome required)
    pred_mode : str, default="probability"
        Prediction mode of the stage-2 model; two-group tests need a
        classification mode
    test : str, default="cor"
        "cor", "wilcox" or "ttest"
    p_cutoff : float, optional
        Raw p-value threshold (ignored when ``fdr`` is set)
    fdr : float, optional
        Benjamini-Hochberg threshold
    sign : str, default="any"
        "positive" keeps only positively associated columns

    Returns
    -------
    filtered : Stage2Dataset
        Same rows, retained columns only
    stats : pd.DataFrame
        Columns: feature, effect, p_value, p_adjusted, retained

    Raises
    ------
    NoFeaturesRetainedError
        If no column passes the filter
    ValueError
        If the outcome is missing or the test does not fit ``pred_mode``
    """
    if stage2.y is None:
        raise ValueError("Stage-2 selection needs the training outcome")
    if test in ("wilcox", "ttest") and pred_mode == "regression":
        raise ValueError(f"test='{test}' needs a binary outcome (pred_mode='regression')")
    if sign not in ("any", "positive"):
        raise ValueError(f"Unknown sign='{sign}'. Valid: 'any', 'positive'")

    stats = association_table(stage2.X, stage2.y.to_numpy(dtype=float), test=test)
    stats = stats.drop(columns=["n"])
    p_values = stats["p_value"].to_numpy(dtype=float)
    stats["p_adjusted"] = _adjust_pvalues(p_values)

    keep = np.ones(len(stats), dtype=bool)
    if sign == "positive":
        keep &= np.nan_to_num(stats["effect"].to_numpy(dtype=float), nan=0.0) > 0
    if fdr is not None:
        keep &= np.nan_to_num(stats["p_adjusted"].to_numpy(), nan=1.0) < fdr
    elif p_cutoff is not None:
        keep &= np.nan_to_num(p_values, nan=1.0) < p_cutoff
    stats["retained"] = keep

    retained = stats.loc[keep, "feature"].tolist()
    logger.info(
        f"Stage-2 selection ({test}, sign={sign}, fdr={fdr}, p_cutoff={p_cutoff}): "
        f"{len(retained)}/{len(stats)} columns retained"
    )
    if not retained:
        raise NoFeaturesRetainedError(
            f"No stage-2 column passed selection (test={test}, sign={sign}, "
            f"fdr={fdr}, p_cutoff={p_cutoff}) out of {len(stats)} columns"
        )
    return stage2.subset(retained), stats.reset_index(drop=True)
