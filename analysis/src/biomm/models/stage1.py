"""
Stage 1: per-block latent reconstruction.

Each FeatureBlock is compressed into one latent column (or ``n_components``
columns for unsupervised blocks):

- supervised: held-out predictions of a block model over the stage-1 plan,
  averaged per sample across the outer x inner grid
- unsupervised: leading principal components of the block, optionally
  resampled over the same plan

Blocks are independent units of work dispatched through a joblib Parallel
handle. A block whose model cannot be fit is excluded and reported; sibling
blocks continue.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from joblib import delayed

from ..config.schema import ModelSpec
from ..data.schema import FeatureBlock, Stage2Dataset
from ..data.splits import ResamplingPlan
from ..features.selection import NoFeaturesRetainedError
from .registry import ModelAdapter, ModelFitError, build_adapter
from .training import fit_and_predict, held_out_predictions

logger = logging.getLogger(__name__)

EXCLUSION_COLUMNS = ["group", "n_features", "reason", "message"]


@dataclass
class BlockOutcome:
    """Result of one block worker."""

    name: str
    n_features: int
    train: np.ndarray | None = None
    test: np.ndarray | None = None
    n_missing: int = 0
    error: str | None = None


@dataclass
class Stage1Result:
    """Stage-2 data built from stage-1 block models.

    Attributes:
        train: Held-out latent scores of the training samples
        test: Latent scores of the test samples (None without a test set)
        exclusions: Blocks dropped during reconstruction (fit failures)
        blocks: Names of the blocks that produced stage-2 columns, in block
            order (one name per block even with several components)
    """

    train: Stage2Dataset
    test: Stage2Dataset | None = None
    exclusions: pd.DataFrame = field(
        default_factory=lambda: pd.DataFrame(columns=EXCLUSION_COLUMNS)
    )
    blocks: list[str] = field(default_factory=list)


def _column_names(name: str, n_outputs: int) -> list[str]:
    if n_outputs == 1:
        return [name]
    return [f"{name}_PC{k + 1}" for k in range(n_outputs)]


def _reconstruct_block(
    block: FeatureBlock,
    y: np.ndarray | None,
    adapter: ModelAdapter,
    plan: ResamplingPlan | None,
    params: dict,
    feature_filter,
    X_test: np.ndarray | None,
    test_data_mode: str,
) -> BlockOutcome:
    """Full resampling loop for one block; fit failures become an outcome row."""
    X = block.data.to_numpy(dtype=float)
    outcome = BlockOutcome(name=block.name, n_features=block.size)

    try:
        if plan is None:
            # unsupervised, no resampling: project the whole block once
            evals = [X] if X_test is None else [X, X_test]
            preds = fit_and_predict(adapter, X, None, evals, params)
            outcome.train = preds[0]
            outcome.test = preds[1] if X_test is not None else None
            return outcome

        pass_test = X_test if test_data_mode == "sub_train" else None
        held_out = held_out_predictions(
            X, y, plan, adapter, params=params, feature_filter=feature_filter, X_test=pass_test
        )
        outcome.train = held_out.scores
        outcome.n_missing = int(held_out.missing.sum())

        if X_test is not None:
            if test_data_mode == "sub_train":
                outcome.test = held_out.test_scores
            else:
                outcome.test = fit_and_predict(
                    adapter, X, y, [X_test], params, feature_filter
                )[0]
    except ModelFitError as e:
        outcome.train = outcome.test = None
        outcome.error = str(e)
    return outcome


def reconstruct_stage2_data(
    blocks: list[FeatureBlock],
    y: pd.Series,
    model_spec: ModelSpec,
    plan: ResamplingPlan | None,
    supervised: bool = True,
    feature_filter=None,
    n_components: int = 1,
    test_blocks: list[FeatureBlock] | None = None,
    test_data_mode: str = "all_train",
    parallel=None,
    test_y: pd.Series | None = None,
) -> Stage1Result:
    """
    Build stage-2 data from per-block stage-1 models.

    Parameters
    ----------
    blocks : list of FeatureBlock
        Retained blocks in mapping order (training rows)
    y : pd.Series
        Training outcome (encoded 0/1 for classification modes); its index
        labels the stage-2 rows
    model_spec : ModelSpec
        Stage-1 family, prediction mode and hyperparameters
    plan : ResamplingPlan or None
        Stage-1 plan shared by every block. ``None`` is allowed only for
        unsupervised blocks and projects each block once without resampling.
    supervised : bool, default=True
        Whether block models use the outcome
    feature_filter : Stage1FilterConfig, optional
        In-fold filter applied to each training partition (supervised only)
    n_components : int, default=1
        Components per unsupervised block
    test_blocks : list of FeatureBlock, optional
        The same blocks drawn from an independent test matrix
    test_data_mode : str, default="all_train"
        "all_train" scores test rows with one model fit on all training rows;
        "sub_train" averages the per-split models' test scores
    parallel : joblib.Parallel, optional
        Pool over blocks; sequential when None
    test_y : pd.Series, optional
        Test outcome attached to the test stage-2 data

    Returns
    -------
    Stage1Result

    Raises
    ------
    NoFeaturesRetainedError
        If every block failed to fit
    """
    if test_data_mode not in ("all_train", "sub_train"):
        raise ValueError(
            f"Unknown test_data_mode='{test_data_mode}'. Valid: 'all_train', 'sub_train'"
        )
    if supervised and plan is None:
        raise ValueError("Supervised stage 1 needs a resampling plan")
    if not blocks:
        raise NoFeaturesRetainedError("No feature blocks to reconstruct")

    adapter = build_adapter(model_spec)
    if adapter.supervised != supervised:
        raise ValueError(
            f"Model family '{model_spec.family}' is "
            f"{'supervised' if adapter.supervised else 'unsupervised'} "
            f"but supervised={supervised}"
        )
    params = {"n_components": int(n_components)} if not supervised else {}
    y_arr = y.to_numpy() if supervised else None

    test_by_name = {}
    if test_blocks is not None:
        test_by_name = {b.name: b for b in test_blocks}
        missing = [b.name for b in blocks if b.name not in test_by_name]
        if missing:
            raise ValueError(f"Test blocks missing for: {missing[:5]}")

    def _test_matrix(block):
        if not test_by_name:
            return None
        return test_by_name[block.name].data.loc[:, list(block.features)].to_numpy(dtype=float)

    logger.info(
        f"Stage 1: {len(blocks)} blocks, family={model_spec.family}, "
        f"supervised={supervised}, splits={len(plan) if plan is not None else 0}"
    )
    tasks = (
        (block, y_arr, adapter, plan, params, feature_filter, _test_matrix(block), test_data_mode)
        for block in blocks
    )
    if parallel is None:
        outcomes = [_reconstruct_block(*task) for task in tasks]
    else:
        outcomes = parallel(delayed(_reconstruct_block)(*task) for task in tasks)

    retained: list[str] = []
    train_cols: dict[str, np.ndarray] = {}
    test_cols: dict[str, np.ndarray] = {}
    exclusions = []
    for outcome in outcomes:
        if outcome.error is not None:
            logger.warning(f"Block '{outcome.name}' excluded: {outcome.error}")
            exclusions.append((outcome.name, outcome.n_features, "fit_failure", outcome.error))
            continue
        retained.append(outcome.name)
        names = _column_names(outcome.name, outcome.train.shape[1])
        for k, col in enumerate(names):
            train_cols[col] = outcome.train[:, k]
            if outcome.test is not None:
                test_cols[col] = outcome.test[:, k]
        if outcome.n_missing:
            logger.debug(f"Block '{outcome.name}': {outcome.n_missing} samples never held out")

    exclusions_df = pd.DataFrame(exclusions, columns=EXCLUSION_COLUMNS)
    if not train_cols:
        reasons = "; ".join(
            f"{row.group}: {row.message}" for row in exclusions_df.head(5).itertuples()
        )
        raise NoFeaturesRetainedError(
            f"All {len(blocks)} blocks failed in stage 1 ({reasons})",
            exclusions=exclusions_df,
        )

    train = Stage2Dataset(X=pd.DataFrame(train_cols, index=y.index), y=y)
    test = None
    if test_by_name:
        test_index = test_blocks[0].data.index
        test = Stage2Dataset(X=pd.DataFrame(test_cols, index=test_index), y=test_y)

    logger.info(
        f"Stage 1 done: {len(retained)}/{len(blocks)} blocks, "
        f"{train.X.shape[1]} stage-2 columns"
    )
    return Stage1Result(train=train, test=test, exclusions=exclusions_df, blocks=retained)
