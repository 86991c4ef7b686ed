"""
End-to-end BioMM orchestration.

Sequence:
1. Validate configuration and data (fails before any resampling)
2. Build the feature -> group relation and map features to blocks
3. Reconstruct stage-2 data from per-block stage-1 models (block pool)
4. Select stage-2 columns
5. Fit and score the stage-2 model under its own plan (split pool)
6. Compute metrics for held-out and test predictions

Worker pools are joblib Parallel handles created here and passed down
explicitly.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from joblib import Parallel
from pandas.api.types import is_numeric_dtype

from .config.schema import BioMMConfig
from .config.validation import ConfigurationError, validate_biomm_config
from .data.annotation import GROUP_COL, build_annotation, map_to_groups
from .data.schema import BINARY, FeatureBlock, OmicsDataset, Stage2Dataset, encode_outcome
from .data.splits import plan_from_config
from .features.selection import NoFeaturesRetainedError, select_stage2_features
from .metrics.performance import compute_metrics
from .models.stage1 import EXCLUSION_COLUMNS, Stage1Result, reconstruct_stage2_data
from .models.stage2 import Stage2Prediction, predict_stage2

logger = logging.getLogger(__name__)


@dataclass
class BioMMResult:
    """Everything a BioMM run produces.

    ``cv_predictions``/``test_predictions`` and ``metrics`` are empty when
    the run stopped after stage-2 data construction (exploration mode).
    """

    stage2_train: Stage2Dataset
    stage2_test: Stage2Dataset | None
    selection: pd.DataFrame | None
    exclusions: pd.DataFrame
    blocks: list[str]
    classes: list = field(default_factory=list)
    prediction: Stage2Prediction | None = None
    metrics: dict[str, dict[str, float]] = field(default_factory=dict)

    @property
    def cv_predictions(self) -> pd.DataFrame | None:
        return None if self.prediction is None else self.prediction.cv

    @property
    def test_predictions(self) -> pd.DataFrame | None:
        return None if self.prediction is None else self.prediction.test


def _prediction_modes(config: BioMMConfig) -> set[str]:
    modes = {config.stage2.model.pred_mode}
    if config.stage1.supervised:
        modes.add(config.stage1.model.pred_mode)
    return modes


def _prepare_outcomes(
    train: OmicsDataset,
    test: OmicsDataset | pd.DataFrame | None,
    config: BioMMConfig,
) -> tuple[pd.Series, pd.Series | None, list]:
    """Check outcome kind against prediction modes and encode binary labels."""
    modes = _prediction_modes(config)
    kind = train.kind
    classification = bool(modes & {"classification", "probability"})

    if classification and kind != BINARY:
        raise ConfigurationError(
            f"Prediction modes {sorted(modes)} need a binary outcome, but the training "
            f"outcome has {train.y.nunique()} distinct values."
        )
    if not classification and not is_numeric_dtype(train.y):
        raise ConfigurationError("Regression needs a numeric outcome.")

    y, classes = encode_outcome(train.y) if classification else (train.y.astype(float), [])

    test_y = None
    if isinstance(test, OmicsDataset):
        if classification:
            mapping = {value: code for code, value in enumerate(classes)}
            unknown = sorted(set(test.y.unique()) - set(mapping), key=str)
            if unknown:
                raise ConfigurationError(f"Test outcome has unseen classes: {unknown[:5]}")
            test_y = test.y.map(mapping).astype(int)
        else:
            if not is_numeric_dtype(test.y):
                raise ConfigurationError("Regression needs a numeric test outcome.")
            test_y = test.y.astype(float)
    return y, test_y, classes


def _test_matrix(test: OmicsDataset | pd.DataFrame | None) -> pd.DataFrame | None:
    if test is None:
        return None
    return test.X if isinstance(test, OmicsDataset) else test


def _relation(annotation: pd.DataFrame, config: BioMMConfig, pathway_db) -> pd.DataFrame:
    """Use a ready feature -> group relation as is, otherwise build one."""
    if GROUP_COL in annotation.columns:
        return annotation
    strat = config.stratification
    return build_annotation(
        annotation,
        strat.mode,
        pathway_db=pathway_db,
        gene_col=strat.gene_col,
        chromosome_col=strat.chromosome_col,
    )


def _map_blocks(
    train: OmicsDataset,
    annotation: pd.DataFrame,
    config: BioMMConfig,
    pathway_db,
) -> tuple[list[FeatureBlock], pd.DataFrame]:
    strat = config.stratification
    blocks, exclusions = map_to_groups(
        train.X,
        _relation(annotation, config, pathway_db),
        min_group_size=strat.min_group_size,
        restrict_down=strat.restrict_down,
        restrict_up=strat.restrict_up,
        up_flank=strat.up_flank,
        down_flank=strat.down_flank,
    )
    if not blocks:
        raise NoFeaturesRetainedError(
            f"No {strat.mode} block has between {strat.min_group_size} and "
            f"{strat.restrict_up or 'unbounded'} features in the dataset",
            exclusions=_combine_exclusions(exclusions),
        )
    return blocks, exclusions


def _combine_exclusions(*frames: pd.DataFrame) -> pd.DataFrame:
    frames = [f.reindex(columns=EXCLUSION_COLUMNS) for f in frames if not f.empty]
    if not frames:
        return pd.DataFrame(columns=EXCLUSION_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def _stage1(
    train: OmicsDataset,
    annotation: pd.DataFrame,
    config: BioMMConfig,
    test,
    pathway_db,
) -> tuple[Stage1Result, pd.DataFrame, list]:
    validate_biomm_config(config)
    y, test_y, classes = _prepare_outcomes(train, test, config)
    blocks, map_exclusions = _map_blocks(train, annotation, config, pathway_db)

    X_test = _test_matrix(test)
    test_blocks = None
    if X_test is not None:
        missing = sorted({f for b in blocks for f in b.features} - set(X_test.columns))
        if missing:
            raise ConfigurationError(
                f"Test matrix lacks {len(missing)} block features, e.g. {missing[:5]}"
            )
        test_blocks = [b.take(X_test) for b in blocks]

    s1 = config.stage1
    plan = None
    if s1.supervised or s1.resample_unsupervised:
        plan = plan_from_config(s1.resampling, train.n_samples, y.to_numpy())

    try:
        with Parallel(n_jobs=config.compute.n_jobs, backend=config.compute.backend) as parallel:
            stage1 = reconstruct_stage2_data(
                blocks,
                y,
                s1.model,
                plan,
                supervised=s1.supervised,
                feature_filter=s1.feature_filter if s1.supervised else None,
                n_components=s1.n_components,
                test_blocks=test_blocks,
                test_data_mode=s1.test_data_mode,
                parallel=parallel,
                test_y=test_y,
            )
    except NoFeaturesRetainedError as e:
        failed = e.exclusions if e.exclusions is not None else pd.DataFrame()
        e.exclusions = _combine_exclusions(map_exclusions, failed)
        raise
    exclusions = _combine_exclusions(map_exclusions, stage1.exclusions)
    return stage1, exclusions, classes


def run_stage1(
    train: OmicsDataset,
    annotation: pd.DataFrame,
    config: BioMMConfig | None = None,
    test: OmicsDataset | pd.DataFrame | None = None,
    pathway_db: pd.DataFrame | None = None,
) -> Stage1Result:
    """
    Build stage-2 data only (exploration mode).

    Returns:
        Stage1Result whose exclusions combine mapping and fit failures
    """
    config = config or BioMMConfig()
    stage1, exclusions, _ = _stage1(train, annotation, config, test, pathway_db)
    return Stage1Result(
        train=stage1.train, test=stage1.test, exclusions=exclusions, blocks=stage1.blocks
    )


def run_biomm(
    train: OmicsDataset,
    annotation: pd.DataFrame,
    config: BioMMConfig | None = None,
    test: OmicsDataset | pd.DataFrame | None = None,
    pathway_db: pd.DataFrame | None = None,
    return_stage2: bool = False,
) -> BioMMResult:
    """
    Run the two-stage BioMM pipeline.

    Parameters
    ----------
    train : OmicsDataset
        Training outcome and feature matrix
    annotation : pd.DataFrame
        Either a feature -> group relation (``feature``, ``group`` columns) or
        a per-feature annotation table from which the relation for
        ``config.stratification.mode`` is built
    config : BioMMConfig, optional
        Run configuration (defaults when None)
    test : OmicsDataset or pd.DataFrame, optional
        Independent test set; a bare DataFrame is scored without metrics
    pathway_db : pd.DataFrame, optional
        gene -> pathway table for pathway stratification
    return_stage2 : bool, default=False
        Stop after stage-2 data construction and selection

    Returns
    -------
    BioMMResult

    Raises
    ------
    ConfigurationError
        Invalid configuration or data (raised before resampling)
    ResamplingError
        Degenerate resampling plan
    NoFeaturesRetainedError
        No block or stage-2 column left to model; its ``exclusions`` lists
        every group dropped before the failure
    ModelFitError
        The stage-2 model cannot be fit on a training split
    """
    config = config or BioMMConfig()
    stage1, exclusions, classes = _stage1(train, annotation, config, test, pathway_db)

    s2 = config.stage2
    sel = s2.selection
    try:
        stage2_train, selection = select_stage2_features(
            stage1.train,
            pred_mode=s2.model.pred_mode,
            test=sel.test,
            p_cutoff=sel.p_cutoff,
            fdr=sel.fdr,
            sign=sel.sign,
        )
    except NoFeaturesRetainedError as e:
        e.exclusions = exclusions
        raise
    stage2_test = stage1.test.subset(stage2_train.columns) if stage1.test is not None else None

    result = BioMMResult(
        stage2_train=stage2_train,
        stage2_test=stage2_test,
        selection=selection,
        exclusions=exclusions,
        blocks=stage1.blocks,
        classes=classes,
    )
    if return_stage2:
        return result

    plan = plan_from_config(s2.resampling, len(stage2_train.X), stage2_train.y.to_numpy())
    with Parallel(
        n_jobs=config.compute.stage2_n_jobs, backend=config.compute.backend
    ) as parallel:
        prediction = predict_stage2(stage2_train, s2.model, plan, test=stage2_test, parallel=parallel)
    result.prediction = prediction

    result.metrics["cv"] = compute_metrics(
        prediction.cv["y_true"], prediction.cv["score"], s2.model.pred_mode
    )
    if prediction.test is not None and "y_true" in prediction.test.columns:
        result.metrics["test"] = compute_metrics(
            prediction.test["y_true"], prediction.test["score"], s2.model.pred_mode
        )

    for split_name, values in result.metrics.items():
        summary = ", ".join(
            f"{k}={v:.3f}" if isinstance(v, float) and np.isfinite(v) else f"{k}={v}"
            for k, v in values.items()
        )
        logger.info(f"Stage-2 {split_name} metrics: {summary}")
    return result
