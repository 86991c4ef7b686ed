"""
Run BioMM from the command line and write its outputs.

Outputs (under ``outdir``):
- stage2_train.csv / stage2_test.csv: stage-2 data (label first)
- predictions_cv.csv / predictions_test.csv: stage-2 scores
- selection.csv: stage-2 column association statistics
- exclusions.csv: groups dropped by size rules or fit failures (also written
  when no block survives)
- metrics.json: held-out and test metrics
- stage2_model.joblib: stage-2 model fit on all training rows (with a test set)
- config.yaml: the resolved configuration
"""

from contextlib import contextmanager
from pathlib import Path

import pandas as pd

from biomm.config import BioMMConfig, load_biomm_config, save_config
from biomm.data.io import read_omics_dataset, read_table
from biomm.data.schema import LABEL_COL, OmicsDataset
from biomm.features.selection import NoFeaturesRetainedError
from biomm.pipeline import run_biomm, run_stage1
from biomm.utils.logging import log_section, setup_logger, verbosity_to_level
from biomm.utils.serialization import save_joblib, save_json


def _load_inputs(
    train_file: str,
    annotation_file: str,
    test_file: str | None,
    pathway_file: str | None,
    label_col: str,
) -> tuple[OmicsDataset, pd.DataFrame, OmicsDataset | pd.DataFrame | None, pd.DataFrame | None]:
    train = read_omics_dataset(train_file, label_col=label_col)
    annotation = read_table(annotation_file)
    test = None
    if test_file is not None:
        table = read_table(test_file, index_col=0)
        test = OmicsDataset.from_frame(table, label_col) if label_col in table.columns else table
    pathway_db = read_table(pathway_file) if pathway_file is not None else None
    return train, annotation, test, pathway_db


def _write_frame(df: pd.DataFrame, path: Path, index: bool = True) -> None:
    df.to_csv(path, index=index)


@contextmanager
def _exclusions_on_failure(out: Path):
    """Write exclusions.csv before re-raising when no block survives."""
    try:
        yield
    except NoFeaturesRetainedError as e:
        if e.exclusions is not None:
            _write_frame(e.exclusions, out / "exclusions.csv", index=False)
        raise


def run_biomm_command(
    train_file: str,
    annotation_file: str,
    outdir: str,
    config_file: str | None = None,
    test_file: str | None = None,
    pathway_file: str | None = None,
    label_col: str = LABEL_COL,
    overrides: list[str] | None = None,
    verbose: int = 0,
) -> Path:
    """
    Run the full pipeline and write all outputs.

    Returns:
        Output directory
    """
    logger = setup_logger("biomm", level=verbosity_to_level(verbose))
    config = load_biomm_config(config_file, overrides)
    out = Path(outdir)
    out.mkdir(parents=True, exist_ok=True)
    save_config(config, out / "config.yaml")

    log_section(logger, "BioMM: loading inputs")
    train, annotation, test, pathway_db = _load_inputs(
        train_file, annotation_file, test_file, pathway_file, label_col
    )

    log_section(logger, "BioMM: two-stage run")
    with _exclusions_on_failure(out):
        result = run_biomm(train, annotation, config, test=test, pathway_db=pathway_db)

    _write_frame(result.stage2_train.to_frame(), out / "stage2_train.csv")
    if result.stage2_test is not None:
        _write_frame(result.stage2_test.to_frame(), out / "stage2_test.csv")
    _write_frame(result.cv_predictions, out / "predictions_cv.csv")
    if result.test_predictions is not None:
        _write_frame(result.test_predictions, out / "predictions_test.csv")
    _write_frame(result.selection, out / "selection.csv", index=False)
    _write_frame(result.exclusions, out / "exclusions.csv", index=False)
    if result.prediction.model is not None:
        save_joblib(result.prediction.model, out / "stage2_model.joblib")
    save_json(
        {"metrics": result.metrics, "blocks": result.blocks, "classes": result.classes},
        out / "metrics.json",
    )

    logger.info(f"Outputs written to {out}")
    return out


def run_stage1_command(
    train_file: str,
    annotation_file: str,
    outdir: str,
    config_file: str | None = None,
    test_file: str | None = None,
    pathway_file: str | None = None,
    label_col: str = LABEL_COL,
    overrides: list[str] | None = None,
    verbose: int = 0,
) -> Path:
    """Build and write stage-2 data only."""
    logger = setup_logger("biomm", level=verbosity_to_level(verbose))
    config = load_biomm_config(config_file, overrides)
    out = Path(outdir)
    out.mkdir(parents=True, exist_ok=True)
    save_config(config, out / "config.yaml")

    train, annotation, test, pathway_db = _load_inputs(
        train_file, annotation_file, test_file, pathway_file, label_col
    )

    log_section(logger, "BioMM: stage-2 data reconstruction")
    with _exclusions_on_failure(out):
        stage1 = run_stage1(train, annotation, config, test=test, pathway_db=pathway_db)

    _write_frame(stage1.train.to_frame(), out / "stage2_train.csv")
    if stage1.test is not None:
        _write_frame(stage1.test.to_frame(), out / "stage2_test.csv")
    _write_frame(stage1.exclusions, out / "exclusions.csv", index=False)

    logger.info(f"Stage-2 data ({stage1.train.X.shape[1]} columns) written to {out}")
    return out


def describe_config(config: BioMMConfig) -> list[str]:
    """One-line summaries of the main settings, for validation reports."""
    s1, s2, strat = config.stage1, config.stage2, config.stratification
    return [
        f"stratification: {strat.mode} (min_group_size={strat.min_group_size})",
        f"stage1: {s1.model.family}/{s1.model.pred_mode}, supervised={s1.supervised}, "
        f"{s1.resampling.method} x{s1.resampling.n_inner} (repeats={s1.resampling.n_repeats})",
        f"stage2: {s2.model.family}/{s2.model.pred_mode}, "
        f"{s2.resampling.method} x{s2.resampling.n_inner} (repeats={s2.resampling.n_repeats}), "
        f"selection={s2.selection.test}",
    ]
