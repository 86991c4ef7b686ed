"""
Configuration validation and safety checks.

Contradictory settings are collected first and reported together, before any
resampling work starts.
"""

import warnings

from biomm.config.defaults import LABEL_FILTERS, UNSUPERVISED_MODELS
from biomm.config.schema import BioMMConfig


class ConfigurationError(Exception):
    """Raised for invalid or contradictory configuration or input data."""

    pass


class ConfigValidationWarning(UserWarning):
    """Warning for potential configuration issues."""

    pass


def validate_biomm_config(config: BioMMConfig) -> list[str]:
    """
    Validate a BioMM configuration for contradictions and leakage risks.

    Args:
        config: BioMMConfig instance

    Returns:
        List of warning messages that were emitted

    Raises:
        ConfigurationError: If any contradiction is found
    """
    errors = []
    cautions = []

    stage1 = config.stage1
    stage2 = config.stage2
    strat = config.stratification

    from biomm.models.registry import MODEL_ADAPTERS

    for stage_name, spec in (("stage1", stage1.model), ("stage2", stage2.model)):
        if spec.family not in MODEL_ADAPTERS:
            errors.append(
                f"{stage_name}.model.family='{spec.family}' is not registered "
                f"(valid: {sorted(MODEL_ADAPTERS)})."
            )

    # Stage 1: supervision vs model family and label-based filters
    if not stage1.supervised:
        if stage1.feature_filter.method in LABEL_FILTERS:
            errors.append(
                f"stage1.supervised=False is incompatible with "
                f"stage1.feature_filter.method='{stage1.feature_filter.method}', "
                "which ranks features by their association with the outcome."
            )
        if stage1.model.family not in UNSUPERVISED_MODELS:
            errors.append(
                f"stage1.supervised=False requires an unsupervised family "
                f"({sorted(UNSUPERVISED_MODELS)}), got '{stage1.model.family}'."
            )
    else:
        if stage1.model.family in UNSUPERVISED_MODELS:
            errors.append(
                f"stage1.model.family='{stage1.model.family}' ignores the outcome; "
                "set stage1.supervised=False to use it."
            )
        if stage1.n_components > 1:
            errors.append(
                f"stage1.n_components={stage1.n_components} is only meaningful for "
                "unsupervised stage 1 (supervised models yield one score per block)."
            )
        if stage1.resample_unsupervised:
            cautions.append(
                "stage1.resample_unsupervised=True has no effect with supervised stage 1."
            )

    if stage1.feature_filter.method == "wilcox" and stage1.model.pred_mode == "regression":
        errors.append(
            "stage1.feature_filter.method='wilcox' needs a binary outcome, "
            "but stage1.model.pred_mode='regression'."
        )

    if stage2.model.family in UNSUPERVISED_MODELS:
        errors.append(
            f"stage2.model.family='{stage2.model.family}' cannot predict an outcome."
        )

    # Stratification bounds
    if (
        strat.restrict_down is not None
        and strat.restrict_up is not None
        and strat.restrict_down > strat.restrict_up
    ):
        errors.append(
            f"stratification.restrict_down ({strat.restrict_down}) > "
            f"restrict_up ({strat.restrict_up}); no block can satisfy both."
        )
    if strat.restrict_up is not None and strat.restrict_up < strat.min_group_size:
        errors.append(
            f"stratification.restrict_up ({strat.restrict_up}) < "
            f"min_group_size ({strat.min_group_size}); no block can satisfy both."
        )

    # Stage 2 selection
    selection = stage2.selection
    if selection.test in ("wilcox", "ttest") and stage2.model.pred_mode == "regression":
        errors.append(
            f"stage2.selection.test='{selection.test}' needs a binary outcome, "
            "but stage2.model.pred_mode='regression'."
        )
    if selection.fdr is not None and selection.p_cutoff is not None:
        cautions.append(
            f"Both stage2.selection.fdr ({selection.fdr}) and p_cutoff "
            f"({selection.p_cutoff}) are set; the FDR threshold takes precedence."
        )

    # Modes must agree on outcome type
    modes = {stage1.model.pred_mode, stage2.model.pred_mode} if stage1.supervised else {
        stage2.model.pred_mode
    }
    if "regression" in modes and len(modes) > 1:
        errors.append(
            f"Prediction modes disagree on outcome type: stage1='{stage1.model.pred_mode}', "
            f"stage2='{stage2.model.pred_mode}'."
        )

    # Independent resampling plans per stage
    if stage1.resampling == stage2.resampling:
        cautions.append(
            "stage1 and stage2 use identical resampling settings (including seed); "
            "stage-2 folds will coincide with stage-1 folds."
        )

    if errors:
        _handle_issues(errors, "error", "BioMM configuration")
    _handle_issues(cautions, config.strictness, "BioMM configuration")
    return cautions


def _handle_issues(issues: list[str], strictness: str, context: str):
    """Handle validation issues based on strictness level."""
    if not issues:
        return

    message = f"{context} issues:\n" + "\n".join(f"  - {issue}" for issue in issues)

    if strictness == "error":
        raise ConfigurationError(message)
    elif strictness == "warn":
        warnings.warn(message, ConfigValidationWarning, stacklevel=3)
    # strictness == "off": do nothing
