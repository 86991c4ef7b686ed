"""
Configuration schema for the BioMM pipeline.

Defines Pydantic models for stratification, both modelling stages, resampling
and compute settings. Defaults follow ``biomm.config.defaults``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

PredMode = Literal["classification", "probability", "regression"]

# ============================================================================
# Stratification
# ============================================================================


class StratificationConfig(BaseModel):
    """How features are grouped into biological blocks."""

    mode: Literal["gene", "pathway", "chromosome"] = "gene"
    min_group_size: int = Field(default=10, ge=1)
    restrict_down: int | None = Field(default=None, ge=1)
    restrict_up: int | None = Field(default=None, ge=1)
    up_flank: int | None = Field(default=None, ge=0)
    down_flank: int | None = Field(default=None, ge=0)
    gene_col: str = "gene"
    chromosome_col: str = "chromosome"


# ============================================================================
# Resampling
# ============================================================================


class ResamplingConfig(BaseModel):
    """Resampling plan settings for one stage.

    ``n_inner`` is the number of folds (cv) or bootstrap draws per outer
    repeat (bootstrap); ``n_repeats`` is the outer repeat count.
    """

    method: Literal["cv", "bootstrap"] = "bootstrap"
    n_inner: int = Field(default=100, ge=1)
    n_repeats: int = Field(default=1, ge=1)
    seed: int = Field(default=0, ge=0)
    stratify: bool = True
    max_attempts: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def validate_folds(self):
        """Cross-validation needs at least two folds."""
        if self.method == "cv" and self.n_inner < 2:
            raise ValueError(f"cv requires n_inner >= 2 folds, got {self.n_inner}")
        return self


# ============================================================================
# Models
# ============================================================================


class ModelSpec(BaseModel):
    """Algorithm family, prediction mode and hyperparameters (immutable)."""

    model_config = ConfigDict(frozen=True)

    family: str = "rf"
    pred_mode: PredMode = "probability"
    params: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Stage 1
# ============================================================================


class Stage1FilterConfig(BaseModel):
    """In-fold feature filtering within each block (uses labels)."""

    method: Literal["none", "positive", "cor", "wilcox", "top_cor"] = "none"
    p_cutoff: float = Field(default=0.05, gt=0.0, le=1.0)
    top_fraction: float = Field(default=0.1, gt=0.0, le=1.0)


class Stage1Config(BaseModel):
    """Per-block latent reconstruction."""

    supervised: bool = True
    model: ModelSpec = Field(
        default_factory=lambda: ModelSpec(family="rf", pred_mode="probability")
    )
    resampling: ResamplingConfig = Field(default_factory=ResamplingConfig)
    feature_filter: Stage1FilterConfig = Field(default_factory=Stage1FilterConfig)
    n_components: int = Field(default=1, ge=1)
    resample_unsupervised: bool = False
    test_data_mode: Literal["all_train", "sub_train"] = "all_train"


# ============================================================================
# Stage 2
# ============================================================================


class SelectionConfig(BaseModel):
    """Univariate filtering of stage-2 columns."""

    test: Literal["cor", "wilcox", "ttest"] = "cor"
    sign: Literal["any", "positive"] = "any"
    p_cutoff: float | None = Field(default=None, gt=0.0, le=1.0)
    fdr: float | None = Field(default=None, gt=0.0, le=1.0)


class Stage2Config(BaseModel):
    """Final supervised model over the stage-2 matrix."""

    model: ModelSpec = Field(
        default_factory=lambda: ModelSpec(family="rf", pred_mode="probability")
    )
    resampling: ResamplingConfig = Field(
        default_factory=lambda: ResamplingConfig(method="cv", n_inner=10, seed=1)
    )
    selection: SelectionConfig = Field(default_factory=SelectionConfig)


# ============================================================================
# Compute
# ============================================================================


class ComputeConfig(BaseModel):
    """Worker pool settings."""

    n_jobs: int = Field(default=1, description="Stage-1 block workers (-1 = all cores)")
    stage2_n_jobs: int = Field(default=1, description="Stage-2 split workers")
    backend: Literal["loky", "threading", "multiprocessing"] = "loky"

    @model_validator(mode="after")
    def validate_jobs(self):
        """joblib rejects n_jobs == 0."""
        if self.n_jobs == 0 or self.stage2_n_jobs == 0:
            raise ValueError("n_jobs and stage2_n_jobs must be non-zero")
        return self


# ============================================================================
# Root
# ============================================================================


class BioMMConfig(BaseModel):
    """Complete BioMM run configuration."""

    stratification: StratificationConfig = Field(default_factory=StratificationConfig)
    stage1: Stage1Config = Field(default_factory=Stage1Config)
    stage2: Stage2Config = Field(default_factory=Stage2Config)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    strictness: Literal["warn", "error", "off"] = "warn"
