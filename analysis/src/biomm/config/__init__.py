"""Configuration management for BioMM."""

from biomm.config.defaults import (
    DEFAULT_MODEL_PARAMS,
    VALID_MODELS,
    VALID_STRATIFICATIONS,
)
from biomm.config.loader import (
    apply_overrides,
    load_biomm_config,
    save_config,
)
from biomm.config.schema import (
    BioMMConfig,
    ComputeConfig,
    ModelSpec,
    ResamplingConfig,
    SelectionConfig,
    Stage1Config,
    Stage1FilterConfig,
    Stage2Config,
    StratificationConfig,
)
from biomm.config.validation import (
    ConfigurationError,
    ConfigValidationWarning,
    validate_biomm_config,
)

__all__ = [
    "VALID_MODELS",
    "VALID_STRATIFICATIONS",
    "DEFAULT_MODEL_PARAMS",
    "apply_overrides",
    "load_biomm_config",
    "save_config",
    "BioMMConfig",
    "ComputeConfig",
    "ModelSpec",
    "ResamplingConfig",
    "SelectionConfig",
    "Stage1Config",
    "Stage1FilterConfig",
    "Stage2Config",
    "StratificationConfig",
    "ConfigurationError",
    "ConfigValidationWarning",
    "validate_biomm_config",
]
