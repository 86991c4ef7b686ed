"""
Configuration loading and merging logic.

Supports:
1. Loading from YAML files (with ``_base`` inheritance)
2. CLI argument overrides (dot-notation: e.g., stage1.resampling.n_inner=20)
3. Validation into a ``BioMMConfig``
"""

import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from biomm.config.defaults import (
    DEFAULT_COMPUTE_CONFIG,
    DEFAULT_STAGE1_CONFIG,
    DEFAULT_STAGE2_CONFIG,
    DEFAULT_STRATIFICATION_CONFIG,
)
from biomm.config.schema import BioMMConfig
from biomm.config.validation import ConfigurationError
from biomm.utils.serialization import save_yaml

# Keys that should always be parsed as strings (not int/float/bool)
STRING_KEYS = {
    "mode",
    "family",
    "pred_mode",
    "method",
    "test",
    "sign",
    "gene_col",
    "chromosome_col",
}


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* into *base* (overlay wins on leaf conflicts).

    Returns a new dict; neither input is mutated.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_yaml(file_path: str | Path) -> dict[str, Any]:
    """Load configuration from YAML file.

    Supports a ``_base`` key: if present, the referenced YAML file is loaded
    first and the current file's values are deep-merged on top. The ``_base``
    path is resolved relative to the directory containing *file_path*.
    """
    file_path = Path(file_path).resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Config file {file_path} must contain a mapping")

    base_ref = config_dict.pop("_base", None)
    if base_ref is not None:
        base_path = (file_path.parent / base_ref).resolve()
        base_dict = load_yaml(base_path)
        config_dict = _deep_merge(base_dict, config_dict)

    return config_dict


def apply_overrides(config_dict: dict[str, Any], overrides: list[str]) -> dict[str, Any]:
    """
    Apply CLI overrides to config dictionary.

    Supports dot-notation for nested keys:
        stage1.resampling.n_inner=20 -> config_dict['stage1']['resampling']['n_inner'] = 20
        stage2.model.params.n_estimators=200

    Args:
        config_dict: Base configuration dictionary
        overrides: List of "key=value" or "nested.key=value" strings

    Returns:
        Updated config dictionary
    """
    for override in overrides:
        if "=" not in override:
            raise ValueError(f"Invalid override format: {override}. Expected 'key=value'")

        key_path, value_str = override.split("=", 1)
        keys = key_path.strip().split(".")

        target = config_dict
        for key in keys[:-1]:
            if key not in target or not isinstance(target[key], dict):
                target[key] = {}
            target = target[key]

        final_key = keys[-1]
        target[final_key] = _parse_value(value_str.strip(), force_string=final_key in STRING_KEYS)

    return config_dict


def _parse_value(value_str: str, force_string: bool = False) -> Any:
    """
    Parse string value to appropriate Python type.

    Args:
        value_str: String to parse
        force_string: If True, always return a string (skip int/float parsing)
    """
    if force_string:
        return value_str

    if value_str.lower() in ("true", "yes"):
        return True
    if value_str.lower() in ("false", "no"):
        return False

    if value_str.lower() in ("none", "null"):
        return None

    if "," in value_str:
        return [_parse_value(v.strip()) for v in value_str.split(",")]

    try:
        return int(value_str)
    except ValueError:
        pass

    try:
        return float(value_str)
    except ValueError:
        pass

    return value_str


def default_config_dict() -> dict[str, Any]:
    """Return a fresh nested dict of all defaults."""
    return {
        "stratification": copy.deepcopy(DEFAULT_STRATIFICATION_CONFIG),
        "stage1": copy.deepcopy(DEFAULT_STAGE1_CONFIG),
        "stage2": copy.deepcopy(DEFAULT_STAGE2_CONFIG),
        "compute": copy.deepcopy(DEFAULT_COMPUTE_CONFIG),
    }


def load_biomm_config(
    config_file: str | Path | None = None,
    overrides: list[str] | None = None,
) -> BioMMConfig:
    """
    Load BioMM configuration from file and CLI overrides.

    Args:
        config_file: Path to YAML config file (optional)
        overrides: List of CLI overrides in "key=value" format (optional)

    Returns:
        Validated BioMMConfig instance

    Raises:
        ConfigurationError: If the merged configuration fails schema validation
    """
    config_dict = default_config_dict()

    if config_file is not None:
        config_dict = _deep_merge(config_dict, load_yaml(config_file))

    if overrides:
        config_dict = apply_overrides(config_dict, list(overrides))

    try:
        return BioMMConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid BioMM configuration:\n{e}") from e


def save_config(config: BioMMConfig, path: str | Path):
    """Write a resolved configuration as YAML."""
    save_yaml(config.model_dump(mode="json"), path)
