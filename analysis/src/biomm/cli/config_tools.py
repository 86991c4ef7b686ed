"""
Configuration tools.

Commands:
- biomm config validate: Validate a config file and report issues
"""

import sys
from pathlib import Path

from biomm.cli.run_pipeline import describe_config
from biomm.config.loader import load_biomm_config
from biomm.config.validation import ConfigurationError, validate_biomm_config
from biomm.utils.logging import setup_logger, verbosity_to_level


def validate_config_file(
    config_file: Path,
    overrides: list[str] | None = None,
    strict: bool = False,
) -> tuple[bool, list[str], list[str], list[str]]:
    """
    Validate a configuration file.

    Args:
        config_file: YAML config path
        overrides: Dot-notation overrides applied before validation
        strict: Treat warnings as errors

    Returns:
        (is_valid, errors, warnings, summary lines)
    """
    try:
        config = load_biomm_config(config_file, overrides)
    except ConfigurationError as e:
        return False, [str(e)], [], []

    errors: list[str] = []
    cautions: list[str] = []
    try:
        cautions = validate_biomm_config(config.model_copy(update={"strictness": "off"}))
    except ConfigurationError as e:
        errors.append(str(e))

    is_valid = not errors and not (strict and cautions)
    return is_valid, errors, cautions, describe_config(config)


def run_config_validate(
    config_file: Path,
    overrides: list[str] | None = None,
    strict: bool = False,
    verbose: int = 0,
):
    """Print a validation report and exit 0 (valid) or 1 (invalid)."""
    logger = setup_logger("biomm.config.validate", level=verbosity_to_level(verbose))
    logger.info(f"Validating config: {config_file}")

    is_valid, errors, warnings, summary = validate_config_file(config_file, overrides, strict)

    print("\n" + "=" * 80)
    print(f"Validation Report: {config_file.name}")
    print("=" * 80)

    for line in summary:
        print(f"  {line}")

    if errors:
        print(f"\nERRORS ({len(errors)}):")
        for err in errors:
            print(f"  - {err}")

    if warnings:
        print(f"\nWARNINGS ({len(warnings)}):")
        for warn in warnings:
            print(f"  - {warn}")

    if is_valid:
        print("\n[OK] Config is valid")
    else:
        print("\n[FAIL] Config is invalid")
        if strict and not errors:
            print("  (strict mode: warnings treated as errors)")

    print("=" * 80)

    sys.exit(0 if is_valid else 1)
