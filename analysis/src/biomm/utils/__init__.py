"""Utility functions for BioMM."""

from biomm.utils.logging import log_section, setup_logger, verbosity_to_level
from biomm.utils.random import derive_seed
from biomm.utils.serialization import (
    load_joblib,
    load_json,
    save_joblib,
    save_json,
    save_yaml,
    to_native,
)

__all__ = [
    "setup_logger",
    "verbosity_to_level",
    "log_section",
    "derive_seed",
    "save_joblib",
    "load_joblib",
    "save_json",
    "load_json",
    "save_yaml",
    "to_native",
]
