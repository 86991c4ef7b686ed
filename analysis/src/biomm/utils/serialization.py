"""
Serialization utilities for results and configuration snapshots.
"""

import json
import logging
from pathlib import Path
from typing import Any

import joblib
import numpy as np
import yaml

logger = logging.getLogger(__name__)


def to_native(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON/YAML serialization."""
    if isinstance(obj, dict):
        return {k: to_native(v) for k, v in obj.items()}
    elif isinstance(obj, list | tuple):
        return [to_native(v) for v in obj]
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        value = float(obj)
        return None if np.isnan(value) else value
    elif isinstance(obj, float) and np.isnan(obj):
        return None
    elif isinstance(obj, np.ndarray):
        return to_native(obj.tolist())
    elif isinstance(obj, Path):
        return str(obj)
    return obj


def save_joblib(obj: Any, path: str | Path, compress: int = 3):
    """Save object using joblib."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(obj, path, compress=compress)


def load_joblib(path: str | Path) -> Any:
    """Load object saved with :func:`save_joblib`."""
    return joblib.load(path)


def save_json(obj: Any, path: str | Path, indent: int = 2):
    """Save object as JSON (NaN becomes null)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(to_native(obj), f, indent=indent, default=str)


def load_json(path: str | Path) -> Any:
    """Load JSON file."""
    with open(path) as f:
        return json.load(f)


def save_yaml(obj: Any, path: str | Path):
    """Save a plain dict as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.safe_dump(to_native(obj), f, sort_keys=False)
    logger.debug(f"Wrote {path}")
