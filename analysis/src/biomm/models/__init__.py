"""
Models package for BioMM.

- Model adapters and the family registry
- Shared held-out prediction loop
- Stage-1 block reconstruction and stage-2 prediction
"""

from .registry import (
    MODEL_ADAPTERS,
    ModelAdapter,
    ModelFitError,
    build_adapter,
    build_logistic_regression,
    register_adapter,
)
from .stage1 import Stage1Result, reconstruct_stage2_data
from .stage2 import Stage2Prediction, predict_stage2
from .training import HeldOutScores, fit_and_predict, held_out_predictions

__all__ = [
    # Registry
    "MODEL_ADAPTERS",
    "ModelAdapter",
    "ModelFitError",
    "build_adapter",
    "build_logistic_regression",
    "register_adapter",
    # Training loop
    "HeldOutScores",
    "fit_and_predict",
    "held_out_predictions",
    # Stages
    "Stage1Result",
    "reconstruct_stage2_data",
    "Stage2Prediction",
    "predict_stage2",
]
