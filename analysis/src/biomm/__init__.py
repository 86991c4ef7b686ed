"""
BioMM: biologically stratified two-stage prediction for omics data.

Stage 1 compresses each biological group (gene, pathway, chromosome) of a
wide feature matrix into held-out latent scores; stage 2 filters those
scores and fits the final outcome model.
"""

# Enable pandas Copy-on-Write for pandas 3.0 compatibility
import pandas as pd

pd.options.mode.copy_on_write = True

__version__ = "1.0.0"
__license__ = "MIT"

from biomm import config, data, features, metrics, models, utils  # noqa: E402
from biomm.config import BioMMConfig, ConfigurationError, load_biomm_config  # noqa: E402
from biomm.data import OmicsDataset, ResamplingError  # noqa: E402
from biomm.features import NoFeaturesRetainedError  # noqa: E402
from biomm.models import ModelFitError  # noqa: E402
from biomm.pipeline import BioMMResult, run_biomm, run_stage1  # noqa: E402

__all__ = [
    "__version__",
    "config",
    "data",
    "features",
    "metrics",
    "models",
    "utils",
    "BioMMConfig",
    "BioMMResult",
    "OmicsDataset",
    "load_biomm_config",
    "run_biomm",
    "run_stage1",
    # Errors
    "ConfigurationError",
    "ModelFitError",
    "NoFeaturesRetainedError",
    "ResamplingError",
]
