"""
Default configuration values.

Single source of truth for parameter defaults. Values follow the published
BioMM workflow: bootstrap stage 1, random forest at both stages, blocks of
at least ten features.
"""

from typing import Any

VALID_MODELS = ["glmnet", "rf", "svm", "pca"]

VALID_STRATIFICATIONS = ["gene", "pathway", "chromosome"]

# Families whose fit/predict ignores the outcome
UNSUPERVISED_MODELS = {"pca"}

# Stage-1 filters that need labels to rank features
LABEL_FILTERS = {"positive", "cor", "wilcox", "top_cor"}

# Hyperparameters applied when a ModelSpec leaves them unset
DEFAULT_MODEL_PARAMS: dict[str, dict[str, Any]] = {
    "glmnet": {
        "C": 1.0,
        "l1_ratio": 0.5,
        "alpha": 0.1,
        "max_iter": 5000,
        "random_state": 0,
    },
    "rf": {
        "n_estimators": 500,
        "max_features": "sqrt",
        "min_samples_leaf": 1,
        "random_state": 0,
        "n_jobs": 1,
    },
    "svm": {
        "C": 1.0,
        "kernel": "rbf",
        "gamma": "scale",
        "random_state": 0,
    },
    "pca": {
        "n_components": 1,
        "sparse": False,
        "alpha": 1.0,
        "random_state": 0,
    },
}

DEFAULT_STRATIFICATION_CONFIG: dict[str, Any] = {
    "mode": "gene",
    "min_group_size": 10,
    "restrict_down": None,
    "restrict_up": None,
    "up_flank": None,
    "down_flank": None,
    "gene_col": "gene",
    "chromosome_col": "chromosome",
}

DEFAULT_STAGE1_CONFIG: dict[str, Any] = {
    "supervised": True,
    "model": {"family": "rf", "pred_mode": "probability", "params": {}},
    "resampling": {"method": "bootstrap", "n_inner": 100, "n_repeats": 1, "seed": 0},
    "feature_filter": {"method": "none", "p_cutoff": 0.05, "top_fraction": 0.1},
    "n_components": 1,
    "resample_unsupervised": False,
    "test_data_mode": "all_train",
}

DEFAULT_STAGE2_CONFIG: dict[str, Any] = {
    "model": {"family": "rf", "pred_mode": "probability", "params": {}},
    "resampling": {"method": "cv", "n_inner": 10, "n_repeats": 1, "seed": 1},
    "selection": {"test": "cor", "sign": "any", "p_cutoff": None, "fdr": None},
}

DEFAULT_COMPUTE_CONFIG: dict[str, Any] = {
    "n_jobs": 1,
    "stage2_n_jobs": 1,
    "backend": "loky",
}
