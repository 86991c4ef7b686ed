"""Association tests and stage-2 column selection."""

from biomm.features.screening import (
    association_table,
    correlation_scan,
    filter_block_features,
    two_group_test,
)
from biomm.features.selection import NoFeaturesRetainedError, select_stage2_features

__all__ = [
    "association_table",
    "correlation_scan",
    "filter_block_features",
    "two_group_test",
    "NoFeaturesRetainedError",
    "select_stage2_features",
]
