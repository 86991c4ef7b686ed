"""Data containers, biological stratification and resampling plans."""

from biomm.data.annotation import (
    annotation_by_column,
    annotation_from_mapping,
    build_annotation,
    compose_annotation,
    map_to_groups,
)
from biomm.data.io import read_omics_dataset, read_table
from biomm.data.schema import (
    LABEL_COL,
    FeatureBlock,
    OmicsDataset,
    Stage2Dataset,
    encode_outcome,
    outcome_kind,
)
from biomm.data.splits import (
    ResamplingError,
    ResamplingPlan,
    Split,
    make_plan,
    plan_from_config,
)

__all__ = [
    # Schema
    "LABEL_COL",
    "FeatureBlock",
    "OmicsDataset",
    "Stage2Dataset",
    "encode_outcome",
    "outcome_kind",
    # Annotation
    "annotation_by_column",
    "annotation_from_mapping",
    "build_annotation",
    "compose_annotation",
    "map_to_groups",
    # IO
    "read_omics_dataset",
    "read_table",
    # Resampling
    "ResamplingError",
    "ResamplingPlan",
    "Split",
    "make_plan",
    "plan_from_config",
]
