"""
Shared pytest fixtures for BioMM tests.

Synthetic omics data: each block's features are noise plus, for informative
blocks, a shift proportional to the outcome.
"""

import numpy as np
import pandas as pd
import pytest

from biomm.config.schema import (
    BioMMConfig,
    ModelSpec,
    ResamplingConfig,
    Stage1Config,
    Stage2Config,
    StratificationConfig,
)
from biomm.data.schema import OmicsDataset

FAST_GLMNET = {"C": 1.0, "l1_ratio": 0.5, "max_iter": 2000}
FAST_RF = {"n_estimators": 25}


def make_omics(
    block_sizes: dict[str, int],
    informative: tuple[str, ...] = (),
    n_samples: int = 40,
    effect: float = 1.5,
    outcome: str = "binary",
    seed: int = 0,
) -> tuple[OmicsDataset, pd.DataFrame]:
    """
    Build a synthetic dataset and its feature -> group relation.

    Features of block ``G`` are named ``G_f0, G_f1, ...`` and blocks are laid
    out left to right in ``block_sizes`` order.

    Returns:
        (OmicsDataset, annotation relation with feature/group columns)
    """
    rng = np.random.default_rng(seed)
    if outcome == "binary":
        y = np.array([0, 1] * (n_samples // 2))
    else:
        y = rng.normal(size=n_samples)

    columns = {}
    relation = []
    for block, size in block_sizes.items():
        for j in range(size):
            name = f"{block}_f{j}"
            signal = effect * y if block in informative else 0.0
            columns[name] = signal + rng.normal(size=n_samples)
            relation.append((name, block))

    index = pd.Index([f"S{i:03d}" for i in range(n_samples)], name="sample")
    X = pd.DataFrame(columns, index=index)
    y = pd.Series(y, index=index, name="label")
    annotation = pd.DataFrame(relation, columns=["feature", "group"])
    return OmicsDataset(X=X, y=y), annotation


@pytest.fixture
def binary_data():
    """40 samples (20/20), blocks of 50, 5 and 20 features; GENE_A and GENE_C informative."""
    return make_omics({"GENE_A": 50, "GENE_B": 5, "GENE_C": 20}, informative=("GENE_A", "GENE_C"))


@pytest.fixture
def regression_data():
    """60 samples, continuous outcome, one informative block of 12."""
    return make_omics(
        {"CHR1": 12, "CHR2": 12}, informative=("CHR1",), n_samples=60, outcome="continuous"
    )


@pytest.fixture
def fast_config():
    """Small, fast glmnet configuration (5-fold CV at both stages)."""
    return BioMMConfig(
        stratification=StratificationConfig(min_group_size=10),
        stage1=Stage1Config(
            model=ModelSpec(family="glmnet", pred_mode="probability", params=FAST_GLMNET),
            resampling=ResamplingConfig(method="cv", n_inner=5, seed=0),
        ),
        stage2=Stage2Config(
            model=ModelSpec(family="glmnet", pred_mode="probability", params=FAST_GLMNET),
            resampling=ResamplingConfig(method="cv", n_inner=5, seed=1),
        ),
        strictness="off",
    )
