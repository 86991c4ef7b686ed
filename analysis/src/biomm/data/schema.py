"""
Core data containers for the BioMM pipeline.

- OmicsDataset: outcome vector + sample x feature matrix, row-aligned
- FeatureBlock: one biological group and its submatrix
- Stage2Dataset: sample x block matrix of aggregated latent scores
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from biomm.config.validation import ConfigurationError

LABEL_COL = "label"

BINARY = "binary"
CONTINUOUS = "continuous"


def outcome_kind(y: pd.Series | np.ndarray) -> str:
    """Return ``"binary"`` for two distinct outcome values, else ``"continuous"``."""
    values = pd.Series(np.asarray(y)).dropna().unique()
    return BINARY if len(values) == 2 else CONTINUOUS


def encode_outcome(y: pd.Series) -> tuple[pd.Series, list]:
    """
    Encode a binary outcome as 0/1 (sorted order of the original values).

    Continuous outcomes are returned as float unchanged.

    Returns:
        (encoded outcome, original class values in code order; empty if continuous)
    """
    if outcome_kind(y) != BINARY:
        return y.astype(float), []
    classes = sorted(pd.unique(y.dropna()).tolist())
    mapping = {value: code for code, value in enumerate(classes)}
    return y.map(mapping).astype(int), classes


@dataclass(frozen=True)
class OmicsDataset:
    """Outcome vector and feature matrix sharing one sample ordering."""

    X: pd.DataFrame
    y: pd.Series

    def __post_init__(self):
        if len(self.X) != len(self.y):
            raise ConfigurationError(
                f"Feature matrix has {len(self.X)} rows but outcome has {len(self.y)} values."
            )
        if not self.X.index.equals(self.y.index):
            raise ConfigurationError(
                "Feature matrix and outcome are not aligned to the same sample index."
            )
        if self.y.isna().any():
            raise ConfigurationError(
                f"Outcome has {int(self.y.isna().sum())} missing values; remove those samples."
            )
        if self.X.columns.duplicated().any():
            dupes = self.X.columns[self.X.columns.duplicated()].unique().tolist()
            raise ConfigurationError(f"Duplicate feature identifiers: {dupes[:5]}")

    @classmethod
    def from_frame(cls, df: pd.DataFrame, label_col: str = LABEL_COL) -> "OmicsDataset":
        """Split a table whose ``label_col`` holds the outcome."""
        if label_col not in df.columns:
            raise ConfigurationError(f"Outcome column '{label_col}' not found")
        return cls(X=df.drop(columns=[label_col]), y=df[label_col])

    @property
    def n_samples(self) -> int:
        return len(self.y)

    @property
    def kind(self) -> str:
        return outcome_kind(self.y)


@dataclass(frozen=True)
class FeatureBlock:
    """A named biological group and the submatrix of its member features."""

    name: str
    features: tuple[str, ...]
    data: pd.DataFrame = field(repr=False, compare=False)

    @property
    def size(self) -> int:
        return len(self.features)

    def take(self, X: pd.DataFrame) -> "FeatureBlock":
        """Same block members drawn from another matrix (e.g. the test set)."""
        missing = [f for f in self.features if f not in X.columns]
        if missing:
            raise ConfigurationError(
                f"Block '{self.name}' features missing from matrix: {missing[:5]}"
            )
        return FeatureBlock(self.name, self.features, X.loc[:, list(self.features)])


@dataclass
class Stage2Dataset:
    """Aggregated held-out latent scores, one column per retained block."""

    X: pd.DataFrame
    y: pd.Series | None = None

    def __post_init__(self):
        if self.y is not None and not self.X.index.equals(self.y.index):
            raise ValueError("Stage-2 matrix and outcome must share the sample index")

    @property
    def columns(self) -> list[str]:
        return self.X.columns.tolist()

    def subset(self, columns: list[str]) -> "Stage2Dataset":
        """Restrict to ``columns`` (kept in the given order)."""
        return Stage2Dataset(X=self.X.loc[:, list(columns)], y=self.y)

    def to_frame(self) -> pd.DataFrame:
        """Outcome as the first column followed by block columns."""
        if self.y is None:
            return self.X.copy()
        return pd.concat([self.y.rename(LABEL_COL), self.X], axis=1)
