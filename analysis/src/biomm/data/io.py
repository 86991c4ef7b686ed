"""
Thin table readers used by the command line.

Formats beyond plain CSV/TSV/Parquet tables are out of scope; callers
with other sources build DataFrames themselves.
"""

import logging
from pathlib import Path

import pandas as pd

from biomm.data.schema import LABEL_COL, OmicsDataset

logger = logging.getLogger(__name__)


def read_table(filepath: str | Path, index_col: int | str | None = None) -> pd.DataFrame:
    """
    Read a CSV, TSV or Parquet table based on its extension.

    Raises:
        FileNotFoundError: If filepath does not exist
        ValueError: If the extension is not recognized
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    suffix = filepath.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(filepath)
        if index_col is not None:
            df = df.set_index(df.columns[index_col] if isinstance(index_col, int) else index_col)
    elif suffix in (".csv", ".txt"):
        df = pd.read_csv(filepath, index_col=index_col)
    elif suffix == ".tsv":
        df = pd.read_csv(filepath, sep="\t", index_col=index_col)
    else:
        raise ValueError(f"Unsupported file extension '{suffix}' (use .csv, .tsv or .parquet)")

    logger.info(f"Loaded {filepath.name}: {len(df):,} rows × {len(df.columns):,} columns")
    return df


def read_omics_dataset(
    filepath: str | Path,
    label_col: str = LABEL_COL,
    index_col: int | str | None = 0,
) -> OmicsDataset:
    """Read a samples x (label + features) table into an OmicsDataset."""
    return OmicsDataset.from_frame(read_table(filepath, index_col=index_col), label_col)
