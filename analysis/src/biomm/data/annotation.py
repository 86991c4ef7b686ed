"""
Biological stratification of a flat feature matrix.

Builds feature -> group relations for gene, pathway and chromosome
stratification and partitions the matrix into (possibly overlapping)
FeatureBlocks, applying group-size constraints and optional location-based
flanking windows.
"""

import logging

import numpy as np
import pandas as pd

from biomm.config.defaults import VALID_STRATIFICATIONS
from biomm.config.validation import ConfigurationError
from biomm.data.schema import FeatureBlock

logger = logging.getLogger(__name__)

FEATURE_COL = "feature"
GROUP_COL = "group"
POSITION_COL = "position"
ANCHOR_COL = "anchor"

EXCLUSION_COLUMNS = ["group", "n_features", "reason"]


# ============================================================================
# Annotation builders
# ============================================================================


def annotation_from_mapping(mapping: dict[str, list[str] | str]) -> pd.DataFrame:
    """
    Build an annotation relation from a ``{feature: group(s)}`` dict.

    Example:
        >>> annotation_from_mapping({"cg1": ["GENE_A", "GENE_B"], "cg2": "GENE_A"})
          feature   group
        0     cg1  GENE_A
        1     cg1  GENE_B
        2     cg2  GENE_A
    """
    rows = []
    for feature, groups in mapping.items():
        if isinstance(groups, str):
            groups = [groups]
        rows.extend((feature, g) for g in groups)
    return pd.DataFrame(rows, columns=[FEATURE_COL, GROUP_COL])


def annotation_by_column(
    feature_anno: pd.DataFrame,
    group_col: str,
    feature_col: str = FEATURE_COL,
    sep: str = ";",
) -> pd.DataFrame:
    """
    Relation mapping each feature to the value(s) of ``group_col``.

    Used for gene (CpG -> gene) and chromosome (feature -> chromosome)
    stratification. Positional columns are carried along when present.
    """
    for col in (feature_col, group_col):
        if col not in feature_anno.columns:
            raise ConfigurationError(f"Feature annotation is missing column '{col}'")

    keep = [feature_col, group_col] + [
        c for c in (POSITION_COL, ANCHOR_COL) if c in feature_anno.columns
    ]
    anno = feature_anno.loc[:, keep].dropna(subset=[feature_col, group_col])
    anno = anno.assign(**{group_col: anno[group_col].astype(str).str.split(sep)})
    anno = anno.explode(group_col)
    anno[group_col] = anno[group_col].str.strip()
    anno = anno[anno[group_col] != ""]
    anno = anno.rename(columns={feature_col: FEATURE_COL, group_col: GROUP_COL})
    return anno.drop_duplicates(subset=[FEATURE_COL, GROUP_COL]).reset_index(drop=True)


def compose_annotation(
    feature_to_gene: pd.DataFrame,
    gene_to_pathway: pd.DataFrame,
    gene_col: str = "gene",
    pathway_col: str = "pathway",
) -> pd.DataFrame:
    """
    Compose feature -> gene with gene -> pathway into feature -> pathway.

    Features measured directly at gene level (feature id equals a gene in the
    pathway database) map straight through.

    Args:
        feature_to_gene: Relation with ``feature`` and ``group`` (gene) columns
        gene_to_pathway: Pathway database with ``gene_col`` and ``pathway_col``

    Returns:
        Relation with ``feature`` and ``group`` (pathway) columns, in pathway
        database order
    """
    for col in (gene_col, pathway_col):
        if col not in gene_to_pathway.columns:
            raise ConfigurationError(f"Pathway database is missing column '{col}'")

    db = gene_to_pathway.loc[:, [gene_col, pathway_col]].dropna().drop_duplicates()
    genes = feature_to_gene.rename(columns={GROUP_COL: gene_col})
    merged = db.merge(genes[[FEATURE_COL, gene_col]], on=gene_col, how="inner")
    merged = merged.rename(columns={pathway_col: GROUP_COL})
    return merged[[FEATURE_COL, GROUP_COL]].drop_duplicates().reset_index(drop=True)


def build_annotation(
    feature_anno: pd.DataFrame,
    mode: str,
    pathway_db: pd.DataFrame | None = None,
    gene_col: str = "gene",
    chromosome_col: str = "chromosome",
) -> pd.DataFrame:
    """
    Build the feature -> group relation for a stratification mode.

    Args:
        feature_anno: Per-feature annotation table with a ``feature`` column
        mode: "gene", "pathway" or "chromosome"
        pathway_db: gene -> pathway table (required for "pathway")

    Returns:
        AnnotationRelation DataFrame
    """
    if mode == "gene":
        return annotation_by_column(feature_anno, gene_col)
    if mode == "chromosome":
        return annotation_by_column(feature_anno, chromosome_col)
    if mode == "pathway":
        if pathway_db is None:
            raise ConfigurationError("Pathway stratification requires a gene -> pathway database")
        if gene_col in feature_anno.columns:
            feature_to_gene = annotation_by_column(feature_anno, gene_col)
        else:
            # Gene-level data: features are genes
            feature_to_gene = pd.DataFrame(
                {FEATURE_COL: feature_anno[FEATURE_COL], GROUP_COL: feature_anno[FEATURE_COL]}
            )
        direct = pd.DataFrame(
            {FEATURE_COL: feature_anno[FEATURE_COL], GROUP_COL: feature_anno[FEATURE_COL]}
        )
        feature_to_gene = pd.concat(
            [feature_to_gene[[FEATURE_COL, GROUP_COL]], direct]
        ).drop_duplicates()
        return compose_annotation(feature_to_gene, pathway_db, gene_col=gene_col)
    raise ConfigurationError(
        f"Unknown stratification mode='{mode}'. Valid: {VALID_STRATIFICATIONS}"
    )


# ============================================================================
# Mapping
# ============================================================================


def _apply_flanking(
    group_anno: pd.DataFrame,
    up_flank: int | None,
    down_flank: int | None,
) -> list[str]:
    """Keep the nearest ``up_flank`` upstream and ``down_flank`` downstream features."""
    pos = pd.to_numeric(group_anno[POSITION_COL], errors="coerce")
    anchor = pd.to_numeric(group_anno[ANCHOR_COL], errors="coerce")
    distance = pos - anchor
    ok = distance.notna()
    anno = group_anno.loc[ok].assign(_distance=distance[ok])

    upstream = anno[anno["_distance"] < 0].sort_values("_distance", ascending=False, kind="stable")
    downstream = anno[anno["_distance"] >= 0].sort_values("_distance", kind="stable")
    if up_flank is not None:
        upstream = upstream.head(up_flank)
    if down_flank is not None:
        downstream = downstream.head(down_flank)
    return upstream[FEATURE_COL].tolist() + downstream[FEATURE_COL].tolist()


def map_to_groups(
    X: pd.DataFrame,
    annotation: pd.DataFrame,
    min_group_size: int = 10,
    restrict_down: int | None = None,
    restrict_up: int | None = None,
    up_flank: int | None = None,
    down_flank: int | None = None,
) -> tuple[list[FeatureBlock], pd.DataFrame]:
    """
    Partition a feature matrix into biological blocks.

    Parameters
    ----------
    X : pd.DataFrame
        Samples x features matrix
    annotation : pd.DataFrame
        Relation with ``feature`` and ``group`` columns (many-to-many); needs
        ``position`` and ``anchor`` when flanking is requested
    min_group_size : int, default=10
        Groups with fewer members present in ``X`` are excluded
    restrict_down : int, optional
        Additional lower bound on block size
    restrict_up : int, optional
        Upper bound on block size; larger groups are excluded
    up_flank, down_flank : int, optional
        Maximum number of features admitted upstream / downstream of the
        group anchor, nearest first

    Returns
    -------
    blocks : list[FeatureBlock]
        Retained blocks in order of first appearance in the annotation;
        members follow the column order of ``X``
    exclusions : pd.DataFrame
        One row per excluded group: group, n_features, reason

    Raises
    ------
    ConfigurationError
        If the annotation is malformed or references no feature of ``X``
    """
    for col in (FEATURE_COL, GROUP_COL):
        if col not in annotation.columns:
            raise ConfigurationError(f"Annotation relation is missing column '{col}'")

    flanking = up_flank is not None or down_flank is not None
    if flanking and not {POSITION_COL, ANCHOR_COL}.issubset(annotation.columns):
        raise ConfigurationError(
            f"Flanking windows need '{POSITION_COL}' and '{ANCHOR_COL}' annotation columns"
        )

    column_order = {c: i for i, c in enumerate(X.columns)}
    present = annotation[annotation[FEATURE_COL].isin(column_order)]
    if present.empty:
        raise ConfigurationError(
            f"Annotation ({len(annotation)} rows) references none of the "
            f"{X.shape[1]} features in the dataset"
        )

    lower = max(min_group_size, restrict_down or 0)
    blocks: list[FeatureBlock] = []
    excluded_rows = []

    for group, group_anno in present.groupby(GROUP_COL, sort=False):
        if flanking:
            members = _apply_flanking(group_anno, up_flank, down_flank)
        else:
            members = group_anno[FEATURE_COL].tolist()
        members = sorted(set(members), key=column_order.__getitem__)
        n = len(members)

        if n < lower:
            excluded_rows.append((group, n, "insufficient_size"))
            continue
        if restrict_up is not None and n > restrict_up:
            excluded_rows.append((group, n, "exceeds_max_size"))
            continue

        blocks.append(FeatureBlock(str(group), tuple(members), X.loc[:, members]))

    exclusions = pd.DataFrame(excluded_rows, columns=EXCLUSION_COLUMNS)

    n_groups = present[GROUP_COL].nunique()
    sizes = np.array([b.size for b in blocks]) if blocks else np.array([0])
    logger.info(
        f"Stratified {present[FEATURE_COL].nunique()}/{X.shape[1]} features into "
        f"{len(blocks)}/{n_groups} blocks (min_size={lower}, "
        f"median_size={int(np.median(sizes))}, excluded={len(exclusions)})"
    )
    if not blocks:
        logger.warning("No group passed the size constraints")

    return blocks, exclusions
