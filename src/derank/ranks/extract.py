"""Build gene rank vectors from canonical differential expression tables.

The rank vector is the input of rank-based enrichment analysis: one finite
statistic per base gene identifier, sorted in decreasing order.
"""

from typing import Any, Mapping

import polars as pl
import structlog

from derank.annotation.identifiers import identifier_text_expr, strip_version_suffix_expr
from derank.annotation.models import ReferenceAnnotationIndex
from derank.detection.columns import as_table
from derank.detection.metadata import MetadataDescriptor, Unresolved, is_resolved
from derank.ranks.normalize import normalize

logger = structlog.get_logger()

# Genes kept when deduplicating by mean expression
MAX_RANKED_GENES = 10000


def _remap_ids(
    table: pl.DataFrame,
    id_type: str,
    reference_index: ReferenceAnnotationIndex,
) -> pl.DataFrame:
    """Replace alternate IDs with base IDs; rows without a mapping are dropped."""
    mapping = reference_index.map_frame(id_type)
    remapped = (
        table.with_row_index("_row")
        .join(mapping, left_on="ID", right_on="alt_id", how="inner")
        .sort("_row")
        .drop(["_row", "ID"])
        .rename({"gene": "ID"})
    )
    logger.info(
        "rank_ids_remapped",
        id_type=id_type,
        base_namespace=reference_index.base_namespace,
        mapped=remapped.height,
        unmapped=table.height - remapped.height,
    )
    return remapped


def _deduplicate(
    table: pl.DataFrame,
    by_base_mean: bool,
    max_genes: int,
) -> pl.DataFrame:
    """Keep one row per ID: highest baseMean (capped), else highest |stat|."""
    if by_base_mean:
        deduplicated = (
            table.with_columns(pl.col("baseMean").fill_nan(None))
            .sort("baseMean", descending=True, nulls_last=True, maintain_order=True)
            .unique(subset="ID", keep="first", maintain_order=True)
            .head(max_genes)
        )
    else:
        deduplicated = (
            table.sort(pl.col("stat").abs(), descending=True, maintain_order=True)
            .unique(subset="ID", keep="first", maintain_order=True)
        )
    logger.info(
        "rank_deduplicated",
        by="baseMean" if by_base_mean else "abs_stat",
        rows_in=table.height,
        rows_out=deduplicated.height,
    )
    return deduplicated


def _clamp_infinite(table: pl.DataFrame) -> pl.DataFrame:
    """Replace +inf/-inf with the largest/smallest finite statistic."""
    finite = table.filter(pl.col("stat").is_finite()).get_column("stat")
    infinite_count = table.height - finite.len()
    if infinite_count == 0:
        return table

    if finite.len() == 0:
        logger.warning("rank_no_finite_values", dropped=infinite_count)
        return table.filter(pl.col("stat").is_finite())

    max_finite = finite.max()
    min_finite = finite.min()
    logger.info(
        "rank_clamp_infinite",
        count=infinite_count,
        max_finite=max_finite,
        min_finite=min_finite,
    )
    return table.with_columns(
        pl.when(pl.col("stat") == float("inf"))
        .then(pl.lit(max_finite, dtype=pl.Float64))
        .when(pl.col("stat") == float("-inf"))
        .then(pl.lit(min_finite, dtype=pl.Float64))
        .otherwise(pl.col("stat"))
        .alias("stat")
    )


def extract_ranks(
    canonical: Any,
    descriptor: MetadataDescriptor,
    reference_index: ReferenceAnnotationIndex,
    max_genes: int = MAX_RANKED_GENES,
    strip_version_suffix: bool = True,
) -> pl.DataFrame:
    """Convert a canonical table into a rank vector keyed by base gene ID.

    Steps:
    1. IDs are stringified (and version suffixes stripped); IDs outside the
       base namespace are remapped to base IDs, unmapped rows dropped.
    2. Rows with a missing or NaN statistic are dropped.
    3. One row per ID is kept: the highest baseMean (at most max_genes rows),
       or the highest |stat| when baseMean is unresolved.
    4. +inf/-inf statistics are clamped to the finite max/min.
    5. Rows are sorted by statistic, decreasing.

    Args:
        canonical: Table from normalize
        descriptor: Metadata descriptor used for normalization
        reference_index: Reference index of the descriptor's organism
        max_genes: Row cap for the baseMean deduplication (default: 10000)
        strip_version_suffix: Strip accession versions from IDs

    Returns:
        DataFrame with columns ID (Utf8, unique) and stat (Float64, finite)

    Raises:
        ValueError: If required metadata is unresolved, a canonical column is
            missing, or id_type is not a namespace of the index
    """
    unresolved = [
        name for name in descriptor.unresolved_fields()
        if name != "columns.baseMean"
    ]
    if unresolved:
        raise ValueError(f"Cannot extract ranks, unresolved metadata: {unresolved}")

    table = as_table(canonical)
    by_base_mean = is_resolved(descriptor.columns.get("baseMean", Unresolved.NOT_REQUESTED))
    columns = ["ID", "stat"] + (["baseMean"] if by_base_mean else [])
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise ValueError(f"Canonical table is missing columns: {missing}")

    id_expr = identifier_text_expr("ID", table.schema["ID"])
    if strip_version_suffix:
        id_expr = strip_version_suffix_expr(id_expr)
    casts = [id_expr.alias("ID"), pl.col("stat").cast(pl.Float64, strict=False)]
    if by_base_mean:
        casts.append(pl.col("baseMean").cast(pl.Float64, strict=False))
    ranks = table.select(columns).with_columns(casts)

    logger.info("rank_extract_start", rows=ranks.height, id_type=descriptor.id_type)
    ranks = ranks.filter(pl.col("ID").is_not_null())

    if descriptor.id_type != reference_index.base_namespace:
        ranks = _remap_ids(ranks, descriptor.id_type, reference_index)

    missing_stat = pl.col("stat").is_null() | pl.col("stat").is_nan()
    dropped = ranks.filter(missing_stat).height
    if dropped:
        logger.warning("rank_missing_stat_dropped", count=dropped)
        ranks = ranks.filter(~missing_stat)

    ranks = _deduplicate(ranks, by_base_mean, max_genes)
    ranks = _clamp_infinite(ranks)
    ranks = ranks.select(["ID", "stat"]).sort("stat", descending=True, maintain_order=True)

    logger.info("rank_extract_complete", genes=ranks.height)
    return ranks


def get_ranks(
    raw: Any,
    descriptor: MetadataDescriptor,
    reference_indexes: Mapping[str, ReferenceAnnotationIndex],
    max_genes: int = MAX_RANKED_GENES,
    strip_version_suffix: bool = True,
) -> pl.DataFrame:
    """Normalize a raw table and extract its rank vector.

    Args:
        raw: Raw differential expression table
        descriptor: Metadata descriptor from resolve_metadata
        reference_indexes: Organism name -> reference index
        max_genes: Row cap for the baseMean deduplication
        strip_version_suffix: Strip accession versions from IDs

    Returns:
        Rank vector DataFrame (ID, stat)

    Raises:
        ValueError: If raw is None, the organism is unresolved or unknown
    """
    if raw is None:
        raise ValueError("Cannot extract ranks from a missing table")
    if not is_resolved(descriptor.organism):
        raise ValueError("Cannot extract ranks, unresolved metadata: ['organism']")
    if descriptor.organism not in reference_indexes:
        raise ValueError(
            f"No reference index for organism '{descriptor.organism}' "
            f"(available: {list(reference_indexes)})"
        )

    canonical = normalize(raw, descriptor)
    return extract_ranks(
        canonical,
        descriptor,
        reference_indexes[descriptor.organism],
        max_genes=max_genes,
        strip_version_suffix=strip_version_suffix,
    )


def ranks_to_dict(ranks: pl.DataFrame) -> dict[str, float]:
    """Rank vector as an ordered mapping of ID -> statistic."""
    return dict(zip(ranks.get_column("ID").to_list(), ranks.get_column("stat").to_list()))


def annotate_ranks(
    ranks: pl.DataFrame,
    reference_index: ReferenceAnnotationIndex,
) -> pl.DataFrame:
    """Add display names from the reference index as a symbol column."""
    symbols = pl.Series(
        "symbol",
        [reference_index.gene_name(gene) for gene in ranks.get_column("ID").to_list()],
        dtype=pl.Utf8,
    )
    return ranks.with_columns(symbols).select(["ID", "symbol", "stat"])
