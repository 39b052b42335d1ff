"""Identifier column and namespace detection.

Estimates which column of a differential expression table holds gene
identifiers, and in which namespace, by intersecting a row sample of every
column with reference ID sets (one per namespace, optionally one group per
organism).
"""

from dataclasses import dataclass
from typing import Any, Collection, Mapping

import polars as pl
import structlog

from derank.annotation.identifiers import (
    identifier_text_expr,
    strip_version_suffix_expr,
)
from derank.annotation.models import ReferenceAnnotationIndex
from derank.detection.columns import as_table

logger = structlog.get_logger()

@dataclass
class IdColumnMatch:
    """Best identifier column/namespace pair for a table.

    Attributes:
        column: Column holding identifiers
        namespace: Namespace the identifiers belong to
        match_ratio: Distinct matched values / sampled rows (0-1)
    """
    column: str
    namespace: str
    match_ratio: float


@dataclass
class OrganismMatch:
    """Identifier detection result for one organism."""
    organism: str
    column: str
    namespace: str
    match_ratio: float


def _sample_column_values(
    table: pl.DataFrame,
    sample_size: int,
    strip_version_suffix: bool,
    seed: int | None,
) -> tuple[list[str], list[set[str]], int]:
    """Sample rows and collect each column's distinct values as text.

    Returns:
        Tuple of (column names, distinct values per column, sampled row count)

    Raises:
        ValueError: If the table has no columns or no rows
    """
    if table.width == 0:
        raise ValueError("Cannot detect identifier column: table has no columns")
    if table.height == 0:
        raise ValueError("Cannot detect identifier column: table has no rows")

    if table.height < sample_size:
        sample = table
    else:
        sample = table.sample(n=sample_size, with_replacement=False, seed=seed)

    values: list[set[str]] = []
    for column in sample.columns:
        series = sample.get_column(column)
        if isinstance(series.dtype, (pl.List, pl.Array, pl.Struct, pl.Object)):
            # Nested cells cannot be identifiers
            values.append(set())
            continue

        text = identifier_text_expr(column, series.dtype)
        if strip_version_suffix:
            text = strip_version_suffix_expr(text)
        text = sample.select(text).to_series()
        values.append(set(text.drop_nulls().to_list()))

    return sample.columns, values, sample.height


def _match_reference_sets(
    columns: list[str],
    column_values: list[set[str]],
    row_count: int,
    reference_sets: Mapping[str, frozenset[str]],
    match_threshold: float,
) -> IdColumnMatch:
    """Pick the best column/namespace pair from sampled column values."""
    namespaces = list(reference_sets)
    base_namespace = namespaces[0]
    base_ids = reference_sets[base_namespace]

    # Fast path: identifiers already in the base namespace
    base_counts = [len(values & base_ids) for values in column_values]
    best_column = max(range(len(columns)), key=lambda i: (base_counts[i], -i))
    base_ratio = base_counts[best_column] / row_count
    if base_ratio >= match_threshold:
        logger.info(
            "id_detection_fast_path",
            column=columns[best_column],
            namespace=base_namespace,
            match_ratio=round(base_ratio, 4),
        )
        return IdColumnMatch(
            column=columns[best_column],
            namespace=base_namespace,
            match_ratio=base_ratio,
        )

    # Full path: column x namespace matrix of intersection counts
    matrix = [
        [len(values & reference_sets[namespace]) for namespace in namespaces]
        for values in column_values
    ]

    # First maximum scanning columns, then namespaces within a column
    best_count = -1
    best_row, best_col = 0, 0
    for row, counts in enumerate(matrix):
        for col, count in enumerate(counts):
            if count > best_count:
                best_count = count
                best_row, best_col = row, col

    match = IdColumnMatch(
        column=columns[best_row],
        namespace=namespaces[best_col],
        match_ratio=best_count / row_count,
    )
    logger.info(
        "id_detection_full_path",
        column=match.column,
        namespace=match.namespace,
        match_ratio=round(match.match_ratio, 4),
    )
    return match


def _as_reference_sets(
    reference_sets: Mapping[str, Collection[str]],
) -> dict[str, frozenset[str]]:
    if not reference_sets:
        raise ValueError("At least one reference ID set is required")
    return {
        namespace: ids if isinstance(ids, frozenset) else frozenset(str(i) for i in ids)
        for namespace, ids in reference_sets.items()
    }


def find_id_column(
    table: Any,
    reference_sets: Mapping[str, Collection[str]],
    sample_size: int = 1000,
    match_threshold: float = 0.6,
    strip_version_suffix: bool = True,
    seed: int | None = None,
) -> IdColumnMatch:
    """Find the column holding identifiers and the namespace they use.

    A sample of at most sample_size rows is drawn and every column is
    stringified. If the best column matches the first (base) reference set
    with a ratio of at least match_threshold, it is returned directly.
    Otherwise every column is scored against every namespace and the
    highest-count pair wins, first pair in scan order on ties.

    Detection is best-effort: when nothing matches, the first column and
    namespace are returned with ratio 0. Callers apply their own threshold.

    Args:
        table: Table to inspect (anything accepted by as_table)
        reference_sets: Namespace -> reference IDs; the first entry is the base
        sample_size: Maximum number of rows to sample (default: 1000)
        match_threshold: Ratio accepted by the base fast path (default: 0.6)
        strip_version_suffix: Strip accession versions before matching
        seed: Random seed for row sampling

    Returns:
        IdColumnMatch with column, namespace and match_ratio

    Raises:
        ValueError: If the table has no columns or rows, or no reference set is given
    """
    references = _as_reference_sets(reference_sets)
    columns, values, row_count = _sample_column_values(
        as_table(table), sample_size, strip_version_suffix, seed
    )
    return _match_reference_sets(columns, values, row_count, references, match_threshold)


def find_id_column_across_organisms(
    table: Any,
    reference_indexes: Mapping[str, ReferenceAnnotationIndex],
    organism_threshold: float = 0.6,
    sample_size: int = 1000,
    match_threshold: float = 0.6,
    strip_version_suffix: bool = True,
    seed: int | None = None,
) -> tuple[OrganismMatch | None, list[OrganismMatch]]:
    """Detect identifiers against several organisms and pick the best one.

    One row sample is shared by all organisms. Each organism contributes its
    base IDs followed by its alternate namespace IDs.

    Args:
        table: Table to inspect
        reference_indexes: Organism name -> reference index
        organism_threshold: Minimum match ratio for an organism to be chosen
        sample_size: Maximum number of rows to sample
        match_threshold: Ratio accepted by the base fast path
        strip_version_suffix: Strip accession versions before matching
        seed: Random seed for row sampling

    Returns:
        Tuple of (best organism match or None, per-organism matches).
        None means no organism reached organism_threshold.
    """
    columns, values, row_count = _sample_column_values(
        as_table(table), sample_size, strip_version_suffix, seed
    )

    candidates: list[OrganismMatch] = []
    for organism, index in reference_indexes.items():
        match = _match_reference_sets(
            columns, values, row_count, index.id_sets(), match_threshold
        )
        candidates.append(OrganismMatch(
            organism=organism,
            column=match.column,
            namespace=match.namespace,
            match_ratio=match.match_ratio,
        ))

    best: OrganismMatch | None = None
    for candidate in candidates:
        if candidate.match_ratio < organism_threshold:
            continue
        if best is None or candidate.match_ratio > best.match_ratio:
            best = candidate

    if best is None:
        logger.warning(
            "organism_detection_no_match",
            threshold=organism_threshold,
            best_ratios={c.organism: round(c.match_ratio, 4) for c in candidates},
        )
    else:
        logger.info(
            "organism_detection_complete",
            organism=best.organism,
            column=best.column,
            namespace=best.namespace,
            match_ratio=round(best.match_ratio, 4),
        )
    return best, candidates
