"""Normalize raw differential expression tables to canonical columns."""

from typing import Any

import polars as pl
import structlog

from derank.detection.columns import as_table
from derank.detection.metadata import (
    CANONICAL_COLUMNS,
    ColumnSpec,
    DerivedColumn,
    MetadataDescriptor,
    Unresolved,
)

logger = structlog.get_logger()


def _free_name(table: pl.DataFrame, name: str) -> str:
    """First unused name among name, name.1, name.2, ..."""
    if name not in table.columns:
        return name
    suffix = 1
    while f"{name}.{suffix}" in table.columns:
        suffix += 1
    return f"{name}.{suffix}"


def _move_aside(table: pl.DataFrame, target: str) -> pl.DataFrame:
    """Rename an existing target column to <target>.orig (numbered if taken)."""
    if target not in table.columns:
        return table
    new_name = _free_name(table, f"{target}.orig")
    logger.debug("normalize_move_aside", column=target, renamed_to=new_name)
    return table.rename({target: new_name})


def _prepare_column(
    working: pl.DataFrame,
    raw: pl.DataFrame,
    target: str,
    spec: ColumnSpec,
) -> pl.DataFrame:
    if isinstance(spec, Unresolved):
        # Canonical names only ever hold resolved data
        return _move_aside(working, target)

    if isinstance(spec, DerivedColumn):
        values = spec.evaluate(raw).alias(target)
        return _move_aside(working, target).with_columns(values)

    if spec == target:
        return working
    if spec not in working.columns:
        raise ValueError(
            f"Column '{spec}' for canonical column '{target}' not found "
            f"(available: {working.columns})"
        )
    working = _move_aside(working, target)
    return working.rename({spec: target})


def normalize(raw: Any, descriptor: MetadataDescriptor) -> pl.DataFrame | None:
    """Build the canonical table (ID, baseMean, stat) from a raw table.

    Canonical columns are processed in order ID, baseMean, stat. A source
    column is renamed to the canonical name; a pre-existing column with the
    canonical name is first renamed to <name>.orig. Derived columns are
    computed from the raw table, never from the partially normalized one.
    Unresolved columns are absent from the output.

    Args:
        raw: Raw table, or None
        descriptor: Metadata descriptor from resolve_metadata

    Returns:
        Canonical table, or None if raw is None

    Raises:
        ValueError: If a source column named by the descriptor does not exist
    """
    if raw is None:
        return None

    raw = as_table(raw)
    working = raw
    for target in CANONICAL_COLUMNS:
        spec = descriptor.columns.get(target, Unresolved.NOT_REQUESTED)
        working = _prepare_column(working, raw, target, spec)

    logger.info(
        "normalize_complete",
        rows=working.height,
        canonical=[c for c in CANONICAL_COLUMNS if c in working.columns],
    )
    return working
