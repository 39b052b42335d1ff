"""Metadata detection for differential expression tables.

Finds statistic columns by alias, estimates the identifier column, namespace
and organism by matching against reference ID sets, and assembles the
metadata descriptor used by normalization and rank extraction.
"""

from derank.detection.columns import as_table, find_column
from derank.detection.id_column import (
    IdColumnMatch,
    OrganismMatch,
    find_id_column,
    find_id_column_across_organisms,
    strip_version_suffix_expr,
)
from derank.detection.metadata import (
    CANONICAL_COLUMNS,
    ColumnSpec,
    DerivedColumn,
    MetadataDescriptor,
    Unresolved,
    is_resolved,
    resolve_metadata,
)

__all__ = [
    "as_table",
    "find_column",
    "IdColumnMatch",
    "OrganismMatch",
    "find_id_column",
    "find_id_column_across_organisms",
    "strip_version_suffix_expr",
    "CANONICAL_COLUMNS",
    "ColumnSpec",
    "DerivedColumn",
    "MetadataDescriptor",
    "Unresolved",
    "is_resolved",
    "resolve_metadata",
]
