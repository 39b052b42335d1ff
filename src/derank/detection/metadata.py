"""Differential expression table metadata resolution.

Resolves, for a raw differential expression table, the organism, the
identifier column and namespace, and the mean expression and ranking
statistic columns. Caller-supplied values take precedence; everything else
is detected. Fields that cannot be resolved are marked explicitly with an
Unresolved member rather than left empty.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Union

import polars as pl
import structlog

from derank.annotation.models import ReferenceAnnotationIndex
from derank.config.schema import ColumnAliases, DetectionConfig
from derank.detection.columns import as_table, find_column
from derank.detection.id_column import find_id_column_across_organisms

logger = structlog.get_logger()

CANONICAL_COLUMNS = ("ID", "baseMean", "stat")


class Unresolved(Enum):
    """Marker for a metadata field without a resolved value.

    NOT_REQUESTED: the caller opted out of the field
    NO_MATCH: detection ran and found no acceptable value
    """
    NOT_REQUESTED = "not_requested"
    NO_MATCH = "no_match"


@dataclass(frozen=True, eq=False)
class DerivedColumn:
    """Canonical column computed from the raw table.

    compute is either a polars expression evaluated against the raw table,
    or a callable receiving one raw row as a dict and returning a scalar.
    """
    compute: Union[pl.Expr, Callable[[dict[str, Any]], Any]]
    description: str = ""

    def evaluate(self, raw: pl.DataFrame) -> pl.Series:
        """Evaluate against the raw table, one value per raw row."""
        if isinstance(self.compute, pl.Expr):
            result = raw.select(self.compute).to_series()
            if result.len() == 1 and raw.height != 1:
                result = pl.Series(result.name, [result[0]] * raw.height)
            return result
        return pl.Series([self.compute(row) for row in raw.iter_rows(named=True)])


ColumnSpec = Union[str, DerivedColumn, Unresolved]


def is_resolved(value: Any) -> bool:
    """True unless value is an Unresolved marker."""
    return not isinstance(value, Unresolved)


@dataclass
class MetadataDescriptor:
    """Resolved metadata of a differential expression table.

    Attributes:
        organism: Organism name or Unresolved
        id_type: Identifier namespace name or Unresolved
        columns: Canonical column (ID, baseMean, stat) -> source spec
        match_ratio: Identifier detection confidence (None if supplied by caller)
    """
    organism: str | Unresolved
    id_type: str | Unresolved
    columns: dict[str, ColumnSpec] = field(default_factory=dict)
    match_ratio: float | None = None

    def unresolved_fields(self) -> list[str]:
        """Names of all unresolved fields (columns as columns.<name>)."""
        fields = [
            name for name in ("organism", "id_type")
            if not is_resolved(getattr(self, name))
        ]
        fields.extend(
            f"columns.{name}"
            for name in CANONICAL_COLUMNS
            if not is_resolved(self.columns.get(name, Unresolved.NOT_REQUESTED))
        )
        return fields

    def summary(self) -> dict[str, Any]:
        """Plain-value view for logging and provenance."""
        def show(value: Any) -> Any:
            if isinstance(value, Unresolved):
                return f"<{value.value}>"
            if isinstance(value, DerivedColumn):
                return f"<derived: {value.description or 'expression'}>"
            return value

        return {
            "organism": show(self.organism),
            "id_type": show(self.id_type),
            "columns": {name: show(spec) for name, spec in self.columns.items()},
            "match_ratio": self.match_ratio,
        }


def _organism_for_namespace(
    reference_indexes: Mapping[str, ReferenceAnnotationIndex],
    id_type: str,
) -> str | Unresolved:
    """The single organism whose index knows id_type, else NO_MATCH."""
    if len(reference_indexes) == 1:
        return next(iter(reference_indexes))
    owners = [
        organism for organism, index in reference_indexes.items()
        if id_type in index.namespaces
    ]
    if len(owners) == 1:
        return owners[0]
    return Unresolved.NO_MATCH


def _resolve_stat_column(
    table: pl.DataFrame,
    supplied: ColumnSpec | None,
    aliases: list[str],
) -> ColumnSpec:
    if supplied is not None:
        return supplied
    found = find_column(table, aliases)
    return found if found is not None else Unresolved.NO_MATCH


def resolve_metadata(
    table: Any,
    reference_indexes: Mapping[str, ReferenceAnnotationIndex],
    organism: str | None = None,
    id_column: ColumnSpec | None = None,
    id_type: str | None = None,
    base_mean_column: ColumnSpec | None = None,
    stat_column: ColumnSpec | None = None,
    detection: DetectionConfig | None = None,
    aliases: ColumnAliases | None = None,
) -> MetadataDescriptor:
    """Resolve the metadata descriptor of a differential expression table.

    Identifier column and type must be supplied together or not at all.
    When neither is supplied, identifiers are detected across all organisms
    (only the named organism if organism is given). Mean expression and
    statistic columns are looked up by alias when not supplied; pass
    Unresolved.NOT_REQUESTED to skip a column.

    Args:
        table: Raw differential expression table
        reference_indexes: Organism name -> reference index
        organism: Organism name, if known
        id_column: Identifier column (or DerivedColumn), if known
        id_type: Identifier namespace, if known
        base_mean_column: Mean expression column spec, if known
        stat_column: Ranking statistic column spec, if known
        detection: Identifier detection settings (default: DetectionConfig())
        aliases: Column aliases (default: ColumnAliases())

    Returns:
        MetadataDescriptor; unresolved fields carry an Unresolved marker

    Raises:
        ValueError: If only one of id_column/id_type is given, or if organism
            is not among reference_indexes
    """
    if (id_column is None) != (id_type is None):
        raise ValueError(
            "Either both or none of id_column and id_type can be specified "
            "(partial override not allowed)"
        )
    if organism is not None and organism not in reference_indexes:
        raise ValueError(
            f"Unknown organism '{organism}' (available: {list(reference_indexes)})"
        )

    detection = detection or DetectionConfig()
    aliases = aliases or ColumnAliases()
    table = as_table(table)

    match_ratio: float | None = None
    resolved_organism: str | Unresolved
    resolved_id_column: ColumnSpec
    resolved_id_type: str | Unresolved

    if id_column is None:
        indexes = (
            {organism: reference_indexes[organism]} if organism is not None
            else reference_indexes
        )
        best, _ = find_id_column_across_organisms(
            table,
            indexes,
            organism_threshold=detection.organism_match_threshold,
            sample_size=detection.sample_size,
            match_threshold=detection.match_threshold,
            strip_version_suffix=detection.strip_version_suffix,
            seed=detection.seed,
        )
        if best is None:
            resolved_organism = Unresolved.NO_MATCH
            resolved_id_column = Unresolved.NO_MATCH
            resolved_id_type = Unresolved.NO_MATCH
        else:
            resolved_organism = best.organism
            resolved_id_column = best.column
            resolved_id_type = best.namespace
            match_ratio = best.match_ratio
    else:
        resolved_id_column = id_column
        resolved_id_type = id_type
        resolved_organism = (
            organism if organism is not None
            else _organism_for_namespace(reference_indexes, id_type)
        )

    descriptor = MetadataDescriptor(
        organism=resolved_organism,
        id_type=resolved_id_type,
        columns={
            "ID": resolved_id_column,
            "baseMean": _resolve_stat_column(table, base_mean_column, aliases.base_mean),
            "stat": _resolve_stat_column(table, stat_column, aliases.stat),
        },
        match_ratio=match_ratio,
    )

    logger.info("metadata_resolved", **descriptor.summary())
    for name in descriptor.unresolved_fields():
        logger.warning("metadata_field_unresolved", field=name)
    return descriptor
