"""Build reference annotation indexes from an annotation provider."""

from typing import Sequence

import polars as pl
import structlog

from derank.annotation.identifiers import strip_version_suffix_expr
from derank.annotation.models import DEFAULT_NAME_NAMESPACE, ReferenceAnnotationIndex
from derank.annotation.provider import AnnotationProvider, unique_in_order

logger = structlog.get_logger()


def collapse_mapping(
    table: pl.DataFrame,
    base_namespace: str,
    namespace: str,
    strip_version_suffix: bool = True,
) -> tuple[dict[str, str], int]:
    """Collapse a base -> alternate selection into an alternate -> base map.

    Rows with a missing value on either side are dropped. If an alternate ID
    is reported for several base genes, the last row wins. Alternate IDs are
    stored without accession versions (NM_000546.6 -> NM_000546) unless
    strip_version_suffix is False.

    Args:
        table: Provider selection with columns [base_namespace, namespace]
        base_namespace: Name of the base namespace column
        namespace: Name of the alternate namespace column
        strip_version_suffix: Strip accession versions from alternate IDs

    Returns:
        Tuple of (alternate -> base mapping, number of overwritten collisions)
    """
    complete = table.select([base_namespace, namespace]).drop_nulls()
    if strip_version_suffix:
        complete = complete.with_columns(
            strip_version_suffix_expr(pl.col(namespace).cast(pl.Utf8))
        )

    mapping: dict[str, str] = {}
    collisions = 0
    for gene, alt_id in complete.iter_rows():
        previous = mapping.get(alt_id)
        if previous is not None and previous != gene:
            collisions += 1
        mapping[alt_id] = gene
    return mapping, collisions


def build_reference_index(
    provider: AnnotationProvider,
    organism: str,
    id_namespaces: Sequence[str],
    name_namespace: str = DEFAULT_NAME_NAMESPACE,
    strip_version_suffix: bool = True,
) -> ReferenceAnnotationIndex:
    """Build the reference index of one organism.

    The first namespace is the base: its keys become the index's base IDs and
    every other namespace is mapped onto them.

    Args:
        provider: Annotation provider for the organism
        organism: Organism name recorded in the index
        id_namespaces: Namespace names, base namespace first
        name_namespace: Namespace providing display names (default: Symbol)
        strip_version_suffix: Store alternate IDs without accession versions

    Returns:
        ReferenceAnnotationIndex for the organism

    Raises:
        ValueError: If no namespace is given
    """
    if not id_namespaces:
        raise ValueError("At least one identifier namespace (the base) is required")

    base_namespace, *alternates = id_namespaces
    logger.info(
        "reference_index_build_start",
        organism=organism,
        base_namespace=base_namespace,
        alternates=alternates,
    )

    base_ids = unique_in_order(provider.keys(base_namespace))
    logger.info("reference_index_base_ids", organism=organism, count=len(base_ids))

    if name_namespace == base_namespace:
        gene_names: dict[str, str | None] = {gene: gene for gene in base_ids}
    else:
        gene_names = provider.map_names(base_ids, base_namespace, name_namespace)

    alternate_maps: dict[str, dict[str, str]] = {}
    for namespace in alternates:
        table = provider.select(base_ids, base_namespace, namespace)
        mapping, collisions = collapse_mapping(
            table, base_namespace, namespace, strip_version_suffix
        )
        alternate_maps[namespace] = mapping

        if collisions:
            logger.warning(
                "reference_index_namespace_collisions",
                organism=organism,
                namespace=namespace,
                collisions=collisions,
            )
        logger.info(
            "reference_index_namespace_mapped",
            organism=organism,
            namespace=namespace,
            alternate_ids=len(mapping),
        )

    index = ReferenceAnnotationIndex(
        organism=organism,
        base_namespace=base_namespace,
        base_ids=base_ids,
        gene_names=gene_names,
        alternate_maps=alternate_maps,
    )
    logger.info(
        "reference_index_build_complete",
        organism=organism,
        namespaces=index.namespaces,
    )
    return index
