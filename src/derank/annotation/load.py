"""Save and load reference annotation indexes in DuckDB."""

import re
from typing import Optional

import polars as pl
import structlog

from derank.annotation.models import ReferenceAnnotationIndex
from derank.persistence import PipelineStore

logger = structlog.get_logger()


def index_table_names(organism: str) -> dict[str, str]:
    """DuckDB table names holding one organism's reference index."""
    key = re.sub(r"\W", "_", organism.lower())
    return {
        "meta": f"ref_{key}_meta",
        "genes": f"ref_{key}_genes",
        "maps": f"ref_{key}_maps",
    }


def save_reference_index(store: PipelineStore, index: ReferenceAnnotationIndex) -> None:
    """Save a reference index to DuckDB (replaces an existing copy).

    Args:
        store: PipelineStore instance for DuckDB persistence
        index: ReferenceAnnotationIndex to persist
    """
    tables = index_table_names(index.organism)

    meta = pl.DataFrame(
        {
            "position": list(range(len(index.namespaces))),
            "organism": [index.organism] * len(index.namespaces),
            "namespace": index.namespaces,
            "is_base": [i == 0 for i in range(len(index.namespaces))],
        },
        schema={
            "position": pl.Int64,
            "organism": pl.Utf8,
            "namespace": pl.Utf8,
            "is_base": pl.Boolean,
        },
    )
    genes = pl.DataFrame(
        {
            "position": list(range(len(index.base_ids))),
            "gene": index.base_ids,
            "symbol": [index.gene_name(gene) for gene in index.base_ids],
        },
        schema={"position": pl.Int64, "gene": pl.Utf8, "symbol": pl.Utf8},
    )

    namespaces: list[str] = []
    alt_ids: list[str] = []
    mapped_genes: list[str] = []
    for namespace, mapping in index.alternate_maps.items():
        namespaces.extend([namespace] * len(mapping))
        alt_ids.extend(mapping.keys())
        mapped_genes.extend(mapping.values())
    maps = pl.DataFrame(
        {
            "position": list(range(len(alt_ids))),
            "namespace": namespaces,
            "alt_id": alt_ids,
            "gene": mapped_genes,
        },
        schema={
            "position": pl.Int64,
            "namespace": pl.Utf8,
            "alt_id": pl.Utf8,
            "gene": pl.Utf8,
        },
    )

    store.save_dataframe(
        genes,
        tables["genes"],
        description=f"{index.organism} {index.base_namespace} base genes with display names",
    )
    store.save_dataframe(
        maps,
        tables["maps"],
        description=f"{index.organism} alternate ID -> {index.base_namespace} mappings",
    )
    # Meta last: its checkpoint marks the index as complete
    store.save_dataframe(
        meta,
        tables["meta"],
        description=f"{index.organism} reference index namespaces",
    )
    logger.info(
        "reference_index_saved",
        organism=index.organism,
        genes=genes.height,
        mappings=maps.height,
    )


def has_reference_index(store: PipelineStore, organism: str) -> bool:
    """Check whether a complete index for organism is stored."""
    return store.has_checkpoint(index_table_names(organism)["meta"])


def load_reference_index(
    store: PipelineStore,
    organism: str,
) -> Optional[ReferenceAnnotationIndex]:
    """Load a reference index from DuckDB.

    Args:
        store: PipelineStore instance
        organism: Organism name the index was saved under

    Returns:
        ReferenceAnnotationIndex, or None if no complete index is stored
    """
    if not has_reference_index(store, organism):
        return None

    tables = index_table_names(organism)
    meta = store.load_dataframe(tables["meta"])
    genes = store.load_dataframe(tables["genes"])
    maps = store.load_dataframe(tables["maps"])
    if meta is None or genes is None or maps is None:
        return None

    meta = meta.sort("position")
    genes = genes.sort("position")
    maps = maps.sort("position")

    base_namespace = meta.filter(pl.col("is_base"))["namespace"][0]
    alternate_maps: dict[str, dict[str, str]] = {
        namespace: {}
        for namespace in meta.filter(~pl.col("is_base"))["namespace"].to_list()
    }
    for namespace, alt_id, gene in maps.select(["namespace", "alt_id", "gene"]).iter_rows():
        alternate_maps.setdefault(namespace, {})[alt_id] = gene

    index = ReferenceAnnotationIndex(
        organism=meta["organism"][0],
        base_namespace=base_namespace,
        base_ids=genes["gene"].to_list(),
        gene_names=dict(zip(genes["gene"].to_list(), genes["symbol"].to_list())),
        alternate_maps=alternate_maps,
    )
    logger.info(
        "reference_index_loaded",
        organism=organism,
        genes=len(index.base_ids),
        namespaces=index.namespaces,
    )
    return index
