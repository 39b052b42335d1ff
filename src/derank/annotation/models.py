"""Data models for per-organism reference annotation indexes."""

from dataclasses import dataclass, field

import polars as pl

# Default identifier namespaces, base namespace first (name -> mygene field)
DEFAULT_ID_NAMESPACES = {
    "Entrez": "entrezgene",
    "RefSeq": "refseq.rna",
    "Ensembl": "ensembl.gene",
    "Symbol": "symbol",
}

DEFAULT_NAME_NAMESPACE = "Symbol"


@dataclass
class ReferenceAnnotationIndex:
    """Precomputed identifier reference for one organism.

    Attributes:
        organism: Organism name (e.g., human)
        base_namespace: Namespace the index is keyed by (e.g., Entrez)
        base_ids: Base gene identifiers, unique, in provider order
        gene_names: Base ID -> display name (None if the gene has no name)
        alternate_maps: Namespace -> {alternate ID -> base ID}, in namespace order

    An alternate ID maps to exactly one base ID. When a provider reports
    several genes for the same alternate ID, the last one written wins.
    """
    organism: str
    base_namespace: str
    base_ids: list[str]
    gene_names: dict[str, str | None] = field(default_factory=dict)
    alternate_maps: dict[str, dict[str, str]] = field(default_factory=dict)

    def __post_init__(self):
        """Drop repeated base IDs, keeping first occurrence."""
        self.base_ids = list(dict.fromkeys(self.base_ids))

    @property
    def namespaces(self) -> list[str]:
        """All namespaces, base namespace first."""
        return [self.base_namespace, *self.alternate_maps]

    def id_sets(self) -> dict[str, frozenset[str]]:
        """Reference ID collections per namespace for identifier detection.

        The base namespace comes first; identifier detection treats the first
        entry as the base for its fast path.
        """
        sets = {self.base_namespace: frozenset(self.base_ids)}
        for namespace, mapping in self.alternate_maps.items():
            sets[namespace] = frozenset(mapping)
        return sets

    def map_frame(self, namespace: str) -> pl.DataFrame:
        """Alternate -> base ID mapping of one namespace as a join-ready frame.

        Returns:
            DataFrame with Utf8 columns alt_id and gene

        Raises:
            ValueError: If namespace is not an alternate namespace of this index
        """
        if namespace not in self.alternate_maps:
            raise ValueError(
                f"Unknown identifier namespace '{namespace}' for organism "
                f"'{self.organism}' (available: {self.namespaces})"
            )
        mapping = self.alternate_maps[namespace]
        return pl.DataFrame(
            {"alt_id": list(mapping.keys()), "gene": list(mapping.values())},
            schema={"alt_id": pl.Utf8, "gene": pl.Utf8},
        )

    def gene_name(self, base_id: str) -> str | None:
        """Display name for a base ID, None if unknown."""
        return self.gene_names.get(base_id)
