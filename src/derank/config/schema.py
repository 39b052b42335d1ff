"""Pydantic models for pipeline configuration."""

import hashlib
import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class DetectionConfig(BaseModel):
    """Tuning for identifier column detection."""

    sample_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of rows sampled for identifier matching",
    )
    match_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Match ratio accepted by the base-namespace fast path",
    )
    strip_version_suffix: bool = Field(
        default=True,
        description="Strip accession version suffixes (ENSG000001.5 -> ENSG000001)",
    )
    organism_match_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum match ratio for an organism to be selected",
    )
    seed: int | None = Field(
        default=None,
        description="Random seed for row sampling (None = non-deterministic)",
    )


class ColumnAliases(BaseModel):
    """Candidate column names for statistic columns, in priority order."""

    base_mean: list[str] = Field(
        default_factory=lambda: ["baseMean", "aveexpr"],
        description="Aliases for the mean expression column",
    )
    stat: list[str] = Field(
        default_factory=lambda: ["stat", "t", "log2FC", "log2foldchange", "logfc"],
        description="Aliases for the ranking statistic column",
    )


class RankConfig(BaseModel):
    """Settings for rank vector construction."""

    max_genes: int = Field(
        default=10000,
        ge=1,
        description="Maximum genes kept when deduplicating by mean expression",
    )


class OrganismSource(BaseModel):
    """mygene source definition for one organism's reference index."""

    species: str = Field(
        ...,
        description="mygene species name or taxonomy ID (e.g. human, 9606)",
    )
    id_namespaces: dict[str, str] = Field(
        default_factory=lambda: {
            "Entrez": "entrezgene",
            "RefSeq": "refseq.rna",
            "Ensembl": "ensembl.gene",
            "Symbol": "symbol",
        },
        description="Namespace name -> mygene field; the first entry is the base namespace",
    )
    name_namespace: str = Field(
        default="Symbol",
        description="Namespace used for gene display names",
    )

    @field_validator("id_namespaces")
    @classmethod
    def require_namespaces(cls, v: dict[str, str]) -> dict[str, str]:
        """Reject an empty namespace mapping."""
        if not v:
            raise ValueError("id_namespaces must define at least the base namespace")
        return v


class AnnotationConfig(BaseModel):
    """Configuration for reference annotation construction."""

    batch_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Genes per mygene querymany batch",
    )
    gene_query: str = Field(
        default='type_of_gene:"protein-coding"',
        description="mygene query enumerating the base gene set",
    )
    organisms: dict[str, OrganismSource] = Field(
        default_factory=dict,
        description="Organisms with reference indexes, keyed by organism name",
    )


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory for pipeline outputs",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file holding reference indexes",
    )
    detection: DetectionConfig = Field(
        default_factory=DetectionConfig,
        description="Identifier detection settings",
    )
    aliases: ColumnAliases = Field(
        default_factory=ColumnAliases,
        description="Statistic column aliases",
    )
    ranks: RankConfig = Field(
        default_factory=RankConfig,
        description="Rank vector settings",
    )
    annotation: AnnotationConfig = Field(
        default_factory=AnnotationConfig,
        description="Reference annotation sources",
    )

    @field_validator("data_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Returns a deterministic hash based on all config values,
        useful for tracking config changes in provenance records.
        """
        config_dict = self.model_dump(mode="python")
        # Path objects serialize via default=str
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
