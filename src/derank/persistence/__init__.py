"""Persistence layer for reference index checkpoints and provenance tracking."""

from derank.persistence.duckdb_store import PipelineStore
from derank.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker"]
