"""Reference annotation module.

Provides per-organism reference indexes (base IDs, display names, alternate
ID maps), construction from a mygene-backed provider, validation gates, and
DuckDB persistence.
"""

from derank.annotation.builder import build_reference_index, collapse_mapping
from derank.annotation.load import (
    has_reference_index,
    load_reference_index,
    save_reference_index,
)
from derank.annotation.models import (
    DEFAULT_ID_NAMESPACES,
    DEFAULT_NAME_NAMESPACE,
    ReferenceAnnotationIndex,
)
from derank.annotation.provider import AnnotationProvider, MyGeneAnnotationProvider
from derank.annotation.validator import (
    ReferenceIndexValidator,
    ValidationResult,
    namespace_coverage,
)

__all__ = [
    "ReferenceAnnotationIndex",
    "DEFAULT_ID_NAMESPACES",
    "DEFAULT_NAME_NAMESPACE",
    "AnnotationProvider",
    "MyGeneAnnotationProvider",
    "build_reference_index",
    "collapse_mapping",
    "ReferenceIndexValidator",
    "ValidationResult",
    "namespace_coverage",
    "save_reference_index",
    "load_reference_index",
    "has_reference_index",
]
