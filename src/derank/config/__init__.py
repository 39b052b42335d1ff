from .loader import load_config, load_config_with_overrides
from .schema import (
    AnnotationConfig,
    ColumnAliases,
    DetectionConfig,
    OrganismSource,
    PipelineConfig,
    RankConfig,
)

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "PipelineConfig",
    "DetectionConfig",
    "ColumnAliases",
    "RankConfig",
    "AnnotationConfig",
    "OrganismSource",
]
