"""Canonical table normalization and rank vector extraction."""

from derank.ranks.extract import (
    MAX_RANKED_GENES,
    annotate_ranks,
    extract_ranks,
    get_ranks,
    ranks_to_dict,
)
from derank.ranks.normalize import normalize

__all__ = [
    "normalize",
    "extract_ranks",
    "get_ranks",
    "ranks_to_dict",
    "annotate_ranks",
    "MAX_RANKED_GENES",
]
