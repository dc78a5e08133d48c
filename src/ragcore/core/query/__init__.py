from .condition import (
    DEFAULT_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    Freshness,
    QueryCondition,
    SearchType,
)
from .hybrid import HybridSearchParams, combine, normalize_scores

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_SIMILARITY_THRESHOLD",
    "Freshness",
    "HybridSearchParams",
    "QueryCondition",
    "SearchType",
    "combine",
    "normalize_scores",
]
