from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..expression import Expression, parse
from .hybrid import HybridSearchParams

DEFAULT_LIMIT = 4
DEFAULT_SIMILARITY_THRESHOLD = 0.4


class Freshness(str, Enum):
    """Advisory recency window; backends without a timestamp ignore it."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    UNLIMITED = "unlimited"

    def window_seconds(self) -> float | None:
        return _FRESHNESS_SECONDS.get(self)


_FRESHNESS_SECONDS = {
    Freshness.DAY: 86400.0,
    Freshness.WEEK: 7 * 86400.0,
    Freshness.MONTH: 30 * 86400.0,
    Freshness.YEAR: 365 * 86400.0,
}


class SearchType(str, Enum):
    VECTOR = "vector"
    FULL_TEXT = "full_text"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class QueryCondition:
    """
    Canonical description of a search request, shared by every repository.

    - query: search text; may be empty for filter-only lookups
    - limit: max results (> 0)
    - similarity_threshold: minimum score kept by the local refilter; compared
      with a plain `>=` against whatever score the adapter produced
    - freshness: advisory recency hint
    - filter_expression: Expression, or filter text parsed on construction
    - disable_refilter: trust backend ordering/limiting; only `limit` is enforced locally
    - search_type / hybrid_search_params: params default to 0.5/0.5 for HYBRID
    """

    query: str = ""
    limit: int = DEFAULT_LIMIT
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    freshness: Freshness | None = None
    filter_expression: Expression | str | None = None
    disable_refilter: bool = False
    search_type: SearchType = SearchType.VECTOR
    hybrid_search_params: HybridSearchParams | None = None
    extras: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.query is None:
            object.__setattr__(self, "query", "")
        if int(self.limit) <= 0:
            raise ValueError(f"limit must be > 0, got {self.limit}")
        if isinstance(self.filter_expression, str):
            text = self.filter_expression.strip()
            object.__setattr__(self, "filter_expression", parse(text) if text else None)
        if self.search_type is None:
            object.__setattr__(self, "search_type", SearchType.VECTOR)
        else:
            object.__setattr__(self, "search_type", SearchType(self.search_type))
        if self.freshness is not None:
            object.__setattr__(self, "freshness", Freshness(self.freshness))
        if self.search_type is SearchType.HYBRID and self.hybrid_search_params is None:
            object.__setattr__(self, "hybrid_search_params", HybridSearchParams.default_params())

    @property
    def needs_embedding(self) -> bool:
        return self.search_type is not SearchType.FULL_TEXT

    @property
    def hybrid(self) -> HybridSearchParams:
        return self.hybrid_search_params or HybridSearchParams.default_params()

    def with_(self, **changes: Any) -> QueryCondition:
        """Copy with some fields replaced (the original is never mutated)."""
        return replace(self, **changes)
