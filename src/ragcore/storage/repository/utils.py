from __future__ import annotations

import re
import time
from typing import Any

from ragcore.core.document import Document
from ragcore.core.query import QueryCondition

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    return _TOKEN.findall((text or "").lower())


def lexical_score(query: str, text: str) -> float:
    """
    Fraction of distinct query tokens that occur in `text`, in [0, 1].

    Exact token match only: no stemming, no fuzzy matching. An empty query
    scores every text 1.0 (pure filter lookups).
    """
    q_tokens = set(tokenize(query))
    if not q_tokens:
        return 1.0
    doc_tokens = set(tokenize(text))
    return len(q_tokens & doc_tokens) / len(q_tokens)


def created_at_ts(metadata: dict[str, Any], default: float | None = None) -> float | None:
    """Timestamp used for freshness filters: metadata `created_at_ts`, else `default`."""
    raw = metadata.get("created_at_ts")
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def freshness_cutoff(condition: QueryCondition, now: float | None = None) -> float | None:
    """Lower bound on `created_at_ts` implied by `condition.freshness`, or None."""
    if condition.freshness is None:
        return None
    window = condition.freshness.window_seconds()
    if window is None:
        return None
    return (time.time() if now is None else now) - window


def is_fresh(ts: float | None, cutoff: float | None) -> bool:
    # a time bound with no timestamp is a non-match
    if cutoff is None:
        return True
    return ts is not None and ts >= cutoff


def chunked(docs: list[Document], size: int) -> list[list[Document]]:
    return [docs[i : i + size] for i in range(0, len(docs), size)]
