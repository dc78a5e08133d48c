from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


def _clamp01(x: float) -> float:
    return min(1.0, max(0.0, float(x)))


@dataclass(frozen=True)
class HybridSearchParams:
    """
    Weights for blending vector and full-text scores.

    `vector_weight + full_text_weight == 1.0` always holds: construction
    clamps the vector weight to [0, 1] and derives the other weight from it.
    """

    vector_weight: float = 0.5
    full_text_weight: float = 0.5

    def __post_init__(self) -> None:
        v = _clamp01(self.vector_weight)
        object.__setattr__(self, "vector_weight", v)
        object.__setattr__(self, "full_text_weight", 1.0 - v)

    @classmethod
    def of(cls, vector_weight: float) -> HybridSearchParams:
        return cls(vector_weight=vector_weight)

    @classmethod
    def default_params(cls) -> HybridSearchParams:
        return cls(0.5)


def combine(vector_score: float, full_text_score: float, params: HybridSearchParams) -> float:
    """Linear blend; both inputs must already be on a comparable scale."""
    return vector_score * params.vector_weight + full_text_score * params.full_text_weight


def normalize_scores(scores: Sequence[float]) -> list[float]:
    """
    Min-max normalise to [0, 1] so vector and lexical scores can be blended.

    An all-equal (non-empty) input maps to 1.0 for every entry.
    """
    if not scores:
        return []
    lo = min(scores)
    hi = max(scores)
    if hi == lo:
        return [1.0 for _ in scores]
    span = hi - lo
    return [(s - lo) / span for s in scores]
