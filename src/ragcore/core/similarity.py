from __future__ import annotations

from collections.abc import Iterable, Sequence
import math
from typing import Any

import numpy as np

from .document import Document
from .errors import DimensionMismatchError, ZeroNormError
from .expression import evaluate
from .query import QueryCondition


def _vec(x: Any) -> np.ndarray:
    return np.asarray(x, dtype=np.float64).reshape(-1)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    dot(a, b) / (sqrt(|a|^2) * sqrt(|b|^2)).

    Not clamped, so float noise may put the result a hair outside [-1, 1].
    """
    va = _vec(a)
    vb = _vec(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError(va.shape[0], vb.shape[0], context="vector")

    norm_a = float(np.dot(va, va))
    norm_b = float(np.dot(vb, vb))
    if norm_a == 0.0:
        raise ZeroNormError("first vector")
    if norm_b == 0.0:
        raise ZeroNormError("second vector")
    return float(np.dot(va, vb)) / (math.sqrt(norm_a) * math.sqrt(norm_b))


def score(doc: Document, query_embedding: Sequence[float] | np.ndarray) -> Document:
    """Set `doc.score` to its cosine similarity with the query; returns the same doc."""
    if doc.embedding is None:
        raise ValueError(f"document {doc.id!r} has no embedding to score")
    doc.score = cosine_similarity(query_embedding, doc.embedding)
    return doc


def copy_and_score(doc: Document, query_embedding: Sequence[float] | np.ndarray) -> Document:
    if doc.embedding is None:
        raise ValueError(f"document {doc.id!r} has no embedding to score")
    return doc.copy_with_score(cosine_similarity(query_embedding, doc.embedding))


def score_many(
    docs: Sequence[Document], query_embedding: Sequence[float] | np.ndarray
) -> list[Document]:
    """
    Batched cosine scoring. Returns scored copies in input order.

    Same errors as `cosine_similarity`; a zero-norm document embedding raises
    rather than silently scoring 0.
    """
    if not docs:
        return []
    q = _vec(query_embedding)
    q_norm2 = float(np.dot(q, q))
    if q_norm2 == 0.0:
        raise ZeroNormError("query embedding")

    for d in docs:
        if d.embedding is None:
            raise ValueError(f"document {d.id!r} has no embedding to score")
        if d.embedding.shape[0] != q.shape[0]:
            raise DimensionMismatchError(q.shape[0], d.embedding.shape[0], context=f"document {d.id!r}")

    mat = np.vstack([d.embedding for d in docs]).astype(np.float64)
    norms2 = np.einsum("ij,ij->i", mat, mat)
    zero = np.where(norms2 == 0.0)[0]
    if zero.size:
        raise ZeroNormError(f"document {docs[int(zero[0])].id!r} embedding")

    sims = (mat @ q) / (np.sqrt(norms2) * math.sqrt(q_norm2))
    return [d.copy_with_score(float(s)) for d, s in zip(docs, sims, strict=True)]


def similarity_check(doc: Document, threshold: float) -> bool:
    return doc.score is not None and doc.score >= threshold


def refilter(
    candidates: Iterable[Document], limit: int, similarity_threshold: float
) -> list[Document]:
    """
    Keep docs scoring >= threshold, sort by score desc, truncate to `limit`.

    Python's sort is stable, so equal scores keep their input order.
    """
    kept = [d for d in candidates if similarity_check(d, similarity_threshold)]
    kept.sort(key=lambda d: d.score, reverse=True)
    return kept[: max(0, limit)]


def refilter_by_condition(
    candidates: Iterable[Document], condition: QueryCondition
) -> list[Document]:
    """
    Uniform local post-processing applied by every repository.

    With `disable_refilter` the backend's ordering is trusted and only the
    limit is enforced.
    """
    if condition.disable_refilter:
        return list(candidates)[: condition.limit]

    expr = condition.filter_expression
    if expr is not None:
        candidates = [d for d in candidates if evaluate(expr, d.metadata)]
    return refilter(candidates, condition.limit, condition.similarity_threshold)
