from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import uuid

import numpy as np

from .errors import DimensionMismatchError


def _as_vector(value: Any) -> np.ndarray | None:
    if value is None:
        return None
    vec = np.asarray(value, dtype=np.float32)
    if vec.ndim != 1:
        vec = vec.reshape(-1)
    return vec


@dataclass(eq=False)
class Document:
    """
    A retrievable unit of content.

    Documents are created by callers (or loaders) and mutated in place only to
    attach `embedding` and `score`. `id` may be empty until the document is
    saved; repositories call `ensure_id()` before writing.
    """

    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    embedding: np.ndarray | None = None
    score: float | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        self.embedding = _as_vector(self.embedding)
        if self.metadata is None:
            self.metadata = {}

    def ensure_id(self) -> str:
        if not self.id:
            self.id = uuid.uuid4().hex
        return self.id

    @property
    def dimensions(self) -> int | None:
        return None if self.embedding is None else int(self.embedding.shape[0])

    def copy_with_score(self, score: float) -> Document:
        return Document(
            content=self.content,
            metadata=dict(self.metadata),
            id=self.id,
            embedding=self.embedding,
            score=score,
            url=self.url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Boundary wire shape shared with storage adapters."""
        return {
            "id": self.id,
            "content": self.content,
            "metadata": dict(self.metadata),
            "embedding": None if self.embedding is None else self.embedding.tolist(),
            "score": self.score,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        return cls(
            content=data.get("content") or "",
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id"),
            embedding=data.get("embedding"),
            score=data.get("score"),
            url=data.get("url"),
        )


class FieldType(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"
    TAG = "tag"
    KEYWORD = "keyword"
    BOOLEAN = "boolean"
    DATE = "date"


@dataclass(frozen=True)
class MetadataField:
    """Indexable metadata field, declared once per collection."""

    name: str
    field_type: FieldType = FieldType.KEYWORD

    @classmethod
    def numeric(cls, name: str) -> MetadataField:
        return cls(name, FieldType.NUMERIC)

    @classmethod
    def text(cls, name: str) -> MetadataField:
        return cls(name, FieldType.TEXT)

    @classmethod
    def tag(cls, name: str) -> MetadataField:
        return cls(name, FieldType.TAG)

    @classmethod
    def keyword(cls, name: str) -> MetadataField:
        return cls(name, FieldType.KEYWORD)

    @classmethod
    def boolean(cls, name: str) -> MetadataField:
        return cls(name, FieldType.BOOLEAN)

    @classmethod
    def date(cls, name: str) -> MetadataField:
        return cls(name, FieldType.DATE)


def check_batch_dimensions(documents: Iterable[Document]) -> int | None:
    """
    Ensure every embedded document in a batch has the same length.

    Returns the shared dimension, or None when nothing is embedded yet.
    """
    expected: int | None = None
    for doc in documents:
        dim = doc.dimensions
        if dim is None:
            continue
        if expected is None:
            expected = dim
        elif dim != expected:
            raise DimensionMismatchError(expected, dim, context=f"document {doc.id!r}")
    return expected
