from __future__ import annotations

from collections.abc import Sequence
import threading
import time

import numpy as np

from ragcore.core.document import Document, MetadataField
from ragcore.core.expression import evaluate
from ragcore.core.query import QueryCondition

from .base import BaseRepository
from .utils import created_at_ts, freshness_cutoff, is_fresh


class InMemoryRepository(BaseRepository):
    """
    Process-local repository, mostly for tests and small corpora.

    Documents live in a dict guarded by an RLock; every search is a full scan
    (filter by `evaluate`, cosine via `score_many`).
    """

    backend = "memory"

    def __init__(self, *, fields: Sequence[MetadataField] = (), **kwargs):
        super().__init__(fields=fields, **kwargs)
        self._lock = threading.RLock()
        self._docs: dict[str, Document] = {}
        self._saved_at: dict[str, float] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._docs)

    async def _write_batch(self, documents: list[Document]) -> None:
        now = time.time()
        with self._lock:
            for doc in documents:
                self._docs[doc.id] = Document(
                    content=doc.content,
                    metadata=dict(doc.metadata),
                    id=doc.id,
                    embedding=doc.embedding,
                    url=doc.url,
                )
                self._saved_at[doc.id] = now

    async def _delete_ids(self, ids: list[str]) -> None:
        with self._lock:
            for i in ids:
                self._docs.pop(i, None)
                self._saved_at.pop(i, None)

    async def _exists(self, id: str) -> bool:
        with self._lock:
            return id in self._docs

    async def _drop(self) -> None:
        with self._lock:
            self._docs.clear()
            self._saved_at.clear()

    def _expected_dimensions(self) -> int | None:
        with self._lock:
            for doc in self._docs.values():
                if doc.embedding is not None:
                    return doc.dimensions
        return None

    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        cutoff = freshness_cutoff(condition)
        with self._lock:
            pool = [
                d
                for d in self._docs.values()
                if evaluate(condition.filter_expression, d.metadata)
                and is_fresh(created_at_ts(d.metadata, self._saved_at.get(d.id)), cutoff)
            ]

        return self._score_locally(condition, pool, query_embedding)
