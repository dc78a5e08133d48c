from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
import logging
import time

import numpy as np

from ragcore.contracts.services.embedding import EmbeddingClientProtocol
from ragcore.contracts.storage.repository import ProgressCallback
from ragcore.core.document import Document, MetadataField, check_batch_dimensions
from ragcore.core.errors import BackendIOError, DimensionMismatchError
from ragcore.core.query import QueryCondition, SearchType, combine
from ragcore.core.similarity import refilter_by_condition, score_many
from ragcore.services.logger.base import LogContext, with_context
from ragcore.storage.filters import validate_fields

from .utils import chunked, lexical_score

DEFAULT_BATCH_SIZE = 10


def _score_key(doc: Document) -> float:
    return doc.score if doc.score is not None else float("-inf")


class BaseRepository(ABC):
    """
    Shared save/search pipeline for every repository adapter.

    Subclasses implement the storage hooks (`_write_batch`, `_delete_ids`,
    `_exists`, `_search_native`, `_init`, `_drop`); batching, embedding,
    progress reporting, schema validation and the local refilter live here.
    """

    backend: str = "base"

    def __init__(
        self,
        *,
        embedder: EmbeddingClientProtocol | None = None,
        collection: str = "ragcore",
        fields: Sequence[MetadataField] = (),
        batch_size: int | None = None,
        strict_fields: bool = False,
    ):
        if batch_size is not None and batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        self.embedder = embedder
        self.collection = collection
        self.fields: list[MetadataField] = list(fields)
        self._batch_size = batch_size
        self.strict_fields = strict_fields
        self.logger = with_context(
            logging.getLogger(type(self).__module__),
            LogContext(repository=self.backend, collection=collection),
        )

    @property
    def batch_size(self) -> int:
        if self._batch_size:
            return self._batch_size
        embedder_size = getattr(self.embedder, "batch_size", None)
        return int(embedder_size) if embedder_size else DEFAULT_BATCH_SIZE

    # -------- storage hooks ----------------------------------------------
    @abstractmethod
    async def _write_batch(self, documents: list[Document]) -> None: ...

    @abstractmethod
    async def _delete_ids(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def _exists(self, id: str) -> bool: ...

    @abstractmethod
    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        """
        Backend query. Returns candidate documents with `score` set; the base
        class applies `refilter_by_condition` afterwards.
        """

    def _ranks_natively(self, condition: QueryCondition) -> bool:
        """True when `_search_native` already returns hits best-first."""
        return False

    async def _init(self) -> None:
        return None

    async def _drop(self) -> None:
        return None

    # -------- lifecycle --------------------------------------------------
    async def init_repository(self) -> None:
        await self._init()
        self.logger.debug("initialised %s collection %r", self.backend, self.collection)

    async def drop_repository(self) -> None:
        await self._drop()
        self.logger.debug("dropped %s collection %r", self.backend, self.collection)

    # -------- writes -----------------------------------------------------
    async def save(
        self,
        documents: Sequence[Document],
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        docs = list(documents or [])
        if not docs:
            if progress_callback is not None:
                progress_callback(0, 0)
            return

        for doc in docs:
            doc.ensure_id()

        batches = chunked(docs, self.batch_size)
        total = len(batches)
        for index, batch in enumerate(batches, start=1):
            t0 = time.perf_counter()
            try:
                await self._embed_missing(batch)
                self._check_dimensions(batch)
                await self._write_batch(batch)
            except Exception as e:
                self.logger.error(
                    "save failed on batch %d/%d (%d batches committed): %s",
                    index,
                    total,
                    index - 1,
                    e,
                )
                raise
            self.logger.debug(
                "saved batch %d/%d (%d docs) in %.1f ms",
                index,
                total,
                len(batch),
                (time.perf_counter() - t0) * 1000.0,
            )
            if progress_callback is not None:
                progress_callback(index, total)

    async def insert(
        self,
        documents: Sequence[Document],
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        await self.save(documents, progress_callback)

    async def delete_by_id(self, *ids: str) -> None:
        wanted = [i for i in ids if i]
        if not wanted:
            return
        await self._delete_ids(wanted)
        self.logger.debug("deleted %d ids", len(wanted))

    async def delete(self, *ids: str) -> None:
        await self.delete_by_id(*ids)

    async def exists_by_id(self, id: str) -> bool:
        if not id:
            return False
        try:
            return await self._exists(id)
        except BackendIOError as e:
            self.logger.warning("exists(%r) treated as missing: %s", id, e)
            return False

    async def exists(self, id: str) -> bool:
        return await self.exists_by_id(id)

    # -------- search -----------------------------------------------------
    async def search(self, condition: QueryCondition | str) -> list[Document]:
        if isinstance(condition, str):
            condition = QueryCondition(query=condition)

        if self.strict_fields:
            validate_fields(condition.filter_expression, self.fields)

        if not condition.query.strip():
            if condition.filter_expression is None:
                return []
            # pure filter lookup: nothing to embed or rank
            condition = condition.with_(search_type=SearchType.FULL_TEXT)

        t0 = time.perf_counter()
        query_embedding = None
        if condition.needs_embedding:
            query_embedding = await self._embed_query(condition.query)

        candidates = await self._search_native(condition, query_embedding)
        if not self._ranks_natively(condition):
            # locally scored candidates come back in storage order
            candidates = sorted(candidates, key=_score_key, reverse=True)
        results = refilter_by_condition(candidates, condition)
        self.logger.debug(
            "search type=%s candidates=%d results=%d in %.1f ms",
            condition.search_type.value,
            len(candidates),
            len(results),
            (time.perf_counter() - t0) * 1000.0,
        )
        return results

    # -------- helpers ----------------------------------------------------
    def _require_embedder(self) -> EmbeddingClientProtocol:
        if self.embedder is None:
            raise RuntimeError(
                f"{type(self).__name__} needs an embedding client for documents or "
                "queries without embeddings. Pass an EmbeddingClientProtocol instance."
            )
        return self.embedder

    async def _embed_query(self, text: str) -> np.ndarray:
        vec = await self._require_embedder().embed_one(text)
        return np.asarray(vec, dtype=np.float32).reshape(-1)

    async def _embed_missing(self, batch: list[Document]) -> None:
        missing = [d for d in batch if d.embedding is None]
        if not missing:
            return
        vectors = await self._require_embedder().embed([d.content for d in missing])
        if len(vectors) != len(missing):
            raise ValueError(
                f"embedding client returned {len(vectors)} vectors for {len(missing)} texts"
            )
        for doc, vec in zip(missing, vectors, strict=True):
            doc.embedding = np.asarray(vec, dtype=np.float32).reshape(-1)

    def _check_dimensions(self, batch: list[Document]) -> None:
        dim = check_batch_dimensions(batch)
        expected = self._expected_dimensions()
        if dim is not None and expected is not None and dim != expected:
            raise DimensionMismatchError(expected, dim, context=f"{self.backend} collection")

    def _expected_dimensions(self) -> int | None:
        """Dimension already fixed by stored data, when the adapter knows it."""
        return None

    def _score_locally(
        self,
        condition: QueryCondition,
        pool: list[Document],
        query_embedding: np.ndarray | None,
    ) -> list[Document]:
        """Score already-filtered candidates for adapters without native ranking."""
        if condition.search_type is SearchType.FULL_TEXT:
            out = []
            for d in pool:
                s = lexical_score(condition.query, d.content)
                if s > 0.0:
                    out.append(d.copy_with_score(s))
            return out

        scored = score_many([d for d in pool if d.embedding is not None], query_embedding)
        if condition.search_type is SearchType.HYBRID:
            params = condition.hybrid
            return [
                d.copy_with_score(
                    combine(d.score, lexical_score(condition.query, d.content), params)
                )
                for d in scored
            ]
        return scored
