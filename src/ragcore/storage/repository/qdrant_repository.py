from __future__ import annotations

import time
from typing import Any
import uuid

import numpy as np

from ragcore.core.document import Document
from ragcore.core.errors import BackendIOError
from ragcore.core.query import QueryCondition, SearchType, combine
from ragcore.storage.filters import QdrantFilterCompiler

from .http_base import HttpRepository
from .utils import created_at_ts, freshness_cutoff, lexical_score

# namespace for deriving Qdrant point ids from arbitrary document ids
POINT_ID_NAMESPACE = uuid.UUID("6f1c2a8e-3b7d-5e4f-9a0b-1c2d3e4f5a6b")


def point_id(doc_id: str) -> str:
    """Qdrant accepts only UUIDs or unsigned ints as point ids."""
    return str(uuid.uuid5(POINT_ID_NAMESPACE, doc_id))


class QdrantRepository(HttpRepository):
    """
    Qdrant repository over the REST API.

    Points carry the payload `{doc_id, content, url, metadata, created_at_ts}`;
    filters are compiled against `metadata.<field>`. Full-text search has no
    server-side equivalent here, so it scrolls the filtered points and ranks
    them lexically; hybrid search blends vector and lexical scores locally.
    """

    backend = "qdrant"

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        payload_prefix: str = "metadata.",
        scroll_page_size: int = 256,
        scroll_limit: int = 5000,
        hybrid_candidate_factor: int = 4,
        **kwargs: Any,
    ):
        headers = dict(kwargs.pop("headers", None) or {})
        if api_key:
            headers["api-key"] = api_key
        super().__init__(url, headers=headers, **kwargs)
        self.compiler = QdrantFilterCompiler(key_prefix=payload_prefix)
        self.scroll_page_size = int(scroll_page_size)
        self.scroll_limit = int(scroll_limit)
        self.hybrid_candidate_factor = int(hybrid_candidate_factor)

    @property
    def _base(self) -> str:
        return f"/collections/{self.collection}"

    # -------- lifecycle --------------------------------------------------
    async def _init(self) -> None:
        r = await self._request("GET", self._base, operation="init", allow=(404,))
        if r.status_code != 404:
            return
        dims = int(self._require_embedder().dimensions)
        await self._request(
            "PUT",
            self._base,
            operation="init",
            json={"vectors": {"size": dims, "distance": "Cosine"}},
        )

    async def _drop(self) -> None:
        await self._request("DELETE", self._base, operation="drop", allow=(404,))

    # -------- writes -----------------------------------------------------
    def to_point(self, doc: Document, now: float | None = None) -> dict[str, Any]:
        return {
            "id": point_id(doc.id),
            "vector": [float(x) for x in doc.embedding],
            "payload": {
                "doc_id": doc.id,
                "content": doc.content,
                "url": doc.url,
                "metadata": doc.metadata,
                "created_at_ts": created_at_ts(doc.metadata, time.time() if now is None else now),
            },
        }

    async def _write_batch(self, documents: list[Document]) -> None:
        now = time.time()
        await self._request(
            "PUT",
            f"{self._base}/points",
            operation="save",
            params={"wait": "true"},
            json={"points": [self.to_point(d, now) for d in documents]},
        )

    async def _delete_ids(self, ids: list[str]) -> None:
        await self._request(
            "POST",
            f"{self._base}/points/delete",
            operation="delete",
            params={"wait": "true"},
            json={"points": [point_id(i) for i in ids]},
        )

    async def _exists(self, id: str) -> bool:
        r = await self._request(
            "GET", f"{self._base}/points/{point_id(id)}", operation="exists", allow=(404,)
        )
        if r.status_code == 404:
            return False
        return bool(self._json(r, operation="exists").get("result"))

    # -------- search -----------------------------------------------------
    def build_filter(self, condition: QueryCondition) -> dict[str, Any] | None:
        flt = self.compiler.compile(condition.filter_expression) or None
        cutoff = freshness_cutoff(condition)
        if cutoff is None:
            return flt
        fresh = {"key": "created_at_ts", "range": {"gte": cutoff}}
        return {"must": [flt, fresh]} if flt else {"must": [fresh]}

    def point_to_document(self, point: dict[str, Any], score: float | None) -> Document:
        payload = point.get("payload") or {}
        return Document(
            content=payload.get("content") or "",
            metadata=dict(payload.get("metadata") or {}),
            id=payload.get("doc_id") or str(point.get("id")),
            url=payload.get("url"),
            score=score,
        )

    def _result(self, data: Any, operation: str) -> Any:
        if not isinstance(data, dict) or "result" not in data:
            raise BackendIOError(
                "response without `result`", backend=self.backend, operation=operation
            )
        return data["result"]

    async def _vector_search(
        self, condition: QueryCondition, query_embedding: np.ndarray, limit: int, threshold: bool
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {
            "vector": [float(x) for x in query_embedding],
            "limit": limit,
            "with_payload": True,
        }
        flt = self.build_filter(condition)
        if flt:
            body["filter"] = flt
        if threshold:
            body["score_threshold"] = condition.similarity_threshold
        r = await self._request(
            "POST", f"{self._base}/points/search", operation="search", json=body
        )
        return list(self._result(self._json(r, operation="search"), "search") or [])

    async def _scroll(self, condition: QueryCondition) -> list[dict[str, Any]]:
        points: list[dict[str, Any]] = []
        offset: Any = None
        flt = self.build_filter(condition)
        while len(points) < self.scroll_limit:
            body: dict[str, Any] = {"limit": self.scroll_page_size, "with_payload": True}
            if flt:
                body["filter"] = flt
            if offset is not None:
                body["offset"] = offset
            r = await self._request(
                "POST", f"{self._base}/points/scroll", operation="search", json=body
            )
            result = self._result(self._json(r, operation="search"), "search") or {}
            points.extend(result.get("points") or [])
            offset = result.get("next_page_offset")
            if offset is None:
                break
        return points[: self.scroll_limit]

    def _ranks_natively(self, condition: QueryCondition) -> bool:
        # scroll and hybrid results are scored here, in payload order
        return condition.search_type is SearchType.VECTOR

    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        if condition.search_type is SearchType.FULL_TEXT:
            out = []
            for p in await self._scroll(condition):
                doc = self.point_to_document(p, None)
                s = lexical_score(condition.query, doc.content)
                if s > 0.0:
                    doc.score = s
                    out.append(doc)
            return out

        if condition.search_type is SearchType.HYBRID:
            hits = await self._vector_search(
                condition,
                query_embedding,
                condition.limit * self.hybrid_candidate_factor,
                threshold=False,
            )
            out = []
            for h in hits:
                doc = self.point_to_document(h, None)
                doc.score = combine(
                    float(h.get("score") or 0.0),
                    lexical_score(condition.query, doc.content),
                    condition.hybrid,
                )
                out.append(doc)
            return out

        hits = await self._vector_search(
            condition,
            query_embedding,
            condition.limit,
            threshold=not condition.disable_refilter,
        )
        return [self.point_to_document(h, float(h.get("score") or 0.0)) for h in hits]
