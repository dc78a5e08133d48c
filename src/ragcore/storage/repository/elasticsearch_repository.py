from __future__ import annotations

from enum import Enum
import json
import re
import time
from typing import Any
from urllib.parse import quote

import numpy as np

from ragcore.core.document import Document, FieldType
from ragcore.core.errors import BackendIOError
from ragcore.core.query import QueryCondition, SearchType
from ragcore.storage.filters import ElasticsearchFilterCompiler

from .http_base import HttpRepository
from .utils import created_at_ts, freshness_cutoff

# top-level source keys owned by the repository; metadata keys with these
# names are kept only under `metadata`
RESERVED_FIELDS = frozenset({"content", "url", "metadata", "embedding", "created_at_ts"})

_FIELD_TYPES = {
    FieldType.NUMERIC: "float",
    FieldType.TEXT: "text",
    FieldType.BOOLEAN: "boolean",
    FieldType.DATE: "date",
}


def index_name_for(collection: str) -> str:
    """Elasticsearch index names must be lowercase without most punctuation."""
    return re.sub(r"[^a-z0-9_\-]", "_", collection.lower())


class VectorSearchType(str, Enum):
    APPROXIMATE_KNN = "approximate_knn"  # knn query, fast; scores mapped back to cosine
    EXACT_KNN = "exact_knn"  # script_score cosineSimilarity, exact but slow


class ElasticsearchRepository(HttpRepository):
    """
    Elasticsearch repository over the REST API.

    Each document is indexed as `{content, url, metadata, embedding,
    created_at_ts}` plus every metadata key flattened to the top level so
    filters can address metadata fields directly. Declared MetadataFields
    get explicit mappings; other string fields map to `keyword`.
    """

    backend = "elasticsearch"

    def __init__(
        self,
        url: str,
        *,
        index_name: str | None = None,
        vector_search: VectorSearchType | str = VectorSearchType.APPROXIMATE_KNN,
        **kwargs: Any,
    ):
        super().__init__(url, **kwargs)
        self.index_name = index_name_for(index_name or self.collection)
        self.vector_search = VectorSearchType(vector_search)
        self.compiler = ElasticsearchFilterCompiler()

    # -------- mapping ----------------------------------------------------
    def build_mapping(self, dims: int) -> dict[str, Any]:
        properties: dict[str, Any] = {
            "content": {"type": "text"},
            "url": {"type": "keyword"},
            "metadata": {"type": "object", "enabled": False},
            "embedding": {
                "type": "dense_vector",
                "dims": dims,
                "index": True,
                "similarity": "cosine",
            },
            "created_at_ts": {"type": "double"},
        }
        for f in self.fields:
            if f.name in RESERVED_FIELDS:
                continue
            properties[f.name] = {"type": _FIELD_TYPES.get(f.field_type, "keyword")}
        return {
            "mappings": {
                "dynamic_templates": [
                    {
                        "strings_as_keywords": {
                            "match_mapping_type": "string",
                            "mapping": {"type": "keyword"},
                        }
                    }
                ],
                "properties": properties,
            }
        }

    def to_source(self, doc: Document, now: float | None = None) -> dict[str, Any]:
        source: dict[str, Any] = {
            "content": doc.content,
            "metadata": doc.metadata,
            "embedding": None if doc.embedding is None else doc.embedding.tolist(),
            "created_at_ts": created_at_ts(doc.metadata, time.time() if now is None else now),
        }
        if doc.url:
            source["url"] = doc.url
        for key, value in doc.metadata.items():
            if key not in RESERVED_FIELDS:
                source[key] = value
        return source

    # -------- lifecycle --------------------------------------------------
    async def _init(self) -> None:
        r = await self._request("HEAD", f"/{self.index_name}", operation="init", allow=(404,))
        if r.status_code != 404:
            return
        dims = int(self._require_embedder().dimensions)
        await self._request(
            "PUT", f"/{self.index_name}", operation="init", json=self.build_mapping(dims)
        )

    async def _drop(self) -> None:
        await self._request("DELETE", f"/{self.index_name}", operation="drop", allow=(404,))

    # -------- writes -----------------------------------------------------
    async def _write_batch(self, documents: list[Document]) -> None:
        now = time.time()
        lines: list[str] = []
        for doc in documents:
            lines.append(json.dumps({"index": {"_index": self.index_name, "_id": doc.id}}))
            lines.append(json.dumps(self.to_source(doc, now), ensure_ascii=False))
        body = "\n".join(lines) + "\n"

        r = await self._request(
            "POST",
            "/_bulk",
            operation="save",
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        data = self._json(r, operation="save")
        if data.get("errors"):
            raise BackendIOError(
                f"bulk index rejected: {self._first_bulk_error(data)}",
                backend=self.backend,
                operation="save",
            )
        await self._refresh()

    @staticmethod
    def _first_bulk_error(data: dict[str, Any]) -> str:
        for item in data.get("items") or []:
            for action in item.values():
                err = action.get("error")
                if err:
                    reason = err.get("reason") if isinstance(err, dict) else err
                    return f"{action.get('_id')}: {reason}"
        return "unknown error"

    async def _refresh(self) -> None:
        await self._request("POST", f"/{self.index_name}/_refresh", operation="refresh")

    def _doc_path(self, doc_id: str) -> str:
        # ids are caller-supplied; `/`, `?` and `#` must not reach the URL unescaped
        return f"/{self.index_name}/_doc/{quote(doc_id, safe='')}"

    async def _delete_ids(self, ids: list[str]) -> None:
        for doc_id in ids:
            await self._request(
                "DELETE", self._doc_path(doc_id), operation="delete", allow=(404,)
            )
        await self._refresh()

    async def _exists(self, id: str) -> bool:
        r = await self._request(
            "HEAD", self._doc_path(id), operation="exists", allow=(404,)
        )
        return r.status_code == 200

    # -------- search -----------------------------------------------------
    def build_search_body(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> dict[str, Any]:
        base_filter = self.compiler.compile(condition.filter_expression)
        cutoff = freshness_cutoff(condition)
        if cutoff is not None:
            fresh = {"range": {"created_at_ts": {"gte": cutoff}}}
            base_filter = {"bool": {"must": [base_filter, fresh]}}
        body: dict[str, Any] = {
            "size": condition.limit,
            "_source": {"excludes": ["embedding"]},
        }

        if condition.search_type is SearchType.FULL_TEXT and not condition.query.strip():
            # pure filter lookup: every match scores 1.0
            body["query"] = {"constant_score": {"filter": base_filter, "boost": 1.0}}
            return body

        if condition.similarity_threshold > 0:
            scale, offset = self._vector_score_scale(condition)
            body["min_score"] = condition.similarity_threshold * scale + offset

        vector = None if query_embedding is None else [float(x) for x in query_embedding]
        if condition.search_type is SearchType.FULL_TEXT:
            body["query"] = {
                "bool": {"must": [self._full_text_clause(condition)], "filter": base_filter}
            }
        elif condition.search_type is SearchType.HYBRID:
            body["query"] = {
                "bool": {
                    "should": [
                        self._full_text_clause(condition),
                        self._vector_clause(condition, vector, base_filter),
                    ],
                    "minimum_should_match": 1,
                    "filter": base_filter,
                }
            }
        elif self.vector_search is VectorSearchType.APPROXIMATE_KNN:
            body["query"] = {
                "bool": {
                    "must": [self._vector_clause(condition, vector, base_filter)],
                    "filter": base_filter,
                }
            }
        else:
            body["query"] = self._vector_clause(condition, vector, base_filter)
        return body

    def _vector_score_scale(self, condition: QueryCondition) -> tuple[float, float]:
        """
        `(scale, offset)` with `_score == cosine * scale + offset` for pure vector
        queries: knn reports `(1 + cos) / 2`, the exact script `cos + 1`. Other
        query types keep the raw `_score`.
        """
        if condition.search_type is not SearchType.VECTOR:
            return 1.0, 0.0
        if self.vector_search is VectorSearchType.EXACT_KNN:
            return 1.0, 1.0
        return 0.5, 0.5

    @staticmethod
    def _full_text_clause(condition: QueryCondition) -> dict[str, Any]:
        boost = 1.0
        if condition.search_type is SearchType.HYBRID and condition.hybrid.full_text_weight > 0:
            boost = condition.hybrid.full_text_weight
        return {"match": {"content": {"query": condition.query, "boost": boost}}}

    def _vector_clause(
        self, condition: QueryCondition, vector: list[float] | None, base_filter: dict[str, Any]
    ) -> dict[str, Any]:
        boost = 1.0
        if condition.search_type is SearchType.HYBRID and condition.hybrid.vector_weight > 0:
            boost = condition.hybrid.vector_weight

        if self.vector_search is VectorSearchType.APPROXIMATE_KNN:
            return {
                "knn": {
                    "field": "embedding",
                    "query_vector": vector,
                    "k": condition.limit,
                    "num_candidates": min(condition.limit * 10, 10000),
                    "filter": base_filter,
                    "boost": boost,
                }
            }
        return {
            "script_score": {
                "query": base_filter,
                "script": {
                    "source": "cosineSimilarity(params.query_vector, 'embedding') + 1.0",
                    "params": {"query_vector": vector},
                },
                "boost": boost,
            }
        }

    def hit_to_document(self, hit: dict[str, Any], condition: QueryCondition) -> Document:
        source = hit.get("_source") or {}
        scale, offset = self._vector_score_scale(condition)
        score = (float(hit.get("_score") or 0.0) - offset) / scale
        return Document(
            content=source.get("content") or "",
            metadata=dict(source.get("metadata") or {}),
            id=hit.get("_id"),
            url=source.get("url"),
            score=score,
        )

    def _ranks_natively(self, condition: QueryCondition) -> bool:
        return True

    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        body = self.build_search_body(condition, query_embedding)
        r = await self._request(
            "POST", f"/{self.index_name}/_search", operation="search", json=body
        )
        data = self._json(r, operation="search")
        try:
            hits = data["hits"]["hits"]
        except (KeyError, TypeError) as e:
            raise BackendIOError(
                "search response without hits.hits", backend=self.backend, operation="search"
            ) from e
        return [self.hit_to_document(h, condition) for h in hits]
