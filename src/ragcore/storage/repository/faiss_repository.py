from __future__ import annotations

import asyncio
from contextlib import suppress
import hashlib
from pathlib import Path
import threading
from typing import Any

import numpy as np

from ragcore.core.document import Document
from ragcore.core.errors import DimensionMismatchError, ZeroNormError
from ragcore.core.query import QueryCondition, SearchType, combine

from .base import BaseRepository
from .sqlite_repository import SqliteRepository
from .utils import lexical_score

try:
    import faiss  # type: ignore
except Exception:
    faiss = None


def faiss_id(doc_id: str) -> int:
    """Stable non-negative int64 id for a document id."""
    digest = hashlib.blake2b(doc_id.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") & 0x7FFFFFFFFFFFFFFF


def _l2_normalize_rows(x: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(x, axis=1, keepdims=True)
    return x / norms


class FaissRepository(BaseRepository):
    """
    FAISS-backed repository.

    - Vectors: one `IndexIDMap2(IndexFlatIP)` per collection over L2-normalised
      vectors, so inner product == cosine similarity. Persisted to
      `<root>/<collection>.index` after every write.
    - Documents and metadata: a SQLite side table (see SqliteRepository).

    FAISS has no metadata filtering, so a filtered search probes
    `limit * probe_factor` neighbours (at least `probe_min`), hydrates and
    filters them through the side table, and doubles the probe depth up to
    `probe_max` while too few hits survive.
    """

    backend = "faiss"

    def __init__(
        self,
        root: str,
        *,
        probe_factor: int = 20,
        probe_min: int = 200,
        probe_max: int = 5000,
        candidate_limit: int = 5000,
        **kwargs: Any,
    ):
        if faiss is None:
            raise RuntimeError("FaissRepository requires `faiss` to be installed (faiss-cpu).")
        super().__init__(**kwargs)
        self.root = Path(root)
        self.probe_factor = int(probe_factor)
        self.probe_min = int(probe_min)
        self.probe_max = int(probe_max)
        self.store = SqliteRepository(
            str(self.root / "documents.sqlite"),
            candidate_limit=candidate_limit,
            collection=self.collection,
            fields=self.fields,
        )
        self._lock = threading.RLock()
        self._index: Any = None
        self._loaded = False
        self._id_map: dict[int, str] | None = None

    # -------- index helpers ----------------------------------------------
    @property
    def index_path(self) -> Path:
        safe = self.store.table.removeprefix("documents_")
        return self.root / f"{safe}.index"

    def _load_sync(self) -> Any:
        with self._lock:
            if not self._loaded:
                path = self.index_path
                self._index = faiss.read_index(str(path)) if path.exists() else None
                self._loaded = True
            return self._index

    def _persist_sync(self) -> None:
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            if self._index is not None:
                faiss.write_index(self._index, str(self.index_path))

    def _expected_dimensions(self) -> int | None:
        index = self._load_sync()
        return None if index is None else int(index.d)

    # -------- lifecycle --------------------------------------------------
    async def _init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        await self.store.init_repository()
        await asyncio.to_thread(self._load_sync)

    async def _drop(self) -> None:
        def _drop_sync() -> None:
            with self._lock:
                self._index = None
                self._loaded = True
                self._id_map = {}
                with suppress(FileNotFoundError):
                    self.index_path.unlink()

        await asyncio.to_thread(_drop_sync)
        await self.store.drop_repository()

    # -------- writes -----------------------------------------------------
    async def _write_batch(self, documents: list[Document]) -> None:
        x = np.stack([np.asarray(d.embedding, dtype=np.float32) for d in documents], axis=0)
        norms = np.linalg.norm(x, axis=1)
        for doc, n in zip(documents, norms, strict=True):
            if n == 0.0:
                raise ZeroNormError(f"document {doc.id!r} embedding")
        x = _l2_normalize_rows(x).astype(np.float32, copy=False)
        ids = np.asarray([faiss_id(d.id) for d in documents], dtype=np.int64)

        # side table first: a vector without its document is never returned
        await self.store._write_batch(documents)

        def _add_sync() -> None:
            with self._lock:
                index = self._load_sync()
                if index is None:
                    index = faiss.IndexIDMap2(faiss.IndexFlatIP(int(x.shape[1])))
                    self._index = index
                # upsert: drop any previous vector for the same ids
                index.remove_ids(ids)
                index.add_with_ids(x, ids)
                self._persist_sync()
                if self._id_map is not None:
                    for d, h in zip(documents, ids.tolist(), strict=True):
                        self._id_map[h] = d.id

        await asyncio.to_thread(_add_sync)

    async def _delete_ids(self, ids: list[str]) -> None:
        def _remove_sync() -> None:
            with self._lock:
                index = self._load_sync()
                if index is None:
                    return
                hashes = [faiss_id(i) for i in ids]
                index.remove_ids(np.asarray(hashes, dtype=np.int64))
                self._persist_sync()
                if self._id_map is not None:
                    for h in hashes:
                        self._id_map.pop(h, None)

        await asyncio.to_thread(_remove_sync)
        await self.store._delete_ids(ids)

    async def _exists(self, id: str) -> bool:
        return await self.store._exists(id)

    # -------- search -----------------------------------------------------
    def _knn_sync(self, q: np.ndarray, k: int) -> tuple[list[int], list[float], int]:
        with self._lock:
            index = self._load_sync()
            if index is None or index.ntotal == 0:
                return [], [], 0
            if q.shape[1] != index.d:
                raise DimensionMismatchError(int(index.d), int(q.shape[1]), context="query embedding")
            k = min(k, int(index.ntotal))
            D, I = index.search(q, k)  # noqa: E741
            return I[0].tolist(), D[0].tolist(), int(index.ntotal)

    def _ranks_natively(self, condition: QueryCondition) -> bool:
        return condition.search_type is not SearchType.FULL_TEXT

    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        if condition.search_type is SearchType.FULL_TEXT:
            return await self.store._search_native(condition, None)

        q = np.asarray([query_embedding], dtype=np.float32)
        q_norm = float(np.linalg.norm(q))
        if q_norm == 0.0:
            raise ZeroNormError("query embedding")
        q = q / q_norm

        k = max(self.probe_min, condition.limit * self.probe_factor)
        while True:
            idxs, scores, ntotal = await asyncio.to_thread(self._knn_sync, q, k)
            if not idxs:
                return []
            ceiling = min(self.probe_max, ntotal)

            # hashed ids map back through the side table
            hits = [(i, s) for i, s in zip(idxs, scores, strict=True) if i >= 0]
            score_by_hash = dict(hits)
            docs = await self.store.select_candidates(
                condition, ids=await self._doc_ids(list(score_by_hash)), limit=len(hits)
            )
            if len(docs) >= condition.limit or k >= ceiling:
                break
            k = min(k * 2, ceiling)

        out = []
        for d in docs:
            vec_score = float(score_by_hash[faiss_id(d.id)])
            if condition.search_type is SearchType.HYBRID:
                vec_score = combine(
                    vec_score, lexical_score(condition.query, d.content), condition.hybrid
                )
            out.append(d.copy_with_score(vec_score))
        out.sort(key=lambda d: d.score, reverse=True)
        return out

    async def _doc_ids(self, hashes: list[int]) -> list[str]:
        """Map FAISS ids back to document ids; the map is rebuilt from the side table once."""
        if self._id_map is None:

            def _ids_sync(conn) -> list[str]:
                return [r[0] for r in conn.execute(f"SELECT id FROM {self.store.table}")]

            ids = await self.store._run("search", _ids_sync)
            with self._lock:
                if self._id_map is None:
                    self._id_map = {faiss_id(i): i for i in ids}
        with self._lock:
            return [self._id_map[h] for h in hashes if h in self._id_map]
