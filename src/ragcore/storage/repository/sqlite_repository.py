from __future__ import annotations

import asyncio
from collections.abc import Callable
import json
from pathlib import Path
import re
import sqlite3
import threading
import time
from typing import Any, TypeVar

import numpy as np

from ragcore.core.document import Document
from ragcore.core.errors import BackendIOError
from ragcore.core.query import QueryCondition
from ragcore.storage.filters import SqliteFilterCompiler

from .base import BaseRepository
from .utils import created_at_ts, freshness_cutoff

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id            TEXT PRIMARY KEY,
    content       TEXT,
    url           TEXT,
    meta_json     TEXT,
    vec           BLOB,    -- np.float32 array bytes
    norm          REAL,
    created_at_ts REAL
);

CREATE INDEX IF NOT EXISTS idx_{table}_time
    ON {table}(created_at_ts DESC);
"""


def table_name(collection: str) -> str:
    safe = re.sub(r"[^0-9A-Za-z_]", "_", collection)
    return f"documents_{safe}"


class SqliteRepository(BaseRepository):
    """
    SQLite-backed repository, one table per collection.

    Filters are pushed down as a WHERE clause over `meta_json`; cosine
    similarity is computed with numpy over the SQL-filtered candidates,
    newest first and capped at `candidate_limit` rows.
    """

    backend = "sqlite"

    def __init__(self, db_path: str, *, candidate_limit: int = 5000, **kwargs):
        super().__init__(**kwargs)
        self.db_path = str(db_path)
        self.table = table_name(self.collection)
        self.candidate_limit = int(candidate_limit)
        self.compiler = SqliteFilterCompiler(column="meta_json")
        self._schema_lock = threading.Lock()
        self._schema_ready = False

    # -------- connection helpers -----------------------------------------
    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _ensure_schema_sync(self, conn: sqlite3.Connection) -> None:
        with self._schema_lock:
            if self._schema_ready:
                return
            cur = conn.cursor()
            for stmt in SCHEMA.format(table=self.table).strip().split(";\n\n"):
                s = stmt.strip()
                if s:
                    cur.execute(s)
            conn.commit()
            self._schema_ready = True

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        def _sync() -> T:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = self._connect()
            except sqlite3.Error as e:
                raise BackendIOError(str(e), backend=self.backend, operation=operation) from e
            try:
                self._ensure_schema_sync(conn)
                return fn(conn)
            except sqlite3.Error as e:
                raise BackendIOError(str(e), backend=self.backend, operation=operation) from e
            finally:
                conn.close()

        return await asyncio.to_thread(_sync)

    # -------- lifecycle --------------------------------------------------
    async def _init(self) -> None:
        await self._run("init", lambda conn: None)

    async def _drop(self) -> None:
        def _drop_sync(conn: sqlite3.Connection) -> None:
            cur = conn.cursor()
            cur.execute(f"DROP INDEX IF EXISTS idx_{self.table}_time")
            cur.execute(f"DROP TABLE IF EXISTS {self.table}")
            conn.commit()
            with self._schema_lock:
                self._schema_ready = False

        await self._run("drop", _drop_sync)

    # -------- writes -----------------------------------------------------
    async def _write_batch(self, documents: list[Document]) -> None:
        now = time.time()
        rows = []
        for doc in documents:
            v = np.asarray(doc.embedding, dtype=np.float32)
            rows.append(
                (
                    doc.id,
                    doc.content,
                    doc.url,
                    json.dumps(doc.metadata, ensure_ascii=False),
                    v.tobytes(),
                    float(np.linalg.norm(v)),
                    created_at_ts(doc.metadata, now),
                )
            )

        def _write_sync(conn: sqlite3.Connection) -> None:
            conn.executemany(
                f"""
                REPLACE INTO {self.table}(id, content, url, meta_json, vec, norm, created_at_ts)
                VALUES (?,?,?,?,?,?,?)
                """,
                rows,
            )
            conn.commit()

        await self._run("save", _write_sync)

    async def _delete_ids(self, ids: list[str]) -> None:
        def _delete_sync(conn: sqlite3.Connection) -> None:
            placeholders = ",".join("?" for _ in ids)
            conn.execute(f"DELETE FROM {self.table} WHERE id IN ({placeholders})", ids)
            conn.commit()

        await self._run("delete", _delete_sync)

    async def _exists(self, id: str) -> bool:
        def _exists_sync(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(f"SELECT 1 FROM {self.table} WHERE id = ? LIMIT 1", (id,))
            return cur.fetchone() is not None

        return await self._run("exists", _exists_sync)

    # -------- search -----------------------------------------------------
    async def select_candidates(
        self,
        condition: QueryCondition,
        *,
        ids: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """
        Rows passing the compiled filter (and freshness window), newest first.

        `ids` restricts the lookup to known documents; callers that rank
        elsewhere (the FAISS adapter) use it to hydrate and filter their hits.
        """
        sql_filter = self.compiler.compile(condition.filter_expression)
        sql = (
            f"SELECT id, content, url, meta_json, vec FROM {self.table} "
            f"WHERE {sql_filter.where}"
        )
        params: list[Any] = list(sql_filter.params)

        if ids is not None:
            if not ids:
                return []
            sql += f" AND id IN ({','.join('?' for _ in ids)})"
            params.extend(ids)

        cutoff = freshness_cutoff(condition)
        if cutoff is not None:
            sql += " AND created_at_ts >= ?"
            params.append(cutoff)

        # Bias toward recent when the candidate cap bites
        sql += " ORDER BY created_at_ts DESC, id LIMIT ?"
        params.append(self.candidate_limit if limit is None else limit)

        def _select_sync(conn: sqlite3.Connection) -> list[tuple]:
            return conn.execute(sql, params).fetchall()

        rows = await self._run("search", _select_sync)
        return [
            Document(
                content=content or "",
                metadata=json.loads(meta_json) if meta_json else {},
                id=doc_id,
                embedding=np.frombuffer(vec, dtype=np.float32) if vec is not None else None,
                url=url,
            )
            for doc_id, content, url, meta_json, vec in rows
        ]

    async def _search_native(
        self, condition: QueryCondition, query_embedding: np.ndarray | None
    ) -> list[Document]:
        docs = await self.select_candidates(condition)
        return self._score_locally(condition, docs, query_embedding)
