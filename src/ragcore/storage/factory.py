from __future__ import annotations

from collections.abc import Sequence
import os

import httpx

from ragcore.config.config import AppSettings
from ragcore.contracts.services.embedding import EmbeddingClientProtocol
from ragcore.core.document import MetadataField
from ragcore.storage.repository import (
    BaseRepository,
    ElasticsearchRepository,
    FaissRepository,
    InMemoryRepository,
    QdrantRepository,
    SqliteRepository,
)


def build_repository(
    cfg: AppSettings,
    *,
    embedder: EmbeddingClientProtocol | None,
    fields: Sequence[MetadataField] = (),
    client: httpx.AsyncClient | None = None,
) -> BaseRepository:
    """
    Factory for the repository named by cfg.repository.backend.

      - "memory"        -> InMemoryRepository
      - "sqlite"        -> SqliteRepository at <root>/<sqlite.dir>/<sqlite.filename>
      - "faiss"         -> FaissRepository under <root>/<faiss.dir>
      - "elasticsearch" -> ElasticsearchRepository (REST)
      - "qdrant"        -> QdrantRepository (REST)

    `client` is handed to the REST adapters (tests pass one with a mock transport).
    """
    rcfg = cfg.repository
    root = os.path.abspath(cfg.root)
    common = {
        "embedder": embedder,
        "collection": rcfg.collection,
        "fields": fields,
        "batch_size": rcfg.batch_size,
        "strict_fields": rcfg.strict_fields,
    }

    if rcfg.backend == "memory":
        return InMemoryRepository(**common)

    if rcfg.backend == "sqlite":
        s = rcfg.sqlite
        db_path = os.path.join(root, s.dir, s.filename)
        return SqliteRepository(db_path, candidate_limit=s.candidate_limit, **common)

    if rcfg.backend == "faiss":
        f = rcfg.faiss
        return FaissRepository(
            os.path.join(root, f.dir),
            probe_factor=f.probe_factor,
            probe_min=f.probe_min,
            probe_max=f.probe_max,
            **common,
        )

    if rcfg.backend == "elasticsearch":
        e = rcfg.elasticsearch
        auth = None
        if e.username:
            password = e.password.get_secret_value() if e.password else ""
            auth = (e.username, password)
        return ElasticsearchRepository(
            e.url,
            vector_search=e.vector_search,
            client=client,
            timeout=e.timeout,
            auth=auth,
            **common,
        )

    if rcfg.backend == "qdrant":
        q = rcfg.qdrant
        return QdrantRepository(
            q.url,
            api_key=q.api_key.get_secret_value() if q.api_key else None,
            payload_prefix=q.payload_prefix,
            client=client,
            timeout=q.timeout,
            **common,
        )

    raise ValueError(f"Unknown repository backend: {rcfg.backend!r}")
