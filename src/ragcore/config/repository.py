from typing import Literal

from pydantic import BaseModel, Field, SecretStr

# --- Per-backend settings ---
# Paths are interpreted relative to AppSettings.root in the factory.


class SqliteRepositorySettings(BaseModel):
    dir: str = "repository/sqlite"
    filename: str = "documents.sqlite"
    # rows pulled into numpy per search, newest first
    candidate_limit: int = 5000


class FaissRepositorySettings(BaseModel):
    dir: str = "repository/faiss"
    probe_factor: int = 20  # fetch limit * factor neighbours then post-filter
    probe_min: int = 200
    probe_max: int = 5000


class ElasticsearchSettings(BaseModel):
    url: str = "http://localhost:9200"
    username: str | None = None
    password: SecretStr | None = None
    vector_search: Literal["approximate_knn", "exact_knn"] = "approximate_knn"
    timeout: float = 30.0


class QdrantSettings(BaseModel):
    url: str = "http://localhost:6333"
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key; set via RAGCORE_REPOSITORY__QDRANT__API_KEY.",
    )
    payload_prefix: str = "metadata."
    timeout: float = 30.0


class RepositorySettings(BaseModel):
    """
    Which repository adapter build_repository() creates.

    backend:
      - "memory"        -> InMemoryRepository (tests/dev)
      - "sqlite"        -> SqliteRepository
      - "faiss"         -> FaissRepository (needs faiss-cpu)
      - "elasticsearch" -> ElasticsearchRepository
      - "qdrant"        -> QdrantRepository
    """

    backend: Literal["memory", "sqlite", "faiss", "elasticsearch", "qdrant"] = "memory"
    collection: str = "ragcore"
    # None => embedder.batch_size, else 10
    batch_size: int | None = Field(default=None, gt=0)
    strict_fields: bool = False

    sqlite: SqliteRepositorySettings = SqliteRepositorySettings()
    faiss: FaissRepositorySettings = FaissRepositorySettings()
    elasticsearch: ElasticsearchSettings = ElasticsearchSettings()
    qdrant: QdrantSettings = QdrantSettings()
