from .base import BaseRepository
from .elasticsearch_repository import ElasticsearchRepository, VectorSearchType
from .faiss_repository import FaissRepository
from .http_base import HttpRepository
from .in_memory import InMemoryRepository
from .qdrant_repository import QdrantRepository
from .sqlite_repository import SqliteRepository

__all__ = [
    "BaseRepository",
    "ElasticsearchRepository",
    "FaissRepository",
    "HttpRepository",
    "InMemoryRepository",
    "QdrantRepository",
    "SqliteRepository",
    "VectorSearchType",
]
