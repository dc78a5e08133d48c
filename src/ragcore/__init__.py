__version__ = "0.1.0"

# Documents & errors
from .core.document import Document, FieldType, MetadataField
from .core.errors import (
    BackendIOError,
    DimensionMismatchError,
    FilterCompileError,
    ParseError,
    RagCoreError,
    SchemaValidationError,
    UnsupportedExpressionError,
    UnsupportedOperandError,
    ZeroNormError,
)

# Filters
from .core.expression import evaluate, parse, to_text

# Queries
from .core.query import Freshness, HybridSearchParams, QueryCondition, SearchType
from .core.similarity import cosine_similarity, refilter

# Repositories
from .storage.factory import build_repository  # settings -> repository adapter
from .storage.filters import default_registry  # name -> filter compiler
from .storage.repository import (
    ElasticsearchRepository,
    FaissRepository,
    InMemoryRepository,
    QdrantRepository,
    SqliteRepository,
)

__all__ = [
    "__version__",
    # Documents & errors
    "Document", "FieldType", "MetadataField",
    "RagCoreError", "ParseError", "FilterCompileError", "UnsupportedExpressionError",
    "UnsupportedOperandError", "SchemaValidationError", "DimensionMismatchError",
    "ZeroNormError", "BackendIOError",
    # Filters
    "parse", "evaluate", "to_text", "default_registry",
    # Queries
    "QueryCondition", "SearchType", "Freshness", "HybridSearchParams",
    "cosine_similarity", "refilter",
    # Repositories
    "build_repository",
    "InMemoryRepository", "SqliteRepository", "FaissRepository",
    "ElasticsearchRepository", "QdrantRepository",
]
