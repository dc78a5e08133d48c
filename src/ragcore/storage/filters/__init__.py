from .base import FilterCompiler, FilterCompilerRegistry, validate_fields
from .elasticsearch import ElasticsearchFilterCompiler
from .qdrant import QdrantFilterCompiler
from .redis import RedisFilterCompiler
from .sqlite import SqlFilter, SqliteFilterCompiler


def default_registry(*, qdrant_key_prefix: str = "metadata.") -> FilterCompilerRegistry:
    """Registry holding one instance of each bundled compiler."""
    return FilterCompilerRegistry(
        [
            ElasticsearchFilterCompiler(),
            QdrantFilterCompiler(key_prefix=qdrant_key_prefix),
            RedisFilterCompiler(),
            SqliteFilterCompiler(),
        ]
    )


__all__ = [
    "ElasticsearchFilterCompiler",
    "FilterCompiler",
    "FilterCompilerRegistry",
    "QdrantFilterCompiler",
    "RedisFilterCompiler",
    "SqlFilter",
    "SqliteFilterCompiler",
    "default_registry",
    "validate_fields",
]
