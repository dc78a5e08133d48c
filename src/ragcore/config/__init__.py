from .config import AppSettings, LoggingSettings
from .loader import load_settings
from .repository import (
    ElasticsearchSettings,
    FaissRepositorySettings,
    QdrantSettings,
    RepositorySettings,
    SqliteRepositorySettings,
)
from .runtime import get_settings

__all__ = [
    "AppSettings",
    "ElasticsearchSettings",
    "FaissRepositorySettings",
    "LoggingSettings",
    "QdrantSettings",
    "RepositorySettings",
    "SqliteRepositorySettings",
    "get_settings",
    "load_settings",
]
