from typing import Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .repository import RepositorySettings


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = False
    log_dir: str | None = None  # None => console only


class AppSettings(BaseSettings):
    """
    Root settings. Every field can be overridden from the environment, e.g.

        RAGCORE_ROOT=/var/lib/ragcore
        RAGCORE_LOGGING__LEVEL=DEBUG
        RAGCORE_REPOSITORY__BACKEND=sqlite
        RAGCORE_REPOSITORY__SQLITE__CANDIDATE_LIMIT=2000
    """

    model_config = SettingsConfigDict(
        env_prefix="RAGCORE_",
        env_nested_delimiter="__",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # base directory for local backends (sqlite, faiss)
    root: str = "./ragcore_data"

    logging: LoggingSettings = LoggingSettings()
    repository: RepositorySettings = RepositorySettings()
