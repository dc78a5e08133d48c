from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
import logging
import logging.handlers

from typing import Optional, Mapping

from ragcore.config.config import AppSettings

from .base import LoggerService, LogContext, with_context
from .formatters import SafeFormatter, JsonFormatter, ColorFormatter


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class LoggingConfig:
    """
    Configure sinks & formats.

    Attributes:
      root_ns: base logger name to use (`ragcore`).
      level: default level for the root namespace.
      log_dir: directory for file logs (rotated); None => console only.
      use_json: True => JSON logs for files; console stays text.
      per_namespace_levels: optional map (e.g. {"ragcore.storage": "DEBUG"}).
      console_pattern: text format string for console.
      file_pattern: text format string for file when use_json=False.
      max_bytes / backup_count: rotation for file handlers.
    """
    root_ns: str = "ragcore"
    level: str = "INFO"
    log_dir: Optional[str] = None
    use_json: bool = False
    color: bool = False
    per_namespace_levels: Optional[Mapping[str, str]] = None
    console_pattern: str = "%(asctime)s %(levelname)s \t%(name)s    repo=%(repository)s    collection=%(collection)s - %(message)s"
    file_pattern: str = "%(asctime)s %(levelname)s %(name)s %(repository)s %(collection)s %(message)s"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @staticmethod
    def from_env() -> "LoggingConfig":
        return LoggingConfig(
            root_ns=os.getenv("RAGCORE_LOG_ROOT", "ragcore"),
            level=os.getenv("RAGCORE_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("RAGCORE_LOG_DIR") or None,
            use_json=os.getenv("RAGCORE_LOG_JSON", "0") == "1",
        )

    @staticmethod
    def from_cfg(cfg: AppSettings, log_dir: Optional[str] = None) -> "LoggingConfig":
        return LoggingConfig(
            root_ns="ragcore",
            level=cfg.logging.level,
            log_dir=log_dir or cfg.logging.log_dir,
            use_json=cfg.logging.json_logs,
        )


class StdLoggerService(LoggerService):
    """
      • text/JSON formatters
      • per-namespace levels
      • optional rotating file sink
      • context helpers (with_context / for_repository)
    """
    def __init__(self, base: logging.Logger, *, cfg: LoggingConfig):
        self._base = base
        self._cfg = cfg

    # --- LoggerService interface ---

    def base(self) -> logging.Logger:
        return self._base

    def for_namespace(self, ns: str) -> logging.Logger:
        return self._base.getChild(ns)

    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger:
        return with_context(logger, ctx)

    def for_repository(self, *, repository: str, collection: str) -> logging.Logger:
        base = self.for_namespace(f"storage.{repository}")
        return self.with_context(base, LogContext(repository=repository, collection=collection))

    # --- builder ---

    @staticmethod
    def build(cfg: Optional[LoggingConfig] = None) -> "StdLoggerService":
        cfg = cfg or LoggingConfig.from_env()
        level = getattr(logging, cfg.level.upper(), logging.INFO)

        root = logging.getLogger(cfg.root_ns)
        # Reset handlers if rebuilding
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        root.setLevel(level)
        root.propagate = False

        # Per-namespace levels
        if cfg.per_namespace_levels:
            for ns, lvl in cfg.per_namespace_levels.items():
                logging.getLogger(ns).setLevel(getattr(logging, str(lvl).upper(), logging.INFO))

        # Console handler (text)
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(ColorFormatter(cfg.console_pattern, use_color=cfg.color))
        root.addHandler(console)

        # File handler (rotating)
        if cfg.log_dir:
            _ensure_dir(Path(cfg.log_dir))
            file_path = Path(cfg.log_dir) / "ragcore.log"
            fh = logging.handlers.RotatingFileHandler(
                file_path, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8"
            )
            if cfg.use_json:
                fh.setFormatter(JsonFormatter())
            else:
                fh.setFormatter(SafeFormatter(cfg.file_pattern))
            fh.setLevel(level)
            root.addHandler(fh)

        return StdLoggerService(root, cfg=cfg)
