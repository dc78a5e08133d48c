from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Optional, Mapping, Any
import logging


@dataclass(frozen=True)
class LogContext:
    repository: Optional[str] = None
    collection: Optional[str] = None

    def as_extra(self) -> Mapping[str, Any]:
        # Only include non-None fields; logging.Formatter will lookup keys by name.
        return {k: v for k, v in self.__dict__.items() if v is not None}


class LoggerService(Protocol):
    """Contract used by the CLI and by applications embedding ragcore."""

    def base(self) -> logging.Logger: ...
    def for_namespace(self, ns: str) -> logging.Logger: ...
    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger: ...
    def for_repository(self, *, repository: str, collection: str) -> logging.Logger: ...


class ContextAdapter(logging.LoggerAdapter):
    """
    Injects contextual fields into LogRecord via `extra`.
    Preserves original logger API (info, debug, etc.).
    """
    def process(self, msg, kwargs):
        extra = kwargs.get("extra") or {}
        merged = {**self.extra, **extra}
        kwargs["extra"] = merged
        return msg, kwargs


def with_context(logger: logging.Logger, ctx: LogContext) -> ContextAdapter:
    return ContextAdapter(logger, dict(ctx.as_extra()))
