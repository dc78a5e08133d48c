from .base import ContextAdapter, LogContext, LoggerService, with_context
from .formatters import ColorFormatter, JsonFormatter, SafeFormatter
from .std import LoggingConfig, StdLoggerService

__all__ = [
    "ColorFormatter",
    "ContextAdapter",
    "JsonFormatter",
    "LogContext",
    "LoggerService",
    "LoggingConfig",
    "SafeFormatter",
    "StdLoggerService",
    "with_context",
]
