import json
import logging
import sys

from ragcore.config import AppSettings
from ragcore.services.logger import (
    JsonFormatter,
    LogContext,
    LoggingConfig,
    SafeFormatter,
    StdLoggerService,
    with_context,
)


def test_build_is_idempotent():
    svc = StdLoggerService.build(LoggingConfig(level="DEBUG"))
    StdLoggerService.build(LoggingConfig(level="DEBUG"))
    root = svc.base()
    assert root.name == "ragcore"
    assert len(root.handlers) == 1
    assert root.level == logging.DEBUG
    assert root.propagate is False


def test_file_sink_writes_json_with_context(tmp_path):
    svc = StdLoggerService.build(LoggingConfig(level="INFO", log_dir=str(tmp_path), use_json=True))
    log = svc.for_repository(repository="sqlite", collection="docs")
    log.info("saved %d docs", 3)

    lines = (tmp_path / "ragcore.log").read_text(encoding="utf-8").strip().splitlines()
    record = json.loads(lines[-1])
    assert record["message"] == "saved 3 docs"
    assert record["logger"] == "ragcore.storage.sqlite"
    assert record["repository"] == "sqlite"
    assert record["collection"] == "docs"
    assert record["level"] == "INFO"


def test_text_file_sink(tmp_path):
    svc = StdLoggerService.build(LoggingConfig(log_dir=str(tmp_path)))
    svc.for_namespace("cli").warning("plain")
    text = (tmp_path / "ragcore.log").read_text(encoding="utf-8")
    assert "ragcore.cli" in text
    assert "plain" in text


def test_per_namespace_levels():
    StdLoggerService.build(
        LoggingConfig(level="WARNING", per_namespace_levels={"ragcore.storage": "debug"})
    )
    try:
        assert logging.getLogger("ragcore.storage").level == logging.DEBUG
    finally:
        logging.getLogger("ragcore.storage").setLevel(logging.NOTSET)


def test_safe_formatter_fills_missing_context():
    fmt = SafeFormatter("%(name)s repo=%(repository)s collection=%(collection)s %(message)s")
    record = logging.LogRecord("ragcore.x", logging.INFO, __file__, 1, "hi", None, None)
    assert fmt.format(record) == "ragcore.x repo=- collection=- hi"


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "ragcore.x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "failed"
    assert "ValueError: boom" in payload["exc_info"]


def test_with_context_merges_extra(caplog):
    logger = logging.getLogger("ragcore.test")
    adapter = with_context(logger, LogContext(repository="memory"))
    assert adapter.extra == {"repository": "memory"}
    with caplog.at_level(logging.INFO):
        adapter.info("hello", extra={"collection": "docs"})
    record = caplog.records[-1]
    assert record.repository == "memory"
    assert record.collection == "docs"


def test_logging_config_from_env(monkeypatch):
    monkeypatch.setenv("RAGCORE_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("RAGCORE_LOG_JSON", "1")
    monkeypatch.delenv("RAGCORE_LOG_DIR", raising=False)
    cfg = LoggingConfig.from_env()
    assert cfg.level == "ERROR"
    assert cfg.use_json is True
    assert cfg.log_dir is None


def test_logging_config_from_settings():
    settings = AppSettings.model_validate({"logging": {"level": "DEBUG", "json_logs": True}})
    cfg = LoggingConfig.from_cfg(settings, log_dir="/tmp/logs")
    assert cfg.level == "DEBUG"
    assert cfg.use_json is True
    assert cfg.log_dir == "/tmp/logs"
