"""Tests for structured JSON logging."""

from __future__ import annotations

import json
import logging

from plconfig.core.logging import (
    JsonFormatter,
    get_request_id,
    get_tenant_id,
    set_request_id,
    setup_logging,
    setup_logging_from_settings,
    tenant_context,
)


def _record(msg: str = "config saved", **extra) -> logging.LogRecord:
    rec = logging.LogRecord(
        name="plconfig.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    rec.__dict__.update(extra)
    return rec


def test_masking_dsn_password():
    """Test that database passwords are masked in log messages."""
    payload = json.loads(
        JsonFormatter().format(_record("connecting to postgresql://pl:hunter2@db:5432/pl"))
    )

    assert "hunter2" not in payload["msg"]
    assert "postgresql://pl:***@db:5432/pl" in payload["msg"]


def test_masking_bearer_token():
    """Test that bearer tokens are masked."""
    payload = json.loads(JsonFormatter().format(_record("auth Bearer abcdefghijklmnop1234")))

    assert payload["msg"] == "auth Bearer ***"


def test_masking_sensitive_keys_in_extra():
    """Test that sensitive keys are masked regardless of value."""
    rec = _record(headers={"Authorization": "Bearer verysecrettoken123"}, problems=["bad rate"])
    payload = json.loads(JsonFormatter().format(rec))

    assert payload["extra"]["headers"]["Authorization"] == "***"
    assert payload["extra"]["problems"] == ["bad rate"]


def test_request_id_in_payload():
    """Test that request_id is included in the JSON payload."""
    rid = set_request_id("req-42")
    payload = json.loads(JsonFormatter().format(_record()))

    assert rid == "req-42"
    assert get_request_id() == "req-42"
    assert payload["request_id"] == "req-42"


def test_set_request_id_generates_uuid():
    """Test that a request id is generated when none is given."""
    rid = set_request_id()
    assert len(rid) == 36


def test_tenant_context_binds_and_restores():
    """Test tenant_id is attached inside the block and cleared afterwards."""
    assert get_tenant_id() == ""

    with tenant_context("tenant_a"):
        with tenant_context("tenant_b"):
            inner = json.loads(JsonFormatter().format(_record()))
        outer = json.loads(JsonFormatter().format(_record()))

    after = json.loads(JsonFormatter().format(_record()))
    assert inner["tenant_id"] == "tenant_b"
    assert outer["tenant_id"] == "tenant_a"
    assert after["tenant_id"] is None


def test_setup_logging_writes_json_file(tmp_path):
    """Test that the rotating file handler writes JSON lines."""
    log_file = tmp_path / "logs" / "plconfig.jsonl"
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level

    try:
        setup_logging(level="DEBUG", to_stdout=False, file_path=str(log_file))
        with tenant_context("tenant_a"):
            logging.getLogger("plconfig.services").info("Saved formula config")
        for handler in root.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["msg"] == "Saved formula config"
        assert payload["level"] == "INFO"
        assert payload["tenant_id"] == "tenant_a"
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_setup_logging_from_settings(tmp_path, monkeypatch):
    """Test that LOG_LEVEL and LOG_FILE_PATH drive the root logger."""
    log_file = tmp_path / "app.jsonl"
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("LOG_FILE_PATH", str(log_file))
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level

    try:
        setup_logging_from_settings()
        logging.getLogger("plconfig.services").info("dropped below threshold")
        logging.getLogger("plconfig.services").warning("Category limit reached")
        for handler in root.handlers:
            handler.flush()

        assert root.level == logging.WARNING
        lines = log_file.read_text(encoding="utf-8").strip().splitlines()
        assert [json.loads(line)["msg"] for line in lines] == ["Category limit reached"]
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
