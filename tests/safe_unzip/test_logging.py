"""Tests for JSON log formatting and setup_logging handler management."""

from __future__ import annotations

import json
import logging

from SafeUnzip.logging_utils import LOGGER_NAME, JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="SafeUnzip",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="entry extraction failed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    payload = json.loads(
        JSONFormatter().format(
            _record(stage="extract", run_id="abc123", entry_index=4, entry_name="../x")
        )
    )
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "SafeUnzip"
    assert payload["message"] == "entry extraction failed"
    assert payload["stage"] == "extract"
    assert payload["run_id"] == "abc123"
    assert payload["entry_index"] == 4
    assert payload["entry_name"] == "../x"
    assert payload["timestamp"].endswith("Z")
    assert "pathname" not in payload


def test_json_formatter_serialises_unknown_types(tmp_path) -> None:
    payload = json.loads(JSONFormatter().format(_record(output_root=tmp_path)))
    assert payload["output_root"] == str(tmp_path)
    assert payload["stage"] is None


def test_setup_logging_is_idempotent(tmp_path) -> None:
    logger = setup_logging(level="DEBUG", log_dir=tmp_path)
    setup_logging(level="DEBUG", log_dir=tmp_path)

    managed = [h for h in logger.handlers if getattr(h, "_safeunzip_managed", False)]
    assert len(managed) == 2
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG


def test_setup_logging_writes_json_file(tmp_path) -> None:
    logger = setup_logging(level="INFO", log_dir=tmp_path)
    logger.info("extracted archive", extra={"stage": "extract", "files_written": 3})
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "safeunzip.jsonl").read_text().strip().splitlines()
    payload = json.loads(lines[-1])
    assert payload["message"] == "extracted archive"
    assert payload["files_written"] == 3


def test_setup_logging_level_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SAFEUNZIP_LOG_LEVEL", "error")
    logger = setup_logging()
    assert logger.level == logging.ERROR
