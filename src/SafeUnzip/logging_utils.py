"""Structured logging helpers shared across SafeUnzip components."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .settings import EnvironmentOverrides

__all__ = ["JSONFormatter", "setup_logging"]

LOGGER_NAME = "SafeUnzip"

_STANDARD_RECORD_ATTRS = frozenset(
    logging.makeLogRecord({}).__dict__.keys() | {"message", "asctime"}
)


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record.

    Fields passed through ``extra=`` (``stage``, ``run_id``, ``entry_index``
    and so on) are copied into the payload verbatim.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    *,
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 100,
    json_console: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``SafeUnzip`` logger with console and optional JSON file output.

    Args:
        level: Logging level name; falls back to ``SAFEUNZIP_LOG_LEVEL``, then INFO.
        log_dir: Directory for rotating ``safeunzip.jsonl`` files. No file
            handler is installed when ``None``.
        max_log_size_mb: Rotation threshold for the JSON log file.
        json_console: Emit JSON lines on stderr instead of plain text.
        propagate: Whether records propagate to the root logger.

    Returns:
        The configured logger.
    """

    level_name = level or EnvironmentOverrides().log_level or "INFO"
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_safeunzip_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    if json_console:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._safeunzip_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "safeunzip.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._safeunzip_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
