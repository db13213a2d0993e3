"""Logging configuration for kube-janitor.

Records are written as single-line JSON to stderr, which is what container
log collectors expect. A rotating file can be added for hosts without one.

JSON format example:
    {"ts": "2026-10-19T10:30:00.123Z", "level": "WARNING",
     "logger": "kube_janitor.scheduler",
     "message": "Detected failed/evicted pod: default/web-7d9f (Evicted)"}
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{record.msecs:03.0f}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName.startswith("remediate-"):
            log_entry["thread"] = record.threadName
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure JSON-structured logging on the ``kube_janitor`` logger tree.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional rotating log file, written in addition to stderr.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = _JsonFormatter()

    root_logger = logging.getLogger("kube_janitor")
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.propagate = False

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        rotating_handler = logging.handlers.RotatingFileHandler(
            filename=str(file_path),
            maxBytes=_LOG_MAX_BYTES,
            backupCount=_LOG_BACKUPS,
            encoding="utf-8",
        )
        rotating_handler.setFormatter(formatter)
        root_logger.addHandler(rotating_handler)
        root_logger.info("File logging enabled: path=%s", log_file)

    # The API client logs every request at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
