"""Structured logging setup for SimTrack.

``LOG_FORMAT=json`` (the default) emits one JSON object per record for log
shipping; ``LOG_FORMAT=text`` is easier to read while developing.

Usage::

    from simtrack_core.logging_config import configure_logging
    configure_logging("api")
"""
from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request id of the HTTP request being served, set by the API middleware.
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)

# Keys lifted from ``extra={...}`` into the JSON entry.
STRUCTURED_KEYS = (
    "event",
    "request_id",
    "user_id",
    "username",
    "project_id",
    "job_id",
    "file_id",
    "label",
    "size",
    "status",
    "status_code",
    "method",
    "path",
    "duration_ms",
    "service",
    "log_format",
)


class JSONFormatter(logging.Formatter):
    """Render a log record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        rid = request_id_var.get("")
        if rid:
            entry["request_id"] = rid

        for key in STRUCTURED_KEYS:
            val = getattr(record, key, None)
            if val is not None and key not in entry:
                entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


_TEXT_FMT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def configure_logging(service: str = "api") -> None:
    """Install a single stderr handler on the root logger.

    Environment variables
    ---------------------
    LOG_FORMAT : ``json`` (default) or ``text``
    LOG_LEVEL  : standard Python level name, default ``INFO``
    """
    log_format = os.getenv("LOG_FORMAT", "json")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FMT, datefmt=_TEXT_DATEFMT))
    root.addHandler(handler)

    # uvicorn's access log duplicates RequestIDMiddleware
    for name in ("uvicorn.access", "httpx", "httpcore", "multipart"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(f"simtrack.{service}").info(
        "Logging configured",
        extra={"event": "logging.init", "service": service, "log_format": log_format},
    )
