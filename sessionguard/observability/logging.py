"""
Structured Logging: JSON Lines Correlated by Unit of Work

Every record emitted while a SessionHandler call is in progress carries
the ``unit_id`` and ``session_name`` of the request being served, so the
lock waits, regenerations and teardown failures of one request can be
pulled out of an interleaved log stream.

Fields are bound with log_scope() and stored in a ContextVar; each
asyncio task serving a request sees only its own fields.

Output line:

    {"@timestamp": "...", "level": "WARNING", "logger": "sessionguard.session.lock",
     "message": "Session lock acquisition timed out", "unit_id": "3f2a...",
     "session_name": "SID", "error_code": "LOCK_TIMEOUT", "error": {...}}
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Optional, TextIO


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every logging.LogRecord has; anything else came in via extra=
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


@contextmanager
def log_scope(**fields: Any) -> Iterator[dict[str, Any]]:
    """
    Bind fields to every record logged inside the block.

    Nested scopes add to (and may override) the enclosing scope's fields.
    """
    merged = {**_log_context.get(), **fields}
    token = _log_context.set(merged)
    try:
        yield merged
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    """Snapshot of the fields bound for the running task."""
    return dict(_log_context.get())


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Scoped fields come first, then fields passed with ``extra=``. A
    serialized SessionGuardError under ``extra={"error": ...}`` also
    surfaces its code as a top-level ``error_code`` for filtering.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_log_context.get())

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                data[key] = value

        error = data.get("error")
        if isinstance(error, dict) and "code" in error:
            data["error_code"] = error["code"]

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a single stream handler on the root logger.

    Args:
        level: Minimum level for sessionguard records.
        json_output: JSON lines when True, a plain text layout otherwise.
        stream: Output stream (default: stderr).
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.value)

    # redis-py logs every reconnect attempt at DEBUG
    logging.getLogger("redis").setLevel(max(level.value, logging.WARNING))
