"""
Observability module: structured logging.
"""

from sessionguard.observability.logging import (
    JsonFormatter,
    LogLevel,
    current_log_context,
    log_scope,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "current_log_context",
    "log_scope",
    "setup_logging",
]
