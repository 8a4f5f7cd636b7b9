"""
Reliability module: bounded exponential backoff for lock contention.
"""

from sessionguard.reliability.retry import (
    BackoffContext,
    BackoffPolicy,
    calculate_backoff,
)

__all__ = [
    "BackoffContext",
    "BackoffPolicy",
    "calculate_backoff",
]
