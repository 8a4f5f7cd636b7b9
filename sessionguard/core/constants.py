"""
System-Wide Constants for sessionguard

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
MINUTE_S: Final[int] = 60

# =============================================================================
# SESSION LIFETIME
# =============================================================================
# Mirrors the conventional max_execution_time default of web runtimes
DEFAULT_LOCK_TTL_SECONDS: Final[int] = 30
# Mirrors the conventional session.gc_maxlifetime default (24 minutes)
DEFAULT_SESSION_TTL_SECONDS: Final[int] = 24 * MINUTE_S

# =============================================================================
# KEYSPACE
# =============================================================================
LOCK_SUFFIX: Final[str] = "_lock"
EMPTY_PAYLOAD: Final[bytes] = b""

# =============================================================================
# LOCK ACQUISITION
# =============================================================================
LOCK_BACKOFF_BASE_MS: Final[int] = 10
LOCK_BACKOFF_MAX_MS: Final[int] = 500
LOCK_BACKOFF_EXPONENT: Final[float] = 2.0

# =============================================================================
# IDENTIFIERS
# =============================================================================
SESSION_ID_BYTES: Final[int] = 32

# =============================================================================
# STORE
# =============================================================================
DEFAULT_REDIS_PORT: Final[int] = 6379
