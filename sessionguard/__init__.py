"""
sessionguard: Locked Web Sessions on an Expiring Key-Value Store

Session lifecycle handling with per-session mutual exclusion:
- Session Handler: open/read/write/destroy/close lifecycle facade
- Lock Manager: SET NX EX lock keys, TTL-bounded, with bounded waiting
- Regeneration: foreign session ids unknown to the store are rejected
- Storage: redis.asyncio store plus an in-memory store for tests

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from sessionguard.core.types import Result, Ok, Err
from sessionguard.core.errors import (
    ErrorCode,
    SessionGuardError,
    StoreError,
    LockError,
    ConfigurationError,
)
from sessionguard.core.config import (
    SessionConfig,
    LockConfig,
    ObservabilityConfig,
    SessionGuardConfig,
)

from sessionguard.storage import (
    SessionStoreProtocol,
    RedisConfig,
    RedisSessionStore,
    InMemoryKeyspace,
    InMemorySessionStore,
    redis_store_factory,
    memory_store_factory,
)

from sessionguard.session import (
    SessionHandler,
    SessionContext,
    SessionData,
    RegenerationRequired,
    ReadResult,
    SessionLockManager,
    must_regenerate,
)

__all__ = [
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Errors
    "ErrorCode",
    "SessionGuardError",
    "StoreError",
    "LockError",
    "ConfigurationError",
    # Config
    "SessionConfig",
    "LockConfig",
    "ObservabilityConfig",
    "SessionGuardConfig",
    # Storage
    "SessionStoreProtocol",
    "RedisConfig",
    "RedisSessionStore",
    "InMemoryKeyspace",
    "InMemorySessionStore",
    "redis_store_factory",
    "memory_store_factory",
    # Session
    "SessionHandler",
    "SessionContext",
    "SessionData",
    "RegenerationRequired",
    "ReadResult",
    "SessionLockManager",
    "must_regenerate",
]
