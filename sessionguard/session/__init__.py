"""
Session Module: Locked Session Lifecycle

Provides:
- SessionHandler: lifecycle facade driven by the host runtime
- SessionLockManager: per-session lock keys with bounded acquisition
- must_regenerate: rejection of foreign, unknown session ids
- SessionContext: per-unit-of-work bookkeeping (origin set, held locks)

Architecture:
- Coordination: SET NX EX lock key per session, TTL-bounded
- Isolation: all bookkeeping is threaded through an explicit context
"""

from sessionguard.session.context import (
    LifecyclePhase,
    LockRegistry,
    OriginTracker,
    SessionContext,
)
from sessionguard.session.lock import SessionLockManager
from sessionguard.session.regeneration import must_regenerate
from sessionguard.session.handler import (
    ReadResult,
    RegenerationRequired,
    SessionData,
    SessionHandler,
    default_id_generator,
)

__all__ = [
    # Context
    "LifecyclePhase",
    "LockRegistry",
    "OriginTracker",
    "SessionContext",
    # Lock
    "SessionLockManager",
    # Regeneration
    "must_regenerate",
    # Facade
    "ReadResult",
    "RegenerationRequired",
    "SessionData",
    "SessionHandler",
    "default_id_generator",
]
