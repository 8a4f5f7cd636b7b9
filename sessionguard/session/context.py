"""
Unit-of-Work Context: Per-Request Session Bookkeeping

Every request handled by the session lifecycle gets its own
SessionContext, created by SessionHandler.open() and passed explicitly
to every later call. Nothing here is shared between units of work.

Contents:
    - OriginTracker: ids minted by this unit of work
    - LockRegistry: ids whose lock this unit of work currently holds
    - LifecyclePhase: UNOPENED → OPENED → CLOSED

Transitions:
    UNOPENED → OPENED : open() connected the store
    OPENED   → CLOSED : close() released locks and the connection
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, Optional
from uuid import uuid4

from sessionguard.core.errors import SessionGuardError
from sessionguard.storage.protocols import SessionStoreProtocol


# =============================================================================
# LIFECYCLE PHASE
# =============================================================================
class LifecyclePhase(Enum):
    """
    Lifecycle phase of one unit of work.

    Terminal phase is CLOSED; a closed context is never reopened.
    """
    UNOPENED = auto()
    OPENED = auto()
    CLOSED = auto()

    @property
    def is_terminal(self) -> bool:
        return self == LifecyclePhase.CLOSED


VALID_TRANSITIONS: frozenset[tuple[LifecyclePhase, LifecyclePhase]] = frozenset({
    (LifecyclePhase.UNOPENED, LifecyclePhase.OPENED),
    (LifecyclePhase.OPENED, LifecyclePhase.CLOSED),
})


# =============================================================================
# ORIGIN TRACKER
# =============================================================================
class OriginTracker:
    """
    Record of session ids minted during the current unit of work.

    Lets the handler tell an id that arrived with the request apart
    from one generated moments ago and not yet written.
    """

    __slots__ = ("_generated",)

    def __init__(self) -> None:
        self._generated: set[str] = set()

    def mark_generated(self, session_id: str) -> None:
        self._generated.add(session_id)

    def was_generated_here(self, session_id: str) -> bool:
        return session_id in self._generated

    def __len__(self) -> int:
        return len(self._generated)


# =============================================================================
# OPEN-LOCK REGISTRY
# =============================================================================
class LockRegistry:
    """
    Insertion-ordered set of session ids locked by this unit of work.

    Invariant: every id appears at most once. drain() hands back every
    id and leaves the registry empty; it is consumed at close().
    """

    __slots__ = ("_held",)

    def __init__(self) -> None:
        # dict preserves insertion order and gives O(1) membership
        self._held: dict[str, None] = {}

    def record(self, session_id: str) -> bool:
        """Add ``session_id``. Returns False if it was already held."""
        if session_id in self._held:
            return False
        self._held[session_id] = None
        return True

    def discard(self, session_id: str) -> None:
        self._held.pop(session_id, None)

    def drain(self) -> list[str]:
        """Remove and return all held ids in acquisition order."""
        held = list(self._held)
        self._held.clear()
        return held

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._held

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._held))

    def __len__(self) -> int:
        return len(self._held)


# =============================================================================
# SESSION CONTEXT
# =============================================================================
@dataclass
class SessionContext:
    """
    State owned by one unit of work.

    The store connection is exclusive to this context and closed with
    it. Contexts must not be shared between concurrent tasks.
    """
    location: str
    name: str
    store: Optional[SessionStoreProtocol] = None
    unit_id: str = field(default_factory=lambda: uuid4().hex)
    origin: OriginTracker = field(default_factory=OriginTracker)
    locks: LockRegistry = field(default_factory=LockRegistry)
    phase: LifecyclePhase = LifecyclePhase.UNOPENED

    def transition(self, to_phase: LifecyclePhase, operation: str) -> None:
        """
        Move to ``to_phase``.

        Raises:
            SessionGuardError: If the transition is not allowed.
        """
        if (self.phase, to_phase) not in VALID_TRANSITIONS:
            raise SessionGuardError.invalid_state(operation, self.phase.name)
        self.phase = to_phase

    def require_open(self, operation: str) -> SessionStoreProtocol:
        """
        Return the connected store, or raise if the context is not open.

        Raises:
            SessionGuardError: If the phase is not OPENED.
        """
        if self.phase is not LifecyclePhase.OPENED or self.store is None:
            raise SessionGuardError.invalid_state(operation, self.phase.name)
        return self.store
