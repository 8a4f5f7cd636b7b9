"""
Session Lock Manager: Per-Session Mutual Exclusion in the Store

Serializes units of work operating on the same session id through a
lock key held in the remote store.

Algorithm:
    1. SET <id>_lock <unit_id> NX EX <lock_ttl>
    2. On contention, back off exponentially with full jitter and retry
    3. Give up with LockError.timeout once the acquire deadline passes
    4. Release with an unconditional DEL <id>_lock

Safety Guarantees:
    - Mutual exclusion: only the atomic set-if-absent decides ownership
    - Crash recovery: lock_ttl bounds how long an abandoned lock survives
    - Bounded waiting: acquisition never outlives its deadline
    - Re-entrancy: a unit of work re-reading a session it already holds
      does not wait on itself

The lock value is the holder's unit id. It is informational only;
release never compares it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from sessionguard.core.types import Result, Ok, Err
from sessionguard.core.config import LockConfig, SessionConfig
from sessionguard.core.errors import LockError, SessionGuardError
from sessionguard.reliability.retry import BackoffContext, BackoffPolicy
from sessionguard.session.context import SessionContext

logger = logging.getLogger(__name__)


class SessionLockManager:
    """
    Acquires and releases per-session lock keys for a unit of work.

    The manager itself is stateless; held ids live in the context's
    LockRegistry, so one manager may serve many concurrent units of work.

    Usage:
        manager = SessionLockManager(SessionConfig(lock_ttl_seconds=30))

        result = await manager.acquire(ctx, "abc")
        if result.is_err():
            raise result.error
        ...
        await manager.release_all(ctx)
    """

    __slots__ = ("_session", "_lock", "_policy", "_clock", "_sleep")

    def __init__(
        self,
        session_config: Optional[SessionConfig] = None,
        lock_config: Optional[LockConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        self._session = session_config or SessionConfig()
        self._lock = lock_config or LockConfig()
        self._policy = BackoffPolicy.from_lock_config(self._lock)
        self._clock = clock
        self._sleep = sleep

    @property
    def lock_ttl_seconds(self) -> int:
        return self._session.lock_ttl_seconds

    def lock_key(self, session_id: str) -> str:
        return self._session.lock_key(session_id)

    async def acquire(
        self,
        ctx: SessionContext,
        session_id: str,
    ) -> Result[None, SessionGuardError]:
        """
        Block until this unit of work owns the lock for ``session_id``.

        Returns:
            Ok(None) once the lock is held and recorded in ctx.locks.
            Err(LockError) if the acquire deadline passed.
            Err(StoreError) if the store failed.
        """
        store = ctx.require_open("lock")

        if session_id in ctx.locks:
            return Ok(None)

        key = self.lock_key(session_id)
        ttl = self._session.lock_ttl_seconds
        holder = ctx.unit_id.encode()
        backoff = BackoffContext(
            self._policy,
            timeout_s=self._lock.effective_timeout(ttl),
            clock=self._clock,
            sleep=self._sleep,
        )

        while True:
            result = await store.set_if_absent(key, holder, ttl)
            if result.is_err():
                return result

            if result.unwrap():
                ctx.locks.record(session_id)
                logger.debug(
                    "Acquired session lock after %d waits (%.3fs)",
                    backoff.attempts,
                    backoff.elapsed,
                )
                return Ok(None)

            if backoff.expired:
                error = LockError.timeout(
                    session_id,
                    waited_seconds=backoff.elapsed,
                    attempts=backoff.attempts + 1,
                )
                logger.warning(
                    "Session lock acquisition timed out",
                    extra={"error": error.to_dict()},
                )
                return Err(error)

            await backoff.wait()

    async def release(
        self,
        ctx: SessionContext,
        session_id: str,
    ) -> Result[None, SessionGuardError]:
        """
        Delete the lock key for ``session_id``.

        Idempotent: releasing an id that is not locked is not an error.
        """
        store = ctx.require_open("unlock")
        ctx.locks.discard(session_id)
        return (await store.delete(self.lock_key(session_id))).map(lambda _: None)

    async def release_all(self, ctx: SessionContext) -> int:
        """
        Release every lock held by this unit of work and empty the registry.

        A failed release is logged and the remaining ids are still
        released; the lock TTL reclaims whatever could not be deleted.

        Returns:
            Number of lock keys successfully deleted.
        """
        store = ctx.require_open("unlock")
        released = 0

        for session_id in ctx.locks.drain():
            result = await store.delete(self.lock_key(session_id))
            if result.is_err():
                logger.error(
                    "Failed to release session lock; it will expire in at most %ds",
                    self._session.lock_ttl_seconds,
                    extra={"error": result.error.to_dict()},
                )
                continue
            released += 1

        return released

    async def holder(
        self,
        ctx: SessionContext,
        session_id: str,
    ) -> Result[Optional[str], SessionGuardError]:
        """Unit id currently holding the lock for ``session_id``, if any."""
        store = ctx.require_open("inspect lock")
        result = await store.get(self.lock_key(session_id))
        return result.map(lambda raw: raw.decode() if raw is not None else None)
