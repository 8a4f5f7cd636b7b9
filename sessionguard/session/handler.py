"""
Session Handler: Lifecycle Facade for Locked Sessions

Exposes the lifecycle the host runtime drives for every request:

    open → generate_id? → read → write → (destroy) → close
    garbage_collect (no-op; expiry is the store's job)

Orchestration per read:
    1. Regeneration decider: foreign id unknown to the store?
       → return RegenerationRequired, take no lock
    2. Lock manager: block until the session lock is held
    3. Store: fetch the payload; absent reads as empty

Regeneration is a returned value, never an internal restart. On
RegenerationRequired the host discards the stale id, mints a new one
with generate_id() and reads again, emitting the new cookie itself:

    result = await handler.read(ctx, cookie_id)
    if isinstance(result, RegenerationRequired):
        await handler.destroy(ctx, result.stale_id)
        new_id = handler.generate_id(ctx)
        result = await handler.read(ctx, new_id)

Error policy:
    - open: connection failures raise StoreError
    - read: lock timeouts raise LockError, store failures raise StoreError
    - write: failures are reported as False
    - destroy / close / garbage_collect: never fail on store errors
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

from sessionguard.core import constants as C
from sessionguard.core.config import SessionGuardConfig
from sessionguard.core.errors import StoreError
from sessionguard.observability.logging import log_scope
from sessionguard.session.context import LifecyclePhase, SessionContext
from sessionguard.session.lock import SessionLockManager
from sessionguard.session.regeneration import must_regenerate
from sessionguard.storage.protocols import SessionStoreProtocol
from sessionguard.storage.redis_store import redis_store_factory

logger = logging.getLogger(__name__)

IdGenerator = Callable[[], str]
StoreFactory = Callable[[str], SessionStoreProtocol]


def default_id_generator() -> str:
    """URL-safe random session id (256 bits of entropy)."""
    return secrets.token_urlsafe(C.SESSION_ID_BYTES)


# =============================================================================
# READ OUTCOMES
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionData:
    """Payload read under a held lock. Empty for never-written sessions."""
    session_id: str
    payload: bytes

    @property
    def is_empty(self) -> bool:
        return not self.payload


@dataclass(frozen=True, slots=True)
class RegenerationRequired:
    """
    The presented id is foreign and unknown to the store.

    No lock was taken on ``stale_id``. The host must mint a new id and
    read again.
    """
    stale_id: str

    @property
    def payload(self) -> bytes:
        return C.EMPTY_PAYLOAD


ReadResult = Union[SessionData, RegenerationRequired]


# =============================================================================
# SESSION HANDLER
# =============================================================================
class SessionHandler:
    """
    Session lifecycle facade.

    One handler serves any number of concurrent units of work; all
    per-request state lives in the SessionContext returned by open().

    Usage:
        handler = SessionHandler(SessionGuardConfig())

        async with handler.session("redis://localhost:6379", "SID") as ctx:
            result = await handler.read(ctx, cookie_id)
            ...
            await handler.write(ctx, result.session_id, payload)
    """

    __slots__ = ("_config", "_store_factory", "_id_generator", "_locks")

    def __init__(
        self,
        config: Optional[SessionGuardConfig] = None,
        store_factory: Optional[StoreFactory] = None,
        id_generator: Optional[IdGenerator] = None,
    ) -> None:
        self._config = config or SessionGuardConfig()
        self._store_factory = store_factory or redis_store_factory(self._config.redis)
        self._id_generator = id_generator or default_id_generator
        self._locks = SessionLockManager(self._config.session, self._config.lock)

    @property
    def config(self) -> SessionGuardConfig:
        return self._config

    @property
    def lock_manager(self) -> SessionLockManager:
        return self._locks

    @staticmethod
    def _log_scope(ctx: SessionContext):
        return log_scope(unit_id=ctx.unit_id, session_name=ctx.name)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    async def open(self, location: str, name: str) -> SessionContext:
        """
        Connect to the store at ``location`` for a new unit of work.

        Raises:
            StoreError: If the location is invalid or the store is unreachable.
        """
        ctx = SessionContext(location=location, name=name)

        with self._log_scope(ctx):
            try:
                store = self._store_factory(location)
            except ValueError as e:
                raise StoreError.connection_failed(location, cause=e) from e

            connected = await store.connect()
            if connected.is_err():
                await store.close()
                logger.error(
                    "Session store connection failed",
                    extra={"error": connected.error.to_dict()},
                )
                raise connected.error

            ctx.store = store
            ctx.transition(LifecyclePhase.OPENED, "open")
            logger.debug("Session context opened")

        return ctx

    def generate_id(self, ctx: SessionContext) -> str:
        """Mint a new session id and remember it as locally generated."""
        ctx.require_open("generate an id for")
        session_id = self._id_generator()
        ctx.origin.mark_generated(session_id)
        return session_id

    async def read(self, ctx: SessionContext, session_id: str) -> ReadResult:
        """
        Lock and read the session, or ask the host to regenerate its id.

        Raises:
            LockError: If the lock could not be acquired in time.
            StoreError: If the store failed.
        """
        store = ctx.require_open("read")

        with self._log_scope(ctx):
            decision = await must_regenerate(ctx.origin, store, session_id)
            if decision.is_err():
                raise decision.error

            if decision.unwrap():
                logger.warning("Rejected unknown session id; regeneration required")
                return RegenerationRequired(stale_id=session_id)

            acquired = await self._locks.acquire(ctx, session_id)
            if acquired.is_err():
                raise acquired.error

            fetched = await store.get(session_id)
            if fetched.is_err():
                raise fetched.error

            payload = fetched.unwrap()
            return SessionData(
                session_id=session_id,
                payload=payload if payload is not None else C.EMPTY_PAYLOAD,
            )

    async def write(
        self,
        ctx: SessionContext,
        session_id: str,
        data: bytes,
    ) -> bool:
        """
        Persist ``data`` under ``session_id`` with the session TTL.

        Returns:
            True once the store acknowledged the write, False otherwise.
        """
        store = ctx.require_open("write")

        with self._log_scope(ctx):
            result = await store.set_with_ttl(
                session_id,
                data,
                self._config.session.session_ttl_seconds,
            )
            if result.is_err():
                logger.warning(
                    "Session write failed",
                    extra={"error": result.error.to_dict()},
                )
                return False

            if not result.unwrap():
                logger.warning(
                    "Session write not acknowledged",
                    extra={"error": StoreError.write_failed(session_id).to_dict()},
                )
                return False

            return True

    async def destroy(self, ctx: SessionContext, session_id: str) -> bool:
        """
        Delete the session and its lock. Always returns True.
        """
        store = ctx.require_open("destroy")

        with self._log_scope(ctx):
            for key in (session_id, self._locks.lock_key(session_id)):
                result = await store.delete(key)
                if result.is_err():
                    logger.error(
                        "Failed to delete key while destroying session",
                        extra={"error": result.error.to_dict()},
                    )
            ctx.locks.discard(session_id)

        return True

    async def close(self, ctx: SessionContext) -> bool:
        """
        Release every lock held by the unit of work, then the connection.

        Closing a context that is not open is a no-op. Always returns True.
        """
        if ctx.phase is not LifecyclePhase.OPENED:
            return True

        with self._log_scope(ctx):
            held = len(ctx.locks)
            released = await self._locks.release_all(ctx)

            closed = await ctx.require_open("close").close()
            if closed.is_err():
                logger.error(
                    "Failed to close session store connection",
                    extra={"error": closed.error.to_dict()},
                )

            ctx.transition(LifecyclePhase.CLOSED, "close")
            logger.debug("Session context closed (%d/%d locks released)", released, held)

        return True

    async def garbage_collect(self, max_lifetime: int) -> bool:
        """
        No-op: stale sessions expire through the store's own TTL.
        """
        return True

    # -------------------------------------------------------------------------
    # CONVENIENCE
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def session(self, location: str, name: str) -> AsyncIterator[SessionContext]:
        """
        Open a unit of work as an async context manager.

        Always closes the context on exit, releasing its locks.
        """
        ctx = await self.open(location, name)
        try:
            yield ctx
        finally:
            await self.close(ctx)
