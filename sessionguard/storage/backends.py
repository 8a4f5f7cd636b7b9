"""
In-Memory Session Store: Development and Testing Implementation

Provides a process-local implementation of SessionStoreProtocol:
- InMemoryKeyspace: the shared "server" holding keys and expiries
- InMemorySessionStore: a per-unit-of-work "connection" to a keyspace

Design Principles:
    - Full protocol compliance for seamless production swap
    - Atomic set-if-absent via an asyncio lock on the keyspace
    - Passive expiry on access, like Redis lazy expiration
    - Injectable clock so TTL behaviour is testable without sleeping

Several stores may share one keyspace, which is how concurrent units
of work are modelled in tests.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sessionguard.core.types import Result, Ok, Err
from sessionguard.core.errors import StoreError


# =============================================================================
# CONSTANTS
# =============================================================================
DEFAULT_SIMULATED_LATENCY_S: float = 0.00005  # 50 microseconds


@dataclass(slots=True)
class ExpiringRecord:
    """Stored value with absolute expiry on the keyspace clock."""
    value: bytes
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


# =============================================================================
# KEYSPACE
# =============================================================================
class InMemoryKeyspace:
    """
    Shared key-value state standing in for the remote store.

    Thread Safety:
        All mutations happen under an asyncio.Lock, so set-if-absent is
        atomic with respect to every other coroutine on the loop.

    Example:
        keyspace = InMemoryKeyspace()
        store_a = InMemorySessionStore(keyspace)
        store_b = InMemorySessionStore(keyspace)
    """

    __slots__ = ("_data", "_lock", "_clock", "online")

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: Dict[str, ExpiringRecord] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        # Set False to simulate the store being unreachable
        self.online = True

    def _live(self, key: str) -> Optional[ExpiringRecord]:
        record = self._data.get(key)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            del self._data[key]
            return None
        return record

    def _expiry(self, ttl_seconds: int) -> float:
        return self._clock() + ttl_seconds

    def keys(self) -> list[str]:
        """Live keys, for inspection in tests."""
        now = self._clock()
        return [k for k, r in self._data.items() if not r.is_expired(now)]

    def ttl(self, key: str) -> Optional[float]:
        """Remaining TTL in seconds, or None when absent or persistent."""
        record = self._live(key)
        if record is None or record.expires_at is None:
            return None
        return record.expires_at - self._clock()


# =============================================================================
# IN-MEMORY SESSION STORE
# =============================================================================
class InMemorySessionStore:
    """
    In-memory store implementing SessionStoreProtocol.

    Features:
        - TTL on every write, passive expiry on access
        - Atomic set-if-absent for the per-session lock
        - Connection lifecycle mirroring the Redis store
    """

    __slots__ = ("_keyspace", "_connected", "_simulate_latency")

    def __init__(
        self,
        keyspace: Optional[InMemoryKeyspace] = None,
        simulate_latency: bool = False,
    ) -> None:
        self._keyspace = keyspace or InMemoryKeyspace()
        self._connected = False
        self._simulate_latency = simulate_latency

    @property
    def keyspace(self) -> InMemoryKeyspace:
        return self._keyspace

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def _round_trip(self, operation: str) -> Optional[StoreError]:
        if self._simulate_latency:
            await asyncio.sleep(DEFAULT_SIMULATED_LATENCY_S)
        if not self._connected:
            return StoreError.not_connected(operation)
        if not self._keyspace.online:
            return StoreError.command_failed(
                operation, "", cause=ConnectionError("keyspace offline")
            )
        return None

    async def connect(self) -> Result[None, StoreError]:
        if not self._keyspace.online:
            return Err(StoreError.connection_failed(
                "memory://", cause=ConnectionError("keyspace offline")
            ))
        self._connected = True
        return Ok(None)

    async def close(self) -> Result[None, StoreError]:
        self._connected = False
        return Ok(None)

    async def get(self, key: str) -> Result[Optional[bytes], StoreError]:
        if error := await self._round_trip("get"):
            return Err(error)
        async with self._keyspace._lock:
            record = self._keyspace._live(key)
            return Ok(record.value if record is not None else None)

    async def set_with_ttl(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        if error := await self._round_trip("set_with_ttl"):
            return Err(error)
        async with self._keyspace._lock:
            self._keyspace._data[key] = ExpiringRecord(
                value=bytes(value),
                expires_at=self._keyspace._expiry(ttl_seconds),
            )
            return Ok(True)

    async def delete(self, key: str) -> Result[int, StoreError]:
        if error := await self._round_trip("delete"):
            return Err(error)
        async with self._keyspace._lock:
            if self._keyspace._live(key) is None:
                return Ok(0)
            del self._keyspace._data[key]
            return Ok(1)

    async def exists(self, key: str) -> Result[bool, StoreError]:
        if error := await self._round_trip("exists"):
            return Err(error)
        async with self._keyspace._lock:
            return Ok(self._keyspace._live(key) is not None)

    async def set_if_absent(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        if error := await self._round_trip("set_if_absent"):
            return Err(error)
        async with self._keyspace._lock:
            if self._keyspace._live(key) is not None:
                return Ok(False)
            self._keyspace._data[key] = ExpiringRecord(
                value=bytes(value),
                expires_at=self._keyspace._expiry(ttl_seconds),
            )
            return Ok(True)


def memory_store_factory(keyspace: Optional[InMemoryKeyspace] = None):
    """
    Build a store factory for SessionHandler.

    Every location maps onto the same keyspace, so all units of work
    created by one handler share state.
    """
    keyspace = keyspace or InMemoryKeyspace()

    def factory(location: str) -> InMemorySessionStore:
        return InMemorySessionStore(keyspace)

    return factory
