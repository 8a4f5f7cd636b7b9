"""
Session Store Protocol: Abstract Interface for Expiring Key-Value Stores

Defines the narrow command set the session lifecycle consumes:

    GET(key)                               -> bytes | absent
    SET_WITH_TTL(key, bytes, ttl)          -> ok | fail
    DELETE(key)                            -> ok (idempotent)
    EXISTS(key)                            -> bool
    SET_IF_ABSENT_WITH_TTL(key, val, ttl)  -> ok | already_present

plus connection management. All operations return Result and never
raise for store-side failures.

Implementations:
    - RedisSessionStore: redis.asyncio backed production store
    - InMemorySessionStore: process-local store for development and tests

The set-if-absent primitive must be atomic on the store side. It is the
only mutual exclusion mechanism; no client-side coordination is assumed.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from sessionguard.core.types import Result
from sessionguard.core.errors import StoreError


@runtime_checkable
class SessionStoreProtocol(Protocol):
    """
    Protocol for the expiring key-value store behind the session handler.

    One instance is owned by exactly one unit of work, from connect()
    to close(). Values are opaque bytes.
    """

    @abstractmethod
    async def connect(self) -> Result[None, StoreError]:
        """
        Establish the connection.

        Returns Err(StoreError.connection_failed) when the store is
        unreachable.
        """
        ...

    @abstractmethod
    async def close(self) -> Result[None, StoreError]:
        """Release the connection. Safe to call multiple times."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Result[Optional[bytes], StoreError]:
        """
        Retrieve value by key.

        Returns Ok(None) when the key is absent or expired.
        """
        ...

    @abstractmethod
    async def set_with_ttl(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        """
        Create or replace ``key`` with an expiry of ``ttl_seconds``.

        Returns Ok(True) once the store acknowledged the write.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> Result[int, StoreError]:
        """
        Delete key. Deleting an absent key is not an error.

        Returns the number of keys removed (0 or 1).
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> Result[bool, StoreError]:
        """Check whether a live (unexpired) key exists."""
        ...

    @abstractmethod
    async def set_if_absent(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        """
        Atomically create ``key`` with expiry only if it does not exist.

        Returns Ok(True) if the key was created, Ok(False) if it was
        already present.
        """
        ...
