"""
Redis Session Store
===================

redis.asyncio implementation of SessionStoreProtocol.

Design Principles:
------------------
1. **Binary Safe**: decode_responses is always off; payloads stay bytes
2. **Atomic Locking**: SET NX EX provides set-if-absent-with-TTL in one
   round trip, executed atomically on the server
3. **Result Monad**: No exceptions escape for store-side failures
4. **Per-Unit Ownership**: One instance per unit of work, closed at the
   end of it

Command Mapping:
----------------
| Operation      | Redis command          | Complexity |
|----------------|------------------------|------------|
| get            | GET key                | O(1)       |
| set_with_ttl   | SET key value EX ttl   | O(1)       |
| delete         | DEL key                | O(1)       |
| exists         | EXISTS key             | O(1)       |
| set_if_absent  | SET key value NX EX ttl| O(1)       |
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.asyncio.cluster import RedisCluster
from redis.asyncio.sentinel import Sentinel
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from sessionguard.core.types import Result, Ok, Err
from sessionguard.core.errors import StoreError
from sessionguard.storage.config import RedisConfig, RedisMode

logger = logging.getLogger(__name__)


# =============================================================================
# METRICS
# =============================================================================

@dataclass(slots=True)
class StoreMetrics:
    """
    Per-connection command counters.

    Plain integer accumulation; a store instance is only ever used by
    the single task owning its unit of work.
    """
    get_count: int = 0
    set_count: int = 0
    delete_count: int = 0
    exists_count: int = 0
    set_if_absent_count: int = 0
    set_if_absent_rejected: int = 0

    get_latency_sum_ns: int = 0
    set_latency_sum_ns: int = 0

    connection_errors: int = 0
    timeout_errors: int = 0
    command_errors: int = 0

    def record_get(self, latency_ns: int) -> None:
        self.get_count += 1
        self.get_latency_sum_ns += latency_ns

    def record_set(self, latency_ns: int) -> None:
        self.set_count += 1
        self.set_latency_sum_ns += latency_ns

    def get_avg_get_latency_ms(self) -> float:
        """Average GET latency in milliseconds."""
        if self.get_count == 0:
            return 0.0
        return (self.get_latency_sum_ns / self.get_count) / 1_000_000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "get_count": self.get_count,
            "set_count": self.set_count,
            "delete_count": self.delete_count,
            "exists_count": self.exists_count,
            "set_if_absent_count": self.set_if_absent_count,
            "set_if_absent_rejected": self.set_if_absent_rejected,
            "avg_get_latency_ms": self.get_avg_get_latency_ms(),
            "connection_errors": self.connection_errors,
            "timeout_errors": self.timeout_errors,
            "command_errors": self.command_errors,
        }


# =============================================================================
# REDIS SESSION STORE
# =============================================================================

class RedisSessionStore:
    """
    Redis/Valkey store implementing SessionStoreProtocol.

    Example:
        >>> store = RedisSessionStore(RedisConfig.from_location("localhost:6379"))
        >>> (await store.connect()).is_ok()
        True
        >>> await store.set_with_ttl("abc", b"payload", 1440)
        Ok(True)
        >>> await store.close()
        Ok(None)

    A pre-built client may be injected; connect() then only verifies
    it with PING.
    """

    __slots__ = ("_config", "_client", "_metrics", "_connected")

    def __init__(
        self,
        config: RedisConfig,
        client: Optional[Any] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._metrics = StoreMetrics()
        self._connected = False

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    def _build_client(self) -> Any:
        kwargs = self._config.get_connection_kwargs()

        if self._config.url is not None:
            return aioredis.Redis.from_url(self._config.url, **kwargs)

        if self._config.mode == RedisMode.CLUSTER:
            kwargs.pop("db", None)
            return RedisCluster(**kwargs)

        if self._config.mode == RedisMode.SENTINEL:
            sentinel = Sentinel(
                list(self._config.sentinel_hosts),
                socket_timeout=self._config.socket_timeout_ms / 1000,
            )
            kwargs.pop("host", None)
            kwargs.pop("port", None)
            return sentinel.master_for(
                self._config.sentinel_service,
                redis_class=aioredis.Redis,
                **kwargs,
            )

        return aioredis.Redis(**kwargs)

    async def connect(self) -> Result[None, StoreError]:
        """
        Establish connection and verify it with PING.

        Returns:
            Ok(None) on success, Err(StoreError.connection_failed) otherwise.
        """
        try:
            if self._client is None:
                self._client = self._build_client()
            await self._client.ping()
        except (RedisError, OSError, ValueError, asyncio.TimeoutError) as e:
            self._metrics.connection_errors += 1
            return Err(StoreError.connection_failed(self._config.location, cause=e))

        self._connected = True
        logger.debug("Connected to session store at %s", self._config.location)
        return Ok(None)

    async def close(self) -> Result[None, StoreError]:
        """
        Close the connection pool.

        Safe to call multiple times.
        """
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return Ok(None)

        try:
            await client.aclose()
        except (RedisError, OSError) as e:
            return Err(StoreError.command_failed("close", "", cause=e))
        return Ok(None)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def metrics(self) -> StoreMetrics:
        return self._metrics

    # -------------------------------------------------------------------------
    # COMMANDS
    # -------------------------------------------------------------------------

    def _failure(self, operation: str, key: str, error: Exception) -> StoreError:
        if isinstance(error, (RedisTimeoutError, asyncio.TimeoutError)):
            self._metrics.timeout_errors += 1
            return StoreError.timeout(operation, cause=error)
        self._metrics.command_errors += 1
        return StoreError.command_failed(operation, key, cause=error)

    async def get(self, key: str) -> Result[Optional[bytes], StoreError]:
        """
        GET key.

        Returns:
            Ok(bytes) if present, Ok(None) if absent.
        """
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected("get"))

        start_ns = time.perf_counter_ns()
        try:
            value = await self._client.get(key)
        except (RedisError, asyncio.TimeoutError) as e:
            return Err(self._failure("get", key, e))

        self._metrics.record_get(time.perf_counter_ns() - start_ns)
        return Ok(value)

    async def set_with_ttl(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        """SET key value EX ttl_seconds (create-or-replace)."""
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected("set_with_ttl"))

        start_ns = time.perf_counter_ns()
        try:
            reply = await self._client.set(key, value, ex=ttl_seconds)
        except (RedisError, asyncio.TimeoutError) as e:
            return Err(self._failure("set_with_ttl", key, e))

        self._metrics.record_set(time.perf_counter_ns() - start_ns)
        return Ok(bool(reply))

    async def delete(self, key: str) -> Result[int, StoreError]:
        """DEL key. Returns number of keys removed."""
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected("delete"))

        try:
            deleted = await self._client.delete(key)
        except (RedisError, asyncio.TimeoutError) as e:
            return Err(self._failure("delete", key, e))

        self._metrics.delete_count += 1
        return Ok(int(deleted))

    async def exists(self, key: str) -> Result[bool, StoreError]:
        """EXISTS key."""
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected("exists"))

        try:
            count = await self._client.exists(key)
        except (RedisError, asyncio.TimeoutError) as e:
            return Err(self._failure("exists", key, e))

        self._metrics.exists_count += 1
        return Ok(count > 0)

    async def set_if_absent(
        self,
        key: str,
        value: bytes,
        ttl_seconds: int,
    ) -> Result[bool, StoreError]:
        """
        SET key value NX EX ttl_seconds.

        Redis replies OK when the key was created and nil when it
        already existed.
        """
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected("set_if_absent"))

        try:
            reply = await self._client.set(key, value, nx=True, ex=ttl_seconds)
        except (RedisError, asyncio.TimeoutError) as e:
            return Err(self._failure("set_if_absent", key, e))

        self._metrics.set_if_absent_count += 1
        if not reply:
            self._metrics.set_if_absent_rejected += 1
            return Ok(False)
        return Ok(True)


def redis_store_factory(base: Optional[RedisConfig] = None):
    """
    Build a store factory for SessionHandler.

    The returned callable turns the location passed to open() into an
    unconnected RedisSessionStore, inheriting timeouts and credentials
    from ``base``.
    """
    def factory(location: str) -> RedisSessionStore:
        return RedisSessionStore(RedisConfig.from_location(location, base=base))

    return factory
