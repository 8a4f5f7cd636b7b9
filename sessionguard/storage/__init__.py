"""
Storage module: the expiring key-value store behind session handling.

Provides:
- SessionStoreProtocol: narrow command set consumed by the lifecycle
- RedisSessionStore: redis.asyncio backed implementation
- InMemorySessionStore: process-local implementation for dev and tests
- RedisConfig: connection configuration and location parsing
"""

from sessionguard.storage.protocols import SessionStoreProtocol
from sessionguard.storage.config import RedisConfig, RedisMode
from sessionguard.storage.redis_store import (
    RedisSessionStore,
    StoreMetrics,
    redis_store_factory,
)
from sessionguard.storage.backends import (
    InMemoryKeyspace,
    InMemorySessionStore,
    memory_store_factory,
)

__all__ = [
    "SessionStoreProtocol",
    "RedisConfig",
    "RedisMode",
    "RedisSessionStore",
    "StoreMetrics",
    "redis_store_factory",
    "InMemoryKeyspace",
    "InMemorySessionStore",
    "memory_store_factory",
]
