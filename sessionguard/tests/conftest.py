"""
Shared fixtures: in-memory keyspace with a controllable clock and a
handler wired to it with short lock timings.
"""

from __future__ import annotations

import itertools

import pytest

from sessionguard.core.config import LockConfig, SessionConfig, SessionGuardConfig
from sessionguard.session.handler import SessionHandler
from sessionguard.storage.backends import InMemoryKeyspace, memory_store_factory


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def keyspace(clock):
    return InMemoryKeyspace(clock=clock)


@pytest.fixture
def config():
    return SessionGuardConfig(
        session=SessionConfig(lock_ttl_seconds=5, session_ttl_seconds=60),
        lock=LockConfig(acquire_timeout_seconds=1.0, backoff_base_ms=1, backoff_max_ms=5),
    )


@pytest.fixture
def id_sequence():
    """Deterministic id generator: sid-1, sid-2, ..."""
    counter = itertools.count(1)
    return lambda: f"sid-{next(counter)}"


@pytest.fixture
def handler(config, keyspace, id_sequence):
    return SessionHandler(
        config,
        store_factory=memory_store_factory(keyspace),
        id_generator=id_sequence,
    )
