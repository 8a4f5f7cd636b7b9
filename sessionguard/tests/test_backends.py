"""
Unit Tests: In-Memory Session Store

Tests:
    - Protocol conformance
    - TTL expiry on the keyspace clock
    - Atomic set-if-absent
    - Connection lifecycle and simulated outages
"""

import asyncio

import pytest

from sessionguard.core.errors import ErrorCode
from sessionguard.core.types import Ok
from sessionguard.storage.backends import (
    InMemoryKeyspace,
    InMemorySessionStore,
    memory_store_factory,
)
from sessionguard.storage.protocols import SessionStoreProtocol


@pytest.fixture
def store(keyspace):
    return InMemorySessionStore(keyspace)


class TestProtocol:

    def test_conforms_to_protocol(self):
        assert isinstance(InMemorySessionStore(), SessionStoreProtocol)

    def test_factory_shares_keyspace(self):
        keyspace = InMemoryKeyspace()
        factory = memory_store_factory(keyspace)

        a = factory("memory://one")
        b = factory("memory://two")

        assert a is not b
        assert a.keyspace is b.keyspace is keyspace


class TestCommands:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        await store.connect()

        assert await store.get("abc") == Ok(None)

    @pytest.mark.asyncio
    async def test_set_replaces_value(self, store):
        await store.connect()

        assert await store.set_with_ttl("abc", b"v1", 60) == Ok(True)
        assert await store.set_with_ttl("abc", b"v2", 60) == Ok(True)

        assert await store.get("abc") == Ok(b"v2")

    @pytest.mark.asyncio
    async def test_payload_is_stored_verbatim(self, store):
        await store.connect()
        payload = bytes(range(256))

        await store.set_with_ttl("abc", payload, 60)

        assert await store.get("abc") == Ok(payload)

    @pytest.mark.asyncio
    async def test_delete_reports_removed_count(self, store):
        await store.connect()
        await store.set_with_ttl("abc", b"v", 60)

        assert await store.delete("abc") == Ok(1)
        assert await store.delete("abc") == Ok(0)
        assert await store.exists("abc") == Ok(False)

    @pytest.mark.asyncio
    async def test_set_if_absent_only_creates(self, store):
        await store.connect()

        assert await store.set_if_absent("abc_lock", b"a", 5) == Ok(True)
        assert await store.set_if_absent("abc_lock", b"b", 5) == Ok(False)

        assert await store.get("abc_lock") == Ok(b"a")

    @pytest.mark.asyncio
    async def test_concurrent_set_if_absent_has_one_winner(self, keyspace):
        stores = [InMemorySessionStore(keyspace, simulate_latency=True) for _ in range(10)]
        for s in stores:
            await s.connect()

        results = await asyncio.gather(
            *(s.set_if_absent("abc_lock", b"x", 5) for s in stores)
        )

        assert sum(r.unwrap() for r in results) == 1


class TestExpiry:

    @pytest.mark.asyncio
    async def test_value_expires_after_ttl(self, store, clock):
        await store.connect()
        await store.set_with_ttl("abc", b"v", 10)

        clock.advance(9)
        assert await store.exists("abc") == Ok(True)

        clock.advance(1)
        assert await store.exists("abc") == Ok(False)
        assert await store.get("abc") == Ok(None)

    @pytest.mark.asyncio
    async def test_expired_lock_can_be_recreated(self, store, clock):
        await store.connect()
        await store.set_if_absent("abc_lock", b"a", 5)

        clock.advance(5)

        assert await store.set_if_absent("abc_lock", b"b", 5) == Ok(True)

    @pytest.mark.asyncio
    async def test_write_refreshes_ttl(self, store, keyspace, clock):
        await store.connect()
        await store.set_with_ttl("abc", b"v", 10)

        clock.advance(8)
        await store.set_with_ttl("abc", b"v", 10)

        assert keyspace.ttl("abc") == pytest.approx(10)


class TestConnection:

    @pytest.mark.asyncio
    async def test_commands_require_connection(self, store):
        result = await store.get("abc")

        assert result.is_err()
        assert result.error.code == ErrorCode.STORE_NOT_CONNECTED

    @pytest.mark.asyncio
    async def test_closed_store_rejects_commands(self, store):
        await store.connect()
        await store.close()

        assert not store.is_connected
        assert (await store.exists("abc")).is_err()

    @pytest.mark.asyncio
    async def test_offline_keyspace_refuses_connection(self, store, keyspace):
        keyspace.online = False

        result = await store.connect()

        assert result.is_err()
        assert result.error.code == ErrorCode.STORE_CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_outage_fails_commands(self, store, keyspace):
        await store.connect()
        keyspace.online = False

        result = await store.set_with_ttl("abc", b"v", 60)

        assert result.is_err()
        assert result.error.code == ErrorCode.STORE_COMMAND_FAILED
