"""
Unit Tests: Session Handler Lifecycle

Tests:
    - Read/write/destroy round trips under a held lock
    - Regeneration of foreign ids unknown to the store
    - Lock release on close and serialization across units of work
    - Error policy: fatal open, boolean write, best-effort teardown
"""

import asyncio

import pytest

from sessionguard.core.errors import ErrorCode, LockError, SessionGuardError, StoreError
from sessionguard.core.types import Ok
from sessionguard.session.context import LifecyclePhase, SessionContext
from sessionguard.session.handler import (
    RegenerationRequired,
    SessionData,
    SessionHandler,
    default_id_generator,
)
from sessionguard.storage.backends import InMemorySessionStore


LOCATION = "memory://sessions"
NAME = "SID"


async def seed(keyspace, session_id: str, payload: bytes) -> None:
    """Write a session directly into the keyspace."""
    store = InMemorySessionStore(keyspace)
    await store.connect()
    await store.set_with_ttl(session_id, payload, 60)
    await store.close()


class TestReadWrite:
    """Tests for the read/write round trip."""

    @pytest.mark.asyncio
    async def test_write_then_read_returns_payload(self, handler):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            assert await handler.write(ctx, session_id, b'{"x":1}')

            result = await handler.read(ctx, session_id)

        assert result == SessionData(session_id=session_id, payload=b'{"x":1}')

    @pytest.mark.asyncio
    async def test_never_written_local_id_reads_empty(self, handler):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            result = await handler.read(ctx, session_id)

        assert isinstance(result, SessionData)
        assert result.payload == b""
        assert result.is_empty

    @pytest.mark.asyncio
    async def test_write_applies_session_ttl(self, handler, keyspace):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            await handler.write(ctx, session_id, b"data")

        assert keyspace.ttl(session_id) == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_session_expires_with_store_ttl(self, handler, keyspace, clock):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            await handler.write(ctx, session_id, b"data")

        clock.advance(61)

        assert session_id not in keyspace.keys()

    @pytest.mark.asyncio
    async def test_read_holds_lock_until_close(self, handler, keyspace):
        await seed(keyspace, "abc", b"payload")

        async with handler.session(LOCATION, NAME) as ctx:
            await handler.read(ctx, "abc")
            assert "abc_lock" in keyspace.keys()
            assert list(ctx.locks) == ["abc"]

        assert "abc_lock" not in keyspace.keys()

    @pytest.mark.asyncio
    async def test_reading_twice_does_not_wait_on_own_lock(self, handler, keyspace):
        await seed(keyspace, "abc", b"payload")

        async with handler.session(LOCATION, NAME) as ctx:
            first = await handler.read(ctx, "abc")
            second = await asyncio.wait_for(handler.read(ctx, "abc"), timeout=0.5)

            assert first == second
            assert len(ctx.locks) == 1


class TestDestroy:
    """Tests for session destruction."""

    @pytest.mark.asyncio
    async def test_destroy_then_read_returns_empty(self, handler):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            await handler.write(ctx, session_id, b"data")

            assert await handler.destroy(ctx, session_id) is True
            result = await handler.read(ctx, session_id)

        assert result == SessionData(session_id=session_id, payload=b"")

    @pytest.mark.asyncio
    async def test_destroy_removes_session_and_lock(self, handler, keyspace):
        await seed(keyspace, "abc", b"payload")

        async with handler.session(LOCATION, NAME) as ctx:
            await handler.read(ctx, "abc")
            await handler.destroy(ctx, "abc")

            assert "abc" not in keyspace.keys()
            assert "abc_lock" not in keyspace.keys()
            assert "abc" not in ctx.locks

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(self, handler):
        async with handler.session(LOCATION, NAME) as ctx:
            assert await handler.destroy(ctx, "missing") is True
            assert await handler.destroy(ctx, "missing") is True


class TestRegeneration:
    """Tests for rejection of foreign, unknown ids."""

    @pytest.mark.asyncio
    async def test_unknown_foreign_id_requires_regeneration(self, handler, keyspace):
        async with handler.session(LOCATION, NAME) as ctx:
            result = await handler.read(ctx, "zzz")

            assert result == RegenerationRequired(stale_id="zzz")
            assert result.payload == b""
            assert len(ctx.locks) == 0
            assert "zzz_lock" not in keyspace.keys()

    @pytest.mark.asyncio
    async def test_locally_generated_id_never_regenerates(self, handler, keyspace):
        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            assert session_id not in keyspace.keys()

            result = await handler.read(ctx, session_id)

        assert isinstance(result, SessionData)

    @pytest.mark.asyncio
    async def test_origin_does_not_carry_across_units_of_work(self, handler):
        async with handler.session(LOCATION, NAME) as ctx_a:
            session_id = handler.generate_id(ctx_a)

        async with handler.session(LOCATION, NAME) as ctx_b:
            result = await handler.read(ctx_b, session_id)

        assert isinstance(result, RegenerationRequired)

    @pytest.mark.asyncio
    async def test_host_driven_regeneration_flow(self, handler, keyspace):
        async with handler.session(LOCATION, NAME) as ctx:
            result = await handler.read(ctx, "forged")
            assert isinstance(result, RegenerationRequired)

            await handler.destroy(ctx, result.stale_id)
            new_id = handler.generate_id(ctx)
            result = await handler.read(ctx, new_id)

            assert result == SessionData(session_id=new_id, payload=b"")
            assert await handler.write(ctx, new_id, b"fresh")

        assert keyspace.keys() == [new_id]


class TestScenarios:
    """End-to-end request sequences."""

    @pytest.mark.asyncio
    async def test_session_written_by_one_request_is_read_by_the_next(
        self, config, keyspace
    ):
        from sessionguard.storage.backends import memory_store_factory

        handler = SessionHandler(
            config,
            store_factory=memory_store_factory(keyspace),
            id_generator=lambda: "abc",
        )

        async with handler.session(LOCATION, NAME) as ctx_a:
            session_id = handler.generate_id(ctx_a)
            await handler.read(ctx_a, session_id)
            await handler.write(ctx_a, session_id, b'{"x":1}')

        async with handler.session(LOCATION, NAME) as ctx_b:
            result = await handler.read(ctx_b, "abc")

            assert result == SessionData(session_id="abc", payload=b'{"x":1}')
            assert "abc_lock" in keyspace.keys()

    @pytest.mark.asyncio
    async def test_stale_id_is_rejected_without_lock(self, handler, keyspace):
        async with handler.session(LOCATION, NAME) as ctx_c:
            result = await handler.read(ctx_c, "zzz")

            assert isinstance(result, RegenerationRequired)
            assert result.payload == b""
            assert "zzz_lock" not in keyspace.keys()


class TestConcurrency:
    """Tests for serialization across units of work."""

    @pytest.mark.asyncio
    async def test_second_reader_waits_for_close(self, handler, keyspace):
        await seed(keyspace, "abc", b"v1")

        ctx_a = await handler.open(LOCATION, NAME)
        ctx_b = await handler.open(LOCATION, NAME)
        await handler.read(ctx_a, "abc")

        reader_b = asyncio.create_task(handler.read(ctx_b, "abc"))
        await asyncio.sleep(0.05)
        assert not reader_b.done()

        await handler.write(ctx_a, "abc", b"v2")
        await handler.close(ctx_a)

        result = await asyncio.wait_for(reader_b, timeout=1.0)
        assert result.payload == b"v2"
        await handler.close(ctx_b)

    @pytest.mark.asyncio
    async def test_close_lets_next_unit_lock_immediately(self, handler, keyspace):
        await seed(keyspace, "abc", b"v1")
        await seed(keyspace, "def", b"v1")

        ctx_a = await handler.open(LOCATION, NAME)
        await handler.read(ctx_a, "abc")
        await handler.read(ctx_a, "def")
        await handler.close(ctx_a)

        ctx_b = await handler.open(LOCATION, NAME)
        for session_id in ("abc", "def"):
            acquired = await handler.lock_manager.acquire(ctx_b, session_id)
            assert acquired == Ok(None)
        assert len(ctx_b.locks) == 2
        await handler.close(ctx_b)

    @pytest.mark.asyncio
    async def test_contended_read_times_out(self, handler, keyspace):
        await seed(keyspace, "abc", b"v1")

        ctx_a = await handler.open(LOCATION, NAME)
        ctx_b = await handler.open(LOCATION, NAME)
        await handler.read(ctx_a, "abc")

        with pytest.raises(LockError) as exc_info:
            await handler.read(ctx_b, "abc")

        assert exc_info.value.code == ErrorCode.LOCK_TIMEOUT
        assert len(ctx_b.locks) == 0
        await handler.close(ctx_a)
        await handler.close(ctx_b)

    @pytest.mark.asyncio
    async def test_abandoned_lock_expires_after_lock_ttl(self, handler, keyspace, clock):
        await seed(keyspace, "abc", b"v1")

        crashed = await handler.open(LOCATION, NAME)
        await handler.read(crashed, "abc")
        # crashed never calls close()

        clock.advance(5)

        async with handler.session(LOCATION, NAME) as ctx:
            result = await asyncio.wait_for(handler.read(ctx, "abc"), timeout=0.5)

        assert result.payload == b"v1"


class TestErrorPolicy:
    """Tests for error propagation at the host boundary."""

    @pytest.mark.asyncio
    async def test_open_failure_is_fatal(self, handler, keyspace):
        keyspace.online = False

        with pytest.raises(StoreError) as exc_info:
            await handler.open(LOCATION, NAME)

        assert exc_info.value.code == ErrorCode.STORE_CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_invalid_location_is_a_connection_failure(self, config):
        handler = SessionHandler(config)

        with pytest.raises(StoreError) as exc_info:
            await handler.open("", NAME)

        assert exc_info.value.code == ErrorCode.STORE_CONNECTION_FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("location", ["redis://localhost:notaport", "tcp://cache:notaport"])
    async def test_malformed_location_is_a_connection_failure(self, config, location):
        handler = SessionHandler(config)

        with pytest.raises(StoreError) as exc_info:
            await handler.open(location, NAME)

        assert exc_info.value.code == ErrorCode.STORE_CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_read_surfaces_store_failure(self, handler, keyspace):
        ctx = await handler.open(LOCATION, NAME)
        keyspace.online = False

        with pytest.raises(StoreError):
            await handler.read(ctx, "abc")

        assert await handler.close(ctx) is True

    @pytest.mark.asyncio
    async def test_write_failure_is_reported_as_false(self, handler, keyspace):
        ctx = await handler.open(LOCATION, NAME)
        session_id = handler.generate_id(ctx)
        keyspace.online = False

        assert await handler.write(ctx, session_id, b"data") is False
        assert await handler.destroy(ctx, session_id) is True
        assert await handler.close(ctx) is True

    @pytest.mark.asyncio
    async def test_unacknowledged_write_is_reported_as_false(self, config, keyspace):
        class RejectingStore(InMemorySessionStore):
            async def set_with_ttl(self, key, value, ttl_seconds):
                return Ok(False)

        handler = SessionHandler(
            config,
            store_factory=lambda location: RejectingStore(keyspace),
        )

        async with handler.session(LOCATION, NAME) as ctx:
            session_id = handler.generate_id(ctx)
            assert await handler.write(ctx, session_id, b"data") is False

        assert keyspace.keys() == []

    @pytest.mark.asyncio
    async def test_close_survives_store_outage(self, handler, keyspace):
        await seed(keyspace, "abc", b"v1")
        ctx = await handler.open(LOCATION, NAME)
        await handler.read(ctx, "abc")
        keyspace.online = False

        assert await handler.close(ctx) is True
        assert len(ctx.locks) == 0
        assert ctx.phase is LifecyclePhase.CLOSED


class TestLifecycle:
    """Tests for lifecycle phase guards."""

    @pytest.mark.asyncio
    async def test_read_on_unopened_context_is_rejected(self, handler):
        ctx = SessionContext(location=LOCATION, name=NAME)

        with pytest.raises(SessionGuardError) as exc_info:
            await handler.read(ctx, "abc")

        assert exc_info.value.code == ErrorCode.LIFECYCLE_INVALID_STATE

    @pytest.mark.asyncio
    async def test_read_after_close_is_rejected(self, handler):
        ctx = await handler.open(LOCATION, NAME)
        await handler.close(ctx)

        with pytest.raises(SessionGuardError):
            await handler.read(ctx, "abc")
        with pytest.raises(SessionGuardError):
            handler.generate_id(ctx)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, handler):
        ctx = await handler.open(LOCATION, NAME)

        assert await handler.close(ctx) is True
        assert await handler.close(ctx) is True
        assert ctx.store is not None
        assert not ctx.store.is_connected

    @pytest.mark.asyncio
    async def test_garbage_collect_never_mutates_store(self, handler, keyspace):
        await seed(keyspace, "abc", b"v1")
        before = keyspace.keys()

        assert await handler.garbage_collect(0) is True
        assert await handler.garbage_collect(10**9) is True
        assert keyspace.keys() == before

    @pytest.mark.asyncio
    async def test_each_open_gets_isolated_bookkeeping(self, handler):
        ctx_a = await handler.open(LOCATION, NAME)
        ctx_b = await handler.open(LOCATION, NAME)

        handler.generate_id(ctx_a)

        assert ctx_a.unit_id != ctx_b.unit_id
        assert len(ctx_a.origin) == 1
        assert len(ctx_b.origin) == 0
        await handler.close(ctx_a)
        await handler.close(ctx_b)


class TestIdGeneration:
    """Tests for the default id generator."""

    def test_default_ids_are_unique_and_url_safe(self):
        ids = {default_id_generator() for _ in range(100)}

        assert len(ids) == 100
        for session_id in ids:
            assert len(session_id) >= 43
            assert all(c.isalnum() or c in "-_" for c in session_id)
