"""
Unit Tests: Unit-of-Work Context
"""

import pytest

from sessionguard.core.errors import ErrorCode, SessionGuardError
from sessionguard.session.context import (
    LifecyclePhase,
    LockRegistry,
    OriginTracker,
    SessionContext,
)
from sessionguard.storage.backends import InMemorySessionStore


class TestOriginTracker:

    def test_tracks_only_marked_ids(self):
        origin = OriginTracker()
        origin.mark_generated("abc")

        assert origin.was_generated_here("abc")
        assert not origin.was_generated_here("zzz")
        assert len(origin) == 1


class TestLockRegistry:

    def test_ids_are_recorded_once(self):
        registry = LockRegistry()

        assert registry.record("abc") is True
        assert registry.record("abc") is False
        assert len(registry) == 1

    def test_drain_returns_acquisition_order_and_empties(self):
        registry = LockRegistry()
        for session_id in ("b", "a", "c"):
            registry.record(session_id)

        assert registry.drain() == ["b", "a", "c"]
        assert len(registry) == 0
        assert registry.drain() == []

    def test_discard_unknown_id_is_noop(self):
        registry = LockRegistry()
        registry.record("abc")

        registry.discard("zzz")
        registry.discard("abc")

        assert "abc" not in registry
        assert list(registry) == []


class TestSessionContext:

    def test_new_context_is_unopened(self):
        ctx = SessionContext(location="memory://", name="SID")

        assert ctx.phase is LifecyclePhase.UNOPENED
        assert ctx.store is None
        assert len(ctx.unit_id) == 32

    def test_unit_ids_are_distinct(self):
        a = SessionContext(location="memory://", name="SID")
        b = SessionContext(location="memory://", name="SID")

        assert a.unit_id != b.unit_id
        assert a.origin is not b.origin
        assert a.locks is not b.locks

    def test_valid_transitions(self):
        ctx = SessionContext(location="memory://", name="SID", store=InMemorySessionStore())

        ctx.transition(LifecyclePhase.OPENED, "open")
        assert ctx.require_open("read") is ctx.store

        ctx.transition(LifecyclePhase.CLOSED, "close")
        assert ctx.phase.is_terminal

    @pytest.mark.parametrize("start,target", [
        (LifecyclePhase.UNOPENED, LifecyclePhase.CLOSED),
        (LifecyclePhase.CLOSED, LifecyclePhase.OPENED),
        (LifecyclePhase.OPENED, LifecyclePhase.OPENED),
    ])
    def test_invalid_transitions_raise(self, start, target):
        ctx = SessionContext(location="memory://", name="SID", phase=start)

        with pytest.raises(SessionGuardError) as exc_info:
            ctx.transition(target, "transition")

        assert exc_info.value.code == ErrorCode.LIFECYCLE_INVALID_STATE
        assert exc_info.value.context["phase"] == start.name

    def test_require_open_rejects_closed_context(self):
        ctx = SessionContext(
            location="memory://",
            name="SID",
            store=InMemorySessionStore(),
            phase=LifecyclePhase.CLOSED,
        )

        with pytest.raises(SessionGuardError):
            ctx.require_open("write")
