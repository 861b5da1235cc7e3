"""Tests for PermissionManager."""

import asyncio

import pytest

from ccrelay.core.exceptions import PermissionExpiredOrMissingError
from ccrelay.runtime import DEFAULT_PERMISSION_TIMEOUT_MS, PermissionManager

from tests.conftest import T0


@pytest.fixture
def manager(transport, clock):
    return PermissionManager(transport, clock=clock)


class TestTrack:
    def test_track_sets_expiry(self, manager):
        entry = manager.track("p1", "conv-1", "Bash", {"command": "ls"})

        assert entry.created_at == T0
        assert entry.expires_at == T0 + DEFAULT_PERMISSION_TIMEOUT_MS
        assert entry.status == "pending"

    def test_track_is_idempotent(self, manager, clock):
        first = manager.track("p1", "conv-1", "Bash", {})
        clock.advance(1000)

        second = manager.track("p1", "conv-1", "Bash", {})

        assert second is first
        assert len(manager.list()) == 1

    def test_explicit_created_at(self, manager):
        entry = manager.track("p1", "conv-1", "Bash", {}, created_at=T0 - 5000)

        assert entry.expires_at == T0 - 5000 + DEFAULT_PERMISSION_TIMEOUT_MS


class TestRespond:
    async def test_approve_forwards_yes(self, manager, transport):
        manager.track("p1", "conv-1", "Bash", {})

        resolved = await manager.respond("p1", "approve")

        assert resolved.status == "approved"
        assert resolved.decision == "approved"
        assert resolved.completed_at == T0
        assert transport.permission_responses == [("conv-1", "yes")]
        assert manager.get("p1") is None

    async def test_deny_forwards_no(self, manager, transport):
        manager.track("p1", "conv-1", "Bash", {})

        resolved = await manager.respond("p1", "deny")

        assert resolved.status == "denied"
        assert transport.permission_responses == [("conv-1", "no")]

    async def test_respond_just_before_expiry(self, manager, transport, clock):
        manager.track("p1", "conv-1", "Bash", {})
        clock.advance(DEFAULT_PERMISSION_TIMEOUT_MS - 1)

        resolved = await manager.respond("p1", "approve")

        assert resolved is not None
        assert transport.permission_responses == [("conv-1", "yes")]

    async def test_respond_after_expiry_is_noop(self, manager, transport, clock):
        manager.track("p1", "conv-1", "Bash", {})
        clock.advance(DEFAULT_PERMISSION_TIMEOUT_MS + 1)

        resolved = await manager.respond("p1", "approve")

        assert resolved is None
        assert transport.permission_responses == []
        assert manager.list() == []

    async def test_unknown_id_returns_none(self, manager, transport):
        assert await manager.respond("missing", "deny") is None
        assert transport.permission_responses == []

    async def test_unknown_id_can_raise(self, manager):
        with pytest.raises(PermissionExpiredOrMissingError):
            await manager.respond("missing", "deny", raise_on_missing=True)

    async def test_second_response_is_noop(self, manager, transport):
        manager.track("p1", "conv-1", "Bash", {})

        await manager.respond("p1", "approve")
        again = await manager.respond("p1", "deny")

        assert again is None
        assert transport.permission_responses == [("conv-1", "yes")]

    async def test_rejected_transport_result_still_resolves(self, manager, transport):
        transport.permission_result = {"success": False}
        manager.track("p1", "conv-1", "Bash", {})

        resolved = await manager.respond("p1", "approve")

        assert resolved.status == "approved"


class TestListing:
    def test_list_sorted_oldest_first(self, manager):
        manager.track("late", "c", "Bash", {}, created_at=T0 + 10)
        manager.track("early", "c", "Bash", {}, created_at=T0)

        assert [p.id for p in manager.list()] == ["early", "late"]

    def test_list_hides_expired(self, manager, clock):
        manager.track("old", "c", "Bash", {}, created_at=T0 - DEFAULT_PERMISSION_TIMEOUT_MS - 1)
        manager.track("new", "c", "Bash", {})

        assert [p.id for p in manager.list()] == ["new"]
        assert manager.get("old") is None

    def test_sweep_removes_expired(self, manager, clock):
        manager.track("p1", "c", "Bash", {})
        manager.track("p2", "c", "Bash", {}, created_at=T0 + 120_000)
        clock.advance(DEFAULT_PERMISSION_TIMEOUT_MS + 1)

        assert manager.sweep() == 1
        assert [p.id for p in manager.list()] == ["p2"]

    def test_clear(self, manager):
        manager.track("p1", "c", "Bash", {})

        manager.clear()

        assert manager.list() == []


class TestCleanupTask:
    async def test_start_and_stop(self, transport, clock):
        manager = PermissionManager(transport, cleanup_interval_ms=1, clock=clock)

        await manager.start()
        assert manager.is_running

        await manager.stop()
        assert not manager.is_running

    async def test_loop_sweeps_expired(self, transport, clock):
        manager = PermissionManager(
            transport, timeout_ms=100, cleanup_interval_ms=1, clock=clock
        )
        manager.track("p1", "c", "Bash", {})
        clock.advance(101)

        await manager.start()
        for _ in range(50):
            await asyncio.sleep(0.005)
            if manager.get("p1") is None and not manager._pending:
                break
        await manager.stop()

        assert manager._pending == {}

    async def test_double_start_keeps_one_task(self, manager):
        await manager.start()
        task = manager._cleanup_task

        await manager.start()

        assert manager._cleanup_task is task
        await manager.stop()

    async def test_stop_without_start(self, manager):
        await manager.stop()

        assert not manager.is_running
