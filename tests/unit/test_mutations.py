"""Tests for optimistic lock/unlock and account creation."""

import threading

import pytest
from src.data.models import EnrichedUser, NewUser, UserStatus
from src.fleet.aggregator import FleetUserAggregator
from src.fleet.directory import ServerDirectory
from src.fleet.mutations import MutationCoordinator, SUPPRESSED_ERROR
from src.fleet.state import FleetState


@pytest.fixture
def loaded(gateway):
    """Aggregator and coordinator over a loaded snapshot, plus captured notices."""
    state = FleetState()
    aggregator = FleetUserAggregator(ServerDirectory(gateway), state)
    aggregator.load_all_users()
    notices = []
    coordinator = MutationCoordinator(gateway, state, notify=notices.append)
    return aggregator, coordinator, notices


class TestToggleLock:
    def test_lock_active_user(self, loaded, gateway):
        aggregator, coordinator, notices = loaded
        state = aggregator.state
        before = state.rows()

        result = coordinator.toggle_lock(state.find(("s1", "alice")))

        assert result.success is True
        assert gateway.calls_to("lock_user") == [("lock_user", "s1", "alice")]
        after = state.rows()
        assert after[0].status is UserStatus.LOCKED
        for old, new in zip(before[1:], after[1:]):
            assert old is new
        assert notices == []

    def test_unlock_locked_user(self, loaded, gateway):
        aggregator, coordinator, _ = loaded

        coordinator.toggle_lock(aggregator.state.find(("s1", "bob")))

        assert gateway.calls_to("unlock_user") == [("unlock_user", "s1", "bob")]
        assert aggregator.state.find(("s1", "bob")).status is UserStatus.ACTIVE

    def test_same_username_other_server_untouched(self, loaded):
        aggregator, coordinator, _ = loaded

        coordinator.toggle_lock(aggregator.state.find(("s1", "alice")))

        assert aggregator.state.find(("s2", "alice")).status is UserStatus.ACTIVE

    def test_no_reload_after_success(self, loaded, gateway):
        aggregator, coordinator, _ = loaded
        fetches = len(gateway.calls_to("list_users"))

        coordinator.toggle_lock(aggregator.state.find(("s1", "alice")))

        assert len(gateway.calls_to("list_users")) == fetches

    def test_status_read_from_snapshot(self, loaded, gateway):
        aggregator, coordinator, _ = loaded
        stale = aggregator.state.find(("s1", "alice"))
        coordinator.toggle_lock(stale)

        # The caller still holds the pre-lock record; the snapshot says locked.
        coordinator.toggle_lock(stale)

        assert gateway.calls_to("unlock_user") == [("unlock_user", "s1", "alice")]
        assert aggregator.state.find(("s1", "alice")).status is UserStatus.ACTIVE

    def test_failure_leaves_snapshot_and_notifies(self, loaded, gateway):
        aggregator, coordinator, notices = loaded
        gateway.mutation_error = "usermod: user is logged in"
        before = aggregator.state.rows()

        result = coordinator.toggle_lock(aggregator.state.find(("s1", "alice")))

        assert result.success is False
        assert aggregator.state.rows() == before
        assert notices == ["Action failed: usermod: user is logged in"]
        assert coordinator.pending() == []

    def test_user_outside_snapshot_uses_given_status(self, gateway):
        state = FleetState()
        coordinator = MutationCoordinator(gateway, state)
        user = EnrichedUser("carol", 1003, 1003, UserStatus.ACTIVE, "s3", "cache1")

        result = coordinator.toggle_lock(user)

        assert result.success is True
        assert gateway.calls_to("lock_user") == [("lock_user", "s3", "carol")]
        assert state.rows() == ()


class TestInFlightGuard:
    def test_second_click_suppressed_while_pending(self, loaded, gateway):
        aggregator, coordinator, notices = loaded
        gate = threading.Event()
        gateway.gates[("s1", "alice")] = gate
        alice = aggregator.state.find(("s1", "alice"))
        results = []

        first = threading.Thread(target=lambda: results.append(coordinator.toggle_lock(alice)))
        first.start()
        for _ in range(500):
            if coordinator.is_pending(alice.key):
                break
            threading.Event().wait(0.01)
        assert coordinator.is_pending(alice.key)

        second = coordinator.toggle_lock(alice)
        gate.set()
        first.join(timeout=5)

        assert second.success is False
        assert second.error == SUPPRESSED_ERROR
        assert results[0].success is True
        assert gateway.calls_to("lock_user") == [("lock_user", "s1", "alice")]
        assert aggregator.state.find(("s1", "alice")).status is UserStatus.LOCKED
        assert notices == []
        assert coordinator.is_pending(alice.key) is False

    def test_different_rows_proceed_independently(self, loaded, gateway):
        aggregator, coordinator, _ = loaded
        gate = threading.Event()
        gateway.gates[("s1", "alice")] = gate
        alice = aggregator.state.find(("s1", "alice"))

        first = threading.Thread(target=coordinator.toggle_lock, args=(alice,))
        first.start()
        for _ in range(500):
            if coordinator.is_pending(alice.key):
                break
            threading.Event().wait(0.01)

        other = coordinator.toggle_lock(aggregator.state.find(("s2", "alice")))
        gate.set()
        first.join(timeout=5)

        assert other.success is True
        assert aggregator.state.find(("s2", "alice")).status is UserStatus.LOCKED
        assert aggregator.state.find(("s1", "alice")).status is UserStatus.LOCKED


class TestCreateUser:
    def test_create_does_not_touch_snapshot(self, loaded, gateway):
        aggregator, coordinator, _ = loaded
        before = aggregator.state.rows()

        result = coordinator.create_user("s2", NewUser(username="dave"))

        assert result.success is True
        assert aggregator.state.rows() == before
        aggregator.load_all_users()
        assert aggregator.state.find(("s2", "dave")) is not None

    def test_create_failure_notifies(self, loaded, gateway):
        _, coordinator, notices = loaded
        gateway.mutation_error = "useradd: user 'alice' already exists"

        result = coordinator.create_user("s1", NewUser(username="alice"))

        assert result.success is False
        assert notices == ["Action failed: useradd: user 'alice' already exists"]


class TestFleetScenario:
    def test_partial_fleet_then_lock(self, gateway):
        gateway.failing["s2"] = "host unreachable"
        state = FleetState()
        aggregator = FleetUserAggregator(ServerDirectory(gateway), state)
        coordinator = MutationCoordinator(gateway, state)

        result = aggregator.load_all_users()

        assert result.success is True
        assert len(state.rows()) == 3
        assert {u.server_name for u in state.rows()} == {"web1", "cache1"}
        assert state.error is None

        before = state.rows()
        coordinator.toggle_lock(state.find(("s1", "alice")))
        after = state.rows()

        changed = [(a, b) for a, b in zip(before, after) if a != b]
        assert len(changed) == 1
        assert changed[0][1].key == ("s1", "alice")
        assert changed[0][1].status is UserStatus.LOCKED
