"""
Tests for Pair Manager
======================

Tests pair identity, the validation state machine, the active-set cap,
position tracking and performance bookkeeping.
"""

import logging
from datetime import timedelta

import pytest

from core.events import EventType
from core.pair_manager import (
    PairManager,
    PairPosition,
    PairStatus,
    PositionConflictError,
    PositionLeg,
    PositionSide,
)
from core.stat_calculator import StationarityResult


STATIONARY = StationarityResult(is_stationary=True, test_stat=-4.0, critical_value=-2.86, p_value=0.01)
NOT_STATIONARY = StationarityResult(is_stationary=False, test_stat=-1.0, critical_value=-2.86, p_value=0.5)

GOOD_STATS = {
    "correlation": 0.9,
    "half_life": 5.0,
    "cointegration": STATIONARY,
}


def make_position(base_time, asset_a="A", asset_b="B"):
    """Long-spread position: long A, short B."""
    return PairPosition(
        signal_type="open_long_spread",
        asset_a=PositionLeg(asset_a, PositionSide.LONG, 2.0, 100.0),
        asset_b=PositionLeg(asset_b, PositionSide.SHORT, 1.0, 50.0),
        entry_time=base_time,
        value=250.0,
        entry_z_score=-2.1,
    )


class TestPairIdentity:
    """Test canonical pair ids and idempotent add."""

    @pytest.fixture
    def manager(self, clock):
        return PairManager(clock=clock)

    def test_id_is_symmetric(self):
        """id(A, B) == id(B, A)."""
        assert PairManager.generate_pair_id("ETH/USDT", "BTC/USDT") == "BTC/USDT:ETH/USDT"
        assert PairManager.generate_pair_id("BTC/USDT", "ETH/USDT") == "BTC/USDT:ETH/USDT"

    def test_add_is_idempotent(self, manager):
        """Re-adding (in either order) merges stats into one pair."""
        first = manager.add_pair("A", "B", correlation=0.5)
        second = manager.add_pair("B", "A", beta=1.7)

        assert first is second
        assert len(manager) == 1
        assert second.stats.correlation == 0.5
        assert second.stats.beta == 1.7

    def test_new_pair_is_pending(self, manager, base_time):
        """Newly added pairs start PENDING with timestamps set."""
        pair = manager.add_pair("A", "B")

        assert pair.status == PairStatus.PENDING
        assert pair.created_at == base_time
        assert pair.position is None
        assert not manager.is_active(pair.id)

    def test_add_emits_event_once(self, manager):
        """Only the first add queues PAIR_ADDED."""
        manager.add_pair("A", "B")
        manager.add_pair("A", "B")

        events = manager.drain_events()
        assert [e.event_type for e in events] == [EventType.PAIR_ADDED]
        assert manager.drain_events() == []


class TestValidation:
    """Test the validation gates."""

    @pytest.fixture
    def manager(self, clock):
        return PairManager(min_correlation=0.7, min_half_life=1.0, max_half_life=30.0, clock=clock)

    @pytest.fixture
    def pair(self, manager):
        return manager.add_pair("A", "B")

    def test_passing_stats_activate_status(self, manager, pair):
        """All gates pass -> ACTIVE."""
        manager.update_pair_stats(pair.id, **GOOD_STATS)
        assert pair.status == PairStatus.ACTIVE

    def test_lost_cointegration_breaks(self, manager, pair):
        """Non-stationary result -> BROKEN and removed from active set."""
        manager.update_pair_stats(pair.id, **GOOD_STATS)
        manager.activate_pair(pair.id)

        manager.update_pair_stats(pair.id, cointegration=NOT_STATIONARY)

        assert pair.status == PairStatus.BROKEN
        assert not manager.is_active(pair.id)

    def test_low_correlation_suspends(self, manager, pair):
        """|correlation| below threshold -> SUSPENDED."""
        manager.update_pair_stats(pair.id, **{**GOOD_STATS, "correlation": 0.3})
        assert pair.status == PairStatus.SUSPENDED

    def test_negative_correlation_uses_magnitude(self, manager, pair):
        """Strong negative correlation passes the gate."""
        manager.update_pair_stats(pair.id, **{**GOOD_STATS, "correlation": -0.95})
        assert pair.status == PairStatus.ACTIVE

    @pytest.mark.parametrize("half_life", [0.5, 45.0, float("inf")])
    def test_half_life_out_of_range_suspends(self, manager, pair, half_life):
        """Half-life outside [min, max] -> SUSPENDED."""
        manager.update_pair_stats(pair.id, **{**GOOD_STATS, "half_life": half_life})
        assert pair.status == PairStatus.SUSPENDED

    def test_cointegration_gate_checked_first(self, manager, pair):
        """A broken relationship wins over other failing gates."""
        manager.update_pair_stats(
            pair.id, correlation=0.1, half_life=100.0, cointegration=NOT_STATIONARY
        )
        assert pair.status == PairStatus.BROKEN

    def test_validation_is_not_sticky(self, manager, pair):
        """BROKEN and SUSPENDED pairs recover when stats improve."""
        manager.update_pair_stats(pair.id, **{**GOOD_STATS, "cointegration": NOT_STATIONARY})
        assert pair.status == PairStatus.BROKEN

        manager.update_pair_stats(pair.id, **GOOD_STATS)
        assert pair.status == PairStatus.ACTIVE

        manager.update_pair_stats(pair.id, correlation=0.2)
        assert pair.status == PairStatus.SUSPENDED

        manager.update_pair_stats(pair.id, correlation=0.8)
        assert pair.status == PairStatus.ACTIVE

    def test_status_change_events(self, manager, pair):
        """Each transition queues PAIR_STATUS_CHANGED with the previous status."""
        manager.drain_events()
        manager.update_pair_stats(pair.id, **GOOD_STATS)
        manager.update_pair_stats(pair.id, **GOOD_STATS)

        events = manager.drain_events()
        assert len(events) == 1
        assert events[0].event_type == EventType.PAIR_STATUS_CHANGED
        assert events[0].previous_status == "pending"
        assert events[0].status == "active"

    def test_unknown_pair(self, manager):
        """Updating an unknown id returns None."""
        assert manager.update_pair_stats("X:Y", correlation=1.0) is None


class TestActiveSet:
    """Test activation, deactivation and removal."""

    @pytest.fixture
    def manager(self, clock):
        return PairManager(max_active_pairs=2, clock=clock)

    def test_activation_cap(self, manager):
        """Activation is refused once the cap is reached."""
        ids = [manager.add_pair(f"S{i}", "USD").id for i in range(3)]

        assert manager.activate_pair(ids[0])
        assert manager.activate_pair(ids[1])
        assert not manager.activate_pair(ids[2])

        assert [p.id for p in manager.get_active_pairs()] == ids[:2]

    def test_activation_cap_is_quiet(self, manager, caplog):
        """Repeated refusals at the cap do not warn on every cycle."""
        ids = [manager.add_pair(f"S{i}", "USD").id for i in range(3)]
        manager.activate_pair(ids[0])
        manager.activate_pair(ids[1])

        with caplog.at_level(logging.WARNING, logger="core.pair_manager"):
            for _ in range(5):
                assert not manager.activate_pair(ids[2])

        assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []

    def test_activate_twice_is_noop(self, manager):
        """Re-activating an active pair succeeds without a second event."""
        pair_id = manager.add_pair("A", "B").id
        manager.activate_pair(pair_id)
        manager.drain_events()

        assert manager.activate_pair(pair_id)
        assert manager.drain_events() == []

    def test_activate_unknown(self, manager):
        assert not manager.activate_pair("X:Y")

    def test_deactivate(self, manager):
        """Deactivation removes from the active set and emits once."""
        pair_id = manager.add_pair("A", "B").id
        manager.activate_pair(pair_id)
        manager.drain_events()

        assert manager.deactivate_pair(pair_id)
        assert manager.deactivate_pair(pair_id)
        assert not manager.is_active(pair_id)

        events = manager.drain_events()
        assert [e.event_type for e in events] == [EventType.PAIR_DEACTIVATED]

    def test_remove(self, manager):
        """Removal deletes the pair and frees its active slot."""
        pair_id = manager.add_pair("A", "B").id
        manager.activate_pair(pair_id)

        assert manager.remove_pair(pair_id)
        assert pair_id not in manager
        assert manager.get_active_pairs() == []
        assert not manager.remove_pair(pair_id)

    def test_remove_refused_with_position(self, manager, base_time):
        """A pair holding a position cannot be removed."""
        pair_id = manager.add_pair("A", "B").id
        manager.set_position(pair_id, make_position(base_time))

        assert not manager.remove_pair(pair_id)
        assert pair_id in manager

    def test_clear(self, manager):
        manager.add_pair("A", "B")
        manager.clear()

        assert len(manager) == 0
        assert manager.drain_events() == []


class TestPositions:
    """Test position tracking and performance."""

    @pytest.fixture
    def manager(self, clock):
        return PairManager(clock=clock)

    def test_set_and_clear_position(self, manager, base_time):
        """Attach then detach a position."""
        pair_id = manager.add_pair("A", "B").id
        position = make_position(base_time)

        pair = manager.set_position(pair_id, position)
        assert pair.position is position
        assert pair.open_time == base_time
        assert manager.get_pairs_with_positions() == [pair]

        manager.set_position(pair_id, None)
        assert pair.position is None
        assert pair.open_time is None
        assert manager.get_pairs_with_positions() == []

    def test_second_position_rejected(self, manager, base_time):
        """Two simultaneous positions on one pair is a logic error."""
        pair_id = manager.add_pair("A", "B").id
        first = make_position(base_time)
        manager.set_position(pair_id, first)

        with pytest.raises(PositionConflictError):
            manager.set_position(pair_id, make_position(base_time + timedelta(minutes=1)))

        assert manager.get_pair(pair_id).position is first

    def test_position_pnl(self, base_time):
        """Long legs gain on rises, short legs on falls."""
        position = make_position(base_time)

        # Long 2 A from 100 -> 105: +10; short 1 B from 50 -> 48: +2
        assert position.pnl(105.0, 48.0) == pytest.approx(12.0)
        # Long A 100 -> 95: -10; short B 50 -> 53: -3
        assert position.pnl(95.0, 53.0) == pytest.approx(-13.0)

    def test_record_trade_result(self, manager):
        """Counters and max single-trade loss."""
        pair_id = manager.add_pair("A", "B").id

        manager.record_trade_result(pair_id, 50.0, True)
        manager.record_trade_result(pair_id, -30.0, False)
        manager.record_trade_result(pair_id, -80.0, False)
        manager.record_trade_result(pair_id, -10.0, False)

        performance = manager.get_pair(pair_id).performance
        assert performance.total_trades == 4
        assert performance.win_count == 1
        assert performance.loss_count == 3
        assert performance.total_pnl == pytest.approx(-70.0)
        assert performance.max_drawdown == pytest.approx(80.0)

    def test_record_unknown_pair_ignored(self, manager):
        manager.record_trade_result("X:Y", 10.0, True)
        assert len(manager) == 0
