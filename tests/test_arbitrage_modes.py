"""
Tests for Arbitrage Modes
=========================

Tests signal generation and close-rule priority for each arbitrage
variant.
"""

from datetime import timedelta

import pytest

from core.pair_manager import (
    PairManager,
    PairPosition,
    PairStatus,
    PositionLeg,
    PositionSide,
)
from strategies.arbitrage_modes import (
    CloseReason,
    CointegrationMode,
    CrossExchangeMode,
    PairsTradingMode,
    PerpetualSpotMode,
    SignalType,
    TradeOutcome,
    create_arbitrage_mode,
)
from strategies.stat_arb_config import ArbType, StatArbConfig


def make_pair(clock, **stats):
    manager = PairManager(clock=clock)
    return manager.add_pair("A", "B", **stats)


def attach_position(pair, entry_time, price_a, price_b, long_spread=True, qty=1.0, value=1000.0):
    """Write a position straight onto the pair (bypasses the manager)."""
    pair.position = PairPosition(
        signal_type="open_long_spread" if long_spread else "open_short_spread",
        asset_a=PositionLeg("A", PositionSide.LONG if long_spread else PositionSide.SHORT, qty, price_a),
        asset_b=PositionLeg("B", PositionSide.SHORT if long_spread else PositionSide.LONG, qty, price_b),
        entry_time=entry_time,
        value=value,
    )
    return pair


class TestModeFactory:
    """Test create_arbitrage_mode."""

    @pytest.mark.parametrize("arb_type,expected", [
        (ArbType.PAIRS_TRADING, PairsTradingMode),
        (ArbType.COINTEGRATION, CointegrationMode),
        (ArbType.CROSS_EXCHANGE, CrossExchangeMode),
        (ArbType.PERPETUAL_SPOT, PerpetualSpotMode),
    ])
    def test_selects_mode(self, arb_type, expected):
        mode = create_arbitrage_mode(StatArbConfig(arb_type=arb_type))
        assert type(mode) is expected
        assert mode.arb_type == arb_type

    def test_unknown_type(self):
        """Unknown arbitrage types are rejected."""
        config = StatArbConfig()
        config.arb_type = "triangular"
        with pytest.raises(ValueError):
            create_arbitrage_mode(config)


class TestPairsTradingMode:
    """Test Z-score signals and exits."""

    @pytest.fixture
    def mode(self):
        return PairsTradingMode(StatArbConfig())

    @pytest.fixture
    def pair(self, clock):
        # spread = A - B, mean 0, std 1 -> Z = A - B
        return make_pair(clock, alpha=0.0, beta=1.0, spread_mean=0.0, spread_std=1.0)

    def test_short_spread_on_high_z(self, mode, pair):
        """Z >= entry -> short the spread."""
        signal = mode.generate_signal(pair, 102.5, 100.0)

        assert signal.signal_type == SignalType.OPEN_SHORT_SPREAD
        assert signal.z_score == pytest.approx(2.5)
        assert signal.spread == pytest.approx(2.5)
        assert pair.stats.current_z_score == pytest.approx(2.5)

    def test_long_spread_on_low_z(self, mode, pair):
        """Z <= -entry -> long the spread."""
        signal = mode.generate_signal(pair, 97.0, 100.0)
        assert signal.signal_type == SignalType.OPEN_LONG_SPREAD
        assert signal.is_open

    def test_entry_threshold_inclusive(self, mode, pair):
        """Z exactly at the threshold opens."""
        assert mode.generate_signal(pair, 102.0, 100.0).signal_type == SignalType.OPEN_SHORT_SPREAD

    def test_no_signal_inside_band(self, mode, pair):
        signal = mode.generate_signal(pair, 101.0, 100.0)
        assert signal.signal_type == SignalType.NO_SIGNAL
        assert not signal.is_open

    def test_zero_std_never_signals(self, mode, clock):
        """Degenerate spread std gives Z = 0."""
        pair = make_pair(clock, spread_std=0.0)
        assert mode.generate_signal(pair, 500.0, 100.0).signal_type == SignalType.NO_SIGNAL

    def test_mean_reversion_exit_uses_live_z(self, mode, pair, base_time):
        """Exit Z is recomputed from current prices, not the entry value."""
        attach_position(pair, base_time, 97.0, 100.0)
        pair.stats.current_z_score = -3.0

        decision = mode.check_close(pair, 100.2, 100.0, base_time)

        assert decision.should_close
        assert decision.reason == CloseReason.MEAN_REVERSION
        assert decision.outcome == TradeOutcome.PROFIT
        assert pair.stats.current_z_score == pytest.approx(0.2)

    def test_stop_loss(self, mode, pair, base_time):
        """|Z| >= stop-loss closes as a loss."""
        attach_position(pair, base_time, 97.0, 100.0, value=1_000_000.0)
        decision = mode.check_close(pair, 95.5, 100.0, base_time)

        assert decision.reason == CloseReason.STOP_LOSS
        assert decision.outcome == TradeOutcome.LOSS

    def test_hold_between_thresholds(self, mode, pair, base_time):
        attach_position(pair, base_time, 97.0, 100.0)
        assert not mode.check_close(pair, 98.5, 100.0, base_time).should_close

    def test_no_position(self, mode, pair, base_time):
        assert not mode.check_close(pair, 100.0, 100.0, base_time).should_close


class TestCommonExitRules:
    """Test timeout, broken-pair and hard-stop rules."""

    @pytest.fixture
    def mode(self):
        return PairsTradingMode(StatArbConfig())

    @pytest.fixture
    def pair(self, clock):
        return make_pair(clock, alpha=0.0, beta=1.0, spread_mean=0.0, spread_std=1.0)

    def test_timeout(self, mode, pair, base_time):
        """Holding beyond max_holding_period closes even with favorable Z."""
        attach_position(pair, base_time, 97.0, 100.0)
        now = base_time + timedelta(days=7)

        decision = mode.check_close(pair, 98.5, 100.0, now)

        assert decision.reason == CloseReason.TIMEOUT
        assert decision.outcome == TradeOutcome.TIMEOUT

    def test_broken_pair(self, mode, pair, base_time):
        """BROKEN status forces a close."""
        attach_position(pair, base_time, 97.0, 100.0)
        pair.status = PairStatus.BROKEN

        decision = mode.check_close(pair, 98.5, 100.0, base_time)

        assert decision.reason == CloseReason.PAIR_BROKEN
        assert decision.outcome == TradeOutcome.UNKNOWN

    def test_max_loss_below_limit_holds(self, mode, pair, base_time):
        """Losses smaller than max_loss_per_pair keep the position."""
        attach_position(pair, base_time, 98.0, 100.0, qty=10.0, value=1000.0)

        # Z = 95.5 - 99 = -3.5 (hold); PnL = -25 + 10 = -15 -> -1.5%
        assert not mode.check_close(pair, 95.5, 99.0, base_time).should_close

    def test_max_loss_triggers(self, mode, pair, base_time):
        """PnL / notional <= -max_loss_per_pair closes as a loss."""
        attach_position(pair, base_time, 98.0, 100.0, qty=10.0, value=500.0)

        # Z = 96 - 99.5 = -3.5 (hold); PnL = -20 + 5 = -15 -> -3%
        decision = mode.check_close(pair, 96.0, 99.5, base_time)

        assert decision.reason == CloseReason.MAX_LOSS
        assert decision.outcome == TradeOutcome.LOSS

    def test_priority_mode_rule_first(self, mode, pair, base_time):
        """Mean reversion wins over timeout and broken status."""
        attach_position(pair, base_time, 97.0, 100.0)
        pair.status = PairStatus.BROKEN

        decision = mode.check_close(pair, 100.0, 100.0, base_time + timedelta(days=30))
        assert decision.reason == CloseReason.MEAN_REVERSION


class TestCrossExchangeMode:
    """Test net-spread signals and exits."""

    @pytest.fixture
    def mode(self):
        # Round-trip cost 2 * 0.001 + 2 * 0.0005 = 0.003
        return CrossExchangeMode(StatArbConfig(arb_type=ArbType.CROSS_EXCHANGE))

    @pytest.fixture
    def pair(self, clock):
        return make_pair(clock)

    def test_short_when_a_rich(self, mode, pair):
        """A above B by more than threshold + costs -> short the spread."""
        signal = mode.generate_signal(pair, 100.8, 100.0)

        assert signal.signal_type == SignalType.OPEN_SHORT_SPREAD
        assert signal.spread == pytest.approx(0.008)
        assert signal.net_spread == pytest.approx(0.005)
        assert pair.stats.net_spread == pytest.approx(0.005)

    def test_long_when_a_cheap(self, mode, pair):
        signal = mode.generate_signal(pair, 99.2, 100.0)
        assert signal.signal_type == SignalType.OPEN_LONG_SPREAD

    def test_costs_absorb_small_spreads(self, mode, pair):
        """Raw 0.5% spread nets 0.2%, below the 0.3% entry."""
        assert mode.generate_signal(pair, 100.5, 100.0).signal_type == SignalType.NO_SIGNAL

    def test_exit_on_converged_net_spread(self, mode, pair, base_time):
        """Net spread <= exit threshold closes as profit."""
        attach_position(pair, base_time, 100.8, 100.0, long_spread=False)

        assert not mode.check_close(pair, 100.5, 100.0, base_time).should_close

        decision = mode.check_close(pair, 100.35, 100.0, base_time)
        assert decision.reason == CloseReason.SPREAD_CONVERGED
        assert decision.outcome == TradeOutcome.PROFIT


class TestPerpetualSpotMode:
    """Test basis signals and exits."""

    @pytest.fixture
    def mode(self):
        return PerpetualSpotMode(StatArbConfig(arb_type=ArbType.PERPETUAL_SPOT))

    @pytest.fixture
    def pair(self, clock):
        return make_pair(clock)

    def test_short_on_rich_perp(self, mode, pair):
        """Annualized basis = basis * 365 / 8 above threshold -> short perp."""
        # basis 0.004 -> 0.1825 annualized
        signal = mode.generate_signal(pair, 100.4, 100.0)

        assert signal.signal_type == SignalType.OPEN_SHORT_SPREAD
        assert signal.annualized_basis == pytest.approx(0.1825)
        assert pair.stats.current_basis == pytest.approx(0.004)

    def test_long_on_cheap_perp(self, mode, pair):
        assert mode.generate_signal(pair, 99.6, 100.0).signal_type == SignalType.OPEN_LONG_SPREAD

    def test_no_signal_inside_band(self, mode, pair):
        # basis 0.002 -> 0.09125 annualized
        assert mode.generate_signal(pair, 100.2, 100.0).signal_type == SignalType.NO_SIGNAL

    def test_exit_on_converged_basis(self, mode, pair, base_time):
        attach_position(pair, base_time, 100.4, 100.0, long_spread=False)

        # basis 0.001 -> 0.045625 <= 0.05
        decision = mode.check_close(pair, 100.1, 100.0, base_time)
        assert decision.reason == CloseReason.BASIS_CONVERGED

    def test_z_rules_do_not_apply(self, mode, pair, base_time):
        """Stale Z-score fields are ignored outside pairs trading."""
        attach_position(pair, base_time, 100.4, 100.0, long_spread=False)
        pair.stats.current_z_score = 0.0

        assert not mode.check_close(pair, 100.4, 100.0, base_time).should_close
