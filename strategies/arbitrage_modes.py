"""
Arbitrage Modes
===============

One strategy object per arbitrage variant, selected once at
construction. Each mode knows how to turn two live prices into an open
signal and how to decide whether an open position should close.

Modes:
- PairsTradingMode: residual spread Z-score (pairs_trading, cointegration)
- CrossExchangeMode: percentage spread net of costs
- PerpetualSpotMode: annualized perpetual/spot basis

Close rules (first match wins):
1. Z-score mean reversion: |Z| <= exit_z_score          (pairs)
2. Z-score stop-loss: |Z| >= stop_loss_z_score          (pairs)
3. Net spread <= spread_exit_threshold                  (cross-exchange)
4. |annualized basis| <= basis_exit_threshold           (perpetual-spot)
5. Holding duration >= max_holding_period               (all)
6. Pair status BROKEN                                   (all)
7. PnL / notional <= -max_loss_per_pair                 (all)

Modes write the live stat fields (current Z, spread, basis) onto the
pair as a side effect of evaluation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from core.pair_manager import Pair, PairStatus
from core.spread_calculator import SpreadCalculator
from core.stat_calculator import StatisticalCalculator
from strategies.stat_arb_config import ArbType, StatArbConfig


logger = logging.getLogger(__name__)


# Perpetual basis is scaled by 365 / 8 (8-hour funding settlement)
FUNDING_INTERVAL_HOURS = 8


class SignalType(Enum):
    """Spread signal types."""
    OPEN_LONG_SPREAD = "open_long_spread"    # Long A, short B
    OPEN_SHORT_SPREAD = "open_short_spread"  # Short A, long B
    CLOSE_SPREAD = "close_spread"
    NO_SIGNAL = "no_signal"


class CloseReason(Enum):
    """Why a position was closed."""
    MEAN_REVERSION = "mean_reversion"
    STOP_LOSS = "stop_loss"
    SPREAD_CONVERGED = "spread_converged"
    BASIS_CONVERGED = "basis_converged"
    TIMEOUT = "timeout"
    PAIR_BROKEN = "pair_broken"
    MAX_LOSS = "max_loss"
    STRATEGY_FINISHED = "strategy_finished"


class TradeOutcome(Enum):
    """Expected outcome class attached to a close decision."""
    PROFIT = "profit"
    LOSS = "loss"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TradeSignal:
    """Open signal produced by a mode."""
    signal_type: SignalType
    z_score: float | None = None
    spread: float | None = None
    net_spread: float | None = None
    basis: float | None = None
    annualized_basis: float | None = None
    reason: str = ""

    @property
    def is_open(self) -> bool:
        """True for OPEN_LONG_SPREAD / OPEN_SHORT_SPREAD."""
        return self.signal_type in (SignalType.OPEN_LONG_SPREAD, SignalType.OPEN_SHORT_SPREAD)


@dataclass(frozen=True)
class CloseDecision:
    """Result of evaluating the close rules for a position."""
    should_close: bool
    reason: CloseReason | None = None
    outcome: TradeOutcome | None = None


NO_SIGNAL = TradeSignal(signal_type=SignalType.NO_SIGNAL)
HOLD = CloseDecision(should_close=False)


class ArbitrageMode(ABC):
    """
    Common capability of every arbitrage variant.

    Subclasses implement generate_signal() and the mode-specific exit
    rule; the holding-period, broken-pair and hard-stop rules are shared.
    """

    arb_type: ArbType

    def __init__(self, config: StatArbConfig):
        self.config = config

    @abstractmethod
    def generate_signal(self, pair: Pair, price_a: float, price_b: float) -> TradeSignal:
        """Open signal for a pair without a position."""

    @abstractmethod
    def check_mode_exit(self, pair: Pair, price_a: float, price_b: float) -> CloseDecision:
        """Mode-specific convergence / stop rule."""

    def check_close(
        self,
        pair: Pair,
        price_a: float,
        price_b: float,
        now: datetime,
    ) -> CloseDecision:
        """
        Evaluate every close rule in priority order.

        Args:
            pair: Pair holding a position
            price_a: Latest price of leg A
            price_b: Latest price of leg B
            now: Evaluation time (tick time)
        """
        position = pair.position
        if position is None:
            return HOLD

        decision = self.check_mode_exit(pair, price_a, price_b)
        if decision.should_close:
            return decision

        if now - position.entry_time >= self.config.max_holding_period:
            return CloseDecision(True, CloseReason.TIMEOUT, TradeOutcome.TIMEOUT)

        if pair.status == PairStatus.BROKEN:
            return CloseDecision(True, CloseReason.PAIR_BROKEN, TradeOutcome.UNKNOWN)

        if position.value > 0:
            pnl_pct = position.pnl(price_a, price_b) / position.value
            if pnl_pct <= -self.config.max_loss_per_pair:
                return CloseDecision(True, CloseReason.MAX_LOSS, TradeOutcome.LOSS)

        return HOLD


class PairsTradingMode(ArbitrageMode):
    """Z-score of the regression residual spread."""

    arb_type = ArbType.PAIRS_TRADING

    def live_z_score(self, pair: Pair, price_a: float, price_b: float) -> float:
        """Recompute the residual spread and its Z-score from live prices."""
        stats = pair.stats
        spread = SpreadCalculator.residual_spread(price_a, price_b, stats.alpha, stats.beta)
        z_score = StatisticalCalculator.z_score(spread, stats.spread_mean, stats.spread_std)

        stats.current_spread = spread
        stats.current_z_score = z_score

        return z_score

    def generate_signal(self, pair: Pair, price_a: float, price_b: float) -> TradeSignal:
        z_score = self.live_z_score(pair, price_a, price_b)
        spread = pair.stats.current_spread
        entry = self.config.entry_z_score

        if z_score >= entry:
            # Spread rich: short A, long B
            return TradeSignal(
                signal_type=SignalType.OPEN_SHORT_SPREAD,
                z_score=z_score,
                spread=spread,
                reason=f"Z-Score={z_score:.2f} >= {entry}",
            )

        if z_score <= -entry:
            # Spread cheap: long A, short B
            return TradeSignal(
                signal_type=SignalType.OPEN_LONG_SPREAD,
                z_score=z_score,
                spread=spread,
                reason=f"Z-Score={z_score:.2f} <= -{entry}",
            )

        return NO_SIGNAL

    def check_mode_exit(self, pair: Pair, price_a: float, price_b: float) -> CloseDecision:
        z_abs = abs(self.live_z_score(pair, price_a, price_b))

        if z_abs <= self.config.exit_z_score:
            return CloseDecision(True, CloseReason.MEAN_REVERSION, TradeOutcome.PROFIT)

        if z_abs >= self.config.stop_loss_z_score:
            return CloseDecision(True, CloseReason.STOP_LOSS, TradeOutcome.LOSS)

        return HOLD


class CointegrationMode(PairsTradingMode):
    """Same Z-score logic as pairs trading, reported under its own type."""

    arb_type = ArbType.COINTEGRATION


class CrossExchangeMode(ArbitrageMode):
    """Same instrument on two venues: percentage spread net of costs."""

    arb_type = ArbType.CROSS_EXCHANGE

    def net_spread(self, pair: Pair, price_a: float, price_b: float) -> float:
        """|spread| minus round-trip trading cost and slippage on both legs."""
        spread = SpreadCalculator.percentage_spread(price_a, price_b)
        net = (
            abs(spread)
            - 2 * self.config.trading_cost
            - 2 * self.config.slippage_estimate
        )

        pair.stats.current_spread = spread
        pair.stats.net_spread = net

        return net

    def generate_signal(self, pair: Pair, price_a: float, price_b: float) -> TradeSignal:
        net = self.net_spread(pair, price_a, price_b)
        if net <= self.config.spread_entry_threshold:
            return NO_SIGNAL

        spread = pair.stats.current_spread
        # A rich versus B: short A, long B
        signal_type = SignalType.OPEN_SHORT_SPREAD if spread > 0 else SignalType.OPEN_LONG_SPREAD

        return TradeSignal(
            signal_type=signal_type,
            spread=spread,
            net_spread=net,
            reason=f"Cross-exchange spread={spread * 100:.3f}%",
        )

    def check_mode_exit(self, pair: Pair, price_a: float, price_b: float) -> CloseDecision:
        if self.net_spread(pair, price_a, price_b) <= self.config.spread_exit_threshold:
            return CloseDecision(True, CloseReason.SPREAD_CONVERGED, TradeOutcome.PROFIT)
        return HOLD


class PerpetualSpotMode(ArbitrageMode):
    """Perpetual (leg A) versus spot (leg B) basis."""

    arb_type = ArbType.PERPETUAL_SPOT

    def annualized_basis(self, pair: Pair, perpetual_price: float, spot_price: float) -> float:
        """Basis scaled by 365 / 8."""
        basis = SpreadCalculator.basis(perpetual_price, spot_price)
        annualized = SpreadCalculator.annualized_basis(basis, FUNDING_INTERVAL_HOURS)

        pair.stats.current_basis = basis
        pair.stats.annualized_basis = annualized

        return annualized

    def generate_signal(self, pair: Pair, price_a: float, price_b: float) -> TradeSignal:
        annualized = self.annualized_basis(pair, price_a, price_b)
        threshold = self.config.basis_entry_threshold

        if annualized > threshold:
            # Perp rich: short perp, long spot
            signal_type = SignalType.OPEN_SHORT_SPREAD
        elif annualized < -threshold:
            signal_type = SignalType.OPEN_LONG_SPREAD
        else:
            return NO_SIGNAL

        return TradeSignal(
            signal_type=signal_type,
            basis=pair.stats.current_basis,
            annualized_basis=annualized,
            reason=f"Annualized basis={annualized * 100:.2f}%",
        )

    def check_mode_exit(self, pair: Pair, price_a: float, price_b: float) -> CloseDecision:
        annualized = self.annualized_basis(pair, price_a, price_b)
        if abs(annualized) <= self.config.basis_exit_threshold:
            return CloseDecision(True, CloseReason.BASIS_CONVERGED, TradeOutcome.PROFIT)
        return HOLD


_MODES: dict[ArbType, type[ArbitrageMode]] = {
    ArbType.PAIRS_TRADING: PairsTradingMode,
    ArbType.COINTEGRATION: CointegrationMode,
    ArbType.CROSS_EXCHANGE: CrossExchangeMode,
    ArbType.PERPETUAL_SPOT: PerpetualSpotMode,
}


def create_arbitrage_mode(config: StatArbConfig) -> ArbitrageMode:
    """
    Instantiate the mode matching config.arb_type.

    Raises:
        ValueError: for an unknown arbitrage type
    """
    mode_cls = _MODES.get(config.arb_type)
    if mode_cls is None:
        raise ValueError(f"Unknown arbitrage type: {config.arb_type}")

    logger.debug(f"Arbitrage mode selected: {mode_cls.__name__}")
    return mode_cls(config)
