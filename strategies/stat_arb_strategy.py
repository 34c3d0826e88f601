"""
Statistical Arbitrage Strategy
==============================

Tick-driven pairs trading engine.

Per tick:
1. Skip everything while a loss-streak cooldown is active
2. Append the close to the price store
3. Re-validate every pair with enough history (correlation, OLS hedge
   ratio, residual mean/std, stationarity, half-life, Hurst) and
   auto-activate pairs that pass every gate
4. Generate open signals for active pairs without a position
5. Evaluate close rules for every open position

Positions are sized beta-dollar-neutral: total notional
capital * max_position_per_pair is split as value_a = total / (1 + |beta|)
and value_b = total - value_a.

Known limitations:
- The two legs are sent as independent orders. A failed leg is logged
  and counted but not unwound; the position is still recorded so the
  exit path closes both symbols later.
- The cooldown also suspends monitoring of already-open positions.
- Bookkeeping is optimistic: fills are assumed at the observed price.

Ingestion paths (on_tick, on_candle) share state and must not be
driven concurrently for one strategy instance.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from core.event_bus import EventBus
from core.events import (
    CandleEvent,
    CooldownEvent,
    Event,
    EventType,
    FundingRateEvent,
    PositionEvent,
    TradeSignalEvent,
)
from core.execution import ExecutionEngine
from core.logging_config import get_performance_logger
from core.pair_manager import (
    Pair,
    PairManager,
    PairPosition,
    PairStatus,
    PositionLeg,
    PositionSide,
)
from core.price_store import PriceSeriesStore
from core.risk_state import RiskState, apply_trade_result
from core.stat_calculator import StatisticalCalculator
from strategies.arbitrage_modes import (
    CloseReason,
    SignalType,
    TradeOutcome,
    TradeSignal,
    create_arbitrage_mode,
)
from strategies.stat_arb_config import ArbType, StatArbConfig


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StrategyStats:
    """Strategy-level activity counters."""
    total_signals: int = 0
    total_trades: int = 0      # Two orders per opened pair
    failed_legs: int = 0
    analysis_cycles: int = 0
    last_trade_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_signals": self.total_signals,
            "total_trades": self.total_trades,
            "failed_legs": self.failed_legs,
            "analysis_cycles": self.analysis_cycles,
            "last_trade_time": self.last_trade_time.isoformat() if self.last_trade_time else None,
        }


class StatisticalArbitrageStrategy:
    """
    Statistical arbitrage orchestrator.

    Owns the price store, pair manager, arbitrage mode and risk state;
    talks to the outside world through an ExecutionEngine and an
    EventBus.
    """

    def __init__(
        self,
        config: StatArbConfig | None = None,
        engine: ExecutionEngine | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            config: Strategy parameters (defaults when omitted)
            engine: Order-execution collaborator
            event_bus: Channel for lifecycle/trade events
            clock: Fallback time source for ticks without a timestamp

        Raises:
            StatArbConfigError: if the configuration is invalid
        """
        self.config = config or StatArbConfig()
        self.config.validate_or_raise()

        if engine is None:
            raise ValueError("An execution engine is required")

        self.engine = engine
        self.event_bus = event_bus or EventBus()
        self._clock = clock or _utc_now

        self.price_store = PriceSeriesStore(self.config.price_store_capacity)
        self.pair_manager = PairManager(
            max_active_pairs=self.config.max_active_pairs,
            min_correlation=self.config.min_correlation,
            min_half_life=self.config.min_half_life,
            max_half_life=self.config.max_half_life,
            clock=self._clock,
        )
        self.mode = create_arbitrage_mode(self.config)

        self.stats = StrategyStats()
        self.risk_state = RiskState()
        self.running = False

        self._funding_rates: dict[str, tuple[float, datetime]] = {}
        self._last_event_time: datetime | None = None
        self._perf_logger = get_performance_logger(__name__)
        self._prefix = self.config.log_prefix

    @property
    def name(self) -> str:
        return self.config.name

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> None:
        """Register candidate pairs and start accepting ticks."""
        logger.info(f"{self._prefix} Initializing {self.name}")
        logger.info(f"{self._prefix} Arbitrage type: {self.config.arb_type.value}")
        logger.info(f"{self._prefix} Candidate pairs: {len(self.config.candidate_pairs)}")

        for asset_a, asset_b in self.config.candidate_pairs:
            self.pair_manager.add_pair(asset_a, asset_b)

        self.running = True
        await self._publish_pair_events()

    async def finish(self) -> None:
        """Stop, force-close every open position and log a summary."""
        self.running = False
        now = self._current_time()

        for pair in self.pair_manager.get_pairs_with_positions():
            await self._close_position(
                pair, CloseReason.STRATEGY_FINISHED, TradeOutcome.UNKNOWN, now
            )

        await self._publish_pair_events()

        risk = self.risk_state
        logger.info(f"{self._prefix} Strategy finished:")
        logger.info(f"{self._prefix}   Total signals: {self.stats.total_signals}")
        logger.info(f"{self._prefix}   Total trades: {self.stats.total_trades}")
        logger.info(f"{self._prefix}   Total PnL: {risk.total_pnl:.2f}")
        logger.info(f"{self._prefix}   Win rate: {risk.win_rate * 100:.1f}%")
        logger.info(f"{self._prefix}   Max drawdown: {abs(risk.max_drawdown):.2f}")
        self._perf_logger.log_summary()

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def on_tick(self, candle: CandleEvent, history: Any = None) -> None:
        """
        Single-symbol tick path (backtesting).

        Args:
            candle: Bar for one symbol
            history: Accepted for harness compatibility, unused
        """
        if not self.running:
            return

        now = self._event_time(candle)
        if self.risk_state.is_cooling(now):
            logger.debug(f"{self._prefix} Cooling until {self.risk_state.cooling_until}, tick skipped")
            return

        if not candle.symbol:
            return

        self.price_store.add_price(candle.symbol, candle.close, now)
        await self._run_pipeline(now)

    async def on_candle(self, candle: CandleEvent) -> None:
        """
        Multi-symbol candle path (live/shadow feeds).

        The pair pipeline runs only once every required symbol has at
        least lookback_period points.
        """
        if not self.running:
            return

        now = self._event_time(candle)
        if self.risk_state.is_cooling(now):
            logger.debug(f"{self._prefix} Cooling until {self.risk_state.cooling_until}, candle skipped")
            return

        if not candle.symbol:
            return

        self.price_store.add_price(candle.symbol, candle.close, now)

        lookback = self.config.lookback_period
        if all(self.price_store.has_enough_data(s, lookback) for s in self.required_symbols()):
            await self._run_pipeline(now)

    async def on_funding_rate(self, event: FundingRateEvent) -> None:
        """Cache funding rates (perpetual-spot mode only, not used in signals)."""
        if self.config.arb_type != ArbType.PERPETUAL_SPOT:
            return

        timestamp = event.timestamp or self._clock()
        self._funding_rates[event.symbol] = (event.funding_rate, timestamp)
        logger.debug(f"{self._prefix} Funding rate {event.symbol}: {event.funding_rate:.6f}")

    def required_symbols(self) -> list[str]:
        """Every symbol referenced by the candidate pairs, in config order."""
        symbols: dict[str, None] = {}
        for asset_a, asset_b in self.config.candidate_pairs:
            symbols[asset_a] = None
            symbols[asset_b] = None
        return list(symbols)

    def required_data_types(self) -> list[str]:
        """Market data subscriptions needed by the strategy."""
        return ["ticker", "kline"]

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def _run_pipeline(self, now: datetime) -> None:
        with self._perf_logger.measure("pair_revalidation"):
            self._update_pairs(now)

        await self._publish_pair_events()
        await self._check_signals(now)
        await self._manage_positions(now)

    def _update_pairs(self, now: datetime) -> None:
        """Re-estimate statistics for every pair with enough history."""
        self.stats.analysis_cycles += 1

        for pair in self.pair_manager.get_all_pairs():
            try:
                self._analyze_pair(pair, now)
            except Exception:
                logger.exception(f"{self._prefix} Pair analysis failed: {pair.id}")

    def _analyze_pair(self, pair: Pair, now: datetime) -> None:
        lookback = self.config.lookback_period
        if not (
            self.price_store.has_enough_data(pair.asset_a, lookback)
            and self.price_store.has_enough_data(pair.asset_b, lookback)
        ):
            return

        period = self.config.cointegration_test_period
        prices_a = self.price_store.get_prices(pair.asset_a, period)
        prices_b = self.price_store.get_prices(pair.asset_b, period)

        correlation = StatisticalCalculator.correlation(prices_a, prices_b)

        # Hedge regression of A on B: spread = A - (alpha + beta * B)
        regression = StatisticalCalculator.ols(prices_b, prices_a)
        residuals = regression.residuals

        cointegration = StatisticalCalculator.adf_test(
            residuals, self.config.adf_significance_level
        )

        self.pair_manager.update_pair_stats(
            pair.id,
            correlation=correlation,
            alpha=regression.alpha,
            beta=regression.beta,
            spread_mean=StatisticalCalculator.mean(residuals),
            spread_std=StatisticalCalculator.std(residuals),
            cointegration=cointegration,
            half_life=StatisticalCalculator.calculate_half_life(residuals),
            hurst_exponent=StatisticalCalculator.hurst_exponent(residuals),
            last_analysis_time=now,
        )

        if pair.status == PairStatus.ACTIVE and not self.pair_manager.is_active(pair.id):
            self.pair_manager.activate_pair(pair.id)

    async def _check_signals(self, now: datetime) -> None:
        for pair in self.pair_manager.get_active_pairs():
            if pair.has_position or pair.status != PairStatus.ACTIVE:
                continue

            try:
                prices = self._latest_prices(pair)
                if prices is None:
                    continue

                signal = self.mode.generate_signal(pair, *prices)
                if signal.is_open:
                    await self._execute_signal(pair, signal, now)
            except Exception:
                logger.exception(f"{self._prefix} Signal evaluation failed: {pair.id}")

    async def _manage_positions(self, now: datetime) -> None:
        for pair in self.pair_manager.get_pairs_with_positions():
            try:
                prices = self._latest_prices(pair)
                if prices is None:
                    continue

                decision = self.mode.check_close(pair, prices[0], prices[1], now)
                if decision.should_close:
                    await self._close_position(pair, decision.reason, decision.outcome, now)
            except Exception:
                logger.exception(f"{self._prefix} Exit evaluation failed: {pair.id}")

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _check_position_limits(self, capital: float) -> bool:
        """Risk gate applied before every open."""
        with_positions = self.pair_manager.get_pairs_with_positions()

        if len(with_positions) >= self.config.max_active_pairs:
            logger.debug(f"{self._prefix} Open rejected: {len(with_positions)} pairs already open")
            return False

        if capital <= 0:
            logger.warning(f"{self._prefix} Open rejected: non-positive capital {capital}")
            return False

        open_value = sum(p.position.value for p in with_positions if p.position is not None)
        if open_value / capital >= self.config.max_total_position:
            logger.debug(
                f"{self._prefix} Open rejected: exposure {open_value / capital:.1%} "
                f">= {self.config.max_total_position:.1%}"
            )
            return False

        return True

    async def _execute_signal(self, pair: Pair, signal: TradeSignal, now: datetime) -> None:
        capital = float(self.engine.get_capital())
        if not self._check_position_limits(capital):
            return

        prices = self._latest_prices(pair)
        if prices is None:
            return
        price_a, price_b = prices

        total_value = capital * self.config.max_position_per_pair
        value_a = total_value / (1 + abs(pair.stats.beta))
        value_b = total_value - value_a
        qty_a = value_a / price_a
        qty_b = value_b / price_b

        long_spread = signal.signal_type == SignalType.OPEN_LONG_SPREAD
        side_a = PositionSide.LONG if long_spread else PositionSide.SHORT
        side_b = PositionSide.SHORT if long_spread else PositionSide.LONG

        position = PairPosition(
            signal_type=signal.signal_type.value,
            asset_a=PositionLeg(pair.asset_a, side_a, qty_a, price_a),
            asset_b=PositionLeg(pair.asset_b, side_b, qty_b, price_b),
            entry_time=now,
            value=total_value,
            entry_z_score=signal.z_score,
            entry_spread=signal.spread if signal.spread is not None else pair.stats.current_spread,
        )

        await self._publish(TradeSignalEvent(
            source=self.name,
            timestamp=now,
            pair_id=pair.id,
            signal_type=signal.signal_type.value,
            z_score=signal.z_score,
            spread=position.entry_spread,
            reason=signal.reason,
        ))

        if long_spread:
            await self._submit(self.engine.buy, pair.asset_a, qty_a)
            await self._submit(self.engine.sell, pair.asset_b, qty_b)
        else:
            await self._submit(self.engine.sell, pair.asset_a, qty_a)
            await self._submit(self.engine.buy, pair.asset_b, qty_b)

        self.pair_manager.set_position(pair.id, position)
        pair.last_signal = signal.signal_type.value

        self.stats.total_signals += 1
        self.stats.total_trades += 2
        self.stats.last_trade_time = now

        logger.info(f"{self._prefix} Opened {pair.id} {signal.signal_type.value} - {signal.reason}")

        await self._publish(PositionEvent(
            event_type=EventType.POSITION_OPENED,
            source=self.name,
            timestamp=now,
            pair_id=pair.id,
            signal_type=signal.signal_type.value,
            value=total_value,
            reason=signal.reason,
        ))

    async def _close_position(
        self,
        pair: Pair,
        reason: CloseReason,
        outcome: TradeOutcome,
        now: datetime,
    ) -> None:
        position = pair.position
        if position is None:
            return

        price_a = self.price_store.get_latest_price(pair.asset_a) or position.asset_a.entry_price
        price_b = self.price_store.get_latest_price(pair.asset_b) or position.asset_b.entry_price

        pnl = position.pnl(price_a, price_b)
        is_win = pnl > 0

        await self._submit_close(pair.asset_a)
        await self._submit_close(pair.asset_b)

        previous = self.risk_state
        self.risk_state = apply_trade_result(
            previous,
            pnl,
            now,
            self.config.consecutive_loss_limit,
            self.config.cooling_period,
        )

        self.pair_manager.record_trade_result(pair.id, pnl, is_win)
        self.pair_manager.set_position(pair.id, None)

        message = (
            f"{self._prefix} Closed {pair.id} - {reason.value} - "
            f"PnL: {pnl:.2f} ({'win' if is_win else 'loss'})"
        )
        if is_win:
            logger.info(message)
        else:
            logger.warning(message)

        await self._publish(PositionEvent(
            event_type=EventType.POSITION_CLOSED,
            source=self.name,
            timestamp=now,
            pair_id=pair.id,
            signal_type=position.signal_type,
            value=position.value,
            pnl=pnl,
            reason=reason.value,
            outcome=outcome.value,
        ))

        if self.risk_state.cooling_until != previous.cooling_until:
            logger.warning(
                f"{self._prefix} {self.risk_state.consecutive_losses} consecutive losses, "
                f"cooling until {self.risk_state.cooling_until.isoformat()}"
            )
            await self._publish(CooldownEvent(
                source=self.name,
                timestamp=now,
                consecutive_losses=self.risk_state.consecutive_losses,
                cooling_until=self.risk_state.cooling_until,
            ))

    async def _submit(self, order: Callable[[str, float], Any], symbol: str, quantity: float) -> bool:
        """Send one leg; failures are logged and counted, never rolled back."""
        try:
            result = order(symbol, quantity)
            if inspect.isawaitable(result):
                await result
            return True
        except Exception as e:
            self.stats.failed_legs += 1
            logger.error(f"{self._prefix} Order failed for {symbol} ({quantity:.6f}): {e}")
            return False

    async def _submit_close(self, symbol: str) -> bool:
        try:
            result = self.engine.close_position(symbol)
            if inspect.isawaitable(result):
                await result
            return True
        except Exception as e:
            self.stats.failed_legs += 1
            logger.error(f"{self._prefix} Close failed for {symbol}: {e}")
            return False

    # =========================================================================
    # PAIR MANAGEMENT
    # =========================================================================

    async def add_pair(self, asset_a: str, asset_b: str) -> Pair:
        """Manually add a pair (validated on the next cycle)."""
        pair = self.pair_manager.add_pair(asset_a, asset_b)
        logger.info(f"{self._prefix} Manually added pair: {pair.id}")
        await self._publish_pair_events()
        return pair

    async def remove_pair(self, pair_id: str) -> bool:
        """Remove a pair; refused while it holds a position."""
        removed = self.pair_manager.remove_pair(pair_id)
        await self._publish_pair_events()
        return removed

    async def reanalyze_all_pairs(self) -> None:
        """Force a re-validation cycle outside the tick flow."""
        logger.info(f"{self._prefix} Re-analyzing all pairs")
        self._update_pairs(self._current_time())
        await self._publish_pair_events()

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        """Strategy status for monitoring."""
        now = self._current_time()
        cooling_until = self.risk_state.cooling_until

        return {
            "name": self.name,
            "arb_type": self.config.arb_type.value,
            "running": self.running,
            "cooling": self.risk_state.is_cooling(now),
            "cooling_until": cooling_until.isoformat() if cooling_until else None,
            "pairs": {
                "total": len(self.pair_manager),
                "active": len(self.pair_manager.get_active_pairs()),
                "with_positions": len(self.pair_manager.get_pairs_with_positions()),
            },
            "stats": {**self.stats.to_dict(), "risk": self.risk_state.to_dict()},
            "win_rate": self.risk_state.win_rate,
            "funding_rates": {
                symbol: {"rate": rate, "timestamp": ts.isoformat()}
                for symbol, (rate, ts) in self._funding_rates.items()
            },
        }

    def get_pair_details(self, pair_id: str) -> dict[str, Any] | None:
        """Full pair state plus the latest leg prices."""
        pair = self.pair_manager.get_pair(pair_id)
        if pair is None:
            return None

        return {
            "id": pair.id,
            "asset_a": pair.asset_a,
            "asset_b": pair.asset_b,
            "status": pair.status.value,
            "stats": dataclasses.asdict(pair.stats),
            "position": dataclasses.asdict(pair.position) if pair.position else None,
            "performance": dataclasses.asdict(pair.performance),
            "open_time": pair.open_time,
            "last_signal": pair.last_signal,
            "created_at": pair.created_at,
            "last_update": pair.last_update,
            "current_price_a": self.price_store.get_latest_price(pair.asset_a),
            "current_price_b": self.price_store.get_latest_price(pair.asset_b),
        }

    def get_all_pairs_summary(self) -> list[dict[str, Any]]:
        """Compact per-pair summary for dashboards."""
        summary = []
        for pair in self.pair_manager.get_all_pairs():
            stats = pair.stats
            summary.append({
                "id": pair.id,
                "asset_a": pair.asset_a,
                "asset_b": pair.asset_b,
                "status": pair.status.value,
                "correlation": round(stats.correlation, 3),
                "half_life": round(stats.half_life, 1) if stats.half_life is not None else None,
                "current_z_score": (
                    round(stats.current_z_score, 2) if stats.current_z_score is not None else None
                ),
                "has_position": pair.has_position,
                "performance": dataclasses.asdict(pair.performance),
            })
        return summary

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _event_time(self, event: Event) -> datetime:
        now = event.timestamp or self._clock()
        self._last_event_time = now
        return now

    def _current_time(self) -> datetime:
        return self._last_event_time or self._clock()

    def _latest_prices(self, pair: Pair) -> tuple[float, float] | None:
        price_a = self.price_store.get_latest_price(pair.asset_a)
        price_b = self.price_store.get_latest_price(pair.asset_b)
        if not price_a or not price_b:
            return None
        return price_a, price_b

    async def _publish(self, event: Event) -> None:
        await self.event_bus.publish(event)

    async def _publish_pair_events(self) -> None:
        for event in self.pair_manager.drain_events():
            await self._publish(event)
