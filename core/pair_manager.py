"""
Pair Manager
============

Owns candidate/active instrument pairs, their statistics, lifecycle
status, open positions and cumulative performance.

Lifecycle:
    PENDING -> ACTIVE <-> SUSPENDED
    ACTIVE  -> BROKEN

Validation is recomputed on every statistics update. A BROKEN or
SUSPENDED pair returns to ACTIVE once its statistics pass every gate
again; only remove_pair() is permanent.

Validation gates (first failure wins):
1. Stationarity result present and not stationary -> BROKEN (deactivated)
2. |correlation| < min_correlation                -> SUSPENDED
3. half-life outside [min_half_life, max_half_life] -> SUSPENDED
4. otherwise                                       -> ACTIVE

Lifecycle changes are queued as PairEvent objects; the owner drains
them with drain_events() and forwards them to the EventBus.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from core.events import EventType, PairEvent
from core.stat_calculator import StationarityResult


logger = logging.getLogger(__name__)


class PairStatus(Enum):
    """Pair lifecycle status."""
    PENDING = "pending"        # Newly added, not validated yet
    ACTIVE = "active"          # Passes every validation gate
    SUSPENDED = "suspended"    # Fails correlation or half-life gate
    BROKEN = "broken"          # Cointegration lost


class PositionSide(Enum):
    """Side of a position leg."""
    LONG = "long"
    SHORT = "short"


class PositionConflictError(RuntimeError):
    """Raised when attaching a position to a pair that already holds one."""


@dataclass
class PairStats:
    """Latest statistics for a pair."""
    correlation: float = 0.0
    alpha: float = 0.0
    beta: float = 1.0
    spread_mean: float = 0.0
    spread_std: float = 0.0
    cointegration: StationarityResult | None = None
    half_life: float | None = None
    hurst_exponent: float | None = None
    # Live fields written during signal generation / exit evaluation
    current_z_score: float | None = None
    current_spread: float | None = None
    net_spread: float | None = None
    current_basis: float | None = None
    annualized_basis: float | None = None
    last_analysis_time: datetime | None = None


@dataclass(frozen=True)
class PositionLeg:
    """One leg of a pair position."""
    symbol: str
    side: PositionSide
    quantity: float
    entry_price: float

    def pnl(self, current_price: float) -> float:
        """Mark-to-market PnL of the leg."""
        if self.side == PositionSide.LONG:
            return (current_price - self.entry_price) * self.quantity
        return (self.entry_price - current_price) * self.quantity


@dataclass(frozen=True)
class PairPosition:
    """Two-leg position attached to a pair."""
    signal_type: str
    asset_a: PositionLeg
    asset_b: PositionLeg
    entry_time: datetime
    value: float
    entry_z_score: float | None = None
    entry_spread: float | None = None

    def pnl(self, price_a: float, price_b: float) -> float:
        """Combined PnL of both legs at the given prices."""
        return self.asset_a.pnl(price_a) + self.asset_b.pnl(price_b)


@dataclass
class PairPerformance:
    """Cumulative realized performance of a pair."""
    total_trades: int = 0
    win_count: int = 0
    loss_count: int = 0
    total_pnl: float = 0.0
    max_drawdown: float = 0.0  # Largest single losing trade (absolute)


@dataclass
class Pair:
    """Candidate or active trading pair."""
    id: str
    asset_a: str
    asset_b: str
    status: PairStatus = PairStatus.PENDING
    stats: PairStats = field(default_factory=PairStats)
    position: PairPosition | None = None
    open_time: datetime | None = None
    last_signal: str | None = None
    performance: PairPerformance = field(default_factory=PairPerformance)
    created_at: datetime | None = None
    last_update: datetime | None = None

    @property
    def has_position(self) -> bool:
        """True while a position is open."""
        return self.position is not None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PairManager:
    """
    Registry and lifecycle state machine for trading pairs.

    The strategy reads pairs freely but mutates them only through
    these methods (live stat fields excepted).
    """

    def __init__(
        self,
        max_active_pairs: int = 5,
        min_correlation: float = 0.7,
        min_half_life: float = 1.0,
        max_half_life: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self._max_active_pairs = max_active_pairs
        self._min_correlation = min_correlation
        self._min_half_life = min_half_life
        self._max_half_life = max_half_life
        self._clock = clock or _utc_now

        self._pairs: dict[str, Pair] = {}
        # Actively monitored pairs, insertion ordered
        self._active_pairs: dict[str, None] = {}
        self._pending_events: list[PairEvent] = []

    @staticmethod
    def generate_pair_id(asset_a: str, asset_b: str) -> str:
        """Canonical, order-independent pair id."""
        first, second = sorted((asset_a, asset_b))
        return f"{first}:{second}"

    def add_pair(self, asset_a: str, asset_b: str, **stats: Any) -> Pair:
        """
        Add a pair, or merge stats into the existing one.

        Idempotent by canonical id: (A, B) and (B, A) resolve to the
        same pair.
        """
        pair_id = self.generate_pair_id(asset_a, asset_b)
        now = self._clock()

        existing = self._pairs.get(pair_id)
        if existing is not None:
            existing.stats = dataclasses.replace(existing.stats, **stats)
            existing.last_update = now
            return existing

        pair = Pair(
            id=pair_id,
            asset_a=asset_a,
            asset_b=asset_b,
            stats=PairStats(**stats),
            created_at=now,
            last_update=now,
        )
        self._pairs[pair_id] = pair
        self._emit(EventType.PAIR_ADDED, pair)
        logger.info(f"Pair added: {pair_id}")

        return pair

    def update_pair_stats(self, pair_id: str, **stats: Any) -> Pair | None:
        """Merge new statistics and re-validate the pair."""
        pair = self._pairs.get(pair_id)
        if pair is None:
            return None

        pair.stats = dataclasses.replace(pair.stats, **stats)
        pair.last_update = self._clock()
        self._validate_pair(pair)

        return pair

    def _validate_pair(self, pair: Pair) -> bool:
        """Apply the validation gates; returns True if the pair is ACTIVE."""
        stats = pair.stats

        if stats.cointegration is not None and not stats.cointegration.is_stationary:
            self._set_status(pair, PairStatus.BROKEN)
            self.deactivate_pair(pair.id)
            return False

        if abs(stats.correlation) < self._min_correlation:
            self._set_status(pair, PairStatus.SUSPENDED)
            return False

        if stats.half_life is not None:
            if stats.half_life < self._min_half_life or stats.half_life > self._max_half_life:
                self._set_status(pair, PairStatus.SUSPENDED)
                return False

        self._set_status(pair, PairStatus.ACTIVE)
        return True

    def _set_status(self, pair: Pair, status: PairStatus) -> None:
        previous = pair.status
        if previous == status:
            return

        pair.status = status
        self._emit(EventType.PAIR_STATUS_CHANGED, pair, previous_status=previous.value)
        logger.debug(f"Pair {pair.id} status {previous.value} -> {status.value}")

    def activate_pair(self, pair_id: str) -> bool:
        """
        Move a pair into the actively monitored set.

        Refuses once max_active_pairs is reached.
        """
        pair = self._pairs.get(pair_id)
        if pair is None:
            return False

        if pair_id in self._active_pairs:
            return True

        if len(self._active_pairs) >= self._max_active_pairs:
            logger.debug(
                f"Cannot activate {pair_id}: max active pairs reached "
                f"({self._max_active_pairs})"
            )
            return False

        self._set_status(pair, PairStatus.ACTIVE)
        self._active_pairs[pair_id] = None
        self._emit(EventType.PAIR_ACTIVATED, pair)
        logger.info(f"Pair activated: {pair_id}")

        return True

    def deactivate_pair(self, pair_id: str) -> bool:
        """Remove a pair from the actively monitored set."""
        pair = self._pairs.get(pair_id)
        if pair is None:
            return False

        if pair_id in self._active_pairs:
            del self._active_pairs[pair_id]
            self._emit(EventType.PAIR_DEACTIVATED, pair)
            logger.info(f"Pair deactivated: {pair_id} ({pair.status.value})")

        return True

    def remove_pair(self, pair_id: str) -> bool:
        """Permanently remove a pair. Refused while a position is open."""
        pair = self._pairs.get(pair_id)
        if pair is None:
            return False

        if pair.has_position:
            logger.warning(f"Cannot remove pair with open position: {pair_id}")
            return False

        self.deactivate_pair(pair_id)
        del self._pairs[pair_id]
        self._emit(EventType.PAIR_REMOVED, pair)
        logger.info(f"Pair removed: {pair_id}")

        return True

    def set_position(self, pair_id: str, position: PairPosition | None) -> Pair | None:
        """
        Attach (or clear with None) the pair's position.

        Raises:
            PositionConflictError: if a position is already open
        """
        pair = self._pairs.get(pair_id)
        if pair is None:
            return None

        if position is not None and pair.position is not None:
            raise PositionConflictError(f"Pair {pair_id} already holds a position")

        pair.position = position
        pair.open_time = position.entry_time if position is not None else None
        pair.last_update = self._clock()

        return pair

    def record_trade_result(self, pair_id: str, pnl: float, is_win: bool) -> None:
        """Accumulate realized performance for a closed trade."""
        pair = self._pairs.get(pair_id)
        if pair is None:
            return

        performance = pair.performance
        performance.total_trades += 1
        performance.total_pnl += pnl

        if is_win:
            performance.win_count += 1
        else:
            performance.loss_count += 1

        if pnl < 0:
            performance.max_drawdown = max(performance.max_drawdown, abs(pnl))

    def is_active(self, pair_id: str) -> bool:
        """True if the pair is in the actively monitored set."""
        return pair_id in self._active_pairs

    def get_active_pairs(self) -> list[Pair]:
        """Pairs in the actively monitored set."""
        return [self._pairs[pid] for pid in self._active_pairs if pid in self._pairs]

    def get_pairs_with_positions(self) -> list[Pair]:
        """Pairs currently holding a position."""
        return [pair for pair in self._pairs.values() if pair.position is not None]

    def get_pair(self, pair_id: str) -> Pair | None:
        """Look up a pair by id."""
        return self._pairs.get(pair_id)

    def get_all_pairs(self) -> list[Pair]:
        """All registered pairs."""
        return list(self._pairs.values())

    def drain_events(self) -> list[PairEvent]:
        """Return and clear queued lifecycle events."""
        events = self._pending_events
        self._pending_events = []
        return events

    def clear(self) -> None:
        """Drop every pair and queued event."""
        self._pairs.clear()
        self._active_pairs.clear()
        self._pending_events.clear()

    def _emit(
        self,
        event_type: EventType,
        pair: Pair,
        previous_status: str | None = None,
    ) -> None:
        self._pending_events.append(
            PairEvent(
                event_type=event_type,
                source="PairManager",
                timestamp=self._clock(),
                pair_id=pair.id,
                asset_a=pair.asset_a,
                asset_b=pair.asset_b,
                status=pair.status.value,
                previous_status=previous_status,
            )
        )

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, pair_id: object) -> bool:
        return pair_id in self._pairs
