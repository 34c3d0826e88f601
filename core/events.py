"""
Events
======

Typed messages flowing through the statistical arbitrage engine.

Inbound (market-data harness -> strategy):
- CandleEvent: OHLC bar for one symbol
- FundingRateEvent: perpetual funding rate update

Outbound (strategy -> orchestrator / dashboards):
- PairEvent: pair lifecycle (added, activated, deactivated, removed,
  status changed)
- TradeSignalEvent: open signal emitted for a pair
- PositionEvent: position opened / closed
- CooldownEvent: loss-streak cooldown started

All events are immutable.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(Enum):
    """Event types routed by the EventBus."""
    CANDLE = "candle"
    FUNDING_RATE = "funding_rate"
    PAIR_ADDED = "pair_added"
    PAIR_ACTIVATED = "pair_activated"
    PAIR_DEACTIVATED = "pair_deactivated"
    PAIR_REMOVED = "pair_removed"
    PAIR_STATUS_CHANGED = "pair_status_changed"
    TRADE_SIGNAL = "trade_signal"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    COOLDOWN_STARTED = "cooldown_started"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """Base event."""
    event_type: EventType = EventType.CANDLE
    source: str = ""
    timestamp: datetime | None = field(default_factory=_utc_now)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for logging/monitoring."""
        data = asdict(self)
        data["event_type"] = self.event_type.value
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class CandleEvent(Event):
    """OHLC bar for a single symbol."""
    event_type: EventType = EventType.CANDLE
    symbol: str = ""
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: float = 0.0


@dataclass(frozen=True)
class FundingRateEvent(Event):
    """Funding rate for a perpetual contract (per 8h settlement)."""
    event_type: EventType = EventType.FUNDING_RATE
    symbol: str = ""
    funding_rate: float = 0.0


@dataclass(frozen=True)
class PairEvent(Event):
    """Pair lifecycle notification."""
    event_type: EventType = EventType.PAIR_ADDED
    pair_id: str = ""
    asset_a: str = ""
    asset_b: str = ""
    status: str = ""
    previous_status: str | None = None


@dataclass(frozen=True)
class TradeSignalEvent(Event):
    """Open signal generated for a pair."""
    event_type: EventType = EventType.TRADE_SIGNAL
    pair_id: str = ""
    signal_type: str = ""
    z_score: float | None = None
    spread: float | None = None
    reason: str = ""


@dataclass(frozen=True)
class PositionEvent(Event):
    """Position opened or closed on a pair."""
    event_type: EventType = EventType.POSITION_OPENED
    pair_id: str = ""
    signal_type: str = ""
    value: float = 0.0
    pnl: float = 0.0
    reason: str = ""
    outcome: str = ""


@dataclass(frozen=True)
class CooldownEvent(Event):
    """Loss-streak cooldown activation."""
    event_type: EventType = EventType.COOLDOWN_STARTED
    consecutive_losses: int = 0
    cooling_until: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.cooling_until is not None:
            data["cooling_until"] = self.cooling_until.isoformat()
        return data
