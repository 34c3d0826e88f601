"""
Stat-Arb Engine - Core Module
=============================

Estimation, pair lifecycle and infrastructure components of the
statistical arbitrage engine.
"""

from core.events import (
    Event,
    EventType,
    CandleEvent,
    FundingRateEvent,
    PairEvent,
    TradeSignalEvent,
    PositionEvent,
    CooldownEvent,
)
from core.event_bus import EventBus
from core.execution import ExecutionEngine, PaperExecutionEngine
from core.pair_manager import (
    Pair,
    PairManager,
    PairPosition,
    PairStats,
    PairStatus,
    PositionConflictError,
    PositionLeg,
    PositionSide,
)
from core.price_store import PriceSeriesStore
from core.risk_state import RiskState, apply_trade_result
from core.spread_calculator import SpreadCalculator
from core.stat_calculator import StatisticalCalculator

__all__ = [
    # Events
    "Event",
    "EventType",
    "CandleEvent",
    "FundingRateEvent",
    "PairEvent",
    "TradeSignalEvent",
    "PositionEvent",
    "CooldownEvent",
    "EventBus",
    # Estimation
    "PriceSeriesStore",
    "StatisticalCalculator",
    "SpreadCalculator",
    # Pairs
    "Pair",
    "PairManager",
    "PairPosition",
    "PairStats",
    "PairStatus",
    "PositionConflictError",
    "PositionLeg",
    "PositionSide",
    # Risk / execution
    "RiskState",
    "apply_trade_result",
    "ExecutionEngine",
    "PaperExecutionEngine",
]
