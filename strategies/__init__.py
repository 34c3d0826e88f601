"""
Stat-Arb Engine - Strategies Module
===================================

Statistical arbitrage strategy, its configuration and the
per-variant signal/exit logic.

NOTE: Strategies contain the logic, the runner drives the data.
"""

from strategies.stat_arb_config import ArbType, StatArbConfig, load_stat_arb_config
from strategies.arbitrage_modes import ArbitrageMode, create_arbitrage_mode
from strategies.stat_arb_strategy import StatisticalArbitrageStrategy

__all__ = [
    "ArbType",
    "StatArbConfig",
    "load_stat_arb_config",
    "ArbitrageMode",
    "create_arbitrage_mode",
    "StatisticalArbitrageStrategy",
]
