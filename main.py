#!/usr/bin/env python3
"""
Stat-Arb Engine - Replay Runner
===============================

Entry point for replaying candles through the statistical arbitrage
strategy against the in-memory paper execution engine.

This runner:
1. Loads configuration (config.yaml)
2. Configures logging
3. Reads candles from CSV (timestamp,symbol,open,high,low,close[,volume])
   or generates a synthetic cointegrated universe
4. Replays every candle through the strategy tick path
5. Force-closes open positions and prints status and pair summary
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pandas as pd

from core.event_bus import EventBus
from core.events import CandleEvent
from core.execution import PaperExecutionEngine
from core.logging_config import LoggingConfig, configure_logging
from strategies.stat_arb_config import StatArbConfig, load_config_document
from strategies.stat_arb_strategy import StatisticalArbitrageStrategy


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "config.yaml"


def load_candles_csv(path: str | Path) -> list[CandleEvent]:
    """
    Read candles from a CSV file, ordered by timestamp.

    Rows sharing a timestamp keep their file order.
    """
    df = pd.read_csv(path)

    missing = {"timestamp", "symbol", "close"} - set(df.columns)
    if missing:
        raise ValueError(f"CSV is missing columns: {sorted(missing)}")

    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("timestamp", kind="mergesort")

    for column in ("open", "high", "low"):
        if column not in df.columns:
            df[column] = df["close"]
    if "volume" not in df.columns:
        df["volume"] = 0.0

    candles = [
        CandleEvent(
            source="csv",
            timestamp=row.timestamp.to_pydatetime(),
            symbol=str(row.symbol),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]

    logger.info(f"Loaded {len(candles)} candles from {path}")
    return candles


def generate_synthetic_candles(
    candidate_pairs: list[tuple[str, str]],
    n_ticks: int = 400,
    seed: int = 42,
    half_life: float = 5.0,
    interval: timedelta = timedelta(hours=1),
    start: datetime | None = None,
) -> list[CandleEvent]:
    """
    Generate a cointegrated universe for the candidate pairs.

    Leg B is a geometric random walk; leg A = 10 + 2 * B + OU residual
    with the requested half-life. Symbols shared between pairs are
    generated once.
    """
    rng = np.random.default_rng(seed)
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    theta = 1 - 0.5 ** (1 / half_life)

    series: dict[str, np.ndarray] = {}
    for asset_a, asset_b in candidate_pairs:
        if asset_b not in series:
            returns = rng.normal(0.0, 0.01, n_ticks)
            series[asset_b] = 100.0 * np.exp(np.cumsum(returns))

        if asset_a not in series:
            residual = np.zeros(n_ticks)
            for t in range(1, n_ticks):
                residual[t] = residual[t - 1] * (1 - theta) + rng.normal(0.0, 1.0)
            series[asset_a] = 10.0 + 2.0 * series[asset_b] + residual

    candles = []
    for t in range(n_ticks):
        timestamp = start + t * interval
        for symbol, prices in series.items():
            price = float(prices[t])
            candles.append(CandleEvent(
                source="synthetic",
                timestamp=timestamp,
                symbol=symbol,
                open=price,
                high=price,
                low=price,
                close=price,
            ))

    return candles


async def run_replay(
    config: StatArbConfig,
    candles: list[CandleEvent],
    initial_capital: float = 100_000.0,
) -> StatisticalArbitrageStrategy:
    """
    Replay candles through the strategy tick path.

    Returns:
        The finished strategy (for status inspection)
    """
    engine = PaperExecutionEngine(initial_capital=initial_capital)
    strategy = StatisticalArbitrageStrategy(config, engine, event_bus=EventBus())

    await strategy.initialize()

    for candle in candles:
        engine.mark_price(candle.symbol, candle.close)
        await strategy.on_tick(candle)

    await strategy.finish()

    logger.info(
        f"Replay complete: {len(candles)} candles, "
        f"capital {engine.get_capital():.2f} (realized {engine.realized_pnl:.2f})"
    )
    return strategy


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Replay candles through the stat-arb strategy")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config path")
    parser.add_argument("--csv", default=None, help="Candle CSV (synthetic data when omitted)")
    args = parser.parse_args()

    raw_config = load_config_document(args.config)
    configure_logging(LoggingConfig.from_dict(raw_config.get("logging")))

    strategy_config = StatArbConfig.from_dict(raw_config.get("stat_arb", {}))
    replay = raw_config.get("replay", {})

    csv_path = args.csv or replay.get("csv_path")
    if csv_path:
        candles = load_candles_csv(csv_path)
    else:
        candles = generate_synthetic_candles(
            strategy_config.candidate_pairs,
            n_ticks=int(replay.get("synthetic_ticks", 400)),
            seed=int(replay.get("seed", 42)),
            half_life=float(replay.get("half_life", 5.0)),
        )

    strategy = await run_replay(
        strategy_config,
        candles,
        initial_capital=float(replay.get("initial_capital", 100_000.0)),
    )

    print()
    print("=" * 60)
    print("     STAT-ARB REPLAY - STATUS")
    print("=" * 60)
    print(json.dumps(strategy.get_status(), indent=2, default=str))
    print()
    print(json.dumps(strategy.get_all_pairs_summary(), indent=2, default=str))


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
