"""
Price Series Store
==================

Rolling per-instrument price buffers for the statistical arbitrage engine.

Each symbol keeps an ordered sequence of (price, timestamp) points with a
bounded capacity. On overflow the oldest point is evicted (FIFO). Prices
are stored as given: no sign or NaN validation is applied.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


DEFAULT_MAX_LENGTH = 500


@dataclass(frozen=True)
class PricePoint:
    """Single stored observation."""
    price: float
    timestamp: datetime


class PriceSeriesStore:
    """
    Capacity-bounded price history keyed by symbol.

    Series are append-only except for eviction of the oldest point
    once `max_length` is exceeded.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self._max_length = max_length
        self._series: dict[str, deque[PricePoint]] = {}

    @property
    def max_length(self) -> int:
        """Capacity per symbol."""
        return self._max_length

    @property
    def symbols(self) -> list[str]:
        """Symbols with stored data."""
        return list(self._series.keys())

    def add_price(
        self,
        symbol: str,
        price: float,
        timestamp: datetime | None = None,
    ) -> None:
        """Append a price, evicting the oldest point on overflow."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        series = self._series.get(symbol)
        if series is None:
            series = deque(maxlen=self._max_length)
            self._series[symbol] = series

        series.append(PricePoint(price=price, timestamp=timestamp))

    def get_prices(self, symbol: str, length: int | None = None) -> list[float]:
        """
        Get stored prices, oldest first.

        Args:
            symbol: Instrument symbol
            length: Return only the last `length` prices (None = all)

        Returns:
            List of prices, empty for an unknown symbol
        """
        series = self._series.get(symbol)
        if not series:
            return []

        prices = [point.price for point in series]
        if length:
            return prices[-length:]
        return prices

    def get_timestamps(self, symbol: str, length: int | None = None) -> list[datetime]:
        """Get stored timestamps, oldest first."""
        series = self._series.get(symbol)
        if not series:
            return []

        timestamps = [point.timestamp for point in series]
        if length:
            return timestamps[-length:]
        return timestamps

    def get_latest_price(self, symbol: str) -> float | None:
        """Latest price or None if the symbol has no data."""
        series = self._series.get(symbol)
        if not series:
            return None
        return series[-1].price

    def has_enough_data(self, symbol: str, required_length: int) -> bool:
        """Check that at least `required_length` points are stored."""
        series = self._series.get(symbol)
        return series is not None and len(series) >= required_length

    def get_returns(self, symbol: str, length: int | None = None) -> list[float]:
        """
        Simple returns (p[i] - p[i-1]) / p[i-1].

        `length` returns need `length + 1` prices, so the last
        `length + 1` prices are used when a window is requested.
        A zero previous price yields a 0.0 return.
        """
        prices = self.get_prices(symbol, length + 1 if length else None)
        if len(prices) < 2:
            return []

        return [
            (prices[i] - prices[i - 1]) / prices[i - 1] if prices[i - 1] != 0 else 0.0
            for i in range(1, len(prices))
        ]

    def clear(self, symbol: str | None = None) -> None:
        """Drop one symbol's series, or every series when symbol is None."""
        if symbol is not None:
            self._series.pop(symbol, None)
        else:
            self._series.clear()

    def __len__(self) -> int:
        return len(self._series)
