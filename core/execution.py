"""
Execution Interface
===================

Order-execution collaborator consumed by the statistical arbitrage
strategy.

The strategy only needs four operations: buy, sell, close a symbol's
position and read available capital. Implementations may be
synchronous or asynchronous; the strategy awaits any awaitable result.

PaperExecutionEngine is an in-memory implementation used by the replay
runner and the tests:
- Fills immediately at the last marked price
- Tracks a signed quantity and average entry per symbol
- Realizes PnL on reducing fills and on close_position()
- Capital = initial capital + realized PnL
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Protocol, Union


logger = logging.getLogger(__name__)


class ExecutionEngine(Protocol):
    """
    Protocol for the external order-execution engine.

    There is no cross-call atomicity: two legs sent as two calls can
    partially succeed.
    """

    def buy(self, symbol: str, quantity: float) -> Union[Any, Awaitable[Any]]:
        """Buy quantity of symbol at market."""
        ...

    def sell(self, symbol: str, quantity: float) -> Union[Any, Awaitable[Any]]:
        """Sell quantity of symbol at market."""
        ...

    def close_position(self, symbol: str) -> Union[Any, Awaitable[Any]]:
        """Flatten the whole position held in symbol."""
        ...

    def get_capital(self) -> float:
        """Capital available for sizing."""
        ...


class OrderSide(Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class PaperFill:
    """Record of an executed paper order."""
    symbol: str
    side: OrderSide
    quantity: float
    price: float
    realized_pnl: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaperPosition:
    """Signed position in one symbol (negative = short)."""
    symbol: str
    quantity: float = 0.0
    avg_price: float = 0.0

    def unrealized_pnl(self, price: float) -> float:
        """Mark-to-market PnL at price."""
        return (price - self.avg_price) * self.quantity


class PaperExecutionEngine:
    """
    In-memory execution engine with immediate fills.

    Prices must be marked with mark_price() before a symbol can trade.
    """

    def __init__(self, initial_capital: float = 100_000.0):
        self._initial_capital = initial_capital
        self._last_prices: dict[str, float] = {}
        self._positions: dict[str, PaperPosition] = {}
        self._fills: list[PaperFill] = []
        self._realized_pnl = 0.0

    def mark_price(self, symbol: str, price: float) -> None:
        """Record the latest traded price for symbol."""
        self._last_prices[symbol] = price

    def buy(self, symbol: str, quantity: float) -> PaperFill:
        """Buy at the last marked price."""
        return self._fill(symbol, OrderSide.BUY, quantity)

    def sell(self, symbol: str, quantity: float) -> PaperFill:
        """Sell at the last marked price."""
        return self._fill(symbol, OrderSide.SELL, quantity)

    def close_position(self, symbol: str) -> float:
        """
        Flatten the position in symbol.

        Returns:
            Realized PnL of the closing fill (0 when flat)
        """
        position = self._positions.get(symbol)
        if position is None or position.quantity == 0:
            return 0.0

        side = OrderSide.SELL if position.quantity > 0 else OrderSide.BUY
        fill = self._fill(symbol, side, abs(position.quantity))
        return fill.realized_pnl

    def get_capital(self) -> float:
        """Initial capital plus realized PnL."""
        return self._initial_capital + self._realized_pnl

    def get_position(self, symbol: str) -> PaperPosition | None:
        """Open position in symbol, if any."""
        position = self._positions.get(symbol)
        if position is None or position.quantity == 0:
            return None
        return position

    @property
    def positions(self) -> dict[str, PaperPosition]:
        """Open positions keyed by symbol."""
        return {s: p for s, p in self._positions.items() if p.quantity != 0}

    @property
    def fills(self) -> list[PaperFill]:
        """Every executed fill, oldest first."""
        return list(self._fills)

    @property
    def realized_pnl(self) -> float:
        """Cumulative realized PnL."""
        return self._realized_pnl

    def _fill(self, symbol: str, side: OrderSide, quantity: float) -> PaperFill:
        if quantity <= 0:
            raise ValueError(f"Order quantity must be positive, got {quantity}")

        price = self._last_prices.get(symbol)
        if price is None:
            raise ValueError(f"No price marked for {symbol}")

        position = self._positions.setdefault(symbol, PaperPosition(symbol=symbol))
        signed_qty = quantity if side == OrderSide.BUY else -quantity
        realized = 0.0

        if position.quantity == 0 or (position.quantity > 0) == (signed_qty > 0):
            # Opening or adding
            new_qty = position.quantity + signed_qty
            position.avg_price = (
                position.avg_price * abs(position.quantity) + price * quantity
            ) / abs(new_qty)
            position.quantity = new_qty
        else:
            # Reducing, closing or flipping
            closing_qty = min(quantity, abs(position.quantity))
            direction = 1.0 if position.quantity > 0 else -1.0
            realized = (price - position.avg_price) * closing_qty * direction

            new_qty = position.quantity + signed_qty
            if new_qty == 0:
                position.avg_price = 0.0
            elif (new_qty > 0) != (position.quantity > 0):
                position.avg_price = price
            position.quantity = new_qty

        self._realized_pnl += realized

        fill = PaperFill(
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            realized_pnl=realized,
        )
        self._fills.append(fill)
        logger.debug(
            f"Paper fill: {side.value} {quantity:.6f} {symbol} @ {price:.4f} "
            f"(realized {realized:.2f})"
        )

        return fill
