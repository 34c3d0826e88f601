"""
Risk State
==========

Portfolio-level bookkeeping updated on every position close.

RiskState is an immutable value: apply_trade_result() returns a new
state instead of mutating the strategy's counters, so the close path
can be tested in isolation.

Rules:
- A trade is a win iff pnl > 0 (flat trades count as losses)
- Wins reset the consecutive-loss streak, losses extend it
- current_drawdown = min(current_drawdown + pnl, 0)
- max_drawdown = min(max_drawdown, current_drawdown)  (non-positive)
- daily_pnl resets when the close date differs from the previous one
- A streak reaching the limit starts a cooldown window
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any


@dataclass(frozen=True)
class RiskState:
    """Aggregate realized-PnL and loss-streak state."""
    total_pnl: float = 0.0
    daily_pnl: float = 0.0
    daily_pnl_date: date | None = None
    win_count: int = 0
    loss_count: int = 0
    consecutive_losses: int = 0
    current_drawdown: float = 0.0
    max_drawdown: float = 0.0
    cooling_until: datetime | None = None

    @property
    def closed_trades(self) -> int:
        """Number of closed positions."""
        return self.win_count + self.loss_count

    @property
    def win_rate(self) -> float:
        """wins / (wins + losses), 0 when nothing has closed."""
        if self.closed_trades == 0:
            return 0.0
        return self.win_count / self.closed_trades

    def is_cooling(self, now: datetime) -> bool:
        """True while the loss-streak cooldown window is open."""
        return self.cooling_until is not None and now < self.cooling_until

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for status reporting."""
        return {
            "total_pnl": self.total_pnl,
            "daily_pnl": self.daily_pnl,
            "win_count": self.win_count,
            "loss_count": self.loss_count,
            "consecutive_losses": self.consecutive_losses,
            "current_drawdown": self.current_drawdown,
            "max_drawdown": self.max_drawdown,
            "cooling_until": self.cooling_until.isoformat() if self.cooling_until else None,
        }


def apply_trade_result(
    state: RiskState,
    pnl: float,
    now: datetime,
    consecutive_loss_limit: int,
    cooling_period: timedelta,
) -> RiskState:
    """
    Fold one closed trade into the risk state.

    Args:
        state: State before the close
        pnl: Realized PnL of the closed position
        now: Close time
        consecutive_loss_limit: Streak length that triggers a cooldown
        cooling_period: Cooldown duration

    Returns:
        New RiskState
    """
    is_win = pnl > 0

    today = now.date()
    daily_pnl = state.daily_pnl if state.daily_pnl_date == today else 0.0

    if is_win:
        win_count = state.win_count + 1
        loss_count = state.loss_count
        consecutive_losses = 0
    else:
        win_count = state.win_count
        loss_count = state.loss_count + 1
        consecutive_losses = state.consecutive_losses + 1

    cooling_until = state.cooling_until
    if not is_win and consecutive_losses >= consecutive_loss_limit:
        cooling_until = now + cooling_period

    current_drawdown = min(state.current_drawdown + pnl, 0.0)

    return dataclasses.replace(
        state,
        total_pnl=state.total_pnl + pnl,
        daily_pnl=daily_pnl + pnl,
        daily_pnl_date=today,
        win_count=win_count,
        loss_count=loss_count,
        consecutive_losses=consecutive_losses,
        current_drawdown=current_drawdown,
        max_drawdown=min(state.max_drawdown, current_drawdown),
        cooling_until=cooling_until,
    )
