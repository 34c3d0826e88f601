"""
Spread Calculator
=================

Pure functions mapping two prices to a scalar spread.

Spread definitions:
- ratio:       A / B
- log:         ln(A) - beta * ln(B)
- residual:    A - (alpha + beta * B)
- percentage:  (A - B) / B                  (cross-exchange)
- basis:       (perp - spot) / spot         (perpetual vs spot)

Zero denominators and non-positive log inputs return 0.
"""

from __future__ import annotations

import math


DAYS_PER_YEAR = 365


class SpreadCalculator:
    """Spread/basis definitions used by the arbitrage modes."""

    @staticmethod
    def ratio_spread(price_a: float, price_b: float) -> float:
        """Price ratio A / B."""
        if price_b == 0:
            return 0.0
        return price_a / price_b

    @staticmethod
    def log_spread(price_a: float, price_b: float, beta: float = 1.0) -> float:
        """Log spread ln(A) - beta * ln(B)."""
        if price_a <= 0 or price_b <= 0:
            return 0.0
        return math.log(price_a) - beta * math.log(price_b)

    @staticmethod
    def residual_spread(
        price_a: float,
        price_b: float,
        alpha: float,
        beta: float,
    ) -> float:
        """Regression residual A - (alpha + beta * B)."""
        return price_a - (alpha + beta * price_b)

    @staticmethod
    def percentage_spread(price_a: float, price_b: float) -> float:
        """Relative gap (A - B) / B."""
        if price_b == 0:
            return 0.0
        return (price_a - price_b) / price_b

    @staticmethod
    def basis(perpetual_price: float, spot_price: float) -> float:
        """Perpetual/spot basis (perp - spot) / spot."""
        if spot_price == 0:
            return 0.0
        return (perpetual_price - spot_price) / spot_price

    @staticmethod
    def annualized_basis(basis: float, days_to_expiry: float = DAYS_PER_YEAR) -> float:
        """Scale a basis to a yearly rate: basis * 365 / days_to_expiry."""
        return basis * (DAYS_PER_YEAR / days_to_expiry)
