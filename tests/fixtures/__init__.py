"""
Test Fixtures Package
=====================

Contains utilities for generating synthetic price data for stat-arb testing.
"""

from tests.fixtures.test_data_generator import (
    BASE_TIME,
    generate_random_walk,
    generate_price_series,
    generate_ou_series,
    generate_cointegrated_pair,
    square_wave,
    trend_square_wave_prices,
    make_candle,
    make_candles,
)

__all__ = [
    "BASE_TIME",
    "generate_random_walk",
    "generate_price_series",
    "generate_ou_series",
    "generate_cointegrated_pair",
    "square_wave",
    "trend_square_wave_prices",
    "make_candle",
    "make_candles",
]
