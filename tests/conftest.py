"""
Pytest Configuration
====================

Shared fixtures for testing.
"""

from unittest.mock import MagicMock

import pytest

from core.event_bus import EventBus
from strategies.stat_arb_config import StatArbConfig
from tests.fixtures.test_data_generator import BASE_TIME


@pytest.fixture
def base_time():
    """Fixed UTC start time for deterministic scenarios."""
    return BASE_TIME


@pytest.fixture
def clock(base_time):
    """Deterministic clock returning base_time."""
    return lambda: base_time


@pytest.fixture
def stat_arb_config():
    """Single-pair pairs-trading configuration."""
    return StatArbConfig(
        candidate_pairs=[("A", "B")],
        lookback_period=60,
        cointegration_test_period=100,
    )


@pytest.fixture
def mock_engine():
    """Execution engine double with fixed capital."""
    engine = MagicMock()
    engine.get_capital.return_value = 100_000.0
    return engine


@pytest.fixture
def event_bus():
    """Fresh event bus."""
    return EventBus(max_history=1000)

