"""
Statistical Arbitrage Configuration
===================================

Typed configuration for the statistical arbitrage strategy.

Sources:
- StatArbConfig() defaults
- StatArbConfig.from_dict() for a plain mapping (the `stat_arb:`
  section of config.yaml)
- load_stat_arb_config() for a YAML file

Durations are configured in seconds and exposed as timedelta.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml


logger = logging.getLogger(__name__)


class ArbType(Enum):
    """Arbitrage variant, selected once at construction."""
    PAIRS_TRADING = "pairs_trading"
    COINTEGRATION = "cointegration"
    CROSS_EXCHANGE = "cross_exchange"
    PERPETUAL_SPOT = "perpetual_spot"


class StatArbConfigError(ValueError):
    """Raised when a configuration fails validation."""

    def __init__(self, errors: list[str]):
        super().__init__("Invalid stat-arb configuration: " + "; ".join(errors))
        self.errors = errors


def _default_candidate_pairs() -> list[tuple[str, str]]:
    return [
        ("BTC/USDT", "ETH/USDT"),
        ("ETH/USDT", "BNB/USDT"),
        ("SOL/USDT", "AVAX/USDT"),
    ]


@dataclass
class StatArbConfig:
    """Statistical arbitrage strategy parameters."""
    name: str = "StatisticalArbitrageStrategy"
    arb_type: ArbType = ArbType.PAIRS_TRADING

    # Pairs
    candidate_pairs: list[tuple[str, str]] = field(default_factory=_default_candidate_pairs)
    max_active_pairs: int = 5
    lookback_period: int = 60
    cointegration_test_period: int = 100

    # Cointegration / validation
    adf_significance_level: float = 0.05
    min_correlation: float = 0.7
    min_half_life: float = 1.0
    max_half_life: float = 30.0

    # Z-score signals
    entry_z_score: float = 2.0
    exit_z_score: float = 0.5
    stop_loss_z_score: float = 4.0
    max_holding_period_seconds: float = 7 * 24 * 3600

    # Cross-exchange
    spread_entry_threshold: float = 0.003
    spread_exit_threshold: float = 0.001
    trading_cost: float = 0.001  # One side
    slippage_estimate: float = 0.0005

    # Perpetual-spot basis (annualized)
    basis_entry_threshold: float = 0.15
    basis_exit_threshold: float = 0.05
    funding_rate_threshold: float = 0.001  # Per 8h settlement

    # Position sizing (fractions of capital)
    max_position_per_pair: float = 0.1
    max_total_position: float = 0.5
    symmetric_position: bool = True

    # Risk control
    max_loss_per_pair: float = 0.02
    max_drawdown: float = 0.10
    consecutive_loss_limit: int = 3
    cooling_period_seconds: float = 24 * 3600

    log_prefix: str = "[StatArb]"

    @property
    def max_holding_period(self) -> timedelta:
        """Maximum holding duration of a position."""
        return timedelta(seconds=self.max_holding_period_seconds)

    @property
    def cooling_period(self) -> timedelta:
        """Cooldown duration after a loss streak."""
        return timedelta(seconds=self.cooling_period_seconds)

    @property
    def price_store_capacity(self) -> int:
        """Per-symbol price history capacity."""
        return self.cointegration_test_period * 2

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> StatArbConfig:
        """
        Build a config from a plain mapping.

        Unknown keys are ignored with a warning. Candidate pairs may be
        given as [a, b] lists or {asset_a, asset_b} mappings.

        Raises:
            ValueError: if arb_type is not a known arbitrage variant
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}

        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown stat_arb config keys: {unknown}")

        kwargs = {key: value for key, value in data.items() if key in known}

        if "arb_type" in kwargs and not isinstance(kwargs["arb_type"], ArbType):
            kwargs["arb_type"] = ArbType(kwargs["arb_type"])

        if "candidate_pairs" in kwargs:
            kwargs["candidate_pairs"] = [
                _parse_pair(entry) for entry in kwargs["candidate_pairs"] or []
            ]

        return cls(**kwargs)

    def validate(self) -> list[str]:
        """
        Check parameter ranges and cross-field constraints.

        Returns:
            List of error messages (empty when valid)
        """
        errors = []

        if not isinstance(self.arb_type, ArbType):
            errors.append(f"arb_type must be one of {[t.value for t in ArbType]}")
        if self.max_active_pairs < 1:
            errors.append("max_active_pairs must be >= 1")
        if self.lookback_period < 2:
            errors.append("lookback_period must be >= 2")
        if self.cointegration_test_period < self.lookback_period:
            errors.append("cointegration_test_period must be >= lookback_period")
        if not 0 < self.adf_significance_level < 1:
            errors.append("adf_significance_level must be in (0, 1)")
        if not 0 <= self.min_correlation <= 1:
            errors.append("min_correlation must be in [0, 1]")
        if self.min_half_life <= 0 or self.min_half_life > self.max_half_life:
            errors.append("half-life bounds must satisfy 0 < min_half_life <= max_half_life")
        if self.exit_z_score < 0 or self.exit_z_score >= self.entry_z_score:
            errors.append("exit_z_score must be in [0, entry_z_score)")
        if self.stop_loss_z_score <= self.entry_z_score:
            errors.append("stop_loss_z_score must be > entry_z_score")
        if self.max_holding_period_seconds <= 0:
            errors.append("max_holding_period_seconds must be > 0")
        if self.spread_exit_threshold >= self.spread_entry_threshold:
            errors.append("spread_exit_threshold must be < spread_entry_threshold")
        if self.basis_exit_threshold >= self.basis_entry_threshold:
            errors.append("basis_exit_threshold must be < basis_entry_threshold")
        if not 0 < self.max_position_per_pair <= 1:
            errors.append("max_position_per_pair must be in (0, 1]")
        if self.max_total_position <= 0:
            errors.append("max_total_position must be > 0")
        if self.max_loss_per_pair <= 0:
            errors.append("max_loss_per_pair must be > 0")
        if self.consecutive_loss_limit < 1:
            errors.append("consecutive_loss_limit must be >= 1")
        if self.cooling_period_seconds < 0:
            errors.append("cooling_period_seconds must be >= 0")

        for asset_a, asset_b in self.candidate_pairs:
            if asset_a == asset_b:
                errors.append(f"candidate pair uses the same symbol twice: {asset_a}")

        return errors

    def validate_or_raise(self) -> None:
        """
        Raise if validate() reports any error.

        Raises:
            StatArbConfigError: with every validation message
        """
        errors = self.validate()
        if errors:
            raise StatArbConfigError(errors)

    def to_dict(self) -> dict[str, Any]:
        """Plain-mapping form, suitable for YAML dumps and status output."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["arb_type"] = self.arb_type.value
        result["candidate_pairs"] = [list(pair) for pair in self.candidate_pairs]
        return result


def _parse_pair(entry: Any) -> tuple[str, str]:
    if isinstance(entry, Mapping):
        return (str(entry["asset_a"]), str(entry["asset_b"]))

    asset_a, asset_b = entry
    return (str(asset_a), str(asset_b))


def load_config_document(path: str | Path) -> dict[str, Any]:
    """
    Read a YAML configuration file into a mapping (empty file -> {}).

    Raises:
        FileNotFoundError: if the file does not exist
        StatArbConfigError: if the document is not a mapping
    """
    config_file = Path(path)

    if not config_file.exists():
        logger.error(f"Config file not found: {config_file}")
        raise FileNotFoundError(f"Config file not found: {config_file}")

    with open(config_file, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f) or {}

    if not isinstance(document, dict):
        raise StatArbConfigError([f"{config_file} must contain a mapping"])

    logger.info(f"Loaded configuration from {config_file}")
    return document


def load_stat_arb_config(path: str | Path, section: str = "stat_arb") -> StatArbConfig:
    """
    Load a StatArbConfig from a YAML file.

    Args:
        path: YAML file path
        section: Top-level key holding the strategy parameters; the whole
            document is used when the key is absent

    Raises:
        FileNotFoundError: if the file does not exist
    """
    document = load_config_document(path)
    return StatArbConfig.from_dict(document.get(section, document))
