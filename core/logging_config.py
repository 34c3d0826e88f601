"""
Logging Configuration Module
============================

Centralized logging setup for the statistical arbitrage engine.

Features:
- One root handler with a consistent line format
- Module-specific log level overrides for the engine's modules
- Built from the `logging:` section of config.yaml
- Timing of the per-tick pair re-validation with slow-cycle warnings
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping


class LogLevel(str, Enum):
    """Standard log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_logging_level(self) -> int:
        """Numeric level understood by the logging module."""
        return logging.getLevelName(self.value)


# Engine modules and their default verbosity
MODULE_LOG_LEVELS = {
    # Estimation - per-tick, quiet unless debugging
    "core.price_store": logging.INFO,
    "core.stat_calculator": logging.INFO,

    # Pair lifecycle and orchestration
    "core.pair_manager": logging.INFO,
    "strategies.stat_arb_strategy": logging.INFO,
    "strategies.arbitrage_modes": logging.INFO,

    # Paper fills are DEBUG, failed legs are logged by the strategy
    "core.execution": logging.INFO,

    "core.event_bus": logging.INFO,
}


@dataclass
class LoggingConfig:
    """
    Root level, line format and per-module overrides.

    debug_modules lists module names forced to DEBUG on apply();
    the special value "all" selects every module in module_levels.
    """
    root_level: int = logging.INFO
    format_string: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    module_levels: dict[str, int] = field(default_factory=lambda: dict(MODULE_LOG_LEVELS))
    debug_modules: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any] | None) -> LoggingConfig:
        """
        Build from the `logging:` config section.

        Keys: level (name), format, debug_modules (true, a module name
        or a list of module names).

        Raises:
            ValueError: for an unknown level name
        """
        settings = dict(settings or {})
        config = cls(root_level=LogLevel(str(settings.get("level", "INFO")).upper()).to_logging_level())

        if "format" in settings:
            config.format_string = str(settings["format"])

        debug_modules = settings.get("debug_modules")
        if debug_modules is True:
            config.debug_modules = ["all"]
        elif isinstance(debug_modules, str):
            config.debug_modules = [debug_modules]
        elif debug_modules:
            config.debug_modules = [str(name) for name in debug_modules]

        return config

    def effective_module_levels(self) -> dict[str, int]:
        """Module levels after applying debug_modules."""
        levels = dict(self.module_levels)
        targets = levels.keys() if "all" in self.debug_modules else self.debug_modules
        for module_name in list(targets):
            levels[module_name] = logging.DEBUG
        return levels

    def apply(self) -> None:
        """Install the root handler and module levels."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.root_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(self.format_string, self.date_format))
        root_logger.addHandler(handler)

        for module_name, level in self.effective_module_levels().items():
            logging.getLogger(module_name).setLevel(level)

    def set_module_level(self, module_name: str, level: int) -> None:
        """Set log level for a specific module."""
        self.module_levels[module_name] = level
        logging.getLogger(module_name).setLevel(level)


@dataclass
class OperationTiming:
    """Accumulated timings of one measured operation."""
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0
    slow_count: int = 0

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


class PerformanceLogger:
    """
    Times named operations and warns when one exceeds a threshold.

    The strategy wraps each re-validation cycle, whose cost grows with
    the number of pairs times the cointegration window.
    """

    def __init__(self, logger: logging.Logger, slow_threshold_ms: float = 100.0):
        self.logger = logger
        self.slow_threshold_ms = slow_threshold_ms
        self._timings: dict[str, OperationTiming] = {}
        self._lock = threading.Lock()

    @contextmanager
    def measure(self, operation_name: str) -> Iterator[None]:
        """
        Time the enclosed block (recorded even when it raises).

        Example:
            with perf_logger.measure("pair_revalidation"):
                self._update_pairs(now)
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            slow = duration_ms > self.slow_threshold_ms

            with self._lock:
                timing = self._timings.setdefault(operation_name, OperationTiming())
                timing.count += 1
                timing.total_ms += duration_ms
                timing.max_ms = max(timing.max_ms, duration_ms)
                timing.last_ms = duration_ms
                if slow:
                    timing.slow_count += 1

            if slow:
                self.logger.warning(
                    f"Slow operation: {operation_name} took {duration_ms:.2f}ms "
                    f"(threshold: {self.slow_threshold_ms}ms)"
                )

    def get_stats(self, operation_name: str) -> dict[str, float]:
        """Timing summary for an operation (empty if never measured)."""
        with self._lock:
            timing = self._timings.get(operation_name)
            if timing is None:
                return {}

            return {
                "count": timing.count,
                "mean_ms": timing.mean_ms,
                "max_ms": timing.max_ms,
                "last_ms": timing.last_ms,
                "slow_count": timing.slow_count,
            }

    def log_summary(self) -> None:
        """Log one line per measured operation."""
        with self._lock:
            operations = list(self._timings)

        for op in operations:
            stats = self.get_stats(op)
            self.logger.info(
                f"Performance stats for {op}: "
                f"mean={stats['mean_ms']:.2f}ms, max={stats['max_ms']:.2f}ms, "
                f"count={stats['count']}, slow={stats['slow_count']}"
            )


def configure_logging(config: LoggingConfig | None = None) -> LoggingConfig:
    """
    Apply a logging configuration (defaults when omitted).

    Returns:
        The applied configuration
    """
    config = config or LoggingConfig()
    config.apply()

    return config


def get_performance_logger(name: str, slow_threshold_ms: float = 100.0) -> PerformanceLogger:
    """Performance logger bound to the named module logger."""
    return PerformanceLogger(logging.getLogger(name), slow_threshold_ms=slow_threshold_ms)
