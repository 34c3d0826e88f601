"""
Statistical Calculator
======================

Stateless numeric routines behind pair validation and signal generation.

Implements:
- Mean / population standard deviation / Z-score
- Pearson correlation over the common trailing window
- OLS regression (y = alpha + beta * x) with residuals
- Simplified Dickey-Fuller stationarity test
- Mean-reversion half-life (AR(1) on first differences)
- Hurst exponent via rescaled-range (R/S) analysis

Conventions:
- When two series are given, both are truncated to their trailing
  min(len(x), len(y)) elements (right-aligned).
- Insufficient data never raises; a neutral value is returned instead
  (0, 0.5, infinity or a "not stationary" result).

NOTE: adf_test is a simplified Dickey-Fuller approximation. There are no
augmentation lags and the critical values are fixed asymptotic values.
It is not a substitute for statsmodels.tsa.stattools.adfuller.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np


logger = logging.getLogger(__name__)


# Approximate Dickey-Fuller critical values (constant, no trend)
ADF_CRITICAL_VALUES = {
    0.01: -3.43,
    0.05: -2.86,
    0.10: -2.57,
}

ADF_MIN_OBSERVATIONS = 30
HALF_LIFE_MIN_OBSERVATIONS = 10
DEFAULT_HURST_MAX_LAG = 20


@dataclass(frozen=True)
class OLSResult:
    """Least-squares fit of y = alpha + beta * x."""
    alpha: float
    beta: float
    residuals: np.ndarray = field(default_factory=lambda: np.array([]))


@dataclass(frozen=True)
class StationarityResult:
    """Outcome of the simplified Dickey-Fuller test."""
    is_stationary: bool
    test_stat: float
    critical_value: float
    p_value: float
    beta: float = 0.0


def _as_array(series: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(series, dtype=float)


def _lag_regression(series: np.ndarray) -> tuple[np.ndarray, OLSResult]:
    """Regress first differences on lag-1 levels: dz[t] = a + b * z[t-1]."""
    lagged = series[:-1]
    diff = np.diff(series)
    return lagged, StatisticalCalculator.ols(lagged, diff)


class StatisticalCalculator:
    """
    Pure statistical helpers.

    All methods are static; the class only groups them.
    """

    @staticmethod
    def mean(series: Sequence[float] | np.ndarray) -> float:
        """Arithmetic mean, 0 for an empty series."""
        arr = _as_array(series)
        if arr.size == 0:
            return 0.0
        return float(np.mean(arr))

    @staticmethod
    def std(series: Sequence[float] | np.ndarray) -> float:
        """Population standard deviation, 0 for fewer than 2 points."""
        arr = _as_array(series)
        if arr.size < 2:
            return 0.0
        return float(np.std(arr))

    @staticmethod
    def z_score(value: float, mean: float, std: float) -> float:
        """Number of standard deviations from the mean (0 when std is 0)."""
        if std == 0:
            return 0.0
        return (value - mean) / std

    @staticmethod
    def correlation(
        series_a: Sequence[float] | np.ndarray,
        series_b: Sequence[float] | np.ndarray,
    ) -> float:
        """
        Pearson correlation over the common trailing window.

        Returns 0 for fewer than 2 points or a zero-variance input.
        """
        a = _as_array(series_a)
        b = _as_array(series_b)
        n = min(a.size, b.size)
        if n < 2:
            return 0.0

        a = a[-n:]
        b = b[-n:]
        dev_a = a - a.mean()
        dev_b = b - b.mean()

        norm_a = math.sqrt(float(np.dot(dev_a, dev_a)))
        norm_b = math.sqrt(float(np.dot(dev_b, dev_b)))
        if norm_a == 0 or norm_b == 0:
            return 0.0

        return float(np.dot(dev_a, dev_b)) / (norm_a * norm_b)

    @staticmethod
    def ols(
        x: Sequence[float] | np.ndarray,
        y: Sequence[float] | np.ndarray,
    ) -> OLSResult:
        """
        Ordinary least squares for y = alpha + beta * x.

        Degenerates to alpha=0, beta=1 with no residuals when there are
        fewer than 2 points or x has zero variance.
        """
        x_arr = _as_array(x)
        y_arr = _as_array(y)
        n = min(x_arr.size, y_arr.size)
        if n < 2:
            return OLSResult(alpha=0.0, beta=1.0)

        x_arr = x_arr[-n:]
        y_arr = y_arr[-n:]
        mean_x = x_arr.mean()
        mean_y = y_arr.mean()

        dev_x = x_arr - mean_x
        denominator = float(np.dot(dev_x, dev_x))
        if denominator == 0:
            return OLSResult(alpha=0.0, beta=1.0)

        beta = float(np.dot(dev_x, y_arr - mean_y)) / denominator
        alpha = float(mean_y - beta * mean_x)
        residuals = y_arr - (alpha + beta * x_arr)

        return OLSResult(alpha=alpha, beta=beta, residuals=residuals)

    @staticmethod
    def adf_test(
        series: Sequence[float] | np.ndarray,
        significance: float = 0.05,
    ) -> StationarityResult:
        """
        Simplified Dickey-Fuller stationarity test.

        Regresses dz[t] on z[t-1] and computes a t-statistic for the slope
        with standard error residual_std / (lagged_std * sqrt(n)). The series
        is stationary when the statistic is below the critical value for the
        requested significance (-3.43 at 1%, -2.86 at 5%, -2.57 otherwise).

        Requires at least 30 points.
        """
        arr = _as_array(series)
        if arr.size < ADF_MIN_OBSERVATIONS:
            return StationarityResult(
                is_stationary=False,
                test_stat=0.0,
                critical_value=0.0,
                p_value=1.0,
            )

        lagged, regression = _lag_regression(arr)

        residual_std = StatisticalCalculator.std(regression.residuals)
        lagged_std = StatisticalCalculator.std(lagged)
        n = lagged.size

        denominator = lagged_std * math.sqrt(n)
        standard_error = residual_std / denominator if denominator != 0 else 0.0
        t_stat = regression.beta / standard_error if standard_error != 0 else 0.0

        if significance <= 0.01:
            critical_value = ADF_CRITICAL_VALUES[0.01]
        elif significance <= 0.05:
            critical_value = ADF_CRITICAL_VALUES[0.05]
        else:
            critical_value = ADF_CRITICAL_VALUES[0.10]

        # Bucketed p-value
        if t_stat < ADF_CRITICAL_VALUES[0.01]:
            p_value = 0.01
        elif t_stat < ADF_CRITICAL_VALUES[0.05]:
            p_value = 0.05
        elif t_stat < ADF_CRITICAL_VALUES[0.10]:
            p_value = 0.10
        else:
            p_value = 0.5

        return StationarityResult(
            is_stationary=t_stat < critical_value,
            test_stat=t_stat,
            critical_value=critical_value,
            p_value=p_value,
            beta=regression.beta,
        )

    @staticmethod
    def calculate_half_life(series: Sequence[float] | np.ndarray) -> float:
        """
        Mean-reversion half-life from the lag-1 AR fit.

        lambda = -beta, half-life = -ln(2) / ln(1 - lambda).
        Returns infinity when lambda is outside (0, 1): no mean reversion
        or an explosive fit.
        """
        arr = _as_array(series)
        if arr.size < HALF_LIFE_MIN_OBSERVATIONS:
            return float("inf")

        _, regression = _lag_regression(arr)
        reversion_rate = -regression.beta

        if reversion_rate <= 0 or reversion_rate >= 1:
            return float("inf")

        return -math.log(2) / math.log(1 - reversion_rate)

    @staticmethod
    def hurst_exponent(
        series: Sequence[float] | np.ndarray,
        max_lag: int = DEFAULT_HURST_MAX_LAG,
    ) -> float:
        """
        Hurst exponent via rescaled-range analysis.

        H < 0.5: mean reverting, H ~ 0.5: random walk, H > 0.5: trending.
        Returns 0.5 for fewer than 2 * max_lag points or fewer than 3
        usable lags. Result is clamped to [0, 1].
        """
        arr = _as_array(series)
        if arr.size < max_lag * 2:
            return 0.5

        log_lags = []
        log_rs = []
        for lag in range(2, max_lag + 1):
            rs = StatisticalCalculator._rescaled_range(arr, lag)
            if rs > 0:
                log_lags.append(math.log(lag))
                log_rs.append(math.log(rs))

        if len(log_lags) < 3:
            return 0.5

        regression = StatisticalCalculator.ols(log_lags, log_rs)
        return max(0.0, min(1.0, regression.beta))

    @staticmethod
    def _rescaled_range(series: np.ndarray, lag: int) -> float:
        """Average R/S over floor(n / lag) contiguous blocks."""
        num_blocks = series.size // lag
        if num_blocks < 1:
            return 0.0

        total_rs = 0.0
        for i in range(num_blocks):
            block = series[i * lag:(i + 1) * lag]
            cumulative = np.cumsum(block - block.mean())
            block_range = float(cumulative.max() - cumulative.min())
            block_std = StatisticalCalculator.std(block)
            # Flat blocks count toward the average with R/S = 0
            if block_std > 0:
                total_rs += block_range / block_std

        return total_rs / num_blocks
