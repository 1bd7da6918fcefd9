"""
Performance Aggregator
======================

Turns a periodic return series into cumulative performance and
risk-adjusted metrics relative to a benchmark and a risk-free series.

FORMULAS
--------
Cumulative return:
    cum[t] = prod(1 + r_i, i <= t) - 1
    Leading null periods (before the first realized return) have cum = 0.

Sharpe ratio:
    SR = mean(r) / std(r_benchmark)
    The mean is divided by the *benchmark's* volatility rather than the
    series' own; SharpeDenominator.OWN switches to std(r).

Treynor ratio:
    TR = mean(r) / beta
    beta is the slope of (r - rf) on (rm - rf); the benchmark's beta is 1.0.

Sortino ratio:
    SoR = mean(r) / std(r[r < 0])

Standard deviations are sample standard deviations (ddof=1).

References:
    Sharpe, W.F. (1994). "The Sharpe Ratio." Journal of Portfolio Management.
    Treynor, J.L. (1965). "How to Rate Management of Investment Funds."
    Sortino, F.A. & van der Meer, R. (1991). "Downside Risk."
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from sector_rotation.attribution import RegressionAttribution
from sector_rotation.config import PERFORMANCE, PerformanceParameters, SharpeDenominator
from sector_rotation.exceptions import InsufficientSampleError
from sector_rotation.series import align_to, realized_window, to_float_series

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class SeriesStatistics:
    """Moments of a realized return series."""
    count: int
    mean: float
    std: float                  # NaN below two observations
    downside_std: float         # NaN below two negative observations
    negative_count: int


@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Performance of one return series over the evaluation window.

    Sharpe, Treynor and Sortino are the headline metrics.
    """
    name: str
    periods: int

    # Returns
    mean_return: float
    total_return: float
    annualized_return: float

    # Risk
    volatility: float
    downside_volatility: float
    max_drawdown: float
    beta: float

    # Risk-adjusted
    sharpe_ratio: float
    treynor_ratio: float
    sortino_ratio: float


@dataclass(frozen=True)
class MetricsRecord:
    """Side-by-side metrics for the strategy and its benchmark."""
    strategy: PerformanceMetrics
    benchmark: PerformanceMetrics

    def to_frame(self) -> pd.DataFrame:
        """Metrics as rows, one column per series."""
        data = {
            self.strategy.name: asdict(self.strategy),
            self.benchmark.name: asdict(self.benchmark),
        }
        frame = pd.DataFrame(data)
        return frame.drop(index='name')

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {'strategy': asdict(self.strategy), 'benchmark': asdict(self.benchmark)}


# =============================================================================
# SECTION 2: SERIES CALCULATIONS
# =============================================================================

def cumulative_returns(returns: Union[pd.Series, Any]) -> pd.Series:
    """
    Compound a return series into cumulative returns.

    Recomputing from the same input always yields the same output; the
    input is not modified.

    Raises:
        MissingReturnError: a null appears after the first realized return
    """
    series = to_float_series(returns)
    window = realized_window(series)

    cumulative = pd.Series(0.0, index=series.index.copy(), name=series.name)
    if len(window) == 0:
        return cumulative

    start = len(series) - len(window)
    cumulative.iloc[start:] = np.cumprod(1.0 + window.to_numpy()) - 1.0
    return cumulative


def total_return(returns: pd.Series) -> float:
    window = realized_window(returns)
    return float(np.prod(1.0 + window.to_numpy()) - 1.0)


def annualized_return(returns: pd.Series, periods_per_year: int = PERFORMANCE.periods_per_year) -> float:
    """Geometric average return scaled to one year."""
    window = realized_window(returns)
    n = len(window)
    if n == 0:
        raise InsufficientSampleError("Cannot annualize an empty return series")
    growth = 1.0 + total_return(window)
    if growth <= 0:
        return -1.0
    return float(growth ** (periods_per_year / n) - 1.0)


def max_drawdown(returns: pd.Series) -> float:
    """
    Largest peak-to-trough decline of the compounded series.

    The starting wealth of 1.0 counts as a peak, so an immediate loss is a
    drawdown. Returned as a positive fraction.
    """
    window = realized_window(returns)
    if len(window) == 0:
        return 0.0
    wealth = np.cumprod(1.0 + window.to_numpy())
    peaks = np.maximum.accumulate(np.maximum(wealth, 1.0))
    drawdown = wealth / peaks - 1.0
    return float(abs(min(drawdown.min(), 0.0)))


def describe(returns: pd.Series) -> SeriesStatistics:
    """Count, mean, sample std and downside std of the realized window."""
    window = realized_window(returns)
    values = window.to_numpy()
    negatives = values[values < 0]

    return SeriesStatistics(
        count=int(len(values)),
        mean=float(values.mean()) if len(values) else float('nan'),
        std=float(np.std(values, ddof=1)) if len(values) >= 2 else float('nan'),
        downside_std=float(np.std(negatives, ddof=1)) if len(negatives) >= 2 else float('nan'),
        negative_count=int(len(negatives))
    )


# =============================================================================
# SECTION 3: RISK-ADJUSTED RATIOS
# =============================================================================

def _volatility(returns: pd.Series, label: str, min_observations: int) -> float:
    window = realized_window(returns)
    if len(window) < max(min_observations, 2):
        raise InsufficientSampleError(
            f"{label} volatility needs at least {max(min_observations, 2)} observations, got {len(window)}"
        )
    vol = float(np.std(window.to_numpy(), ddof=1))
    if not vol > 0:
        raise InsufficientSampleError(f"{label} volatility is zero")
    return vol


def sharpe_ratio(
    returns: pd.Series,
    benchmark_returns: Optional[pd.Series] = None,
    denominator: SharpeDenominator = PERFORMANCE.sharpe_denominator,
    min_observations: int = PERFORMANCE.min_volatility_observations
) -> float:
    """
    Mean periodic return over volatility.

    Args:
        returns: Series being rated
        benchmark_returns: Benchmark series; required for SharpeDenominator.BENCHMARK
        denominator: Which series' volatility normalizes the mean
        min_observations: Minimum observations for the volatility

    Raises:
        InsufficientSampleError: volatility undefined (too few observations or zero)
    """
    window = realized_window(returns)
    if len(window) == 0:
        raise InsufficientSampleError("Sharpe ratio of an empty series")

    if denominator is SharpeDenominator.BENCHMARK:
        if benchmark_returns is None:
            raise ValueError("benchmark_returns is required for benchmark-normalized Sharpe ratio")
        vol = _volatility(benchmark_returns, "Benchmark", min_observations)
    else:
        vol = _volatility(window, "Series", min_observations)

    return float(window.mean() / vol)


def treynor_ratio(mean_return: float, beta: float) -> float:
    """
    Mean periodic return per unit of systematic risk.

    Raises:
        InsufficientSampleError: beta is zero or undefined
    """
    if beta is None or not math.isfinite(beta) or beta == 0:
        raise InsufficientSampleError(f"Treynor ratio undefined for beta={beta}")
    return float(mean_return / beta)


def sortino_ratio(
    returns: pd.Series,
    min_observations: int = PERFORMANCE.min_downside_observations
) -> float:
    """
    Mean periodic return over the std of the negative returns of the same series.

    Raises:
        InsufficientSampleError: fewer than ``min_observations`` (at least 2)
            negative periods, or zero downside dispersion
    """
    window = realized_window(returns)
    values = window.to_numpy()
    negatives = values[values < 0]

    required = max(min_observations, 2)
    if len(negatives) < required:
        raise InsufficientSampleError(
            f"Sortino ratio needs at least {required} negative-return periods, got {len(negatives)}"
        )
    downside = float(np.std(negatives, ddof=1))
    if not downside > 0:
        raise InsufficientSampleError("Sortino ratio undefined: negative returns have zero dispersion")
    return float(values.mean() / downside)


# =============================================================================
# SECTION 4: AGGREGATOR
# =============================================================================

class PerformanceAggregator:
    """
    Computes the metrics record for a strategy and its benchmark.

    Parameters
    ----------
    parameters : PerformanceParameters
        Annualization, Sharpe normalization and minimum sample sizes
    attribution : RegressionAttribution, optional
        Regression engine used for the strategy beta

    Example
    -------
    >>> aggregator = PerformanceAggregator()
    >>> record = aggregator.evaluate(result.strategy_returns, table.market_returns(),
    ...                              table.risk_free_rates())
    >>> record.strategy.sharpe_ratio
    """

    def __init__(
        self,
        parameters: PerformanceParameters = PERFORMANCE,
        attribution: Optional[RegressionAttribution] = None
    ):
        self.parameters = parameters
        self.attribution = attribution or RegressionAttribution()

    def evaluate(
        self,
        strategy_returns: pd.Series,
        market_returns: pd.Series,
        risk_free: Union[pd.Series, float, None] = None,
        strategy_name: str = "strategy",
        benchmark_name: str = "benchmark"
    ) -> MetricsRecord:
        """
        Evaluate strategy and benchmark over the strategy's realized periods.

        Args:
            strategy_returns: Strategy returns; leading nulls are unrealized periods
            market_returns: Benchmark returns covering every realized period
            risk_free: Risk-free series or constant, used for beta
            strategy_name: Label for the strategy metrics
            benchmark_name: Label for the benchmark metrics
        """
        strategy = realized_window(strategy_returns, strategy_name)
        if len(strategy) == 0:
            raise InsufficientSampleError("Strategy has no realized returns")

        benchmark = align_to(strategy.index, market_returns, benchmark_name)
        rf = align_to(strategy.index, 0.0 if risk_free is None else risk_free, 'risk_free')

        beta = self.attribution.capm_beta(strategy, benchmark, rf)
        logger.info(f"Evaluating {len(strategy)} periods: strategy beta={beta:.3f}")

        strategy_metrics = self._metrics(
            strategy_name, strategy,
            sharpe_vol_source=benchmark,
            beta=beta
        )
        benchmark_metrics = self._metrics(
            benchmark_name, benchmark,
            sharpe_vol_source=benchmark,
            beta=self.parameters.benchmark_beta
        )
        return MetricsRecord(strategy=strategy_metrics, benchmark=benchmark_metrics)

    def _metrics(
        self,
        name: str,
        returns: pd.Series,
        sharpe_vol_source: pd.Series,
        beta: float
    ) -> PerformanceMetrics:
        stats = describe(returns)
        p = self.parameters

        return PerformanceMetrics(
            name=name,
            periods=stats.count,
            mean_return=stats.mean,
            total_return=total_return(returns),
            annualized_return=annualized_return(returns, p.periods_per_year),
            volatility=stats.std,
            downside_volatility=stats.downside_std,
            max_drawdown=max_drawdown(returns),
            beta=float(beta),
            sharpe_ratio=sharpe_ratio(
                returns, sharpe_vol_source, p.sharpe_denominator, p.min_volatility_observations
            ),
            treynor_ratio=treynor_ratio(stats.mean, beta),
            sortino_ratio=sortino_ratio(returns, p.min_downside_observations),
        )

    @staticmethod
    def cumulative(returns: pd.Series) -> pd.Series:
        return cumulative_returns(returns)


__all__ = [
    'SeriesStatistics',
    'PerformanceMetrics',
    'MetricsRecord',
    'cumulative_returns',
    'total_return',
    'annualized_return',
    'max_drawdown',
    'describe',
    'sharpe_ratio',
    'treynor_ratio',
    'sortino_ratio',
    'PerformanceAggregator',
]
