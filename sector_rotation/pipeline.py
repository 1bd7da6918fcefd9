#!/usr/bin/env python3
"""
Sector Rotation Pipeline
========================

Orchestrates the rotation backtest over a validated Period Return Table:

    PeriodReturnTable
        -> RotationSimulator (SelectionRule each period)
        -> realized strategy returns
        -> PerformanceAggregator   (cumulative series, Sharpe/Treynor/Sortino)
        -> RegressionAttribution   (strategy and per-portfolio factor models)

The performance and attribution layers run independently on the same
realized series. Errors from any layer propagate to the caller unchanged.

ARCHITECTURE
------------
    Layer 1: Data
        - PeriodReturnTable: validated, immutable period x portfolio returns

    Layer 2: Rotation
        - SelectionRule: rank, pick top (or top two for concentration portfolios)
        - RotationSimulator: left-to-right fold, no lookahead

    Layer 3: Evaluation
        - PerformanceAggregator: cumulative series and risk-adjusted ratios
        - RegressionAttribution: OLS factor models

    Layer 4: Output
        - RotationReport: complete results container
        - format_rotation_report / report_to_dict
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, Optional

import pandas as pd

from sector_rotation.attribution import (
    FactorModelResult,
    RegressionAttribution,
    build_factor_frame,
    summary_table,
)
from sector_rotation.config import (
    ATTRIBUTION,
    PERFORMANCE,
    ROTATION,
    AttributionParameters,
    PerformanceParameters,
    RotationParameters,
)
from sector_rotation.performance import MetricsRecord, PerformanceAggregator, cumulative_returns
from sector_rotation.period_table import PeriodReturnTable
from sector_rotation.simulator import RotationResult, RotationSimulator

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# SECTION 1: RESULT CONTAINER
# =============================================================================

@dataclass
class RotationReport:
    """
    Complete results of one rotation backtest.

    Attributes
    ----------
    name : str
        Strategy label
    rotation : RotationResult
        Per-period decisions and realized returns
    cumulative_strategy : pd.Series
        Compounded strategy return, 0.0 at the first (unrealized) period
    cumulative_benchmark : pd.Series
        Compounded benchmark return over the same window, same base
    metrics : MetricsRecord
        Sharpe/Treynor/Sortino and supporting statistics
    strategy_model : FactorModelResult
        Factor model of the strategy's excess return
    portfolio_models : Dict[str, FactorModelResult]
        Factor model of each portfolio's excess return
    concentration_portfolios : frozenset
        Portfolios that trigger the 50/50 blend
    """
    name: str
    rotation: RotationResult
    cumulative_strategy: pd.Series
    cumulative_benchmark: pd.Series
    metrics: MetricsRecord
    strategy_model: FactorModelResult
    portfolio_models: Dict[str, FactorModelResult]
    concentration_portfolios: frozenset
    start_period: Hashable = None
    end_period: Hashable = None
    execution_time_ms: float = 0.0
    version: str = VERSION
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def decisions(self) -> pd.Series:
        return self.rotation.decisions

    @property
    def strategy_returns(self) -> pd.Series:
        return self.rotation.strategy_returns

    @property
    def regression_summary(self) -> pd.DataFrame:
        """Strategy model first, then every portfolio model."""
        return summary_table([self.strategy_model] + list(self.portfolio_models.values()))


# =============================================================================
# SECTION 2: PIPELINE
# =============================================================================

class RotationPipeline:
    """
    Complete rotation backtest orchestrator.

    Usage:
        pipeline = RotationPipeline(concentration_portfolios={4})
        report = pipeline.run(table, factors=size_value_frame)
        print(format_rotation_report(report))
    """

    def __init__(
        self,
        concentration_portfolios: Iterable[int] = (),
        rotation_parameters: RotationParameters = ROTATION,
        performance_parameters: PerformanceParameters = PERFORMANCE,
        attribution_parameters: AttributionParameters = ATTRIBUTION
    ):
        self.concentration_portfolios = frozenset(concentration_portfolios)
        self.simulator = RotationSimulator(self.concentration_portfolios, rotation_parameters)
        self.attribution = RegressionAttribution(attribution_parameters)
        self.aggregator = PerformanceAggregator(performance_parameters, self.attribution)
        self.attribution_parameters = attribution_parameters

    def run(
        self,
        table: PeriodReturnTable,
        factors: Optional[pd.DataFrame] = None,
        name: str = "Sector Rotation"
    ) -> RotationReport:
        """
        Run the rotation backtest and evaluate it.

        Args:
            table: Validated period return table
            factors: Optional extra factor columns (e.g. size, value) indexed
                by period; the market excess factor is always derived from
                ``table``. Every column is used unless the attribution
                parameters name an explicit factor set.
            name: Strategy label

        Returns:
            RotationReport

        Raises:
            RotationError: from any stage. The report is built whole or not
                at all; use RotationSimulator directly when only decisions
                and strategy returns are needed.
        """
        start_time = time.time()
        logger.info(
            f"Running rotation over {len(table)} periods, {table.n_portfolios} portfolios, "
            f"concentration set {sorted(self.concentration_portfolios)}"
        )

        rotation = self.simulator.run(table)
        strategy = rotation.strategy_returns

        # Benchmark shares the strategy's base period so both curves start at 0
        benchmark = table.market_returns().where(strategy.notna().to_numpy())
        cumulative_strategy = cumulative_returns(strategy)
        cumulative_benchmark = cumulative_returns(benchmark)

        metrics = self.aggregator.evaluate(
            strategy,
            table.market_returns(),
            table.risk_free_rates(),
            strategy_name="strategy",
            benchmark_name="benchmark"
        )

        factor_frame = build_factor_frame(table, factors, self.attribution_parameters.factor_columns)

        logger.info(f"Fitting factor models on {', '.join(map(str, factor_frame.columns))}")
        strategy_model = self.attribution.fit(strategy, factor_frame, table.risk_free_rates(), name="strategy")
        portfolio_models = self.attribution.fit_portfolios(table, factor_frame)

        execution_time = (time.time() - start_time) * 1000
        logger.info(
            f"Rotation total return {metrics.strategy.total_return:+.2%} vs "
            f"benchmark {metrics.benchmark.total_return:+.2%}"
        )

        return RotationReport(
            name=name,
            rotation=rotation,
            cumulative_strategy=cumulative_strategy.rename("strategy"),
            cumulative_benchmark=cumulative_benchmark.rename("benchmark"),
            metrics=metrics,
            strategy_model=strategy_model,
            portfolio_models=portfolio_models,
            concentration_portfolios=self.concentration_portfolios,
            start_period=table.periods[0],
            end_period=table.periods[-1],
            execution_time_ms=execution_time
        )


# =============================================================================
# SECTION 3: REPORTING
# =============================================================================

def _format_model(model: FactorModelResult) -> list:
    lines = [
        f"  {model.name}  (nobs={model.nobs}, R2={model.r_squared:.3f}, adj R2={model.adj_r_squared:.3f})",
        f"    {'term':<8} {'coef':>10} {'std err':>10} {'t':>8} {'p':>8}",
    ]
    for term, row in model.coefficients.iterrows():
        lines.append(
            f"    {term:<8} {row['coef']:>10.4f} {row['std_err']:>10.4f} "
            f"{row['t_stat']:>8.2f} {row['p_value']:>8.3f} {row['significance']}"
        )
    return lines


def format_rotation_report(report: RotationReport) -> str:
    """
    Format a rotation report as a human-readable text report.

    Args:
        report: RotationReport from the pipeline

    Returns:
        Formatted string report
    """
    s = report.metrics.strategy
    b = report.metrics.benchmark
    rotation = report.rotation

    lines = [
        "=" * 70,
        "SECTOR ROTATION BACKTEST REPORT",
        "=" * 70,
        f"Strategy: {report.name}",
        f"Period: {report.start_period} to {report.end_period}",
        f"Realized Periods: {len(rotation.realized_outcomes)}",
        f"Concentration Portfolios: {', '.join(f'P{p}' for p in sorted(report.concentration_portfolios)) or 'none'}",
        "",
        "-" * 70,
        "PERFORMANCE",
        "-" * 70,
        f"{'':<22}{'Strategy':>14}{'Benchmark':>14}",
        f"{'Total Return':<22}{s.total_return:>+14.2%}{b.total_return:>+14.2%}",
        f"{'Annualized Return':<22}{s.annualized_return:>+14.2%}{b.annualized_return:>+14.2%}",
        f"{'Mean Period Return':<22}{s.mean_return:>+14.2%}{b.mean_return:>+14.2%}",
        f"{'Volatility':<22}{s.volatility:>14.2%}{b.volatility:>14.2%}",
        f"{'Downside Volatility':<22}{s.downside_volatility:>14.2%}{b.downside_volatility:>14.2%}",
        f"{'Max Drawdown':<22}{s.max_drawdown:>14.2%}{b.max_drawdown:>14.2%}",
        f"{'Beta':<22}{s.beta:>14.3f}{b.beta:>14.3f}",
        "",
        "-" * 70,
        "RISK-ADJUSTED METRICS",
        "-" * 70,
        f"{'Sharpe Ratio':<22}{s.sharpe_ratio:>14.3f}{b.sharpe_ratio:>14.3f}",
        f"{'Treynor Ratio':<22}{s.treynor_ratio:>14.4f}{b.treynor_ratio:>14.4f}",
        f"{'Sortino Ratio':<22}{s.sortino_ratio:>14.3f}{b.sortino_ratio:>14.3f}",
        "",
        "-" * 70,
        "ROTATION",
        "-" * 70,
        f"Switches:            {rotation.turnover_count}",
        f"Blended Periods:     {sum(1 for o in rotation.realized_outcomes if o.decision.is_blended)}",
    ]

    holdings = rotation.holdings
    if not holdings.empty:
        time_held = (holdings > 0).sum()
        for pid, count in time_held.items():
            lines.append(f"  P{pid} held:         {count} periods")

    lines.extend([
        "",
        "-" * 70,
        "FACTOR ATTRIBUTION",
        "-" * 70,
    ])
    lines.extend(_format_model(report.strategy_model))
    for model in report.portfolio_models.values():
        lines.append("")
        lines.extend(_format_model(model))

    lines.extend([
        "",
        "=" * 70,
        f"Processing Time: {report.execution_time_ms:.0f}ms | Version: {report.version}",
        "=" * 70,
    ])
    return "\n".join(lines)


def report_to_dict(report: RotationReport) -> Dict[str, Any]:
    """JSON-ready summary of a rotation report."""
    def _models(models):
        return {
            m.name: {
                'nobs': m.nobs,
                'r_squared': m.r_squared,
                'adj_r_squared': m.adj_r_squared,
                'coefficients': m.coefficients.to_dict(orient='index'),
            }
            for m in models
        }

    decisions = [
        {
            'period': str(period),
            'signal_period': str(decision.signal_period),
            'primary_portfolio': decision.primary_portfolio,
            'secondary_portfolio': decision.secondary_portfolio,
            'weights': list(decision.weights),
        }
        for period, decision in report.decisions.items()
    ]

    return {
        'name': report.name,
        'period': {'start': str(report.start_period), 'end': str(report.end_period)},
        'concentration_portfolios': sorted(report.concentration_portfolios),
        'metrics': report.metrics.to_dict(),
        'decisions': decisions,
        'strategy_returns': {
            str(k): (None if pd.isna(v) else float(v)) for k, v in report.strategy_returns.items()
        },
        'cumulative': {
            'strategy': {str(k): float(v) for k, v in report.cumulative_strategy.items()},
            'benchmark': {str(k): float(v) for k, v in report.cumulative_benchmark.items()},
        },
        'factor_models': {
            'strategy': _models([report.strategy_model])['strategy'],
            'portfolios': _models(report.portfolio_models.values()),
        },
        'execution_time_ms': report.execution_time_ms,
        'version': report.version,
    }


# =============================================================================
# SECTION 4: CONVENIENCE FUNCTIONS
# =============================================================================

def run_rotation(
    table: PeriodReturnTable,
    concentration_portfolios: Iterable[int] = (),
    factors: Optional[pd.DataFrame] = None,
    name: str = "Sector Rotation"
) -> RotationReport:
    """
    Convenience function for running a complete rotation backtest.

    Example:
        >>> report = run_rotation(table, concentration_portfolios={4})
        >>> print(f"Sharpe: {report.metrics.strategy.sharpe_ratio:.3f}")
    """
    pipeline = RotationPipeline(concentration_portfolios=concentration_portfolios)
    return pipeline.run(table, factors=factors, name=name)


__all__ = [
    'VERSION',
    'RotationReport',
    'RotationPipeline',
    'format_rotation_report',
    'report_to_dict',
    'run_rotation',
]
