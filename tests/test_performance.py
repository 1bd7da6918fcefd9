"""Tests for cumulative compounding and the risk-adjusted metrics."""
import math

import numpy as np
import pandas as pd
import pytest

from sector_rotation.config import PerformanceParameters, SharpeDenominator
from sector_rotation.exceptions import InsufficientSampleError, MissingReturnError
from sector_rotation.performance import (
    PerformanceAggregator,
    annualized_return,
    cumulative_returns,
    describe,
    max_drawdown,
    sharpe_ratio,
    sortino_ratio,
    total_return,
    treynor_ratio,
)
from sector_rotation.simulator import RotationSimulator


class TestCumulativeReturns:
    def test_compounding(self):
        cumulative = cumulative_returns(pd.Series([0.1, -0.05, 0.02]))
        assert cumulative.tolist() == pytest.approx([0.1, 0.045, 0.0659])

    def test_recurrence(self):
        returns = pd.Series(np.random.default_rng(3).normal(0.01, 0.05, 40))
        cumulative = cumulative_returns(returns)
        assert cumulative.iloc[0] == pytest.approx(returns.iloc[0])
        for t in range(1, len(returns)):
            expected = (1 + cumulative.iloc[t - 1]) * (1 + returns.iloc[t]) - 1
            assert cumulative.iloc[t] == pytest.approx(expected, abs=1e-12)

    def test_matches_direct_product(self, synthetic_table):
        strategy = RotationSimulator({4}).run(synthetic_table).strategy_returns
        cumulative = cumulative_returns(strategy)
        direct = np.prod(1.0 + strategy.iloc[1:].astype(float).to_numpy()) - 1.0
        assert abs(cumulative.iloc[-1] - direct) < 1e-9

    def test_leading_null_is_zero_base(self):
        returns = pd.Series([pd.NA, 0.02, 0.03], dtype="Float64")
        cumulative = cumulative_returns(returns)
        assert cumulative.tolist() == pytest.approx([0.0, 0.02, 1.02 * 1.03 - 1])

    def test_interior_null_raises(self):
        returns = pd.Series([0.01, np.nan, 0.02], index=["Q1", "Q2", "Q3"])
        with pytest.raises(MissingReturnError) as excinfo:
            cumulative_returns(returns)
        assert excinfo.value.period == "Q2"

    def test_idempotent_and_non_mutating(self):
        returns = pd.Series([0.01, -0.02, 0.03])
        snapshot = returns.copy()
        first = cumulative_returns(returns)
        second = cumulative_returns(returns)
        pd.testing.assert_series_equal(first, second)
        pd.testing.assert_series_equal(returns, snapshot)

    def test_empty_series(self):
        assert cumulative_returns(pd.Series([], dtype=float)).empty


class TestSeriesStatistics:
    def test_total_and_annualized(self):
        returns = pd.Series([0.01] * 4)
        assert total_return(returns) == pytest.approx(1.01 ** 4 - 1)
        assert annualized_return(returns, periods_per_year=4) == pytest.approx(1.01 ** 4 - 1)

    def test_annualized_needs_data(self):
        with pytest.raises(InsufficientSampleError):
            annualized_return(pd.Series([], dtype=float))

    def test_max_drawdown_counts_initial_peak(self):
        assert max_drawdown(pd.Series([-0.1, 0.05])) == pytest.approx(0.1)

    def test_max_drawdown_after_peak(self):
        assert max_drawdown(pd.Series([0.2, -0.25, 0.1])) == pytest.approx(0.25)

    def test_max_drawdown_monotonic(self):
        assert max_drawdown(pd.Series([0.01, 0.02])) == 0.0

    def test_describe(self):
        stats = describe(pd.Series([0.05, -0.01, -0.03, 0.03]))
        assert stats.count == 4
        assert stats.mean == pytest.approx(0.01)
        assert stats.negative_count == 2
        assert stats.downside_std == pytest.approx(np.std([-0.01, -0.03], ddof=1))
        assert math.isnan(describe(pd.Series([0.01])).std)


class TestRatios:
    def test_sharpe_own_volatility(self):
        value = sharpe_ratio(pd.Series([0.01, 0.03]), denominator=SharpeDenominator.OWN)
        assert value == pytest.approx(0.02 / np.std([0.01, 0.03], ddof=1))

    def test_sharpe_benchmark_volatility(self):
        strategy = pd.Series([0.01, 0.03, 0.02])
        benchmark = pd.Series([0.02, -0.01, 0.04])
        value = sharpe_ratio(strategy, benchmark, SharpeDenominator.BENCHMARK)
        assert value == pytest.approx(0.02 / np.std([0.02, -0.01, 0.04], ddof=1))

    def test_sharpe_benchmark_required(self):
        with pytest.raises(ValueError):
            sharpe_ratio(pd.Series([0.01, 0.02]), None, SharpeDenominator.BENCHMARK)

    def test_sharpe_zero_volatility(self):
        with pytest.raises(InsufficientSampleError):
            sharpe_ratio(pd.Series([0.25, 0.25, 0.25]), denominator=SharpeDenominator.OWN)

    def test_sharpe_single_observation(self):
        with pytest.raises(InsufficientSampleError):
            sharpe_ratio(pd.Series([0.01]), denominator=SharpeDenominator.OWN)

    def test_treynor(self):
        assert treynor_ratio(0.02, 0.5) == pytest.approx(0.04)

    @pytest.mark.parametrize("beta", [0.0, float("nan"), None])
    def test_treynor_undefined_beta(self, beta):
        with pytest.raises(InsufficientSampleError):
            treynor_ratio(0.02, beta)

    def test_sortino(self):
        value = sortino_ratio(pd.Series([0.05, -0.01, -0.03, 0.03]))
        assert value == pytest.approx(0.01 / np.std([-0.01, -0.03], ddof=1))

    def test_sortino_without_negatives(self):
        with pytest.raises(InsufficientSampleError):
            sortino_ratio(pd.Series([0.01, 0.02, 0.03]))

    def test_sortino_single_negative(self):
        with pytest.raises(InsufficientSampleError):
            sortino_ratio(pd.Series([0.01, -0.02, 0.03]))

    def test_sortino_identical_negatives(self):
        with pytest.raises(InsufficientSampleError):
            sortino_ratio(pd.Series([0.5, -0.25, -0.25]))


class TestAggregator:
    def test_evaluate_scenario(self, scenario_table, scenario_concentration):
        strategy = RotationSimulator(scenario_concentration).run(scenario_table).strategy_returns
        record = PerformanceAggregator().evaluate(
            strategy, scenario_table.market_returns(), scenario_table.risk_free_rates()
        )

        benchmark_window = np.array([-0.02, 0.01, -0.015])
        benchmark_vol = np.std(benchmark_window, ddof=1)

        assert record.strategy.periods == 3
        assert record.benchmark.periods == 3
        assert record.strategy.mean_return == pytest.approx(np.mean([-0.01, -0.01, -0.02]))
        assert record.strategy.sharpe_ratio == pytest.approx(record.strategy.mean_return / benchmark_vol)
        assert record.benchmark.sharpe_ratio == pytest.approx(benchmark_window.mean() / benchmark_vol)
        assert record.benchmark.beta == 1.0
        assert record.benchmark.treynor_ratio == pytest.approx(benchmark_window.mean())
        assert record.strategy.treynor_ratio == pytest.approx(
            record.strategy.mean_return / record.strategy.beta
        )

    def test_strategy_beta_matches_covariance(self, synthetic_table):
        strategy = RotationSimulator({4}).run(synthetic_table).realized_returns
        rf = synthetic_table.risk_free_rates().loc[strategy.index]
        market = synthetic_table.market_returns().loc[strategy.index]
        record = PerformanceAggregator().evaluate(strategy, synthetic_table.market_returns(), 0.005)

        excess_s = strategy - rf
        excess_m = market - rf
        expected = np.cov(excess_s, excess_m, ddof=1)[0, 1] / np.var(excess_m, ddof=1)
        assert record.strategy.beta == pytest.approx(expected, rel=1e-8)

    def test_own_volatility_option(self, synthetic_table):
        strategy = RotationSimulator({4}).run(synthetic_table).strategy_returns
        params = PerformanceParameters(sharpe_denominator=SharpeDenominator.OWN)
        record = PerformanceAggregator(params).evaluate(strategy, synthetic_table.market_returns())
        assert record.strategy.sharpe_ratio == pytest.approx(
            record.strategy.mean_return / record.strategy.volatility
        )

    def test_deterministic(self, synthetic_table):
        strategy = RotationSimulator({4}).run(synthetic_table).strategy_returns
        aggregator = PerformanceAggregator()
        first = aggregator.evaluate(strategy, synthetic_table.market_returns(), synthetic_table.risk_free_rates())
        second = aggregator.evaluate(strategy, synthetic_table.market_returns(), synthetic_table.risk_free_rates())
        assert first == second

    def test_metrics_frame(self, synthetic_table):
        strategy = RotationSimulator({4}).run(synthetic_table).strategy_returns
        record = PerformanceAggregator().evaluate(strategy, synthetic_table.market_returns())
        frame = record.to_frame()
        assert list(frame.columns) == ["strategy", "benchmark"]
        assert {"sharpe_ratio", "treynor_ratio", "sortino_ratio"} <= set(frame.index)

    def test_no_realized_returns(self, scenario_table):
        empty = pd.Series([pd.NA] * 4, index=scenario_table.market_returns().index, dtype="Float64")
        with pytest.raises(InsufficientSampleError):
            PerformanceAggregator().evaluate(empty, scenario_table.market_returns())
