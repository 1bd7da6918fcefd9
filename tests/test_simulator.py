"""Tests for the rotation simulator, including the no-lookahead property."""
import pandas as pd
import pytest

from sector_rotation.exceptions import ConfigurationError, MissingReturnError
from sector_rotation.period_table import PortfolioReturnRow
from sector_rotation.selection import Decision
from sector_rotation.simulator import RotationSimulator


@pytest.fixture
def scenario_result(scenario_table, scenario_concentration):
    return RotationSimulator(scenario_concentration).run(scenario_table)


class TestScenario:
    def test_first_period_is_null(self, scenario_result):
        first = scenario_result.outcomes[0]
        assert first.decision is None
        assert first.strategy_return is None
        assert scenario_result.strategy_returns.isna().iloc[0]

    def test_concentration_decision_after_period_one(self, scenario_result, scenario_periods):
        # P3 topped period 1 at 0.05 and is concentrated; P2 was rank 2 at 0.02
        decision = scenario_result.decisions[scenario_periods[1]]
        assert decision == Decision(3, 2, (0.5, 0.5), scenario_periods[0])

    def test_strategy_returns(self, scenario_result):
        returns = scenario_result.strategy_returns
        assert str(returns.dtype) == "Float64"
        assert list(returns.iloc[1:].astype(float)) == pytest.approx([-0.01, -0.01, -0.02])

    def test_single_holds_follow(self, scenario_result, scenario_periods):
        decisions = scenario_result.decisions
        assert decisions[scenario_periods[2]].holdings == [(1, 1.0)]
        assert decisions[scenario_periods[3]].holdings == [(2, 1.0)]

    def test_decisions_cover_periods_two_onwards(self, scenario_result, scenario_periods):
        assert list(scenario_result.decisions.index) == list(scenario_periods[1:])
        assert list(scenario_result.realized_returns.index) == list(scenario_periods[1:])

    def test_holdings_and_turnover(self, scenario_result, scenario_periods):
        holdings = scenario_result.holdings
        assert list(holdings.columns) == [1, 2, 3]
        assert holdings.loc[scenario_periods[1]].tolist() == [0.0, 0.5, 0.5]
        assert holdings.sum(axis=1).tolist() == pytest.approx([1.0, 1.0, 1.0])
        assert scenario_result.turnover_count == 2

    def test_to_frame(self, scenario_result, scenario_periods):
        frame = scenario_result.to_frame()
        assert len(frame) == 4
        assert pd.isna(frame.loc[scenario_periods[0], 'strategy_return'])
        assert frame.loc[scenario_periods[1], 'secondary_portfolio'] == 2


class TestNoLookahead:
    def test_future_row_cannot_change_decision(self, synthetic_table):
        simulator = RotationSimulator({4})
        baseline = simulator.run(synthetic_table)
        periods = synthetic_table.periods

        for k in (3, 10, len(periods) - 1):
            period = periods[k]
            row = synthetic_table.row(period)
            flipped = {pid: -value * 5 for pid, value in row.returns.items()}
            perturbed = simulator.run(synthetic_table.with_row(period, flipped))

            # decision[k] only sees row k-1
            assert list(perturbed.decisions.loc[:period]) == list(baseline.decisions.loc[:period])
            before = baseline.realized_returns.loc[:periods[k - 1]]
            pd.testing.assert_series_equal(perturbed.realized_returns.loc[:periods[k - 1]], before)

    def test_original_table_untouched(self, synthetic_table):
        before = synthetic_table.portfolio_frame()
        RotationSimulator({4}).run(synthetic_table)
        pd.testing.assert_frame_equal(synthetic_table.portfolio_frame(), before)


class TestErrors:
    def test_realize_missing_held_return(self):
        row = PortfolioReturnRow("Q2", {1: float("nan"), 2: 0.01})
        with pytest.raises(MissingReturnError) as excinfo:
            RotationSimulator.realize(Decision(1, None, (1.0, 0.0)), row)
        assert excinfo.value.period == "Q2"
        assert excinfo.value.portfolio == 1

    def test_realize_weighted_sum(self):
        row = PortfolioReturnRow("Q2", {1: 0.02, 2: 0.01, 3: 0.04})
        assert RotationSimulator.realize(Decision(3, 1, (0.5, 0.5)), row) == pytest.approx(0.03)

    def test_concentration_outside_table(self, scenario_table):
        with pytest.raises(ConfigurationError):
            RotationSimulator({7}).run(scenario_table)

    def test_single_period_table(self, scenario_portfolios, scenario_benchmark):
        from sector_rotation.period_table import PeriodReturnTable
        table = PeriodReturnTable.from_frames(scenario_portfolios.iloc[:1], scenario_benchmark.iloc[:1])
        result = RotationSimulator({3}).run(table)
        assert len(result.outcomes) == 1
        assert result.decisions.empty
        assert result.turnover_count == 0


class TestDeterminism:
    def test_repeat_runs_identical(self, synthetic_table):
        first = RotationSimulator({4}).run(synthetic_table)
        second = RotationSimulator({4}).run(synthetic_table)
        assert first == second


class TestMissingHeldReturn:
    def test_nan_in_table_rejected_before_rotation(self, scenario_portfolios, scenario_benchmark):
        from sector_rotation.exceptions import InsufficientDataError
        from sector_rotation.period_table import PeriodReturnTable

        # P2 is held in period 4; its return there is missing
        broken = scenario_portfolios.copy()
        broken.iloc[3, 1] = float("nan")
        with pytest.raises(InsufficientDataError) as excinfo:
            PeriodReturnTable.from_frames(broken, scenario_benchmark)
        assert excinfo.value.period == broken.index[3]
        assert excinfo.value.portfolio == 2
