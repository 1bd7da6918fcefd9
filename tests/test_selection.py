"""Tests for the momentum selection rule."""
import numpy as np
import pytest

from sector_rotation.config import RotationParameters, TieBreak
from sector_rotation.exceptions import ConfigurationError, InsufficientDataError
from sector_rotation.period_table import PortfolioReturnRow
from sector_rotation.selection import Decision, SelectionRule


class TestDecide:
    def test_ordinary_top_held_alone(self):
        rule = SelectionRule(3, concentration_portfolios={3})
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.04, 2: 0.01, 3: 0.02}))
        assert decision == Decision(1, None, (1.0, 0.0), "Q1")
        assert not decision.is_blended
        assert decision.holdings == [(1, 1.0)]

    def test_concentration_top_blends_with_runner_up(self):
        rule = SelectionRule(3, concentration_portfolios={3})
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.01, 2: 0.02, 3: 0.05}))
        assert decision.primary_portfolio == 3
        assert decision.secondary_portfolio == 2
        assert decision.weights == (0.5, 0.5)
        assert decision.holdings == [(3, 0.5), (2, 0.5)]
        assert sum(decision.weights) == pytest.approx(1.0)

    def test_concentration_runner_up_not_blended(self):
        rule = SelectionRule(3, concentration_portfolios={3})
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.05, 2: 0.01, 3: 0.04}))
        assert decision.primary_portfolio == 1
        assert decision.secondary_portfolio is None

    def test_no_concentration_set(self):
        rule = SelectionRule(2)
        decision = rule.decide(PortfolioReturnRow("Q1", {1: -0.05, 2: -0.01}))
        assert decision.primary_portfolio == 2

    def test_describe(self):
        assert Decision(3, 2, (0.5, 0.5)).describe() == "P3/P2 (50%/50%)"
        assert Decision(1, None, (1.0, 0.0)).describe() == "P1 (100%)"


class TestRanking:
    def test_descending_order(self):
        rule = SelectionRule(4)
        ranking = rule.rank(PortfolioReturnRow("Q1", {1: 0.01, 2: 0.03, 3: -0.02, 4: 0.02}))
        assert [pid for pid, _ in ranking] == [2, 4, 1, 3]

    def test_tie_lower_id_wins(self):
        rule = SelectionRule(3)
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.01, 2: 0.03, 3: 0.03}))
        assert decision.primary_portfolio == 2

    def test_tie_higher_id_policy(self):
        rule = SelectionRule(3, parameters=RotationParameters(tie_break=TieBreak.HIGHER_ID))
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.01, 2: 0.03, 3: 0.03}))
        assert decision.primary_portfolio == 3

    def test_tie_for_second_place(self):
        rule = SelectionRule(3, concentration_portfolios={1})
        decision = rule.decide(PortfolioReturnRow("Q1", {1: 0.05, 2: 0.02, 3: 0.02}))
        assert (decision.primary_portfolio, decision.secondary_portfolio) == (1, 2)

    def test_missing_return_rejected(self):
        rule = SelectionRule(3)
        with pytest.raises(InsufficientDataError) as excinfo:
            rule.rank(PortfolioReturnRow("Q4", {1: 0.01, 2: 0.02}))
        assert excinfo.value.period == "Q4"
        assert excinfo.value.portfolio == 3

    def test_non_finite_return_rejected(self):
        rule = SelectionRule(2)
        with pytest.raises(InsufficientDataError):
            rule.decide(PortfolioReturnRow("Q1", {1: float("inf"), 2: 0.02}))


class TestConfiguration:
    def test_concentration_id_out_of_range(self):
        with pytest.raises(ConfigurationError) as excinfo:
            SelectionRule(3, concentration_portfolios={4})
        assert excinfo.value.portfolio == 4

    def test_concentration_id_not_integer(self):
        with pytest.raises(ConfigurationError):
            SelectionRule(3, concentration_portfolios={"3"})

    def test_numpy_ids_accepted(self):
        rule = SelectionRule(np.int64(3), concentration_portfolios={np.int64(2)})
        assert rule.n_portfolios == 3
        assert rule.is_concentration(2)

    @pytest.mark.parametrize("n", [0, -1, 2.5, True])
    def test_invalid_portfolio_count(self, n):
        with pytest.raises(ConfigurationError):
            SelectionRule(n)

    def test_concentration_needs_two_portfolios(self):
        with pytest.raises(ConfigurationError):
            SelectionRule(1, concentration_portfolios={1})

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ConfigurationError):
            SelectionRule(3, parameters=RotationParameters(concentration_weights=(0.6, 0.6)))
