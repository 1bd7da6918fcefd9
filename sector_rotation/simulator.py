"""
Rotation Simulator
==================

Strict left-to-right fold over the Period Return Table:

    for t = 2..T:
        decision[t]        = rule.decide(row[t-1])
        strategy_return[t] = sum(weight_i * row[t][portfolio_i])

Period 1 has no decision and no strategy return (explicit null, never
zero). Decisions only ever see the previous period's row, so perturbing
row[t] can change strategy_return[t] but never decision[t].

A missing or non-finite return for a held portfolio aborts the run with
MissingReturnError; nothing is substituted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable, Iterable, List, Optional, Tuple

import pandas as pd

from sector_rotation.config import ROTATION, RotationParameters
from sector_rotation.exceptions import MissingReturnError
from sector_rotation.period_table import PeriodReturnTable, PortfolioReturnRow
from sector_rotation.selection import Decision, SelectionRule

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass(frozen=True)
class PeriodOutcome:
    """Decision and realized strategy return for one period."""
    period: Hashable
    decision: Optional[Decision]
    strategy_return: Optional[float]


@dataclass(frozen=True)
class RotationResult:
    """
    Output of one rotation run, in period order.

    The first outcome always carries ``decision=None`` and
    ``strategy_return=None``.
    """
    outcomes: Tuple[PeriodOutcome, ...]
    portfolio_ids: Tuple[int, ...]

    def _index(self, periods: List[Hashable]) -> pd.Index:
        if periods and all(isinstance(p, pd.Period) for p in periods):
            return pd.PeriodIndex(periods, name="period")
        return pd.Index(periods, name="period")

    @property
    def periods(self) -> List[Hashable]:
        return [o.period for o in self.outcomes]

    @property
    def realized_outcomes(self) -> List[PeriodOutcome]:
        return [o for o in self.outcomes if o.decision is not None]

    @property
    def decisions(self) -> pd.Series:
        """Decision objects for periods 2..T."""
        realized = self.realized_outcomes
        return pd.Series(
            [o.decision for o in realized],
            index=self._index([o.period for o in realized]),
            name="decision",
            dtype=object
        )

    @property
    def strategy_returns(self) -> pd.Series:
        """Strategy return for every period; period 1 is <NA>."""
        values = [pd.NA if o.strategy_return is None else o.strategy_return for o in self.outcomes]
        return pd.Series(values, index=self._index(self.periods), name="strategy", dtype="Float64")

    @property
    def realized_returns(self) -> pd.Series:
        """Strategy returns for periods 2..T as plain floats."""
        realized = self.realized_outcomes
        return pd.Series(
            [o.strategy_return for o in realized],
            index=self._index([o.period for o in realized]),
            name="strategy",
            dtype=float
        )

    @property
    def holdings(self) -> pd.DataFrame:
        """Weight held in each portfolio for periods 2..T."""
        realized = self.realized_outcomes
        frame = pd.DataFrame(
            0.0,
            index=self._index([o.period for o in realized]),
            columns=list(self.portfolio_ids)
        )
        for outcome in realized:
            for pid, weight in outcome.decision.holdings:
                frame.loc[outcome.period, pid] = weight
        return frame

    @property
    def turnover_count(self) -> int:
        """Number of periods in which the held portfolio set changed."""
        changes = 0
        previous = None
        for outcome in self.realized_outcomes:
            held = frozenset(pid for pid, _ in outcome.decision.holdings)
            if previous is not None and held != previous:
                changes += 1
            previous = held
        return changes

    def to_frame(self) -> pd.DataFrame:
        """One row per period: signal period, holdings, weights and return."""
        records = []
        for o in self.outcomes:
            d = o.decision
            records.append({
                'signal_period': d.signal_period if d else None,
                'primary_portfolio': d.primary_portfolio if d else None,
                'secondary_portfolio': d.secondary_portfolio if d else None,
                'primary_weight': d.weights[0] if d else None,
                'secondary_weight': d.weights[1] if d else None,
                'strategy_return': o.strategy_return,
            })
        frame = pd.DataFrame.from_records(records, index=self._index(self.periods))
        frame['strategy_return'] = frame['strategy_return'].astype("Float64")
        return frame


# =============================================================================
# SIMULATOR
# =============================================================================

class RotationSimulator:
    """
    Period-by-period rotation backtest.

    Parameters
    ----------
    concentration_portfolios : iterable of int
        Single-sector portfolios that trigger the 50/50 blend
    parameters : RotationParameters
        Rule weights and tie-break policy

    Example
    -------
    >>> simulator = RotationSimulator(concentration_portfolios={3})
    >>> result = simulator.run(table)
    >>> result.strategy_returns
    """

    def __init__(
        self,
        concentration_portfolios: Iterable[int] = (),
        parameters: RotationParameters = ROTATION
    ):
        self.concentration_portfolios = frozenset(concentration_portfolios)
        self.parameters = parameters

    def build_rule(self, n_portfolios: int) -> SelectionRule:
        return SelectionRule(
            n_portfolios,
            concentration_portfolios=self.concentration_portfolios,
            parameters=self.parameters
        )

    @staticmethod
    def realize(decision: Decision, row: PortfolioReturnRow) -> float:
        """
        Weighted return of the decision's holdings in ``row``.

        Raises:
            MissingReturnError: a held portfolio has no valid return in ``row``
        """
        total = 0.0
        for pid, weight in decision.holdings:
            value = row.get(pid)
            if value is None:
                raise MissingReturnError(
                    "Selected portfolio has no valid return",
                    period=row.period,
                    portfolio=pid
                )
            total += weight * value
        return total

    def run(self, table: PeriodReturnTable) -> RotationResult:
        """
        Run the rotation over every period of ``table``.

        Returns:
            RotationResult with one outcome per period
        """
        rule = self.build_rule(table.n_portfolios)
        rows = table.rows

        outcomes = [PeriodOutcome(rows[0].period, None, None)]
        for previous, current in zip(rows, rows[1:]):
            decision = rule.decide(previous)
            strategy_return = self.realize(decision, current)
            logger.debug(f"{current.period}: hold {decision.describe()} -> {strategy_return:+.4%}")
            outcomes.append(PeriodOutcome(current.period, decision, strategy_return))

        result = RotationResult(tuple(outcomes), tuple(table.portfolio_ids))
        logger.info(
            f"Rotation complete: {len(result.realized_outcomes)} realized periods, "
            f"{sum(1 for o in result.realized_outcomes if o.decision.is_blended)} blended, "
            f"{result.turnover_count} switches"
        )
        return result


__all__ = [
    'PeriodOutcome',
    'RotationResult',
    'RotationSimulator',
]
