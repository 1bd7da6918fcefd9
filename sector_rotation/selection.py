"""
Selection Rule
==============

Maps one period's portfolio returns to the Decision applied in the next
period.

    1. Rank all N portfolios by return, descending (equal returns ordered
       by portfolio id, lower id first by default).
    2. If the rank-1 portfolio is an ordinary portfolio, hold it alone.
    3. If the rank-1 portfolio is a concentration portfolio (built from a
       single underlying sector), hold it together with the rank-2
       portfolio at 50/50.

The concentration set is a static input fixed at portfolio-construction
time; the rule never infers it.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from typing import FrozenSet, Hashable, Iterable, List, Optional, Tuple

from sector_rotation.config import ROTATION, RotationParameters, TieBreak
from sector_rotation.exceptions import ConfigurationError, InsufficientDataError
from sector_rotation.period_table import PortfolioReturnRow

logger = logging.getLogger(__name__)


def _is_integer_id(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class Decision:
    """
    Holding decision for one period.

    Attributes
    ----------
    primary_portfolio : int
        Rank-1 portfolio of the signal period
    secondary_portfolio : int or None
        Rank-2 portfolio, only when the primary is a concentration portfolio
    weights : Tuple[float, float]
        (primary weight, secondary weight), summing to 1.0
    signal_period : Hashable
        Period whose returns produced this decision
    """
    primary_portfolio: int
    secondary_portfolio: Optional[int]
    weights: Tuple[float, float]
    signal_period: Optional[Hashable] = None

    @property
    def is_blended(self) -> bool:
        return self.secondary_portfolio is not None

    @property
    def holdings(self) -> List[Tuple[int, float]]:
        """(portfolio id, weight) pairs with non-zero weight."""
        pairs = [(self.primary_portfolio, self.weights[0])]
        if self.secondary_portfolio is not None:
            pairs.append((self.secondary_portfolio, self.weights[1]))
        return pairs

    def describe(self) -> str:
        if self.secondary_portfolio is None:
            return f"P{self.primary_portfolio} ({self.weights[0]:.0%})"
        return (
            f"P{self.primary_portfolio}/P{self.secondary_portfolio} "
            f"({self.weights[0]:.0%}/{self.weights[1]:.0%})"
        )


class SelectionRule:
    """
    Momentum selection rule with concentration-portfolio blending.

    Parameters
    ----------
    n_portfolios : int
        Number of candidate portfolios, identified 1..N
    concentration_portfolios : iterable of int
        Portfolios built from exactly one underlying sector
    parameters : RotationParameters
        Weights and tie-break policy

    Example
    -------
    >>> rule = SelectionRule(3, concentration_portfolios={3})
    >>> rule.decide(PortfolioReturnRow('Q1', {1: 0.01, 2: 0.02, 3: 0.05}))
    Decision(primary_portfolio=3, secondary_portfolio=2, weights=(0.5, 0.5), signal_period='Q1')
    """

    def __init__(
        self,
        n_portfolios: int,
        concentration_portfolios: Iterable[int] = (),
        parameters: RotationParameters = ROTATION
    ):
        if not _is_integer_id(n_portfolios) or n_portfolios < 1:
            raise ConfigurationError(f"Number of portfolios must be a positive integer, got {n_portfolios!r}")
        n_portfolios = int(n_portfolios)

        requested = set(concentration_portfolios)
        invalid = sorted(
            (pid for pid in requested if not _is_integer_id(pid) or not 1 <= pid <= n_portfolios),
            key=repr
        )
        concentration = frozenset(int(pid) for pid in requested if pid not in invalid)
        if invalid:
            raise ConfigurationError(
                f"Concentration set references ids outside 1..{n_portfolios}: {invalid}",
                portfolio=invalid[0]
            )
        if concentration and n_portfolios < 2:
            raise ConfigurationError(
                "A concentration portfolio needs at least one other portfolio to blend with"
            )

        w_primary, w_secondary = parameters.concentration_weights
        if abs(w_primary + w_secondary - 1.0) > parameters.weight_tolerance:
            raise ConfigurationError(
                f"Concentration weights must sum to 1.0, got {parameters.concentration_weights}"
            )
        if abs(parameters.single_weight - 1.0) > parameters.weight_tolerance:
            raise ConfigurationError(f"Single-hold weight must be 1.0, got {parameters.single_weight}")

        self.n_portfolios = n_portfolios
        self.concentration_portfolios: FrozenSet[int] = concentration
        self.parameters = parameters

    def rank(self, row: PortfolioReturnRow) -> List[Tuple[int, float]]:
        """
        Rank every portfolio by its return in ``row``, best first.

        Raises:
            InsufficientDataError: fewer than N well-formed returns in the row
        """
        returns = []
        missing = []
        for pid in range(1, self.n_portfolios + 1):
            value = row.get(pid)
            if value is None:
                missing.append(pid)
            else:
                returns.append((pid, value))

        if missing:
            raise InsufficientDataError(
                f"Need {self.n_portfolios} well-formed returns, "
                f"got {len(returns)}; missing or malformed: {missing}",
                period=row.period,
                portfolio=missing[0] if len(missing) == 1 else tuple(missing)
            )

        if self.parameters.tie_break is TieBreak.LOWER_ID:
            return sorted(returns, key=lambda item: (-item[1], item[0]))
        return sorted(returns, key=lambda item: (-item[1], -item[0]))

    def is_concentration(self, portfolio_id: int) -> bool:
        return portfolio_id in self.concentration_portfolios

    def decide(self, row: PortfolioReturnRow) -> Decision:
        """Decision for the period after ``row.period``."""
        ranking = self.rank(row)
        top = ranking[0][0]

        if not self.is_concentration(top):
            return Decision(
                primary_portfolio=top,
                secondary_portfolio=None,
                weights=(self.parameters.single_weight, 0.0),
                signal_period=row.period
            )

        second = ranking[1][0]
        logger.debug(f"{row.period}: top portfolio P{top} is concentrated, blending with P{second}")
        return Decision(
            primary_portfolio=top,
            secondary_portfolio=second,
            weights=tuple(self.parameters.concentration_weights),
            signal_period=row.period
        )


__all__ = [
    'Decision',
    'SelectionRule',
]
