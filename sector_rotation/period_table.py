"""
Period Return Table
===================

Immutable, period-indexed container for the per-portfolio returns and the
aligned benchmark that feed the rotation backtest.

The table is validated once at construction:
    - at least one period, labels unique and strictly increasing
    - pandas.Period labels must also be gapless (each label = previous + 1)
    - portfolio ids are exactly 1..N
    - every row holds one finite return for every portfolio
    - every period has a benchmark row with finite market and risk-free values

After construction nothing mutates it. ``with_row`` returns a new table,
which is how tests perturb future periods without touching the original.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Hashable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from sector_rotation.config import MARKET_COLUMN, RISK_FREE_COLUMN
from sector_rotation.exceptions import ConfigurationError, InsufficientDataError

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE HELPERS
# =============================================================================

def coerce_return(value: Any) -> Optional[float]:
    """
    Return ``value`` as a float if it is a well-formed periodic return.

    Well-formed means a real number (not a bool) that is finite.
    Anything else (None, NaN, pd.NA, strings, infinities) yields None.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if not isinstance(value, numbers.Real):
        return None
    result = float(value)
    if not math.isfinite(result):
        return None
    return result


def _column_id(label: Any) -> int:
    """Portfolio id of a frame column label: an integral number or an integer string."""
    if isinstance(label, (bool, np.bool_)):
        raise ConfigurationError(f"Portfolio column {label!r} is not an integer id")
    if isinstance(label, numbers.Integral):
        return int(label)
    if isinstance(label, numbers.Real) and math.isfinite(label) and float(label).is_integer():
        return int(label)
    if isinstance(label, str):
        try:
            return int(label)
        except ValueError as exc:
            raise ConfigurationError(f"Portfolio column {label!r} is not an integer id") from exc
    raise ConfigurationError(f"Portfolio column {label!r} is not an integer id")


def _check_period_order(periods: Sequence[Hashable]) -> None:
    if len(set(periods)) != len(periods):
        seen = set()
        for period in periods:
            if period in seen:
                raise InsufficientDataError("Duplicate period label", period=period)
            seen.add(period)

    for earlier, later in zip(periods, periods[1:]):
        if not earlier < later:
            raise InsufficientDataError(
                f"Period labels must be strictly increasing, {later} follows {earlier}",
                period=later
            )
        if isinstance(earlier, pd.Period) and isinstance(later, pd.Period):
            if later != earlier + 1:
                raise InsufficientDataError(
                    f"Gap in period sequence between {earlier} and {later}",
                    period=later
                )


# =============================================================================
# ROW VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class PortfolioReturnRow:
    """
    Returns of every candidate portfolio for one period.

    Attributes
    ----------
    period : Hashable
        Sortable period label (e.g. ``pd.Period('2010Q1')``)
    returns : Mapping[int, float]
        Read-only mapping portfolio id -> fractional periodic return
    """
    period: Hashable
    returns: Mapping[int, Any]

    def __post_init__(self):
        object.__setattr__(self, 'returns', MappingProxyType(dict(self.returns)))

    @property
    def portfolio_ids(self) -> List[int]:
        return sorted(self.returns)

    def get(self, portfolio_id: int) -> Optional[float]:
        """Well-formed return of ``portfolio_id`` or None."""
        return coerce_return(self.returns.get(portfolio_id))

    def to_series(self) -> pd.Series:
        return pd.Series(dict(self.returns), dtype=float, name=self.period).sort_index()


@dataclass(frozen=True)
class BenchmarkRow:
    """Market return and risk-free rate for one period."""
    period: Hashable
    market_return: float
    risk_free_rate: float

    @property
    def market_excess_return(self) -> float:
        return self.market_return - self.risk_free_rate


# =============================================================================
# PERIOD RETURN TABLE
# =============================================================================

class PeriodReturnTable:
    """
    Aligned per-period portfolio returns and benchmark, validated at construction.

    Parameters
    ----------
    rows : Sequence[PortfolioReturnRow]
        One row per period, in period order
    benchmark : Sequence[BenchmarkRow]
        One benchmark row per period, same labels and order as ``rows``

    Example
    -------
    >>> table = PeriodReturnTable.from_frames(portfolio_df, benchmark_df)
    >>> table.n_portfolios
    6
    >>> table.row(pd.Period('2010Q2')).get(3)
    0.0134
    """

    def __init__(
        self,
        rows: Sequence[PortfolioReturnRow],
        benchmark: Sequence[BenchmarkRow]
    ):
        rows = tuple(rows)
        benchmark = tuple(benchmark)

        if not rows:
            raise InsufficientDataError("Period return table needs at least one period")

        periods = [row.period for row in rows]
        _check_period_order(periods)

        portfolio_ids = self._validate_portfolio_ids(rows)
        clean_rows = tuple(self._validate_row(row, portfolio_ids) for row in rows)
        clean_benchmark = self._validate_benchmark(periods, benchmark)

        self._rows: Tuple[PortfolioReturnRow, ...] = clean_rows
        self._benchmark: Tuple[BenchmarkRow, ...] = clean_benchmark
        self._periods: Tuple[Hashable, ...] = tuple(periods)
        self._portfolio_ids: Tuple[int, ...] = tuple(portfolio_ids)
        self._index: Dict[Hashable, int] = {period: i for i, period in enumerate(periods)}

        logger.debug(
            f"Period return table: {len(self._periods)} periods "
            f"({self._periods[0]} to {self._periods[-1]}), "
            f"{len(self._portfolio_ids)} portfolios"
        )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_portfolio_ids(rows: Sequence[PortfolioReturnRow]) -> List[int]:
        ids = set()
        for row in rows:
            ids.update(row.returns.keys())

        for pid in ids:
            if isinstance(pid, bool) or not isinstance(pid, numbers.Integral):
                raise ConfigurationError(f"Portfolio id {pid!r} is not an integer", portfolio=pid)

        expected = set(range(1, len(ids) + 1))
        if not ids or ids != expected:
            raise ConfigurationError(
                f"Portfolio ids must be exactly 1..N, got {sorted(ids)}"
            )
        return sorted(int(pid) for pid in ids)

    @staticmethod
    def _validate_row(row: PortfolioReturnRow, portfolio_ids: Sequence[int]) -> PortfolioReturnRow:
        clean = {}
        missing = []
        for pid in portfolio_ids:
            value = row.get(pid)
            if value is None:
                missing.append(pid)
            else:
                clean[pid] = value

        if missing:
            raise InsufficientDataError(
                f"Incomplete portfolio-return row, missing or malformed returns for {missing}",
                period=row.period,
                portfolio=missing[0] if len(missing) == 1 else tuple(missing)
            )
        return PortfolioReturnRow(row.period, clean)

    @staticmethod
    def _validate_benchmark(
        periods: Sequence[Hashable],
        benchmark: Sequence[BenchmarkRow]
    ) -> Tuple[BenchmarkRow, ...]:
        by_period = {row.period: row for row in benchmark}
        if len(by_period) != len(benchmark):
            raise InsufficientDataError("Duplicate period label in benchmark series")

        extra = [p for p in by_period if p not in set(periods)]
        if extra:
            raise InsufficientDataError(
                "Benchmark row has no matching portfolio-return row",
                period=extra[0]
            )

        clean = []
        for period in periods:
            row = by_period.get(period)
            if row is None:
                raise InsufficientDataError("Missing benchmark row", period=period)
            market = coerce_return(row.market_return)
            risk_free = coerce_return(row.risk_free_rate)
            if market is None or risk_free is None:
                raise InsufficientDataError(
                    "Benchmark row has a missing or malformed market return or risk-free rate",
                    period=period
                )
            clean.append(BenchmarkRow(period, market, risk_free))
        return tuple(clean)

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @classmethod
    def from_frames(
        cls,
        portfolio_returns: pd.DataFrame,
        benchmark: pd.DataFrame,
        market_column: str = MARKET_COLUMN,
        risk_free_column: str = RISK_FREE_COLUMN
    ) -> "PeriodReturnTable":
        """
        Build a table from wide pandas frames.

        Args:
            portfolio_returns: index = period, columns = portfolio ids
            benchmark: index = period, with market and risk-free columns
            market_column: Column holding the market return
            risk_free_column: Column holding the risk-free rate

        Returns:
            Validated PeriodReturnTable
        """
        if not isinstance(portfolio_returns, pd.DataFrame) or not isinstance(benchmark, pd.DataFrame):
            raise TypeError("portfolio_returns and benchmark must be pandas DataFrames")

        missing_cols = {market_column, risk_free_column}.difference(benchmark.columns)
        if missing_cols:
            raise ValueError(f"Benchmark frame is missing required columns: {', '.join(sorted(missing_cols))}")

        column_ids = [_column_id(col) for col in portfolio_returns.columns]
        duplicates = sorted({pid for pid in column_ids if column_ids.count(pid) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Portfolio columns {list(portfolio_returns.columns)} map to duplicate ids {duplicates}",
                portfolio=duplicates[0]
            )

        rows = []
        for period, values in zip(portfolio_returns.index, portfolio_returns.itertuples(index=False, name=None)):
            rows.append(PortfolioReturnRow(period, dict(zip(column_ids, values))))

        bench_rows = [
            BenchmarkRow(period, market, risk_free)
            for period, market, risk_free in zip(
                benchmark.index,
                benchmark[market_column].tolist(),
                benchmark[risk_free_column].tolist()
            )
        ]
        return cls(rows, bench_rows)

    def with_row(self, period: Hashable, returns: Mapping[int, float]) -> "PeriodReturnTable":
        """Return a new table with the row for ``period`` replaced."""
        position = self._position(period)
        rows = list(self._rows)
        rows[position] = PortfolioReturnRow(period, returns)
        return PeriodReturnTable(rows, self._benchmark)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def _position(self, period: Hashable) -> int:
        try:
            return self._index[period]
        except KeyError:
            raise KeyError(f"No period {period!r} in table") from None

    @property
    def periods(self) -> List[Hashable]:
        return list(self._periods)

    @property
    def portfolio_ids(self) -> List[int]:
        return list(self._portfolio_ids)

    @property
    def n_portfolios(self) -> int:
        return len(self._portfolio_ids)

    @property
    def rows(self) -> Tuple[PortfolioReturnRow, ...]:
        return self._rows

    @property
    def benchmark(self) -> Tuple[BenchmarkRow, ...]:
        return self._benchmark

    def row(self, period: Hashable) -> PortfolioReturnRow:
        return self._rows[self._position(period)]

    def benchmark_row(self, period: Hashable) -> BenchmarkRow:
        return self._benchmark[self._position(period)]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Tuple[PortfolioReturnRow, BenchmarkRow]]:
        return iter(zip(self._rows, self._benchmark))

    def __repr__(self) -> str:
        return (
            f"PeriodReturnTable(periods={len(self)}, portfolios={self.n_portfolios}, "
            f"start={self._periods[0]}, end={self._periods[-1]})"
        )

    # -------------------------------------------------------------------------
    # pandas views (fresh objects on every call)
    # -------------------------------------------------------------------------

    def _period_index(self) -> pd.Index:
        if all(isinstance(p, pd.Period) for p in self._periods):
            return pd.PeriodIndex(list(self._periods), name="period")
        return pd.Index(list(self._periods), name="period")

    def portfolio_frame(self) -> pd.DataFrame:
        """T x N frame of portfolio returns (columns = portfolio ids)."""
        data = [[row.returns[pid] for pid in self._portfolio_ids] for row in self._rows]
        return pd.DataFrame(data, index=self._period_index(), columns=list(self._portfolio_ids), dtype=float)

    def market_returns(self) -> pd.Series:
        return pd.Series(
            [row.market_return for row in self._benchmark],
            index=self._period_index(), name="market", dtype=float
        )

    def risk_free_rates(self) -> pd.Series:
        return pd.Series(
            [row.risk_free_rate for row in self._benchmark],
            index=self._period_index(), name="risk_free", dtype=float
        )

    def market_excess_returns(self) -> pd.Series:
        return (self.market_returns() - self.risk_free_rates()).rename("market_excess")


__all__ = [
    'coerce_return',
    'PortfolioReturnRow',
    'BenchmarkRow',
    'PeriodReturnTable',
]
