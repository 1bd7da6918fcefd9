"""
Portfolio Construction
======================

Upstream data preparation that turns raw sector (industry) returns into
the inputs of the rotation backtest:

    1. compound_to_periods        daily/monthly returns -> quarterly returns
    2. truncate_incomplete_history drop leading quarters where any sector is missing
    3. cluster_sectors            hierarchical clustering on correlation distance
    4. build_portfolio_returns    equal-weighted return per cluster portfolio
    5. concentration_portfolios   clusters holding exactly one sector

Clustering can be restricted to an initial training window; that window is
then excluded from the returned portfolio returns so the backtest never
trades on the data the clusters were learned from.

Correlation distance (Mantegna, 1999):
    d_ij = sqrt(0.5 * (1 - rho_ij))
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform

from sector_rotation.config import (
    CONSTRUCTION,
    MARKET_COLUMN,
    RISK_FREE_COLUMN,
    LinkageMethod,
)
from sector_rotation.exceptions import ConfigurationError, InsufficientDataError
from sector_rotation.period_table import PeriodReturnTable

logger = logging.getLogger(__name__)


# =============================================================================
# PERIOD BUCKETING
# =============================================================================

def compound_to_periods(
    returns: Union[pd.DataFrame, pd.Series],
    freq: str = CONSTRUCTION.period_frequency
) -> Union[pd.DataFrame, pd.Series]:
    """
    Compound higher-frequency returns into period returns.

    A bucket containing any missing observation stays missing rather than
    compounding over the available days.

    Args:
        returns: Returns indexed by a DatetimeIndex
        freq: pandas period alias ('Q' for calendar quarters, 'M' for months)

    Returns:
        Same shape of object indexed by a PeriodIndex
    """
    if not isinstance(returns.index, pd.DatetimeIndex):
        raise TypeError("returns must be indexed by a DatetimeIndex")

    buckets = returns.index.to_period(freq)
    growth = (1.0 + returns).groupby(buckets).prod(min_count=1)
    incomplete = returns.isna().groupby(buckets).any()
    compounded = (growth - 1.0).mask(incomplete)
    compounded.index.name = "period"
    return compounded


def truncate_incomplete_history(returns: pd.DataFrame) -> pd.DataFrame:
    """
    Drop leading periods in which any column is missing.

    Raises:
        InsufficientDataError: no complete period, or a gap after the first complete one
    """
    complete = returns.notna().all(axis=1).to_numpy()
    if not complete.any():
        raise InsufficientDataError("No period has returns for every column")

    first = int(np.argmax(complete))
    trimmed = returns.iloc[first:]

    gaps = ~trimmed.notna().all(axis=1).to_numpy()
    if gaps.any():
        period = trimmed.index[gaps][0]
        missing = [col for col in trimmed.columns if pd.isna(trimmed.loc[period, col])]
        raise InsufficientDataError(
            f"Gap in history after the first complete period for {missing}",
            period=period,
            portfolio=missing[0] if len(missing) == 1 else tuple(missing)
        )

    if first:
        logger.info(f"Dropped {first} leading periods with incomplete sector history")
    return trimmed.copy()


# =============================================================================
# CLUSTERING
# =============================================================================

def correlation_distance(returns: pd.DataFrame) -> pd.DataFrame:
    """Pairwise sqrt(0.5 * (1 - rho)) distance between columns."""
    corr = returns.corr()
    if corr.isna().to_numpy().any():
        constant = [col for col in returns.columns if returns[col].nunique(dropna=True) <= 1]
        raise InsufficientDataError(
            f"Correlation undefined for constant or too-short columns: {constant or list(returns.columns)}"
        )
    dist = np.sqrt(np.clip(0.5 * (1.0 - corr.to_numpy()), 0.0, None))
    np.fill_diagonal(dist, 0.0)
    return pd.DataFrame(dist, index=corr.index, columns=corr.columns)


def cluster_sectors(
    returns: pd.DataFrame,
    n_clusters: int = CONSTRUCTION.n_clusters,
    method: LinkageMethod = CONSTRUCTION.linkage_method
) -> Dict[str, int]:
    """
    Group sectors into at most ``n_clusters`` portfolios.

    Portfolio ids run 1..K, numbered in order of first appearance among
    the sorted sector names, so the same input always gives the same ids.

    Returns:
        Mapping sector name -> portfolio id
    """
    if n_clusters < 1:
        raise ConfigurationError(f"n_clusters must be positive, got {n_clusters}")

    sectors = sorted(str(col) for col in returns.columns)
    if not sectors:
        raise InsufficientDataError("No sectors to cluster")
    if len(sectors) == 1:
        return {sectors[0]: 1}

    frame = returns.copy()
    frame.columns = [str(col) for col in frame.columns]
    frame = frame.loc[:, sectors]

    dist = correlation_distance(frame)
    link = linkage(squareform(dist.to_numpy(), checks=False), method=method.value)
    raw_labels = fcluster(link, t=n_clusters, criterion='maxclust')

    renumber: Dict[int, int] = {}
    assignments: Dict[str, int] = {}
    for sector, raw in zip(sectors, raw_labels):
        if raw not in renumber:
            renumber[raw] = len(renumber) + 1
        assignments[sector] = renumber[raw]

    if len(renumber) < n_clusters:
        logger.warning(f"Clustering produced {len(renumber)} portfolios, fewer than the {n_clusters} requested")
    logger.info(f"Clustered {len(sectors)} sectors into {len(renumber)} portfolios ({method.value} linkage)")
    return assignments


def portfolio_members(assignments: Mapping[str, int]) -> Dict[int, List[str]]:
    members: Dict[int, List[str]] = {}
    for sector, pid in sorted(assignments.items()):
        members.setdefault(int(pid), []).append(sector)
    return dict(sorted(members.items()))


def concentration_portfolios(assignments: Mapping[str, int]) -> FrozenSet[int]:
    """Portfolio ids whose membership cardinality is exactly one."""
    counts = Counter(int(pid) for pid in assignments.values())
    return frozenset(pid for pid, count in counts.items() if count == 1)


def build_portfolio_returns(
    sector_returns: pd.DataFrame,
    assignments: Mapping[str, int]
) -> pd.DataFrame:
    """
    Equal-weighted periodic return of each portfolio.

    Raises:
        ConfigurationError: assignments and sector columns disagree, or ids are not 1..K
    """
    frame = sector_returns.copy()
    frame.columns = [str(col) for col in frame.columns]

    unassigned = sorted(set(frame.columns).difference(assignments))
    unknown = sorted(set(assignments).difference(frame.columns))
    if unassigned or unknown:
        raise ConfigurationError(
            f"Sector assignment mismatch: unassigned columns {unassigned}, unknown sectors {unknown}"
        )

    members = portfolio_members(assignments)
    if sorted(members) != list(range(1, len(members) + 1)):
        raise ConfigurationError(f"Portfolio ids must be exactly 1..K, got {sorted(members)}")

    portfolios = pd.DataFrame(
        {pid: frame[sectors].mean(axis=1, skipna=False) for pid, sectors in members.items()},
        index=frame.index
    )
    return portfolios


# =============================================================================
# ORCHESTRATION
# =============================================================================

@dataclass
class PortfolioConstruction:
    """Cluster portfolios and the inputs they provide to the backtest."""
    assignments: Dict[str, int]
    members: Dict[int, List[str]]
    portfolio_returns: pd.DataFrame
    concentration: FrozenSet[int]
    training_periods: List = field(default_factory=list)

    @property
    def n_portfolios(self) -> int:
        return len(self.members)

    def to_table(
        self,
        benchmark: pd.DataFrame,
        market_column: str = MARKET_COLUMN,
        risk_free_column: str = RISK_FREE_COLUMN
    ) -> PeriodReturnTable:
        """Period return table over the backtest window, benchmark aligned by period."""
        aligned = benchmark.reindex(self.portfolio_returns.index)
        return PeriodReturnTable.from_frames(
            self.portfolio_returns, aligned, market_column, risk_free_column
        )


def construct_portfolios(
    sector_returns: pd.DataFrame,
    n_clusters: int = CONSTRUCTION.n_clusters,
    method: LinkageMethod = CONSTRUCTION.linkage_method,
    training_periods: Optional[int] = None
) -> PortfolioConstruction:
    """
    Build cluster portfolios from period sector returns.

    Args:
        sector_returns: Period returns, one column per sector
        n_clusters: Maximum number of portfolios
        method: Linkage criterion
        training_periods: If given, cluster on the first ``training_periods``
            complete periods and return portfolio returns for the rest only

    Returns:
        PortfolioConstruction
    """
    history = truncate_incomplete_history(sector_returns)

    if training_periods is not None:
        if not 2 <= training_periods < len(history):
            raise InsufficientDataError(
                f"Training window of {training_periods} periods does not fit "
                f"a history of {len(history)} periods"
            )
        training = history.iloc[:training_periods]
        backtest = history.iloc[training_periods:]
    else:
        training = history
        backtest = history

    assignments = cluster_sectors(training, n_clusters=n_clusters, method=method)
    portfolios = build_portfolio_returns(backtest, assignments)
    concentration = concentration_portfolios(assignments)

    if concentration:
        logger.info(f"Concentration portfolios: {sorted(concentration)}")

    return PortfolioConstruction(
        assignments=assignments,
        members=portfolio_members(assignments),
        portfolio_returns=portfolios,
        concentration=concentration,
        training_periods=list(training.index) if training_periods is not None else []
    )


__all__ = [
    'compound_to_periods',
    'truncate_incomplete_history',
    'correlation_distance',
    'cluster_sectors',
    'portfolio_members',
    'concentration_portfolios',
    'build_portfolio_returns',
    'PortfolioConstruction',
    'construct_portfolios',
]
