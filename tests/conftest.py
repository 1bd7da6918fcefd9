"""
Pytest fixtures for the sector rotation tests.

Provides the three-portfolio worked scenario, a seeded synthetic table
and matching factor frames.
"""
import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sector_rotation.config import MARKET_COLUMN, RISK_FREE_COLUMN, SIZE_FACTOR, VALUE_FACTOR
from sector_rotation.period_table import PeriodReturnTable


# ============================================================================
# Worked Scenario Fixtures
# ============================================================================

SCENARIO_RETURNS = {
    1: [0.01, 0.02, -0.01, 0.03],
    2: [0.02, 0.01, 0.04, -0.02],
    3: [0.05, -0.03, 0.02, 0.01],
}
SCENARIO_MARKET = [0.03, -0.02, 0.01, -0.015]
SCENARIO_RISK_FREE = 0.001


@pytest.fixture
def scenario_periods():
    """Four consecutive calendar quarters."""
    return pd.period_range("2020Q1", periods=4, freq="Q")


@pytest.fixture
def scenario_portfolios(scenario_periods):
    """Three portfolios over four quarters; P3 is the concentration portfolio."""
    return pd.DataFrame(SCENARIO_RETURNS, index=scenario_periods)


@pytest.fixture
def scenario_benchmark(scenario_periods):
    return pd.DataFrame(
        {MARKET_COLUMN: SCENARIO_MARKET, RISK_FREE_COLUMN: [SCENARIO_RISK_FREE] * 4},
        index=scenario_periods
    )


@pytest.fixture
def scenario_table(scenario_portfolios, scenario_benchmark):
    return PeriodReturnTable.from_frames(scenario_portfolios, scenario_benchmark)


@pytest.fixture
def scenario_concentration():
    return frozenset({3})


# ============================================================================
# Synthetic Data Fixtures
# ============================================================================

@pytest.fixture
def synthetic_periods():
    return pd.period_range("2010Q1", periods=24, freq="Q")


@pytest.fixture
def synthetic_frames(synthetic_periods):
    """Four portfolios loading on a common market factor, seeded."""
    rng = np.random.default_rng(42)
    n = len(synthetic_periods)

    market = rng.normal(0.02, 0.08, n)
    portfolios = pd.DataFrame(
        {
            pid: beta * market + rng.normal(0.0, 0.03, n)
            for pid, beta in zip(range(1, 5), (0.8, 1.0, 1.2, 0.3))
        },
        index=synthetic_periods
    )
    benchmark = pd.DataFrame(
        {MARKET_COLUMN: market, RISK_FREE_COLUMN: np.full(n, 0.005)},
        index=synthetic_periods
    )
    return portfolios, benchmark


@pytest.fixture
def synthetic_table(synthetic_frames):
    portfolios, benchmark = synthetic_frames
    return PeriodReturnTable.from_frames(portfolios, benchmark)


@pytest.fixture
def size_value_factors(synthetic_periods):
    rng = np.random.default_rng(7)
    n = len(synthetic_periods)
    return pd.DataFrame(
        {SIZE_FACTOR: rng.normal(0.0, 0.02, n), VALUE_FACTOR: rng.normal(0.0, 0.02, n)},
        index=synthetic_periods
    )


@pytest.fixture
def monthly_sectors():
    """
    Monthly returns of five sectors over six years.

    Two correlated pairs plus one independent sector, which clustering
    into three groups should isolate.
    """
    rng = np.random.default_rng(11)
    dates = pd.date_range("2012-01-01", periods=72, freq="MS")
    n = len(dates)
    growth = rng.normal(0.01, 0.05, n)
    defensive = rng.normal(0.005, 0.03, n)
    return pd.DataFrame(
        {
            "Software": growth + rng.normal(0.0, 0.005, n),
            "Semiconductors": growth + rng.normal(0.0, 0.005, n),
            "Utilities": defensive + rng.normal(0.0, 0.003, n),
            "Telecom": defensive + rng.normal(0.0, 0.003, n),
            "Gold": rng.normal(0.004, 0.06, n),
        },
        index=dates
    )
