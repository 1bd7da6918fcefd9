"""
Configuration Module for the Sector Rotation Backtest

This module centralizes all configuration constants, parameter sets,
and settings used throughout the rotation pipeline.

All "magic numbers" and configuration values are defined here to ensure:
1. Single source of truth for all constants
2. Easy modification without touching analysis code
3. Transparency in assumptions and thresholds
4. Consistency across all modules
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum


# =============================================================================
# ENUMERATIONS
# =============================================================================

class TieBreak(Enum):
    """Ordering applied when two portfolios post exactly equal returns."""
    LOWER_ID = "lower_id"
    HIGHER_ID = "higher_id"


class SharpeDenominator(Enum):
    """Volatility used to normalize the mean return in the Sharpe ratio."""
    BENCHMARK = "benchmark"  # Benchmark volatility
    OWN = "own"              # The series' own volatility


class LinkageMethod(Enum):
    """Agglomeration criteria supported by the sector clustering step."""
    WARD = "ward"
    AVERAGE = "average"
    COMPLETE = "complete"
    SINGLE = "single"


# =============================================================================
# FACTOR COLUMN NAMES
# =============================================================================

MARKET_EXCESS_FACTOR: str = "MKT_RF"
SIZE_FACTOR: str = "SMB"
VALUE_FACTOR: str = "HML"

# Benchmark frame columns expected by PeriodReturnTable.from_frames
MARKET_COLUMN: str = "market"
RISK_FREE_COLUMN: str = "risk_free"


# =============================================================================
# ROTATION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class RotationParameters:
    """Parameters of the momentum selection rule."""

    # Weights applied when the top portfolio is a concentration portfolio
    concentration_weights: Tuple[float, float] = (0.5, 0.5)

    # Weight applied when a single portfolio is held
    single_weight: float = 1.0

    # Deterministic ordering for exactly equal returns
    tie_break: TieBreak = TieBreak.LOWER_ID

    # Tolerance used to check that weights sum to 1.0
    weight_tolerance: float = 1e-12


# =============================================================================
# PERFORMANCE PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class PerformanceParameters:
    """Parameters for risk-adjusted performance metrics."""

    # Calendar quarters
    periods_per_year: int = 4

    # Sharpe normalization
    sharpe_denominator: SharpeDenominator = SharpeDenominator.BENCHMARK

    # Minimum negative-return observations for the Sortino denominator
    min_downside_observations: int = 2

    # Minimum observations for any standard deviation
    min_volatility_observations: int = 2

    # Beta of the benchmark against itself
    benchmark_beta: float = 1.0


# =============================================================================
# ATTRIBUTION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class AttributionParameters:
    """Parameters for OLS factor attribution."""

    # Significance thresholds, strictest first
    significance_levels: Tuple[float, float, float] = (0.01, 0.05, 0.10)

    # Below this many residual degrees of freedom a warning is logged
    min_residual_dof_warning: int = 10

    # Regressors for every model, in order; None keeps the market factor
    # plus every supplied factor column
    factor_columns: Optional[Tuple[str, ...]] = None


# =============================================================================
# CONSTRUCTION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class ConstructionParameters:
    """Parameters for the upstream sector clustering step."""

    # Industries are grouped into six portfolios by default
    n_clusters: int = 6

    linkage_method: LinkageMethod = LinkageMethod.WARD

    # Period bucket for compounding (pandas offset alias)
    period_frequency: str = "Q"


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

ROTATION = RotationParameters()
PERFORMANCE = PerformanceParameters()
ATTRIBUTION = AttributionParameters()
CONSTRUCTION = ConstructionParameters()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def significance_marker(p_value: float, levels: Tuple[float, ...] = ATTRIBUTION.significance_levels) -> str:
    """
    Map a p-value to the conventional star marker.

    Args:
        p_value: Two-sided p-value of a coefficient
        levels: Thresholds ordered strictest first

    Returns:
        '***', '**', '*' or '' (not significant or undefined)
    """
    if p_value != p_value:  # NaN
        return ""
    markers = ["*" * (len(levels) - i) for i in range(len(levels))]
    for level, marker in zip(levels, markers):
        if p_value < level:
            return marker
    return ""
