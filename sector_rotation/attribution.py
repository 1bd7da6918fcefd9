"""
================================================================================
REGRESSION ATTRIBUTION
================================================================================

Linear factor models of excess returns:

    R_t - Rf_t = alpha + b_mkt * (Rm_t - Rf_t) + b_smb * SMB_t + b_hml * HML_t + e_t

estimated by ordinary least squares (statsmodels). Each fit reports the
coefficient, standard error, t-statistic, p-value and a significance
marker for every term, plus R-squared.

Used two ways:
    - per-portfolio factor models describing each cluster portfolio
    - the strategy factor model, and the single-factor CAPM beta that
      feeds the Treynor ratio

Academic Reference:
    Jensen (1968) - "The Performance of Mutual Funds"
    Fama & French (1993) - "Common Risk Factors in the Returns on Stocks and Bonds"
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
import statsmodels.api as sm

from sector_rotation.config import (
    ATTRIBUTION,
    AttributionParameters,
    MARKET_EXCESS_FACTOR,
    significance_marker,
)
from sector_rotation.exceptions import InsufficientDataError, InsufficientSampleError
from sector_rotation.period_table import PeriodReturnTable
from sector_rotation.series import align_to, realized_window

logger = logging.getLogger(__name__)

COEFFICIENT_COLUMNS: List[str] = ['coef', 'std_err', 't_stat', 'p_value', 'significance']
CONSTANT_TERM: str = 'const'


# =============================================================================
# RESULT CONTAINER
# =============================================================================

@dataclass
class FactorModelResult:
    """
    OLS factor model results.

    Attributes
    ----------
    name : str
        Series the model was fitted to (e.g. 'strategy', 'P3')
    coefficients : pd.DataFrame
        Index: 'const' plus factor names; columns: coef, std_err,
        t_stat, p_value, significance
    r_squared : float
        Proportion of excess-return variance explained by the factors
    adj_r_squared : float
        R-squared adjusted for the number of factors
    nobs : int
        Number of aligned periods used in the fit
    factor_names : List[str]
        Regressors in model order
    """
    name: str
    coefficients: pd.DataFrame
    r_squared: float
    adj_r_squared: float
    nobs: int
    factor_names: List[str] = field(default_factory=list)

    @property
    def alpha(self) -> float:
        """Intercept (per-period alpha)."""
        return float(self.coefficients.loc[CONSTANT_TERM, 'coef'])

    def coefficient(self, term: str) -> float:
        return float(self.coefficients.loc[term, 'coef'])

    def p_value(self, term: str) -> float:
        return float(self.coefficients.loc[term, 'p_value'])

    @property
    def market_beta(self) -> Optional[float]:
        if MARKET_EXCESS_FACTOR not in self.coefficients.index:
            return None
        return self.coefficient(MARKET_EXCESS_FACTOR)


# =============================================================================
# ATTRIBUTION ENGINE
# =============================================================================

class RegressionAttribution:
    """
    OLS factor attribution over aligned period series.

    Example
    -------
    >>> attribution = RegressionAttribution()
    >>> model = attribution.fit(strategy_returns, factors, risk_free, name='strategy')
    >>> model.coefficients
    """

    def __init__(self, parameters: AttributionParameters = ATTRIBUTION):
        self.parameters = parameters

    def fit(
        self,
        returns: pd.Series,
        factors: Union[pd.DataFrame, pd.Series],
        risk_free: Union[pd.Series, float, None] = None,
        name: Optional[str] = None
    ) -> FactorModelResult:
        """
        Regress excess returns on the factor columns.

        Args:
            returns: Periodic returns; leading nulls (unrealized periods) are dropped
            factors: One column per factor, indexed by period
            risk_free: Risk-free series or constant; None means zero
            name: Label for the result

        Returns:
            FactorModelResult

        Raises:
            InsufficientDataError: a factor or risk-free value is missing for a period
            InsufficientSampleError: not more observations than parameters
        """
        name = str(name or (returns.name if isinstance(returns, pd.Series) and returns.name is not None else 'series'))
        y = realized_window(returns, name)

        if isinstance(factors, pd.Series):
            factors = factors.to_frame(factors.name or MARKET_EXCESS_FACTOR)
        if factors.shape[1] == 0:
            raise ValueError("At least one factor column is required")

        factor_names = [str(col) for col in factors.columns]
        X = pd.DataFrame(
            {fname: align_to(y.index, factors[col], fname) for fname, col in zip(factor_names, factors.columns)},
            index=y.index
        )
        rf = align_to(y.index, 0.0 if risk_free is None else risk_free, 'risk_free')
        excess = y - rf

        n_params = len(factor_names) + 1
        nobs = len(excess)
        if nobs <= n_params:
            raise InsufficientSampleError(
                f"Factor model '{name}' needs more than {n_params} observations, got {nobs}"
            )
        if nobs - n_params < self.parameters.min_residual_dof_warning:
            logger.warning(f"Factor model '{name}' has only {nobs - n_params} residual degrees of freedom")

        model = sm.OLS(excess.to_numpy(), sm.add_constant(X.to_numpy(), has_constant='add'))
        results = model.fit()

        terms = [CONSTANT_TERM] + factor_names
        p_values = np.asarray(results.pvalues, dtype=float)
        coefficients = pd.DataFrame(
            {
                'coef': np.asarray(results.params, dtype=float),
                'std_err': np.asarray(results.bse, dtype=float),
                't_stat': np.asarray(results.tvalues, dtype=float),
                'p_value': p_values,
                'significance': [
                    significance_marker(p, self.parameters.significance_levels) for p in p_values
                ],
            },
            index=pd.Index(terms, name='term'),
            columns=COEFFICIENT_COLUMNS
        )

        logger.debug(f"Factor model '{name}': nobs={nobs}, R2={results.rsquared:.3f}")
        return FactorModelResult(
            name=name,
            coefficients=coefficients,
            r_squared=float(results.rsquared),
            adj_r_squared=float(results.rsquared_adj),
            nobs=int(nobs),
            factor_names=factor_names
        )

    def capm_beta(
        self,
        returns: pd.Series,
        market: pd.Series,
        risk_free: Union[pd.Series, float, None] = None
    ) -> float:
        """
        Slope of (returns - rf) on (market - rf).

        The market is aligned to the realized periods of ``returns``.
        """
        y = realized_window(returns)
        rf = align_to(y.index, 0.0 if risk_free is None else risk_free, 'risk_free')
        market_excess = (align_to(y.index, market, 'market') - rf).rename(MARKET_EXCESS_FACTOR)
        result = self.fit(y, market_excess, rf, name=str(y.name or 'series'))
        return result.coefficient(MARKET_EXCESS_FACTOR)

    def fit_portfolios(
        self,
        table: PeriodReturnTable,
        factors: Optional[pd.DataFrame] = None
    ) -> Dict[str, FactorModelResult]:
        """Fit one factor model per portfolio of ``table``."""
        if factors is None:
            factors = build_factor_frame(table)

        frame = table.portfolio_frame()
        risk_free = table.risk_free_rates()
        results = {}
        for pid in table.portfolio_ids:
            label = f"P{pid}"
            results[label] = self.fit(frame[pid].rename(label), factors, risk_free, name=label)
        logger.info(f"Fitted factor models for {len(results)} portfolios")
        return results


# =============================================================================
# HELPERS
# =============================================================================

def build_factor_frame(
    table: PeriodReturnTable,
    extra_factors: Optional[pd.DataFrame] = None,
    factor_columns: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Assemble the regressor frame for ``table``.

    The market excess factor always comes from the table's benchmark. Any
    further factor columns (size, value) are taken from ``extra_factors``
    and must cover every period.

    Args:
        table: Period return table supplying market and risk-free rates
        extra_factors: Optional frame with additional factor columns
        factor_columns: Columns to keep, in order; defaults to the market
            factor plus every column of ``extra_factors``
    """
    index = table.market_excess_returns().index
    columns = {MARKET_EXCESS_FACTOR: table.market_excess_returns().rename(MARKET_EXCESS_FACTOR)}

    if extra_factors is not None:
        for col in extra_factors.columns:
            if str(col) == MARKET_EXCESS_FACTOR:
                continue
            columns[str(col)] = align_to(index, extra_factors[col], str(col))

    frame = pd.DataFrame(columns, index=index)
    if factor_columns is not None:
        missing = [c for c in factor_columns if c not in frame.columns]
        if missing:
            raise InsufficientDataError(f"Factor columns not available: {missing}")
        frame = frame.loc[:, list(factor_columns)]
    return frame


def summary_table(results: Union[Mapping[str, FactorModelResult], Iterable[FactorModelResult]]) -> pd.DataFrame:
    """
    Stack coefficient tables into one frame indexed by (model, term).

    R-squared and observation count are repeated on every row of a model.
    """
    if isinstance(results, Mapping):
        results = list(results.values())
    results = list(results)
    if not results:
        return pd.DataFrame(columns=COEFFICIENT_COLUMNS + ['r_squared', 'nobs'])

    frames = []
    for result in results:
        frame = result.coefficients.copy()
        frame['r_squared'] = result.r_squared
        frame['nobs'] = result.nobs
        frames.append(frame)
    return pd.concat(frames, keys=[r.name for r in results], names=['model', 'term'])


__all__ = [
    'FactorModelResult',
    'RegressionAttribution',
    'build_factor_frame',
    'summary_table',
]
