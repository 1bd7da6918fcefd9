"""
Error taxonomy for the rotation backtest.

Every error raised by the core is fatal to the output being computed and
identifies the offending period and/or portfolio where one exists.
"""

from __future__ import annotations

from typing import Any, Optional


class RotationError(ValueError):
    """Base class for all rotation backtest errors."""

    def __init__(
        self,
        message: str,
        period: Optional[Any] = None,
        portfolio: Optional[Any] = None
    ):
        self.period = period
        self.portfolio = portfolio
        self.reason = message

        context = []
        if period is not None:
            context.append(f"period={period}")
        if portfolio is not None:
            context.append(f"portfolio={portfolio}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class InsufficientDataError(RotationError):
    """A period's portfolio-return row is incomplete or malformed."""


class MissingReturnError(RotationError):
    """A selected portfolio has no valid return for the period being realized."""


class ConfigurationError(RotationError):
    """The concentration-portfolio set or portfolio id set is malformed."""


class InsufficientSampleError(RotationError):
    """A risk metric's denominator sample is empty or too small."""


__all__ = [
    'RotationError',
    'InsufficientDataError',
    'MissingReturnError',
    'ConfigurationError',
    'InsufficientSampleError',
]
