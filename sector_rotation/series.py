"""
Series helpers shared by the performance and attribution layers.

All helpers return new pandas objects; inputs are never modified.
"""

from __future__ import annotations

import numbers
from typing import Any, Optional

import numpy as np
import pandas as pd

from sector_rotation.exceptions import InsufficientDataError, MissingReturnError


def to_float_series(values: Any, name: Optional[str] = None) -> pd.Series:
    """
    Copy ``values`` into a float64 Series.

    Nulls of any flavour (None, NaN, pd.NA) and infinities become NaN.
    """
    series = values if isinstance(values, pd.Series) else pd.Series(values)
    data = series.to_numpy(dtype=float, na_value=np.nan, copy=True)
    data[~np.isfinite(data)] = np.nan
    return pd.Series(data, index=series.index.copy(), name=name if name is not None else series.name)


def realized_window(values: Any, name: Optional[str] = None) -> pd.Series:
    """
    Drop leading nulls and require the remainder to be complete.

    Leading nulls are periods before the first realized return (e.g. the
    first period of a rotation). A null after that is a gap.

    Raises:
        MissingReturnError: a null follows the first realized value
    """
    series = to_float_series(values, name)
    valid = series.notna().to_numpy()
    if not valid.any():
        return series.iloc[0:0]

    window = series.iloc[int(np.argmax(valid)):]
    gaps = window.isna().to_numpy()
    if gaps.any():
        raise MissingReturnError(
            f"Missing return inside {window.name or 'return'} series",
            period=window.index[gaps][0]
        )
    return window


def align_to(index: pd.Index, values: Any, label: str) -> pd.Series:
    """
    Reindex ``values`` onto ``index``; scalars broadcast to every period.

    Raises:
        InsufficientDataError: a period of ``index`` has no finite value
    """
    if isinstance(values, numbers.Real) and not isinstance(values, bool):
        return pd.Series(float(values), index=index, name=label)

    series = to_float_series(values, label)
    if not series.index.is_unique:
        raise InsufficientDataError(f"Duplicate periods in {label} series")
    aligned = series.reindex(index)
    gaps = aligned.isna().to_numpy()
    if gaps.any():
        raise InsufficientDataError(
            f"{label} series is missing a value for the period",
            period=index[gaps][0]
        )
    return aligned


__all__ = [
    'to_float_series',
    'realized_window',
    'align_to',
]
