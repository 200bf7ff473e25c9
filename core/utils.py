from __future__ import annotations

from typing import Iterable, Union

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

DateLike = Union[pd.Timestamp, pd.Series, pd.DatetimeIndex]


def require_columns(df: pd.DataFrame, cols: Iterable[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def month_start(ts) -> pd.Timestamp:
    """Normalize any date to the first day of its month."""
    return pd.Timestamp(ts).to_period("M").to_timestamp(how="start")


def month_range(start, end) -> pd.DatetimeIndex:
    """Inclusive month-start sequence between the months of `start` and `end`."""
    return pd.date_range(month_start(start), month_start(end), freq="MS")


def _year_month(d: DateLike):
    if isinstance(d, pd.Series):
        return d.dt.year, d.dt.month
    if isinstance(d, pd.DatetimeIndex):
        return d.year, d.month
    d = pd.Timestamp(d)
    return d.year, d.month


def month_ordinal(d: DateLike):
    """Months since year 0, an integer key for month arithmetic and joins."""
    y, m = _year_month(d)
    return y * 12 + (m - 1)


def months_between(start: DateLike, end: DateLike):
    """
    Signed calendar-month difference, ignoring day of month.
    Works on scalars, Series and DatetimeIndex alike.
    """
    return month_ordinal(end) - month_ordinal(start)


def complete_months(start: pd.Timestamp, end: pd.Timestamp) -> int:
    """Whole months elapsed from `start` to `end` (DATEDIF "m" semantics)."""
    if pd.isna(start) or pd.isna(end):
        raise ValueError("complete_months requires two valid dates.")
    delta = relativedelta(pd.Timestamp(end).to_pydatetime(), pd.Timestamp(start).to_pydatetime())
    return delta.years * 12 + delta.months


def to_yyyymm(d: DateLike):
    """Encode dates as integer YYYYMM."""
    y, m = _year_month(d)
    return y * 100 + m


def na_sum(values: pd.DataFrame) -> pd.Series:
    """Row-wise sum that is NA only when every input is NA."""
    return values.sum(axis=1, min_count=1)


def within_tolerance(expected, actual, tol: float) -> np.ndarray:
    """Relative comparison, absolute near zero."""
    expected = np.asarray(expected, dtype=float)
    actual = np.asarray(actual, dtype=float)
    scale = np.maximum(np.abs(expected), 1.0)
    return np.abs(actual - expected) <= tol * scale
