# compliance_model/utils/date_utils.py

"""Date utility functions for residency and grace period arithmetic."""

from datetime import date, datetime
from typing import Optional, Union

import pandas as pd
from dateutil.relativedelta import relativedelta

DateLike = Union[date, datetime, pd.Timestamp, str, None]


def to_date(value: DateLike) -> Optional[date]:
    """
    Coerce a date-like value to ``datetime.date``.

    Returns None for None/NaT/empty strings. Raises ValueError when a
    non-empty value cannot be parsed.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
    elif not isinstance(value, date) and pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(value, errors="raise")
    return ts.date()


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end`` (negative when ``start`` is later)."""
    return (end - start).days


def add_years(start: date, years: int) -> date:
    """Add calendar years; Feb 29 rolls back to Feb 28 in non-leap years."""
    return start + relativedelta(years=years)


def add_months(start: date, months: int) -> date:
    return start + relativedelta(months=months)


def add_days(start: date, days: int) -> date:
    return start + relativedelta(days=days)
