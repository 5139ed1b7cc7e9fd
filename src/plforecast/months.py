"""Month-key helpers.

Every month in the engine is a ``"YYYY-MM"`` string with a zero-padded month,
so lexical order is calendar order.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

import pandas as pd

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


def parse_month_key(value: Any) -> str:
    """Validate ``value`` as a month key and return its zero-padded form."""
    if isinstance(value, (date, pd.Period, pd.Timestamp)):
        return month_key_of(value)
    m = _MONTH_KEY_RE.match(str(value).strip())
    if not m:
        raise ValueError(f"invalid month key '{value}' (expected YYYY-MM)")
    month = int(m.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"invalid month key '{value}' (month out of range)")
    return f"{m.group(1)}-{month:02d}"


def month_key_of(value: date | pd.Period | pd.Timestamp) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_number(key: str) -> str:
    """``"2025-11"`` -> ``"11"``."""
    return key.split("-")[1]


def month_keys_in_range(start: str | None, end: str | None) -> list[str]:
    if not start or not end:
        return []
    start, end = parse_month_key(start), parse_month_key(end)
    if start > end:
        return []
    return [str(p) for p in pd.period_range(start=start, end=end, freq="M")]


def shift_month(key: str, months: int) -> str:
    return str(pd.Period(parse_month_key(key), freq="M") + months)


def current_year_month_keys(baseline_end: str | None, forecast_start: str | None) -> list[str]:
    """Months strictly between the baseline end and the forecast start."""
    if not baseline_end or not forecast_start:
        return []
    return month_keys_in_range(shift_month(baseline_end, 1), shift_month(forecast_start, -1))
