from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .months import month_number
from .types import AccountLine, MonthMap


@dataclass(frozen=True)
class SeasonalPattern:
    distribution: MonthMap
    total: float


def baseline_monthly_totals(lines: Iterable[AccountLine], baseline_months: list[str]) -> MonthMap:
    totals: MonthMap = {}
    for line in lines:
        for month in baseline_months:
            value = line.actual_months.get(month)
            if value:
                totals[month] = totals.get(month, 0.0) + float(value)
    return totals


def calculate_seasonal_pattern(
    lines: Iterable[AccountLine],
    target_months: list[str],
    baseline_months: list[str],
) -> SeasonalPattern:
    """Historical month-by-month totals mapped onto ``target_months``.

    Target months are matched to baseline months by calendar month number
    (Nov -> Nov), not by offset, so a forecast starting in November reuses
    November's share. Target months with no baseline counterpart get 0.
    ``total`` is the sum of the mapped values; callers fall back to an even
    split when it is 0.
    """
    totals = baseline_monthly_totals(lines, baseline_months)
    by_number: dict[str, float] = {}
    for month in sorted(totals):
        by_number.setdefault(month_number(month), totals[month])

    distribution: MonthMap = {}
    total = 0.0
    for target in target_months:
        value = by_number.get(month_number(target), 0.0)
        distribution[target] = value
        total += value
    return SeasonalPattern(distribution=distribution, total=total)
