"""Derived P&L figures: COGS distribution, gross/net profit, margins and period rollups."""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd

from .months import month_number
from .types import AccountLine, Category, MonthMap, PeriodSummary

SUMMARY_COLUMNS = [
    "Revenue",
    "COGS",
    "GrossProfit",
    "OpEx",
    "OtherIncome",
    "OtherExpenses",
    "NetProfit",
    "GrossMargin",
    "NetMargin",
]

_CATEGORY_COLUMNS = {
    Category.REVENUE: "Revenue",
    Category.COST_OF_SALES: "COGS",
    Category.OPERATING_EXPENSES: "OpEx",
    Category.OTHER_INCOME: "OtherIncome",
    Category.OTHER_EXPENSES: "OtherExpenses",
}


def _safe_div(num: float | pd.Series, den: float | pd.Series) -> float | pd.Series:
    if isinstance(den, pd.Series):
        return (num / den.replace(0, np.nan)).fillna(0.0)
    return (num / den) if den != 0 else 0.0


def distribute_cogs(remaining_cogs: float, forecast_months: list[str], revenue_lines: Iterable[AccountLine]) -> MonthMap:
    """Spread ``remaining_cogs`` over months in proportion to forecast revenue.

    COGS follows the revenue curve; with no forecast revenue every month is 0.
    """
    revenue_lines = list(revenue_lines)
    monthly = {m: sum(float(l.forecast_months.get(m) or 0.0) for l in revenue_lines) for m in forecast_months}
    total = sum(monthly.values())
    if total == 0:
        return {m: 0.0 for m in forecast_months}
    return {m: remaining_cogs * v / total for m, v in monthly.items()}


def line_value(line: AccountLine, month: str) -> float:
    """Forecast value where one exists, otherwise the actual; missing is 0."""
    if month in line.forecast_months:
        return float(line.forecast_months.get(month) or 0.0)
    return float(line.actual_months.get(month) or 0.0)


def monthly_summary(lines: Iterable[AccountLine], months: list[str]) -> pd.DataFrame:
    lines = list(lines)
    frame = pd.DataFrame(0.0, index=pd.Index(months, name="Month"), columns=list(_CATEGORY_COLUMNS.values()))
    for line in lines:
        col = _CATEGORY_COLUMNS[line.category]
        frame[col] += np.asarray([line_value(line, m) for m in months], dtype=float)
    return _derive(frame)


def _derive(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame.copy()
    out["GrossProfit"] = out["Revenue"] - out["COGS"]
    out["NetProfit"] = out["GrossProfit"] - out["OpEx"] + out["OtherIncome"] - out["OtherExpenses"]
    out["GrossMargin"] = _safe_div(out["GrossProfit"], out["Revenue"])
    out["NetMargin"] = _safe_div(out["NetProfit"], out["Revenue"])
    return out[SUMMARY_COLUMNS]


def summarize_period(lines: Iterable[AccountLine], months: list[str], label: str = "") -> PeriodSummary:
    monthly = monthly_summary(lines, months)
    sums = monthly[["Revenue", "COGS", "OpEx", "OtherIncome", "OtherExpenses"]].sum()
    revenue = float(sums["Revenue"])
    cogs = float(sums["COGS"])
    opex = float(sums["OpEx"])
    other_income = float(sums["OtherIncome"])
    other_expenses = float(sums["OtherExpenses"])
    gross = revenue - cogs
    net = gross - opex + other_income - other_expenses
    return PeriodSummary(
        label=label,
        months=list(months),
        revenue=revenue,
        cogs=cogs,
        gross_profit=gross,
        opex=opex,
        other_income=other_income,
        other_expenses=other_expenses,
        net_profit=net,
        gross_margin=float(_safe_div(gross, revenue)),
        net_margin=float(_safe_div(net, revenue)),
    )


def fiscal_year_of(month: str, fy_start_month: int = 7) -> int:
    """Fiscal year a month belongs to, named by the calendar year it ends in."""
    year = int(month[:4])
    if fy_start_month != 1 and int(month_number(month)) >= fy_start_month:
        return year + 1
    return year


def fiscal_quarter_of(month: str, fy_start_month: int = 7) -> int:
    return (int(month_number(month)) - fy_start_month) % 12 // 3 + 1


def period_label(month: str, freq: str, fy_start_month: int = 7) -> str:
    fy = fiscal_year_of(month, fy_start_month)
    if freq == "Y":
        return f"FY{fy}"
    if freq == "Q":
        return f"FY{fy} Q{fiscal_quarter_of(month, fy_start_month)}"
    if freq == "M":
        return month
    raise ValueError(f"unknown rollup frequency '{freq}' (expected M, Q or Y)")


def rollup(
    lines: Iterable[AccountLine],
    months: list[str],
    freq: str = "Q",
    fy_start_month: int = 7,
) -> list[PeriodSummary]:
    """Summaries per month, fiscal quarter or fiscal year over ``months``."""
    lines = list(lines)
    groups: dict[str, list[str]] = {}
    for month in months:
        groups.setdefault(period_label(month, freq, fy_start_month), []).append(month)
    return [summarize_period(lines, group, label) for label, group in groups.items()]


def rollup_frame(summaries: list[PeriodSummary]) -> pd.DataFrame:
    records = [
        {
            "Period": s.label,
            "Revenue": s.revenue,
            "COGS": s.cogs,
            "GrossProfit": s.gross_profit,
            "OpEx": s.opex,
            "OtherIncome": s.other_income,
            "OtherExpenses": s.other_expenses,
            "NetProfit": s.net_profit,
            "GrossMargin": s.gross_margin,
            "NetMargin": s.net_margin,
        }
        for s in summaries
    ]
    if not records:
        return pd.DataFrame(columns=["Period"] + SUMMARY_COLUMNS).set_index("Period")
    return pd.DataFrame(records).set_index("Period")
