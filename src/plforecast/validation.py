"""Data-quality checks for forecast definitions and P&L lines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .config import EngineConfig, ValidationThresholds, default_engine_config
from .generator import forecast_month_keys, ytd_month_keys
from .types import AccountLine, Category, ForecastDefinition


@dataclass(frozen=True)
class ValidationIssue:
    severity: str  # "error" | "warning" | "info"
    field: str
    message: str
    value: Any = None
    suggestion: str = ""


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    completeness: int = 0


def validate_cogs_percentage(
    percentage: float, thresholds: ValidationThresholds = ValidationThresholds()
) -> Optional[ValidationIssue]:
    """``percentage`` is in percent (40 = 40%)."""
    if percentage < 0 or percentage > 100:
        return ValidationIssue(
            "error",
            "cogs_percentage",
            "COGS percentage must be between 0% and 100%",
            percentage,
            "Enter a valid percentage between 0 and 100",
        )
    if percentage < thresholds.cogs_warn_low:
        return ValidationIssue(
            "warning",
            "cogs_percentage",
            f"COGS percentage seems unusually low (<{thresholds.cogs_warn_low:g}%)",
            percentage,
            "Most businesses have COGS between 20-60%. Please verify this is correct.",
        )
    if percentage > thresholds.cogs_warn_high:
        return ValidationIssue(
            "warning",
            "cogs_percentage",
            f"COGS percentage seems unusually high (>{thresholds.cogs_warn_high:g}%)",
            percentage,
            "This leaves very little gross profit. Please verify this is correct.",
        )
    return None


def validate_revenue_goal(
    revenue: float, thresholds: ValidationThresholds = ValidationThresholds()
) -> Optional[ValidationIssue]:
    if revenue < 0:
        return ValidationIssue(
            "error", "revenue_goal", "Revenue goal cannot be negative", revenue, "Enter a positive revenue target"
        )
    if revenue == 0:
        return ValidationIssue(
            "error",
            "revenue_goal",
            "Revenue goal is required",
            revenue,
            "Enter your annual revenue target to continue",
        )
    if revenue < thresholds.min_revenue_goal:
        return ValidationIssue(
            "warning",
            "revenue_goal",
            "Revenue goal seems unusually low",
            revenue,
            f"Most businesses target at least ${thresholds.min_revenue_goal:,.0f} in annual revenue",
        )
    return None


def validate_forecast_vs_goal(
    forecast_total: float, goal_total: float, tolerance: float = 0.05
) -> Optional[ValidationIssue]:
    if goal_total == 0:
        return None
    variance = abs(forecast_total - goal_total) / goal_total
    if variance <= tolerance:
        return None
    direction = "higher" if forecast_total > goal_total else "lower"
    return ValidationIssue(
        "warning",
        "forecast_total",
        f"Forecast total is {variance * 100:.1f}% {direction} than goal",
        forecast_total,
        f"Goal: ${goal_total:,.0f}, Forecast: ${forecast_total:,.0f}. Consider adjusting your forecast or goals.",
    )


def validate_line_value(
    value: float,
    category: Category,
    account_name: str,
    thresholds: ValidationThresholds = ValidationThresholds(),
) -> Optional[ValidationIssue]:
    if category == Category.REVENUE and value < 0:
        return ValidationIssue(
            "warning",
            account_name,
            "Revenue values are typically positive",
            value,
            'Use "Other Expenses" category for refunds or discounts',
        )
    if category in (Category.COST_OF_SALES, Category.OPERATING_EXPENSES) and value < 0:
        return ValidationIssue(
            "warning",
            account_name,
            "Expense values are typically positive (they reduce profit)",
            value,
            "Enter the amount as a positive number",
        )
    if abs(value) > thresholds.large_value:
        return ValidationIssue(
            "warning",
            account_name,
            "Value seems unusually large",
            value,
            "Please verify this amount is correct",
        )
    return None


def validate_months_complete(forecast_months: dict[str, float], expected_months: list[str]) -> list[ValidationIssue]:
    missing = [m for m in expected_months if forecast_months.get(m) is None]
    if not missing:
        return []
    more = "..." if len(missing) > 3 else ""
    return [
        ValidationIssue(
            "warning",
            "forecast_months",
            f"{len(missing)} month(s) missing forecast data",
            missing,
            f"Missing: {', '.join(missing[:3])}{more}",
        )
    ]


def calculate_completeness(
    has_revenue_goal: bool,
    has_distribution_method: bool,
    has_cogs: bool,
    forecast_months_count: int,
    expected_months_count: int,
    has_revenue_line: bool,
    has_expense_line: bool,
) -> int:
    """Weighted 0-100 score of how much of the forecast has been filled in."""
    score = 0.0
    if has_revenue_goal:
        score += 20
    if has_distribution_method:
        score += 10
    if has_cogs:
        score += 15
    if has_revenue_line:
        score += 15
    if has_expense_line:
        score += 10
    if expected_months_count > 0:
        score += 30 * min(forecast_months_count / expected_months_count, 1.0)
    return int(round(score))


def validate_forecast(
    definition: ForecastDefinition,
    lines: Iterable[AccountLine],
    config: EngineConfig | None = None,
) -> ValidationResult:
    config = config or default_engine_config()
    thresholds = config.validation
    lines = list(lines)
    months = forecast_month_keys(definition)
    issues: list[ValidationIssue] = []

    for check in (
        validate_revenue_goal(definition.revenue_goal, thresholds),
        validate_cogs_percentage(definition.cogs_percentage * 100, thresholds),
    ):
        if check is not None:
            issues.append(check)

    revenue_lines = [l for l in lines if l.category == Category.REVENUE]
    expense_lines = [l for l in lines if l.category in (Category.COST_OF_SALES, Category.OPERATING_EXPENSES)]

    if definition.revenue_goal > 0 and revenue_lines:
        ytd_and_forecast = sum(l.forecast_total(months) for l in revenue_lines)
        actual_window = [m for m in ytd_month_keys(definition) if m not in months]
        ytd_and_forecast += sum(l.actual_total(actual_window) for l in revenue_lines)
        issue = validate_forecast_vs_goal(ytd_and_forecast, definition.revenue_goal, thresholds.goal_tolerance)
        if issue is not None:
            issues.append(issue)

    for line in lines:
        for month in months:
            value = line.forecast_months.get(month)
            if value is None:
                continue
            issue = validate_line_value(float(value), line.category, line.account_name, thresholds)
            if issue is not None:
                issues.append(issue)
                break

    filled = {m for l in lines for m in months if l.forecast_months.get(m) is not None}
    if revenue_lines:
        merged: dict[str, float] = {}
        for l in revenue_lines:
            merged.update({k: v for k, v in l.forecast_months.items() if v is not None})
        issues.extend(validate_months_complete(merged, months))

    completeness = calculate_completeness(
        has_revenue_goal=definition.revenue_goal > 0,
        has_distribution_method=definition.distribution_method is not None,
        has_cogs=definition.cogs_percentage > 0,
        forecast_months_count=len(filled),
        expected_months_count=len(months),
        has_revenue_line=bool(revenue_lines),
        has_expense_line=bool(expense_lines),
    )
    return ValidationResult(
        is_valid=not any(i.severity == "error" for i in issues),
        issues=issues,
        completeness=completeness,
    )
