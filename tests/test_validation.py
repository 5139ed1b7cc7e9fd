from __future__ import annotations

import pytest

from plforecast.generator import generate_forecast
from plforecast.months import month_keys_in_range
from plforecast.types import AccountLine, Category, ForecastDefinition
from plforecast.validation import (
    calculate_completeness,
    validate_cogs_percentage,
    validate_forecast,
    validate_forecast_vs_goal,
    validate_line_value,
    validate_months_complete,
    validate_revenue_goal,
)


def _definition(**overrides) -> ForecastDefinition:
    raw = {
        "business_id": "biz-1",
        "fiscal_year": 2026,
        "baseline_start_month": "2024-07",
        "baseline_end_month": "2025-06",
        "forecast_start_month": "2025-07",
        "forecast_end_month": "2026-06",
        "revenue_goal": 240_000,
        "cogs_percentage": 0.4,
        "opex_budget": 80_000,
    }
    raw.update(overrides)
    return ForecastDefinition.from_mapping(raw)


@pytest.mark.parametrize(
    "pct,severity",
    [(-1, "error"), (150, "error"), (3, "warning"), (97, "warning"), (40, None)],
)
def test_cogs_percentage(pct: float, severity: str | None) -> None:
    issue = validate_cogs_percentage(pct)
    assert (issue.severity if issue else None) == severity


@pytest.mark.parametrize(
    "revenue,severity",
    [(-1, "error"), (0, "error"), (5_000, "warning"), (500_000, None)],
)
def test_revenue_goal(revenue: float, severity: str | None) -> None:
    issue = validate_revenue_goal(revenue)
    assert (issue.severity if issue else None) == severity


def test_forecast_vs_goal() -> None:
    issue = validate_forecast_vs_goal(90.0, 100.0)
    assert issue is not None
    assert "10.0% lower" in issue.message
    assert validate_forecast_vs_goal(102.0, 100.0) is None
    assert validate_forecast_vs_goal(5.0, 0.0) is None


def test_line_value() -> None:
    assert validate_line_value(-5.0, Category.REVENUE, "Sales").field == "Sales"
    assert validate_line_value(-5.0, Category.OPERATING_EXPENSES, "Rent") is not None
    assert validate_line_value(2e9, Category.OPERATING_EXPENSES, "Rent").message == "Value seems unusually large"
    assert validate_line_value(-5.0, Category.OTHER_EXPENSES, "Refunds") is None


def test_months_complete() -> None:
    issues = validate_months_complete({"2025-07": 1.0}, ["2025-07", "2025-08"])
    assert len(issues) == 1
    assert issues[0].value == ["2025-08"]
    assert validate_months_complete({"2025-07": 0.0}, ["2025-07"]) == []


def test_completeness_weights() -> None:
    assert calculate_completeness(True, True, True, 12, 12, True, True) == 100
    assert calculate_completeness(False, False, False, 0, 12, False, False) == 0
    assert calculate_completeness(True, True, True, 6, 12, True, True) == 85
    assert calculate_completeness(True, False, False, 24, 12, False, False) == 50


def test_generated_forecast_is_valid_and_complete() -> None:
    baseline = month_keys_in_range("2024-07", "2025-06")
    lines = [
        AccountLine("Sales", Category.REVENUE, actual_months={m: 18_000.0 for m in baseline}),
        AccountLine("Rent", Category.OPERATING_EXPENSES, actual_months={m: 6_000.0 for m in baseline}),
    ]
    definition = _definition()
    result = generate_forecast(definition, lines)
    validation = validate_forecast(definition, result.lines)
    assert validation.is_valid
    assert validation.completeness == 100
    assert [i for i in validation.issues if i.field == "forecast_total"] == []


def test_empty_forecast_is_invalid() -> None:
    validation = validate_forecast(_definition(revenue_goal=0, cogs_percentage=0), [])
    assert not validation.is_valid
    assert {i.field for i in validation.issues} >= {"revenue_goal", "cogs_percentage"}
    assert validation.completeness == 10


def test_forecast_short_of_goal_warns() -> None:
    months = month_keys_in_range("2025-07", "2026-06")
    lines = [AccountLine("Sales", Category.REVENUE, forecast_months={m: 10_000.0 for m in months})]
    validation = validate_forecast(_definition(), lines)
    assert validation.is_valid
    assert any(i.field == "forecast_total" and "lower" in i.message for i in validation.issues)
