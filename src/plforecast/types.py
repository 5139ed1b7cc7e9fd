from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from .months import parse_month_key


class Category(str, Enum):
    REVENUE = "Revenue"
    COST_OF_SALES = "Cost of Sales"
    OPERATING_EXPENSES = "Operating Expenses"
    OTHER_INCOME = "Other Income"
    OTHER_EXPENSES = "Other Expenses"


class DistributionMethod(str, Enum):
    EVEN = "even"
    LINEAR = "linear"
    SEASONAL = "seasonal_pattern"
    CUSTOM = "custom"


CURRENCIES = ("AUD", "USD", "NZD", "GBP", "EUR")
FORECAST_TYPES = ("budget", "forecast", "actual")

MonthMap = dict[str, float]


@dataclass(frozen=True)
class AccountLine:
    account_name: str
    category: Category
    actual_months: MonthMap = field(default_factory=dict)
    forecast_months: MonthMap = field(default_factory=dict)
    is_manual: bool = False
    id: Optional[str] = None
    account_code: str = ""
    sort_order: int = 0
    is_from_xero: bool = False

    def actual_total(self, months: list[str]) -> float:
        return sum(float(self.actual_months.get(m) or 0.0) for m in months)

    def forecast_total(self, months: list[str]) -> float:
        return sum(float(self.forecast_months.get(m) or 0.0) for m in months)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "account_name": self.account_name,
            "account_code": self.account_code,
            "category": self.category.value,
            "sort_order": self.sort_order,
            "actual_months": dict(self.actual_months),
            "forecast_months": dict(self.forecast_months),
            "is_manual": self.is_manual,
            "is_from_xero": self.is_from_xero,
        }

    @staticmethod
    def from_mapping(raw: Mapping[str, Any]) -> "AccountLine":
        return AccountLine(
            account_name=str(raw["account_name"]),
            category=Category(raw.get("category") or Category.OPERATING_EXPENSES.value),
            actual_months=_month_map(raw.get("actual_months")),
            forecast_months=_month_map(raw.get("forecast_months")),
            is_manual=bool(raw.get("is_manual", False)),
            id=raw.get("id"),
            account_code=str(raw.get("account_code") or ""),
            sort_order=int(raw.get("sort_order") or 0),
            is_from_xero=bool(raw.get("is_from_xero", False)),
        )


def _month_map(raw: Mapping[str, Any] | None) -> MonthMap:
    # None amounts count as zero
    return {parse_month_key(k): float(v or 0.0) for k, v in (raw or {}).items()}


@dataclass(frozen=True)
class ForecastDefinition:
    business_id: str
    fiscal_year: int
    forecast_start_month: str
    forecast_end_month: str
    baseline_start_month: Optional[str] = None
    baseline_end_month: Optional[str] = None
    actual_start_month: Optional[str] = None
    actual_end_month: Optional[str] = None
    id: Optional[str] = None
    name: str = ""
    currency: str = "AUD"
    revenue_goal: float = 0.0
    gross_profit_goal: Optional[float] = None
    net_profit_goal: Optional[float] = None
    cogs_percentage: float = 0.0
    opex_budget: float = 0.0
    distribution_method: DistributionMethod = DistributionMethod.EVEN
    revenue_distribution_data: MonthMap = field(default_factory=dict)
    # Versioning
    forecast_type: str = "forecast"
    version_number: int = 1
    parent_forecast_id: Optional[str] = None
    is_active: bool = True
    is_locked: bool = False
    version_notes: str = ""

    def validate(self) -> None:
        """Check the period ordering: baseline < actual <= actual < forecast <= forecast.

        The actual period may be omitted (forecast starting right after baseline).
        """
        if self.currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")
        if self.forecast_type not in FORECAST_TYPES:
            raise ValueError(f"Unsupported forecast_type: {self.forecast_type}")
        if self.forecast_start_month > self.forecast_end_month:
            raise ValueError("forecast_start_month must not be after forecast_end_month")
        if bool(self.baseline_start_month) != bool(self.baseline_end_month):
            raise ValueError("baseline period needs both start and end months")
        if self.baseline_start_month and self.baseline_start_month > self.baseline_end_month:
            raise ValueError("baseline_start_month must not be after baseline_end_month")

        has_actual = bool(self.actual_start_month and self.actual_end_month)
        if has_actual:
            if self.actual_start_month > self.actual_end_month:
                raise ValueError("actual_start_month must not be after actual_end_month")
            if self.actual_end_month >= self.forecast_start_month:
                raise ValueError("actual period must end before the forecast period starts")
            if self.baseline_end_month and self.baseline_end_month >= self.actual_start_month:
                raise ValueError("baseline period must end before the actual period starts")
        elif self.baseline_end_month and self.baseline_end_month >= self.forecast_start_month:
            raise ValueError("baseline period must end before the forecast period starts")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "fiscal_year": self.fiscal_year,
            "name": self.name,
            "baseline_start_month": self.baseline_start_month,
            "baseline_end_month": self.baseline_end_month,
            "actual_start_month": self.actual_start_month,
            "actual_end_month": self.actual_end_month,
            "forecast_start_month": self.forecast_start_month,
            "forecast_end_month": self.forecast_end_month,
            "currency": self.currency,
            "revenue_goal": self.revenue_goal,
            "gross_profit_goal": self.gross_profit_goal,
            "net_profit_goal": self.net_profit_goal,
            "cogs_percentage": self.cogs_percentage,
            "opex_budget": self.opex_budget,
            "distribution_method": self.distribution_method.value,
            "revenue_distribution_data": dict(self.revenue_distribution_data),
            "forecast_type": self.forecast_type,
            "version_number": self.version_number,
            "parent_forecast_id": self.parent_forecast_id,
            "is_active": self.is_active,
            "is_locked": self.is_locked,
            "version_notes": self.version_notes,
        }

    @staticmethod
    def from_mapping(raw: Mapping[str, Any]) -> "ForecastDefinition":
        def _month(key: str) -> Optional[str]:
            value = raw.get(key)
            return parse_month_key(value) if value else None

        def _opt_float(key: str) -> Optional[float]:
            value = raw.get(key)
            return None if value is None else float(value)

        definition = ForecastDefinition(
            id=raw.get("id"),
            business_id=str(raw.get("business_id") or ""),
            fiscal_year=int(raw["fiscal_year"]),
            name=str(raw.get("name") or ""),
            baseline_start_month=_month("baseline_start_month"),
            baseline_end_month=_month("baseline_end_month"),
            actual_start_month=_month("actual_start_month"),
            actual_end_month=_month("actual_end_month"),
            forecast_start_month=parse_month_key(raw["forecast_start_month"]),
            forecast_end_month=parse_month_key(raw["forecast_end_month"]),
            currency=str(raw.get("currency") or "AUD"),
            revenue_goal=float(raw.get("revenue_goal") or 0.0),
            gross_profit_goal=_opt_float("gross_profit_goal"),
            net_profit_goal=_opt_float("net_profit_goal"),
            cogs_percentage=float(raw.get("cogs_percentage") or 0.0),
            opex_budget=float(raw.get("opex_budget") or 0.0),
            distribution_method=DistributionMethod(raw.get("distribution_method") or "even"),
            revenue_distribution_data=_month_map(raw.get("revenue_distribution_data")),
            forecast_type=str(raw.get("forecast_type") or "forecast"),
            version_number=int(raw.get("version_number") or 1),
            parent_forecast_id=raw.get("parent_forecast_id"),
            is_active=bool(raw.get("is_active", True)),
            is_locked=bool(raw.get("is_locked", False)),
            version_notes=str(raw.get("version_notes") or ""),
        )
        definition.validate()
        return definition


@dataclass(frozen=True)
class PeriodSummary:
    label: str
    months: list[str]
    revenue: float
    cogs: float
    gross_profit: float
    opex: float
    other_income: float
    other_expenses: float
    net_profit: float
    gross_margin: float
    net_margin: float


@dataclass(frozen=True)
class ForecastResult:
    lines: list[AccountLine]
    assumptions: dict[str, Any]
    warnings: list[str]
    scenario: str = "Base"
