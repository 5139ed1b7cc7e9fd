"""Forecast versions and what-if scenarios."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .repository import ForecastLocked, ForecastRepository
from .types import AccountLine, Category, ForecastDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhatIfParameters:
    """Percentage changes applied to forecast values (10 = +10%)."""

    revenue_change: float = 0.0
    cogs_change: float = 0.0
    opex_change: float = 0.0

    def factor(self, category: Category) -> float:
        change = {
            Category.REVENUE: self.revenue_change,
            Category.COST_OF_SALES: self.cogs_change,
            Category.OPERATING_EXPENSES: self.opex_change,
        }.get(category, 0.0)
        return 1 + change / 100

    def describe(self) -> str:
        return (
            f"Created from What-If: Revenue {self.revenue_change:g}%, "
            f"COGS {self.cogs_change:g}pp, OpEx {self.opex_change:g}%"
        )


def apply_what_if(lines: list[AccountLine], parameters: WhatIfParameters) -> list[AccountLine]:
    out: list[AccountLine] = []
    for line in lines:
        factor = parameters.factor(line.category)
        if factor == 1:
            out.append(line)
            continue
        out.append(
            replace(line, forecast_months={m: float(v or 0.0) * factor for m, v in line.forecast_months.items()})
        )
    return out


def ensure_editable(definition: ForecastDefinition) -> None:
    if definition.is_locked:
        raise ForecastLocked(f"Forecast {definition.id} is locked")


def create_version(
    repo: ForecastRepository,
    forecast_id: str,
    name: str,
    version_type: str = "forecast",
    parameters: Optional[WhatIfParameters] = None,
) -> ForecastDefinition:
    """Copy a forecast and its lines into a new version.

    The new version gets the next version number for its business, fiscal
    year and type. Creating a ``forecast`` version deactivates the parent.
    """
    parent = repo.get_forecast(forecast_id)
    version_number = repo.next_version_number(parent.business_id, parent.fiscal_year, version_type)
    created = repo.create_forecast(
        replace(
            parent,
            id=None,
            name=name,
            forecast_type=version_type,
            version_number=version_number,
            parent_forecast_id=forecast_id,
            is_active=True,
            is_locked=False,
            version_notes=parameters.describe() if parameters else "Manual version creation",
        )
    )

    lines = [replace(l, id=None) for l in repo.load_lines(forecast_id)]
    if parameters is not None:
        lines = apply_what_if(lines, parameters)
    repo.save_lines(created.id, lines)

    if version_type == "forecast":
        repo.update_forecast(replace(parent, is_active=False))

    logger.info(
        "Created %s version %d of forecast %s as %s", version_type, version_number, forecast_id, created.id
    )
    return created


def list_versions(repo: ForecastRepository, business_id: str, fiscal_year: int) -> list[ForecastDefinition]:
    """Versions for one fiscal year, grouped by type, newest first within a type."""
    found = repo.list_forecasts(business_id, fiscal_year)
    return sorted(found, key=lambda f: (f.forecast_type, -f.version_number))
