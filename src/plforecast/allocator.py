from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from .distribution import distribute, distribute_even, scale_to_shape
from .types import AccountLine, DistributionMethod, MonthMap

logger = logging.getLogger(__name__)


def line_baseline_totals(lines: list[AccountLine], baseline_months: list[str]) -> list[float]:
    return [line.actual_total(baseline_months) for line in lines]


def _spread_line(
    line: AccountLine,
    budget: float,
    forecast_months: list[str],
    baseline_months: list[str],
    method: DistributionMethod,
    custom: Mapping[str, float] | None,
) -> MonthMap:
    if method is DistributionMethod.CUSTOM:
        return scale_to_shape(budget, forecast_months, custom)
    # Each line follows its own history, not the category's average shape.
    return distribute(method, budget, forecast_months, lines=[line], baseline_months=baseline_months)


def allocate_to_lines(
    lines: list[AccountLine],
    remaining: float,
    forecast_months: list[str],
    baseline_months: list[str],
    method: DistributionMethod | str = DistributionMethod.SEASONAL,
    custom: Mapping[str, float] | None = None,
) -> tuple[list[AccountLine], list[str]]:
    """Spread a category budget over its lines, then over months within each line.

    Each non-manual line receives ``remaining * line_baseline / grand_baseline``;
    with no baseline activity at all the budget is split evenly over lines and
    months (custom keeps its monthly shape). Manual lines are returned untouched and take no share.

    Returns new line objects in input order plus any warnings.
    """
    method = DistributionMethod(method)
    warnings: list[str] = []
    if not forecast_months:
        return list(lines), warnings

    targets = [i for i, line in enumerate(lines) if not line.is_manual]
    if not targets:
        return list(lines), warnings

    target_lines = [lines[i] for i in targets]
    totals = line_baseline_totals(target_lines, baseline_months)
    grand_total = sum(totals)

    out = list(lines)
    if grand_total == 0:
        category = target_lines[0].category.value
        logger.info("No baseline actuals for %s; splitting %.2f evenly", category, remaining)
        warnings.append(f"No baseline actuals for {category}; budget split evenly across lines.")
        per_line = remaining / len(target_lines)
        for i in targets:
            if method is DistributionMethod.CUSTOM:
                months = scale_to_shape(per_line, forecast_months, custom)
            else:
                months = distribute_even(per_line, forecast_months)
            out[i] = replace(lines[i], forecast_months=months, is_manual=False)
        return out, warnings

    for i, total in zip(targets, totals):
        line = lines[i]
        share = total / grand_total
        budget = remaining * share
        logger.debug(
            "%s: baseline=%.0f share=%.1f%% budget=%.0f", line.account_name, total, share * 100, budget
        )
        months = _spread_line(line, budget, forecast_months, baseline_months, method, custom)
        out[i] = replace(line, forecast_months=months, is_manual=False)
    return out, warnings
