from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable

from .allocator import allocate_to_lines
from .config import EngineConfig, default_engine_config
from .distribution import distribute_custom
from .months import current_year_month_keys, month_keys_in_range
from .summary import distribute_cogs
from .types import AccountLine, Category, DistributionMethod, ForecastDefinition, ForecastResult
from .ytd import reconcile_goal, ytd_actual_total, zero_fill

logger = logging.getLogger(__name__)


def baseline_month_keys(definition: ForecastDefinition) -> list[str]:
    return month_keys_in_range(definition.baseline_start_month, definition.baseline_end_month)


def forecast_month_keys(definition: ForecastDefinition) -> list[str]:
    return month_keys_in_range(definition.forecast_start_month, definition.forecast_end_month)


def ytd_month_keys(definition: ForecastDefinition) -> list[str]:
    """The actual/YTD window; derived from the gap after the baseline when not given."""
    if definition.actual_start_month and definition.actual_end_month:
        return month_keys_in_range(definition.actual_start_month, definition.actual_end_month)
    return current_year_month_keys(definition.baseline_end_month, definition.forecast_start_month)


def find_or_create_summary_line(
    lines: list[AccountLine],
    category: Category,
    account_name: str,
    sort_order: int = 0,
) -> tuple[AccountLine, list[AccountLine]]:
    """Return the single line for (category, account_name) and the de-duplicated line list.

    When several lines match, the first is kept and the rest are removed (not
    merged). When none match, a new empty line is appended.
    """
    matches = [l for l in lines if l.category == category and l.account_name == account_name]
    if len(matches) > 1:
        logger.warning('Found %d duplicate "%s" lines, removing duplicates', len(matches), account_name)
        keep = matches[0]
        drop = {id(l) for l in matches[1:]}
        return keep, [l for l in lines if id(l) not in drop]
    if matches:
        return matches[0], list(lines)
    created = AccountLine(account_name=account_name, category=category, sort_order=sort_order)
    return created, list(lines) + [created]


def _merge(lines: list[AccountLine], indices: list[int], updated: list[AccountLine]) -> list[AccountLine]:
    out = list(lines)
    for i, line in zip(indices, updated):
        out[i] = line
    return out


def _distribute_category(
    lines: list[AccountLine],
    category: Category,
    goal: float,
    forecast_months: list[str],
    baseline_months: list[str],
    ytd_months: list[str],
    method: DistributionMethod,
    custom: dict[str, float] | None,
    assumptions: dict[str, Any],
    warnings: list[str],
) -> list[AccountLine]:
    indices = [i for i, l in enumerate(lines) if l.category == category]
    targets = [lines[i] for i in indices]
    recon = reconcile_goal(goal, ytd_actual_total(targets, ytd_months))
    logger.info(
        "%s: goal=%.2f ytd=%.2f remaining=%.2f", category.value, recon.goal, recon.ytd, recon.remaining
    )
    assumptions[category.value] = {
        "goal": recon.goal,
        "ytd_actual": recon.ytd,
        "remaining": recon.remaining,
        "goal_met": recon.goal_met,
        "lines": len(targets),
    }

    manual_total = sum(l.forecast_total(forecast_months) for l in targets if l.is_manual)
    if manual_total:
        assumptions[category.value]["manual_forecast"] = manual_total
        over = recon.ytd + recon.remaining + manual_total - recon.goal
        if over > 0.005:
            warnings.append(
                f"{category.value} manual lines add {manual_total:,.2f} on top of the goal; "
                f"forecast exceeds the goal by {over:,.2f}."
            )

    if recon.goal_met:
        warnings.append(f"{category.value} YTD actuals already meet the annual goal; forecast set to zero.")
        return _merge(lines, indices, zero_fill(targets, forecast_months))

    updated, alloc_warnings = allocate_to_lines(
        targets, recon.remaining, forecast_months, baseline_months, method=method, custom=custom
    )
    warnings.extend(alloc_warnings)
    return _merge(lines, indices, updated)


def generate_forecast(
    definition: ForecastDefinition,
    existing_lines: Iterable[AccountLine],
    config: EngineConfig | None = None,
) -> ForecastResult:
    """Produce forecast values for every non-manual line from the definition's goals.

    Revenue and OpEx goals are reconciled against YTD actuals and spread over
    lines by baseline share, then over months. COGS is ``revenue_goal *
    cogs_percentage`` reconciled against YTD COGS and spread along the revenue
    curve onto a single COGS line. Category summary rows are dropped.
    """
    config = config or default_engine_config()
    definition.validate()

    baseline_months = baseline_month_keys(definition)
    forecast_months = forecast_month_keys(definition)
    ytd_months = ytd_month_keys(definition)
    logger.debug("baseline=%s ytd=%s forecast=%s", baseline_months, ytd_months, forecast_months)

    assumptions: dict[str, Any] = {
        "baseline_months": baseline_months,
        "ytd_months": ytd_months,
        "forecast_months": forecast_months,
        "distribution_method": definition.distribution_method.value,
        "revenue_goal": definition.revenue_goal,
        "cogs_percentage": definition.cogs_percentage,
        "opex_budget": definition.opex_budget,
    }
    warnings: list[str] = []

    summary_names = set(config.summary_line_names.values())
    lines = [l for l in existing_lines if l.account_name not in summary_names]

    if definition.revenue_goal != 0:
        if not any(l.category == Category.REVENUE for l in lines):
            logger.info("No revenue detail lines found, creating default line")
            lines.append(
                AccountLine(
                    account_name=config.default_revenue_line_name,
                    category=Category.REVENUE,
                    sort_order=config.default_revenue_sort_order,
                )
            )
        lines = _distribute_category(
            lines,
            Category.REVENUE,
            definition.revenue_goal,
            forecast_months,
            baseline_months,
            ytd_months,
            definition.distribution_method,
            definition.revenue_distribution_data,
            assumptions,
            warnings,
        )
        if definition.distribution_method is DistributionMethod.CUSTOM:
            _check_custom(definition, forecast_months, assumptions, warnings, config)
    else:
        logger.info("Revenue goal is 0, skipping distribution")

    if definition.opex_budget != 0:
        if any(l.category == Category.OPERATING_EXPENSES for l in lines):
            lines = _distribute_category(
                lines,
                Category.OPERATING_EXPENSES,
                definition.opex_budget,
                forecast_months,
                baseline_months,
                ytd_months,
                DistributionMethod.SEASONAL,
                None,
                assumptions,
                warnings,
            )
        else:
            warnings.append("OpEx budget set but no Operating Expenses lines exist; OpEx not forecast.")
    else:
        logger.info("OpEx budget is 0, skipping distribution")

    if definition.revenue_goal != 0:
        lines = _apply_cogs(definition, lines, forecast_months, ytd_months, config, assumptions, warnings)

    return ForecastResult(lines=lines, assumptions=assumptions, warnings=list(dict.fromkeys(warnings)))


def _check_custom(
    definition: ForecastDefinition,
    forecast_months: list[str],
    assumptions: dict[str, Any],
    warnings: list[str],
    config: EngineConfig,
) -> None:
    remaining = assumptions[Category.REVENUE.value]["remaining"]
    if not definition.revenue_distribution_data:
        warnings.append("Custom distribution selected but no monthly values entered; revenue split evenly.")
        return
    check = distribute_custom(remaining, forecast_months, definition.revenue_distribution_data)
    assumptions["custom_distribution"] = {
        "entered": check.total,
        "target": check.target,
        "variance": check.variance,
        "variance_pct": check.variance_pct,
    }
    if not check.within(config.validation.goal_tolerance):
        warnings.append(
            f"Custom monthly revenue totals {check.total:,.2f} vs remaining goal {check.target:,.2f} "
            f"({check.variance_pct:+.1%}); lines follow the custom shape scaled to the goal."
        )


def _apply_cogs(
    definition: ForecastDefinition,
    lines: list[AccountLine],
    forecast_months: list[str],
    ytd_months: list[str],
    config: EngineConfig,
    assumptions: dict[str, Any],
    warnings: list[str],
) -> list[AccountLine]:
    cogs_line, lines = find_or_create_summary_line(
        lines, Category.COST_OF_SALES, config.cogs_line_name, config.cogs_sort_order
    )
    recon = reconcile_goal(definition.revenue_goal * definition.cogs_percentage, cogs_line.actual_total(ytd_months))
    assumptions[Category.COST_OF_SALES.value] = {
        "goal": recon.goal,
        "ytd_actual": recon.ytd,
        "remaining": recon.remaining,
        "goal_met": recon.goal_met,
        "line": cogs_line.account_name,
    }
    if cogs_line.is_manual:
        return lines

    if recon.goal_met:
        if recon.goal > 0:
            warnings.append("COGS YTD actuals already meet the annual COGS target; forecast set to zero.")
        months = {m: 0.0 for m in forecast_months}
    else:
        revenue_lines = [l for l in lines if l.category == Category.REVENUE]
        months = distribute_cogs(recon.remaining, forecast_months, revenue_lines)

    idx = next(i for i, l in enumerate(lines) if l is cogs_line)
    out = list(lines)
    out[idx] = replace(cogs_line, forecast_months=months, is_manual=False)
    return out
