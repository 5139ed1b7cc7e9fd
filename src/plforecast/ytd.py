"""Year-to-date reconciliation of annual goals against recorded actuals."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable

from .types import AccountLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    goal: float
    ytd: float
    remaining: float
    goal_met: bool


def ytd_actual_total(lines: Iterable[AccountLine], ytd_months: list[str]) -> float:
    return sum(line.actual_total(ytd_months) for line in lines)


def reconcile_goal(goal: float, ytd: float) -> Reconciliation:
    """Remaining amount to forecast once YTD actuals are counted against ``goal``.

    ``remaining`` never goes below 0; ``goal_met`` flags the case where YTD
    already meets or exceeds the goal.
    """
    goal = float(goal or 0.0)
    ytd = float(ytd or 0.0)
    return Reconciliation(goal=goal, ytd=ytd, remaining=max(goal - ytd, 0.0), goal_met=ytd >= goal)


def zero_fill(lines: list[AccountLine], forecast_months: list[str]) -> list[AccountLine]:
    """Set every forecast month of every non-manual line to an explicit 0."""
    out: list[AccountLine] = []
    for line in lines:
        if line.is_manual:
            out.append(line)
            continue
        out.append(replace(line, forecast_months={m: 0.0 for m in forecast_months}, is_manual=False))
    if lines:
        logger.info(
            "YTD actuals meet or exceed the goal for %s; zero-filled %d months",
            lines[0].category.value,
            len(forecast_months),
        )
    return out
