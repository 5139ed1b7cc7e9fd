"""Strategies for spreading an amount across a set of months."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .seasonal import calculate_seasonal_pattern
from .types import AccountLine, DistributionMethod, MonthMap


@dataclass(frozen=True)
class CustomDistributionCheck:
    distribution: MonthMap
    target: float
    total: float
    variance: float
    variance_pct: float

    def within(self, tolerance: float) -> bool:
        return abs(self.variance_pct) <= tolerance


def distribute_even(total: float, months: list[str]) -> MonthMap:
    if not months:
        raise ValueError("cannot distribute across zero months")
    amount = total / len(months)
    return {m: amount for m in months}


def distribute_linear(total: float, months: list[str]) -> MonthMap:
    """Month i (1-indexed) gets ``base * i`` with ``base = 2T / (n(n+1))``."""
    if not months:
        raise ValueError("cannot distribute across zero months")
    n = len(months)
    base = 2.0 * total / (n * (n + 1))
    return {m: base * i for i, m in enumerate(months, start=1)}


def distribute_seasonal(
    total: float,
    months: list[str],
    lines: Iterable[AccountLine],
    baseline_months: list[str],
) -> MonthMap:
    pattern = calculate_seasonal_pattern(lines, months, baseline_months)
    if pattern.total == 0:
        return distribute_even(total, months)
    scale = total / pattern.total
    return {m: pattern.distribution.get(m, 0.0) * scale for m in months}


def distribute_custom(total: float, months: list[str], custom: Mapping[str, float] | None) -> CustomDistributionCheck:
    """Pass the caller's month map through and report how far it is from ``total``.

    Custom entries may over- or under-shoot; the variance is reported, not corrected.
    """
    distribution = {m: float((custom or {}).get(m) or 0.0) for m in months}
    entered = sum(distribution.values())
    variance = entered - total
    variance_pct = variance / total if total != 0 else 0.0
    return CustomDistributionCheck(
        distribution=distribution,
        target=total,
        total=entered,
        variance=variance,
        variance_pct=variance_pct,
    )


def scale_to_shape(total: float, months: list[str], shape: Mapping[str, float] | None) -> MonthMap:
    """Spread ``total`` following the relative weights in ``shape`` (even when shape sums to 0)."""
    weights = {m: float((shape or {}).get(m) or 0.0) for m in months}
    weight_total = sum(weights.values())
    if weight_total == 0:
        return distribute_even(total, months)
    return {m: total * w / weight_total for m, w in weights.items()}


def distribute(
    method: DistributionMethod | str,
    total: float,
    months: list[str],
    lines: Iterable[AccountLine] = (),
    baseline_months: list[str] | None = None,
    custom: Mapping[str, float] | None = None,
) -> MonthMap:
    method = DistributionMethod(method)
    if method is DistributionMethod.EVEN:
        return distribute_even(total, months)
    if method is DistributionMethod.LINEAR:
        return distribute_linear(total, months)
    if method is DistributionMethod.SEASONAL:
        return distribute_seasonal(total, months, lines, baseline_months or [])
    return distribute_custom(total, months, custom).distribution
