from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from .reporting import month_label

_REVENUE_ACCOUNTS = {"Product Sales": 0.7, "Service Revenue": 0.3}
_OPEX_ACCOUNTS = {"Wages": 18_000, "Rent": 4_500, "Marketing": 2_500, "Software": 900}


@dataclass(frozen=True)
class SynthSpec:
    start: str  # YYYY-MM
    months: int
    seed: int
    annual_revenue: float = 1_200_000
    cogs_ratio: float = 0.4


def generate_synthetic_pl(out_path: str | Path, spec: SynthSpec) -> Path:
    """Write a seasonal small-business P&L in the import CSV layout, with category total rows."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    rng = np.random.default_rng(spec.seed)
    periods = pd.period_range(spec.start, periods=spec.months, freq="M")
    labels = [month_label(str(p)) for p in periods]
    # Peak in December, trough mid-year
    season = np.array([1.0 + 0.25 * np.cos((p.month - 12) / 12 * 2 * np.pi) for p in periods])
    base_month = spec.annual_revenue / 12

    rows: list[list[object]] = []
    revenue_total = np.zeros(len(periods))
    for name, share in _REVENUE_ACCOUNTS.items():
        values = np.maximum(base_month * share * season * rng.normal(1.0, 0.05, size=len(periods)), 0)
        revenue_total += values
        rows.append([name, "Revenue", *np.round(values, 2)])
    rows.append(["Total Revenue", "Revenue", *np.round(revenue_total, 2)])

    cogs = np.maximum(revenue_total * spec.cogs_ratio * rng.normal(1.0, 0.03, size=len(periods)), 0)
    rows.append(["Cost of Goods Sold", "Cost of Sales", *np.round(cogs, 2)])

    opex_total = np.zeros(len(periods))
    for name, base in _OPEX_ACCOUNTS.items():
        values = np.maximum(rng.normal(base, base * 0.08, size=len(periods)), 0)
        opex_total += values
        rows.append([name, "Operating Expenses", *np.round(values, 2)])
    rows.append(["Total Operating Expenses", "Operating Expenses", *np.round(opex_total, 2)])

    rows.append(["Interest Income", "Other Income", *np.round(rng.normal(150, 20, size=len(periods)), 2)])

    df = pd.DataFrame(rows, columns=["Account Name", "Category", *labels])
    df.to_csv(out_path, index=False)
    return out_path
