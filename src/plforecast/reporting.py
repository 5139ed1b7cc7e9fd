from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import matplotlib.ticker as mtick
import pandas as pd
from openpyxl import Workbook
from openpyxl.utils.dataframe import dataframe_to_rows

from .summary import line_value, monthly_summary, rollup, rollup_frame
from .types import AccountLine, ForecastDefinition, ForecastResult


def month_label(month: str) -> str:
    """``"2025-07"`` -> ``"Jul 2025"`` (the import header format)."""
    return pd.Period(month, freq="M").strftime("%b %Y")


def pl_frame(lines: list[AccountLine], months: list[str]) -> pd.DataFrame:
    """One row per line, one column per month; forecast values where present, else actuals."""
    ordered = sorted(lines, key=lambda l: (l.sort_order, l.account_name))
    records = []
    for line in ordered:
        row: dict[str, Any] = {"Account Name": line.account_name, "Category": line.category.value}
        for m in months:
            row[month_label(m)] = line_value(line, m)
        records.append(row)
    return pd.DataFrame(records, columns=["Account Name", "Category"] + [month_label(m) for m in months])


def export_pl_csv(lines: list[AccountLine], months: list[str]) -> str:
    return pl_frame(lines, months).to_csv(index=False)


def write_assumptions(path: str | Path, assumptions: dict[str, Any]) -> None:
    path = Path(path)
    path.write_text(json.dumps(assumptions, indent=2, default=str), encoding="utf-8")


def write_narrative(
    path: str | Path,
    result: ForecastResult,
    definition: ForecastDefinition,
    fy_start_month: int = 7,
) -> None:
    path = Path(path)
    months = list(result.assumptions.get("forecast_months") or [])
    ytd_months = list(result.assumptions.get("ytd_months") or [])
    full_year = sorted(set(ytd_months) | set(months))
    summary = rollup(result.lines, full_year, freq="Y", fy_start_month=fy_start_month)

    lines: list[str] = []
    title = definition.name or f"FY{definition.fiscal_year}"
    lines.append(f"# P&L Forecast Narrative: {title}")
    lines.append("")
    lines.append("## Goals vs forecast")
    for s in summary:
        lines.append(f"### {s.label}")
        lines.append(f"- Revenue: {s.revenue:,.2f} (goal {definition.revenue_goal:,.2f})")
        lines.append(f"- COGS: {s.cogs:,.2f} ({definition.cogs_percentage:.1%} of revenue goal)")
        lines.append(f"- Gross profit: {s.gross_profit:,.2f} (margin {s.gross_margin:.1%})")
        lines.append(f"- Operating expenses: {s.opex:,.2f} (budget {definition.opex_budget:,.2f})")
        lines.append(f"- Net profit: {s.net_profit:,.2f} (margin {s.net_margin:.1%})")
        if definition.net_profit_goal is not None:
            gap = s.net_profit - definition.net_profit_goal
            lines.append(f"- Net profit vs goal {definition.net_profit_goal:,.2f}: {gap:+,.2f}")
    lines.append("")
    lines.append("## Assumptions")
    lines.append(f"- Baseline months: {len(result.assumptions.get('baseline_months') or [])}")
    lines.append(f"- YTD actual months: {len(ytd_months)}")
    lines.append(f"- Forecast months: {len(months)}")
    lines.append(f"- Revenue distribution: {result.assumptions.get('distribution_method')}")
    lines.append("")
    if result.warnings:
        lines.append("## Data Quality / Warnings")
        for w in result.warnings:
            lines.append(f"- {w}")
        lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")


def save_summary_chart(path: str | Path, summary: pd.DataFrame, last_actual: str | None = None) -> Path:
    """Revenue, gross profit and net profit by month, with net margin on a second axis."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    x = pd.PeriodIndex(summary.index, freq="M").to_timestamp()
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(x, summary["Revenue"].values, label="Revenue")
    ax.plot(x, summary["GrossProfit"].values, label="Gross profit")
    ax.plot(x, summary["NetProfit"].values, label="Net profit")
    ax.grid(True, alpha=0.25)
    ax.yaxis.set_major_formatter(mtick.StrMethodFormatter("{x:,.0f}"))

    ax2 = ax.twinx()
    ax2.plot(x, summary["NetMargin"].values, color="gray", linestyle="--", alpha=0.7, label="Net margin")
    ax2.yaxis.set_major_formatter(mtick.PercentFormatter(xmax=1.0, decimals=0))

    if last_actual:
        cutoff = pd.Period(last_actual, freq="M").to_timestamp()
        ax.axvline(x=cutoff, color="gray", linestyle=":", linewidth=1, alpha=0.6)

    handles, labels = ax.get_legend_handles_labels()
    h2, l2 = ax2.get_legend_handles_labels()
    ax.legend(handles + h2, labels + l2, loc="upper left")
    ax.set_title("Monthly P&L")
    fig.tight_layout()
    fig.savefig(path, dpi=160)
    plt.close(fig)
    return path


def write_excel_pack(
    path: str | Path,
    result: ForecastResult,
    definition: ForecastDefinition,
    fy_start_month: int = 7,
) -> None:
    path = Path(path)
    ytd_months = list(result.assumptions.get("ytd_months") or [])
    months = sorted(set(ytd_months) | set(result.assumptions.get("forecast_months") or []))

    wb = Workbook()
    wb.remove(wb.active)
    _add_df_sheet(wb, "P&L", pl_frame(result.lines, months))
    _add_df_sheet(wb, "Monthly Summary", monthly_summary(result.lines, months).reset_index())
    quarterly = rollup(result.lines, months, freq="Q", fy_start_month=fy_start_month)
    _add_df_sheet(wb, "Quarterly", rollup_frame(quarterly).reset_index())
    _add_df_sheet(
        wb,
        "Assumptions",
        pd.DataFrame(
            [{"Key": k, "Value": json.dumps(v, default=str)} for k, v in result.assumptions.items()]
            + [{"Key": "goal", "Value": json.dumps(definition.to_dict(), default=str)}]
        ),
    )
    wb.save(path)


def _add_df_sheet(wb: Workbook, title: str, df: pd.DataFrame) -> None:
    ws = wb.create_sheet(title=title[:31])
    for r in dataframe_to_rows(df, index=False, header=True):
        ws.append(r)
    ws.freeze_panes = "A2"
