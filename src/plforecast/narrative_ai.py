"""Gemini-powered narrative for a generated forecast.

Falls back to the template narrative if GEMINI_API_KEY is not set
or if the API call fails.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .summary import rollup
from .types import ForecastDefinition, ForecastResult

logger = logging.getLogger(__name__)


def _build_prompt(result: ForecastResult, definition: ForecastDefinition, fy_start_month: int = 7) -> str:
    """Build a structured prompt with forecast data for Gemini."""
    months = list(result.assumptions.get("forecast_months") or [])
    quarters = rollup(result.lines, months, freq="Q", fy_start_month=fy_start_month)
    quarter_lines = [
        f"  {q.label}: revenue {q.revenue:,.0f}, gross profit {q.gross_profit:,.0f}, "
        f"opex {q.opex:,.0f}, net profit {q.net_profit:,.0f} (net margin {q.net_margin:.1%})"
        for q in quarters
    ]

    revenue = result.assumptions.get("Revenue", {})
    opex = result.assumptions.get("Operating Expenses", {})

    prompt = f"""You are a small-business financial coach. Write a concise narrative for this P&L forecast.

Business forecast: {definition.name or f'FY{definition.fiscal_year}'} ({definition.currency})
Revenue goal: {definition.revenue_goal:,.0f} (YTD actual {revenue.get('ytd_actual', 0):,.0f})
COGS: {definition.cogs_percentage:.1%} of revenue
OpEx budget: {definition.opex_budget:,.0f} (YTD actual {opex.get('ytd_actual', 0):,.0f})
Net profit goal: {definition.net_profit_goal if definition.net_profit_goal is not None else 'not set'}
Revenue distribution: {definition.distribution_method.value}

Forecast by quarter:
{chr(10).join(quarter_lines)}

Warnings: {'; '.join(result.warnings) if result.warnings else 'None'}

Write a 3-4 paragraph narrative covering:
1. Whether the goals look achievable given YTD actuals
2. Which quarters carry the most revenue and profit
3. Risks or data quality concerns from warnings
4. Two or three practical actions for the owner

Use markdown formatting. Be specific with numbers. Keep it under 400 words."""

    return prompt


def generate_ai_narrative(
    result: ForecastResult, definition: ForecastDefinition, fy_start_month: int = 7
) -> str | None:
    """Return the narrative text, or None if Gemini is unavailable."""
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        return None

    try:
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(os.environ.get("GEMINI_MODEL", "gemini-2.0-flash"))
        response = model.generate_content(_build_prompt(result, definition, fy_start_month))
        return response.text
    except Exception as exc:
        logger.warning("Gemini narrative failed, using template: %s", exc)
        return None


def write_ai_narrative(
    path: str | Path, result: ForecastResult, definition: ForecastDefinition, fy_start_month: int = 7
) -> bool:
    """Returns True if the AI narrative was written, False if it fell back to the template."""
    from .reporting import write_narrative

    narrative = generate_ai_narrative(result, definition, fy_start_month)
    if narrative:
        Path(path).write_text(narrative, encoding="utf-8")
        return True

    write_narrative(path, result, definition, fy_start_month)
    return False
