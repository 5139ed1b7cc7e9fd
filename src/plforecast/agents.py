from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import EngineConfig
from .generator import generate_forecast
from .importer import load_pl_csv, merge_imported
from .narrative_ai import write_ai_narrative
from .reporting import save_summary_chart, write_assumptions, write_excel_pack
from .summary import monthly_summary
from .types import AccountLine, ForecastDefinition, ForecastResult
from .versions import WhatIfParameters, apply_what_if


@dataclass(frozen=True)
class ForecastPlan:
    definition: ForecastDefinition
    scenarios: dict[str, WhatIfParameters]


class PlannerAgent:
    def plan(self, definition_path: Path, scenario: str | None = None) -> ForecastPlan:
        """Read a YAML/JSON forecast definition with an optional ``scenarios`` mapping of what-if changes."""
        raw: Any = yaml.safe_load(Path(definition_path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("Forecast definition must be a mapping/object at top level")
        raw = dict(raw)
        scenarios_raw = raw.pop("scenarios", None) or {}

        scenarios: dict[str, WhatIfParameters] = {"Base": WhatIfParameters()}
        for name, v in scenarios_raw.items():
            v = v or {}
            scenarios[str(name)] = WhatIfParameters(
                revenue_change=float(v.get("revenue_change", 0)),
                cogs_change=float(v.get("cogs_change", 0)),
                opex_change=float(v.get("opex_change", 0)),
            )
        if scenario:
            if scenario not in scenarios:
                raise ValueError(f"Unknown scenario: {scenario}")
            scenarios = {scenario: scenarios[scenario]}
        return ForecastPlan(definition=ForecastDefinition.from_mapping(raw), scenarios=scenarios)


class AnalystAgent:
    def run(self, csv_paths: list[Path], plan: ForecastPlan, config: EngineConfig) -> list[ForecastResult]:
        lines: list[AccountLine] = []
        warnings: list[str] = []
        for path in csv_paths:
            parsed = load_pl_csv(path)
            warnings.extend(parsed.warnings)
            lines = merge_imported(lines, parsed)

        base = generate_forecast(plan.definition, lines, config)
        results: list[ForecastResult] = []
        for name, params in plan.scenarios.items():
            results.append(
                ForecastResult(
                    lines=apply_what_if(base.lines, params),
                    assumptions={**base.assumptions, "what_if": asdict(params)},
                    warnings=list(dict.fromkeys(warnings + base.warnings)),
                    scenario=name,
                )
            )
        return results


class ReporterAgent:
    def package(
        self,
        out_dir: Path,
        definition: ForecastDefinition,
        results: list[ForecastResult],
        config: EngineConfig,
    ) -> None:
        out_dir.mkdir(parents=True, exist_ok=True)
        charts_dir = out_dir / "charts"

        for res in results:
            ytd = list(res.assumptions.get("ytd_months") or [])
            months = sorted(set(ytd) | set(res.assumptions.get("forecast_months") or []))
            save_summary_chart(
                charts_dir / f"{res.scenario}_monthly.png",
                monthly_summary(res.lines, months),
                last_actual=ytd[-1] if ytd else None,
            )
            scen_dir = out_dir / res.scenario
            scen_dir.mkdir(parents=True, exist_ok=True)
            write_excel_pack(scen_dir / "forecast_pack.xlsx", res, definition, config.fy_start_month)
            write_ai_narrative(scen_dir / "narrative.md", res, definition, config.fy_start_month)
            write_assumptions(scen_dir / "assumptions.json", res.assumptions)

        base = next((r for r in results if r.scenario == "Base"), results[0])
        write_ai_narrative(out_dir / "narrative.md", base, definition, config.fy_start_month)
        write_assumptions(out_dir / "assumptions.json", base.assumptions)
