from __future__ import annotations

from dataclasses import dataclass, field
import importlib.resources
from pathlib import Path
from typing import Any, Mapping

import yaml

from .types import Category


@dataclass(frozen=True)
class ValidationThresholds:
    cogs_warn_low: float = 5.0
    cogs_warn_high: float = 95.0
    min_revenue_goal: float = 10_000.0
    goal_tolerance: float = 0.05
    large_value: float = 1_000_000_000.0


@dataclass(frozen=True)
class EngineConfig:
    summary_line_names: dict[Category, str]
    cogs_line_name: str = "Cost of Goods Sold"
    cogs_sort_order: int = 100
    default_revenue_line_name: str = "Sales"
    default_revenue_sort_order: int = 2
    fy_start_month: int = 7
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)

    @staticmethod
    def from_mapping(raw: Mapping[str, Any]) -> "EngineConfig":
        names_raw: Mapping[str, Any] = raw.get("summary_line_names", {}) or {}
        summary_line_names = {Category(k): str(v) for k, v in names_raw.items()}
        cogs = raw.get("cogs_line", {}) or {}
        revenue = raw.get("default_revenue_line", {}) or {}
        validation_raw = raw.get("validation", {}) or {}
        fy_start_month = int(raw.get("fy_start_month", 7))
        if not 1 <= fy_start_month <= 12:
            raise ValueError(f"fy_start_month must be 1-12, got {fy_start_month}")
        return EngineConfig(
            summary_line_names=summary_line_names,
            cogs_line_name=str(cogs.get("name", "Cost of Goods Sold")),
            cogs_sort_order=int(cogs.get("sort_order", 100)),
            default_revenue_line_name=str(revenue.get("name", "Sales")),
            default_revenue_sort_order=int(revenue.get("sort_order", 2)),
            fy_start_month=fy_start_month,
            validation=ValidationThresholds(**{k: float(v) for k, v in validation_raw.items()}),
        )

    @staticmethod
    def from_yaml(path: str | Path) -> "EngineConfig":
        path = Path(path)
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        return EngineConfig.from_mapping(raw or {})


def default_engine_config() -> EngineConfig:
    text = importlib.resources.files("plforecast.resources").joinpath("defaults.yaml").read_text(encoding="utf-8")
    return EngineConfig.from_mapping(yaml.safe_load(text))
