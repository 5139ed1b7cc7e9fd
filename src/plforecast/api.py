"""FastAPI APIRouter for forecasts, their P&L lines, generation, import/export and versions."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import default_engine_config
from .generator import baseline_month_keys, forecast_month_keys, generate_forecast, ytd_month_keys
from .importer import merge_imported, parse_pl_csv
from .reporting import export_pl_csv, write_excel_pack
from .repository import ForecastRepository, PostgresRepository
from .summary import monthly_summary, rollup
from .types import AccountLine, ForecastDefinition, ForecastResult
from .validation import validate_forecast
from .versions import WhatIfParameters, create_version, ensure_editable, list_versions

router = APIRouter(prefix="/api")
logger = logging.getLogger("plforecast.api")

# Replaced in tests with an InMemoryRepository.
REPOSITORY: ForecastRepository | None = None

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def _rate_key(request: Request) -> str:
    user_id = request.headers.get("X-User-ID")
    return f"user:{user_id}" if user_id else f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=_rate_key)
GENERATE_RATE_LIMIT = os.environ.get("GENERATE_RATE_LIMIT", "30/minute")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _repo() -> ForecastRepository:
    global REPOSITORY
    if REPOSITORY is None:
        REPOSITORY = PostgresRepository()
    return REPOSITORY


def _editable(repo: ForecastRepository, forecast_id: str) -> ForecastDefinition:
    definition = repo.get_forecast(forecast_id)
    ensure_editable(definition)
    return definition


def _report_months(definition: ForecastDefinition) -> list[str]:
    return sorted(set(ytd_month_keys(definition)) | set(forecast_month_keys(definition)))


def _stored_result(definition: ForecastDefinition, lines: list[AccountLine]) -> ForecastResult:
    return ForecastResult(
        lines=lines,
        assumptions={
            "baseline_months": baseline_month_keys(definition),
            "ytd_months": ytd_month_keys(definition),
            "forecast_months": forecast_month_keys(definition),
            "distribution_method": definition.distribution_method.value,
        },
        warnings=[],
    )


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class ForecastCreate(BaseModel):
    business_id: str
    fiscal_year: int
    name: str = ""
    forecast_start_month: str
    forecast_end_month: str
    baseline_start_month: Optional[str] = None
    baseline_end_month: Optional[str] = None
    actual_start_month: Optional[str] = None
    actual_end_month: Optional[str] = None
    currency: str = "AUD"
    revenue_goal: float = 0.0
    gross_profit_goal: Optional[float] = None
    net_profit_goal: Optional[float] = None
    cogs_percentage: float = Field(default=0.0, ge=0.0, le=1.0)
    opex_budget: float = 0.0
    distribution_method: str = "even"
    revenue_distribution_data: dict[str, float] = Field(default_factory=dict)
    forecast_type: str = "forecast"


class ForecastUpdate(BaseModel):
    name: Optional[str] = None
    forecast_start_month: Optional[str] = None
    forecast_end_month: Optional[str] = None
    baseline_start_month: Optional[str] = None
    baseline_end_month: Optional[str] = None
    actual_start_month: Optional[str] = None
    actual_end_month: Optional[str] = None
    currency: Optional[str] = None
    revenue_goal: Optional[float] = None
    gross_profit_goal: Optional[float] = None
    net_profit_goal: Optional[float] = None
    cogs_percentage: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    opex_budget: Optional[float] = None
    distribution_method: Optional[str] = None
    revenue_distribution_data: Optional[dict[str, float]] = None
    is_active: Optional[bool] = None
    is_locked: Optional[bool] = None
    version_notes: Optional[str] = None


class LineIn(BaseModel):
    id: Optional[str] = None
    account_name: str
    account_code: str = ""
    category: str
    sort_order: int = 0
    actual_months: dict[str, Optional[float]] = Field(default_factory=dict)
    forecast_months: dict[str, Optional[float]] = Field(default_factory=dict)
    is_manual: bool = False
    is_from_xero: bool = False


class WhatIfIn(BaseModel):
    revenue_change: float = 0.0
    cogs_change: float = 0.0
    opex_change: float = 0.0


class VersionCreate(BaseModel):
    name: str
    version_type: Literal["budget", "forecast"] = "forecast"
    parameters: Optional[WhatIfIn] = None


# ---------------------------------------------------------------------------
# Forecasts
# ---------------------------------------------------------------------------


@router.post("/forecasts", status_code=201)
def create_forecast(body: ForecastCreate):
    try:
        definition = ForecastDefinition.from_mapping(body.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _repo().create_forecast(definition).to_dict()


@router.get("/forecasts/{forecast_id}")
def get_forecast(forecast_id: str):
    return _repo().get_forecast(forecast_id).to_dict()


@router.put("/forecasts/{forecast_id}")
def update_forecast(forecast_id: str, body: ForecastUpdate):
    repo = _repo()
    existing = repo.get_forecast(forecast_id)
    changes = body.model_dump(exclude_unset=True)
    if set(changes) - {"is_locked"}:
        ensure_editable(existing)
    try:
        updated = ForecastDefinition.from_mapping({**existing.to_dict(), **changes})
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return repo.update_forecast(updated).to_dict()


@router.get("/businesses/{business_id}/forecasts")
def list_business_forecasts(business_id: str, fiscal_year: Optional[int] = None):
    repo = _repo()
    if fiscal_year is not None:
        found = list_versions(repo, business_id, fiscal_year)
    else:
        found = repo.list_forecasts(business_id)
    return [f.to_dict() for f in found]


# ---------------------------------------------------------------------------
# P&L lines
# ---------------------------------------------------------------------------


@router.get("/forecasts/{forecast_id}/lines")
def list_lines(forecast_id: str):
    repo = _repo()
    repo.get_forecast(forecast_id)
    return [l.to_dict() for l in repo.load_lines(forecast_id)]


@router.put("/forecasts/{forecast_id}/lines")
def replace_lines(forecast_id: str, body: list[LineIn]):
    repo = _repo()
    _editable(repo, forecast_id)
    try:
        lines = [AccountLine.from_mapping(item.model_dump()) for item in body]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [l.to_dict() for l in repo.save_lines(forecast_id, lines)]


@router.post("/forecasts/{forecast_id}/import", status_code=201)
async def import_csv(forecast_id: str, file: UploadFile = File(...)):
    repo = _repo()
    _editable(repo, forecast_id)
    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="CSV file is too large")
    try:
        content = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 text") from exc
    # Parsed in full before anything is written; CSVImportError leaves the lines untouched
    parsed = parse_pl_csv(content)
    saved = repo.save_lines(forecast_id, merge_imported(repo.load_lines(forecast_id), parsed))
    logger.info("Imported %d accounts into forecast %s", len(parsed.accounts), forecast_id)
    return {
        "imported": len(parsed.accounts),
        "lines": len(saved),
        "month_keys": parsed.month_keys,
        "start_month": parsed.start_month,
        "end_month": parsed.end_month,
        "warnings": parsed.warnings,
    }


# ---------------------------------------------------------------------------
# Generation, summaries, validation
# ---------------------------------------------------------------------------


@router.post("/forecasts/{forecast_id}/generate")
@limiter.limit(GENERATE_RATE_LIMIT)
def generate(forecast_id: str, request: Request):
    repo = _repo()
    definition = _editable(repo, forecast_id)
    try:
        result = generate_forecast(definition, repo.load_lines(forecast_id), default_engine_config())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    saved = repo.save_lines(forecast_id, result.lines)
    return {
        "lines": [l.to_dict() for l in saved],
        "assumptions": result.assumptions,
        "warnings": result.warnings,
    }


@router.get("/forecasts/{forecast_id}/summary")
def summary(forecast_id: str, freq: Literal["M", "Q", "Y"] = "M"):
    repo = _repo()
    definition = repo.get_forecast(forecast_id)
    lines = repo.load_lines(forecast_id)
    months = _report_months(definition)
    if freq == "M":
        return monthly_summary(lines, months).reset_index().to_dict(orient="records")
    cfg = default_engine_config()
    return [asdict(s) for s in rollup(lines, months, freq=freq, fy_start_month=cfg.fy_start_month)]


@router.get("/forecasts/{forecast_id}/validation")
def validation(forecast_id: str):
    repo = _repo()
    definition = repo.get_forecast(forecast_id)
    result = validate_forecast(definition, repo.load_lines(forecast_id))
    return {
        "is_valid": result.is_valid,
        "completeness": result.completeness,
        "issues": [asdict(i) for i in result.issues],
    }


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


@router.post("/forecasts/{forecast_id}/versions", status_code=201)
def create_forecast_version(forecast_id: str, body: VersionCreate):
    repo = _repo()
    repo.get_forecast(forecast_id)
    parameters = WhatIfParameters(**body.parameters.model_dump()) if body.parameters else None
    created = create_version(repo, forecast_id, body.name, body.version_type, parameters)
    return created.to_dict()


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@router.get("/forecasts/{forecast_id}/export.csv")
def export_csv(forecast_id: str):
    repo = _repo()
    definition = repo.get_forecast(forecast_id)
    content = export_pl_csv(repo.load_lines(forecast_id), _report_months(definition))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="forecast_{forecast_id}.csv"'},
    )


@router.get("/forecasts/{forecast_id}/export.xlsx")
def export_xlsx(forecast_id: str):
    repo = _repo()
    definition = repo.get_forecast(forecast_id)
    result = _stored_result(definition, repo.load_lines(forecast_id))
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "forecast.xlsx"
        write_excel_pack(path, result, definition, default_engine_config().fy_start_month)
        payload = path.read_bytes()
    return Response(
        content=payload,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="forecast_{forecast_id}.xlsx"'},
    )
