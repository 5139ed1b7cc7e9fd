"""Tests for the forecast API endpoints using FastAPI TestClient."""

from __future__ import annotations

import pytest

from plforecast.months import month_keys_in_range
from plforecast.reporting import month_label
from plforecast.repository import InMemoryRepository

BASELINE = month_keys_in_range("2024-07", "2025-06")
YTD = month_keys_in_range("2025-07", "2025-09")

FORECAST_BODY = {
    "business_id": "biz-1",
    "fiscal_year": 2026,
    "name": "FY26",
    "baseline_start_month": "2024-07",
    "baseline_end_month": "2025-06",
    "actual_start_month": "2025-07",
    "actual_end_month": "2025-09",
    "forecast_start_month": "2025-10",
    "forecast_end_month": "2026-06",
    "revenue_goal": 120000,
    "cogs_percentage": 0.4,
    "opex_budget": 60000,
    "distribution_method": "seasonal_pattern",
}


def _pl_csv() -> str:
    months = BASELINE + YTD
    header = ",".join(["Account Name", "Category"] + [month_label(m) for m in months])
    rows = [
        ("Product Sales", "Revenue", lambda m: 10_000 if m in YTD else 1_000),
        ("Cost of Goods Sold", "Cost of Sales", lambda m: 4_000 if m in YTD else 400),
        ("Rent", "Operating Expenses", lambda m: 5_000 if m in YTD else 500),
        ("Total Revenue", "Revenue", lambda m: 0),
    ]
    body = [",".join([name, cat] + [str(fn(m)) for m in months]) for name, cat, fn in rows]
    return "\n".join([header] + body) + "\n"


@pytest.fixture(autouse=True)
def memory_repository(monkeypatch):
    """Patch the API to use a fresh in-memory repository per test."""
    from plforecast import api

    repo = InMemoryRepository()
    monkeypatch.setattr(api, "REPOSITORY", repo)
    return repo


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from plforecast.server import app
    return TestClient(app)


def _create(client, **overrides) -> dict:
    resp = client.post("/api/forecasts", json={**FORECAST_BODY, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _import(client, forecast_id: str, content: str):
    return client.post(
        f"/api/forecasts/{forecast_id}/import",
        files={"file": ("pl.csv", content.encode("utf-8"), "text/csv")},
    )


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert "X-Request-ID" in resp.headers


def test_forecast_lifecycle(client):
    fc = _create(client)
    assert fc["id"]
    assert fc["version_number"] == 1
    assert fc["currency"] == "AUD"

    resp = client.get(f"/api/forecasts/{fc['id']}")
    assert resp.status_code == 200
    assert resp.json()["revenue_goal"] == 120000

    resp = client.put(f"/api/forecasts/{fc['id']}", json={"revenue_goal": 150000, "name": "Stretch"})
    assert resp.status_code == 200
    assert resp.json()["revenue_goal"] == 150000
    assert resp.json()["name"] == "Stretch"

    resp = client.get("/api/businesses/biz-1/forecasts")
    assert [f["id"] for f in resp.json()] == [fc["id"]]
    assert client.get("/api/businesses/biz-1/forecasts", params={"fiscal_year": 2030}).json() == []


def test_invalid_definition_is_bad_request(client):
    resp = client.post("/api/forecasts", json={**FORECAST_BODY, "actual_end_month": "2025-12"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "bad_request"
    assert "actual period" in body["error"]["message"]


def test_out_of_range_cogs_is_validation_error(client):
    resp = client.post("/api/forecasts", json={**FORECAST_BODY, "cogs_percentage": 1.5})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_unknown_forecast_is_not_found(client):
    resp = client.get("/api/forecasts/missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "forecast_not_found"
    assert client.post("/api/forecasts/missing/generate").status_code == 404


def test_lines_replace(client):
    fc = _create(client)
    resp = client.put(
        f"/api/forecasts/{fc['id']}/lines",
        json=[{"account_name": "Sales", "category": "Revenue", "actual_months": {"2025-7": 10, "2025-08": None}}],
    )
    assert resp.status_code == 200
    (line,) = resp.json()
    assert line["id"]
    assert line["actual_months"] == {"2025-07": 10.0, "2025-08": 0.0}

    resp = client.put(
        f"/api/forecasts/{fc['id']}/lines",
        json=[{"account_name": "Sales", "category": "Revenue", "actual_months": {"July": 10}}],
    )
    assert resp.status_code == 400
    assert len(client.get(f"/api/forecasts/{fc['id']}/lines").json()) == 1


def test_import_csv(client):
    fc = _create(client)
    resp = _import(client, fc["id"], _pl_csv())
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["imported"] == 3
    assert body["start_month"] == "2024-07"
    assert body["end_month"] == "2025-09"

    lines = client.get(f"/api/forecasts/{fc['id']}/lines").json()
    assert sorted(l["account_name"] for l in lines) == ["Cost of Goods Sold", "Product Sales", "Rent"]


def test_failed_import_saves_nothing(client):
    fc = _create(client)
    resp = _import(client, fc["id"], "Account Name,Jul 2024\nSales,1\n")
    assert resp.status_code == 400
    assert "Category" in resp.json()["detail"]
    assert resp.json()["error"]["code"] == "invalid_csv"
    assert client.get(f"/api/forecasts/{fc['id']}/lines").json() == []


def test_generate_summary_validation_and_exports(client):
    fc = _create(client)
    _import(client, fc["id"], _pl_csv())

    resp = client.post(f"/api/forecasts/{fc['id']}/generate")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    by_name = {l["account_name"]: l for l in body["lines"]}
    assert sum(by_name["Product Sales"]["forecast_months"].values()) == pytest.approx(90_000.0)
    assert sum(by_name["Cost of Goods Sold"]["forecast_months"].values()) == pytest.approx(36_000.0)
    assert body["assumptions"]["Revenue"]["ytd_actual"] == pytest.approx(30_000.0)

    stored = client.get(f"/api/forecasts/{fc['id']}/lines").json()
    assert {l["account_name"] for l in stored} == set(by_name)

    monthly = client.get(f"/api/forecasts/{fc['id']}/summary").json()
    assert len(monthly) == 12
    assert monthly[0]["Month"] == "2025-07"

    (year,) = client.get(f"/api/forecasts/{fc['id']}/summary", params={"freq": "Y"}).json()
    assert year["label"] == "FY2026"
    assert year["revenue"] == pytest.approx(120_000.0)
    assert year["cogs"] == pytest.approx(48_000.0)
    assert year["opex"] == pytest.approx(60_000.0)
    assert year["net_profit"] == pytest.approx(12_000.0)

    quarters = client.get(f"/api/forecasts/{fc['id']}/summary", params={"freq": "Q"}).json()
    assert [q["label"] for q in quarters] == ["FY2026 Q1", "FY2026 Q2", "FY2026 Q3", "FY2026 Q4"]
    assert client.get(f"/api/forecasts/{fc['id']}/summary", params={"freq": "W"}).status_code == 422

    validation = client.get(f"/api/forecasts/{fc['id']}/validation").json()
    assert validation["is_valid"] is True
    assert validation["completeness"] == 100

    csv_resp = client.get(f"/api/forecasts/{fc['id']}/export.csv")
    assert csv_resp.status_code == 200
    assert csv_resp.text.startswith("Account Name,Category,Jul 2025")

    xlsx = client.get(f"/api/forecasts/{fc['id']}/export.xlsx")
    assert xlsx.status_code == 200
    assert xlsx.content[:2] == b"PK"


def test_create_version_endpoint(client):
    fc = _create(client)
    _import(client, fc["id"], _pl_csv())
    client.post(f"/api/forecasts/{fc['id']}/generate")

    resp = client.post(
        f"/api/forecasts/{fc['id']}/versions",
        json={"name": "Upside", "parameters": {"revenue_change": 10}},
    )
    assert resp.status_code == 201, resp.text
    version = resp.json()
    assert version["version_number"] == 2
    assert version["parent_forecast_id"] == fc["id"]
    assert client.get(f"/api/forecasts/{fc['id']}").json()["is_active"] is False

    lines = {l["account_name"]: l for l in client.get(f"/api/forecasts/{version['id']}/lines").json()}
    assert sum(lines["Product Sales"]["forecast_months"].values()) == pytest.approx(99_000.0)

    resp = client.post(f"/api/forecasts/{fc['id']}/versions", json={"name": "x", "version_type": "actual"})
    assert resp.status_code == 422


def test_locked_forecast_refuses_edits(client):
    fc = _create(client)
    assert client.put(f"/api/forecasts/{fc['id']}", json={"is_locked": True}).status_code == 200

    resp = client.put(f"/api/forecasts/{fc['id']}/lines", json=[])
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "forecast_locked"
    assert client.post(f"/api/forecasts/{fc['id']}/generate").status_code == 409
    assert _import(client, fc["id"], _pl_csv()).status_code == 409
    assert client.put(f"/api/forecasts/{fc['id']}", json={"revenue_goal": 1}).status_code == 409

    assert client.put(f"/api/forecasts/{fc['id']}", json={"is_locked": False}).status_code == 200
    assert client.put(f"/api/forecasts/{fc['id']}/lines", json=[]).status_code == 200


def test_locked_forecast_rejects_import_and_version_edits(client):
    fc = _create(client)
    _import(client, fc["id"], _pl_csv())
    client.put(f"/api/forecasts/{fc['id']}", json={"is_locked": True})

    resp = _import(client, fc["id"], _pl_csv())
    assert resp.status_code == 409
    assert "is locked" in resp.json()["error"]["message"]
    assert resp.json()["error"]["request_id"] == resp.headers["X-Request-ID"]

    # a new version of a locked forecast starts unlocked and editable
    version = client.post(f"/api/forecasts/{fc['id']}/versions", json={"name": "Reforecast"}).json()
    assert version["is_locked"] is False
    assert client.put(f"/api/forecasts/{version['id']}/lines", json=[]).status_code == 200


def test_readyz_reports_unreachable_database(client, monkeypatch):
    import psycopg2
    from plforecast import server

    def _down():
        raise psycopg2.OperationalError("no route to host")

    monkeypatch.setattr(server, "get_connection", _down)
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "database_unavailable"
