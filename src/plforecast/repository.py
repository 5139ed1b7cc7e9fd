"""Storage boundary for forecasts and their lines.

The engine never talks to a datastore directly; callers load and save through
a ``ForecastRepository``.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Optional, Protocol

from .types import AccountLine, ForecastDefinition


class ForecastNotFound(LookupError):
    pass


class ForecastLocked(RuntimeError):
    pass


class ForecastRepository(Protocol):
    def create_forecast(self, definition: ForecastDefinition) -> ForecastDefinition: ...

    def get_forecast(self, forecast_id: str) -> ForecastDefinition: ...

    def update_forecast(self, definition: ForecastDefinition) -> ForecastDefinition: ...

    def list_forecasts(self, business_id: str, fiscal_year: Optional[int] = None) -> list[ForecastDefinition]: ...

    def load_lines(self, forecast_id: str) -> list[AccountLine]: ...

    def save_lines(self, forecast_id: str, lines: list[AccountLine]) -> list[AccountLine]: ...

    def next_version_number(self, business_id: str, fiscal_year: int, forecast_type: str) -> int: ...


def _new_id() -> str:
    return uuid.uuid4().hex


def _with_ids(lines: list[AccountLine]) -> list[AccountLine]:
    return [l if l.id else replace(l, id=_new_id()) for l in lines]


class InMemoryRepository:
    def __init__(self) -> None:
        self._forecasts: dict[str, ForecastDefinition] = {}
        self._lines: dict[str, tuple[AccountLine, ...]] = {}

    def create_forecast(self, definition: ForecastDefinition) -> ForecastDefinition:
        definition.validate()
        stored = replace(definition, id=definition.id or _new_id())
        if stored.id in self._forecasts:
            raise ValueError(f"Forecast {stored.id} already exists")
        self._forecasts[stored.id] = stored
        self._lines[stored.id] = ()
        return stored

    def get_forecast(self, forecast_id: str) -> ForecastDefinition:
        try:
            return self._forecasts[forecast_id]
        except KeyError:
            raise ForecastNotFound(f"Forecast {forecast_id} not found") from None

    def update_forecast(self, definition: ForecastDefinition) -> ForecastDefinition:
        if definition.id not in self._forecasts:
            raise ForecastNotFound(f"Forecast {definition.id} not found")
        definition.validate()
        self._forecasts[definition.id] = definition
        return definition

    def list_forecasts(self, business_id: str, fiscal_year: Optional[int] = None) -> list[ForecastDefinition]:
        found = [
            f
            for f in self._forecasts.values()
            if f.business_id == business_id and (fiscal_year is None or f.fiscal_year == fiscal_year)
        ]
        return sorted(found, key=lambda f: (-f.fiscal_year, -f.version_number))

    def load_lines(self, forecast_id: str) -> list[AccountLine]:
        self.get_forecast(forecast_id)
        return list(self._lines[forecast_id])

    def save_lines(self, forecast_id: str, lines: list[AccountLine]) -> list[AccountLine]:
        self.get_forecast(forecast_id)
        stored = _with_ids(list(lines))
        self._lines[forecast_id] = tuple(stored)
        return stored

    def next_version_number(self, business_id: str, fiscal_year: int, forecast_type: str) -> int:
        versions = [
            f.version_number
            for f in self._forecasts.values()
            if f.business_id == business_id and f.fiscal_year == fiscal_year and f.forecast_type == forecast_type
        ]
        return max(versions, default=0) + 1


class PostgresRepository:
    """``ForecastRepository`` over the PostgreSQL tables in :mod:`plforecast.db`.

    Opens a connection per call, like the rest of the service.
    """

    def __init__(self, connect=None) -> None:
        from . import db

        self._db = db
        self._connect = connect or db.get_connection

    def create_forecast(self, definition: ForecastDefinition) -> ForecastDefinition:
        definition.validate()
        stored = replace(definition, id=definition.id or _new_id())
        conn = self._connect()
        try:
            self._db.insert_forecast(conn, stored.to_dict())
        finally:
            conn.close()
        return stored

    def get_forecast(self, forecast_id: str) -> ForecastDefinition:
        conn = self._connect()
        try:
            row = self._db.get_forecast(conn, forecast_id)
        finally:
            conn.close()
        if not row:
            raise ForecastNotFound(f"Forecast {forecast_id} not found")
        return ForecastDefinition.from_mapping(row)

    def update_forecast(self, definition: ForecastDefinition) -> ForecastDefinition:
        definition.validate()
        conn = self._connect()
        try:
            if not self._db.update_forecast(conn, definition.to_dict()):
                raise ForecastNotFound(f"Forecast {definition.id} not found")
        finally:
            conn.close()
        return definition

    def list_forecasts(self, business_id: str, fiscal_year: Optional[int] = None) -> list[ForecastDefinition]:
        conn = self._connect()
        try:
            rows = self._db.list_forecasts(conn, business_id, fiscal_year)
        finally:
            conn.close()
        return [ForecastDefinition.from_mapping(r) for r in rows]

    def load_lines(self, forecast_id: str) -> list[AccountLine]:
        self.get_forecast(forecast_id)
        conn = self._connect()
        try:
            rows = self._db.list_lines(conn, forecast_id)
        finally:
            conn.close()
        return [AccountLine.from_mapping(r) for r in rows]

    def save_lines(self, forecast_id: str, lines: list[AccountLine]) -> list[AccountLine]:
        self.get_forecast(forecast_id)
        stored = _with_ids(list(lines))
        conn = self._connect()
        try:
            self._db.replace_lines(conn, forecast_id, [l.to_dict() for l in stored])
        finally:
            conn.close()
        return stored

    def next_version_number(self, business_id: str, fiscal_year: int, forecast_type: str) -> int:
        conn = self._connect()
        try:
            return self._db.max_version_number(conn, business_id, fiscal_year, forecast_type) + 1
        finally:
            conn.close()
