"""FastAPI application: error envelope, request logging, CORS and health probes around the /api router."""

from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from . import __version__
from .api import limiter, router as api_router
from .db import get_connection, init_db
from .importer import CSVImportError
from .repository import ForecastLocked, ForecastNotFound

logger = logging.getLogger("plforecast.api")

# Forecast-domain failures raised below the router, with their HTTP status and error code.
DOMAIN_ERRORS: dict[type[Exception], tuple[int, str]] = {
    ForecastNotFound: (404, "forecast_not_found"),
    ForecastLocked: (409, "forecast_locked"),
    CSVImportError: (400, "invalid_csv"),
}

# Codes for the HTTPExceptions the router raises itself.
HTTP_ERROR_CODES = {
    400: "bad_request",
    413: "payload_too_large",
    503: "database_unavailable",
}


@asynccontextmanager
async def lifespan(_: FastAPI):
    if os.environ.get("PLFORECAST_SKIP_DB_INIT"):
        logger.info("Skipping forecast schema init")
    else:
        try:
            init_db()
        except Exception:
            logger.exception("Forecast schema init failed; forecast endpoints need a reachable database")
    yield


app = FastAPI(title="P&L Forecast API", version=__version__, lifespan=lifespan)
app.state.limiter = limiter


def _envelope(request: Request, status_code: int, code: str, message: str, detail: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": message if detail is None else detail,
            "error": {
                "code": code,
                "message": message,
                "request_id": getattr(request.state, "request_id", ""),
            },
        },
    )


async def _domain_error(request: Request, exc: Exception) -> JSONResponse:
    status_code, code = next(v for t, v in DOMAIN_ERRORS.items() if isinstance(exc, t))
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, code, exc)
    return _envelope(request, status_code, code, str(exc))


for _exc_type in DOMAIN_ERRORS:
    app.add_exception_handler(_exc_type, _domain_error)


@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return _envelope(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(request, 422, "validation_error", "Request validation failed", exc.errors())


@app.exception_handler(RateLimitExceeded)
async def _rate_limited(request: Request, _: RateLimitExceeded) -> JSONResponse:
    return _envelope(request, 429, "rate_limited", "Too many forecast generations, try again shortly")


@app.exception_handler(Exception)
async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s rid=%s",
        request.method,
        request.url.path,
        getattr(request.state, "request_id", ""),
    )
    return _envelope(request, 500, "internal_error", "Internal server error")


@app.middleware("http")
async def _request_id_and_timing(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    logger.info(
        "%s %s -> %s in %.2fms rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000.0,
        rid,
    )
    return response


# ALLOWED_ORIGINS: comma-separated front-end origins allowed to call the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
def root():
    return {"service": "plforecast", "version": __version__}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/readyz")
def readyz():
    """Ready once the forecast database answers."""
    try:
        conn = get_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc.__class__.__name__}") from exc
    conn.close()
    return {"ok": True}
