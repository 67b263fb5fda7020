from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi import status as http
from fastapi.responses import JSONResponse

from trendcast.schemas.common import fail

from .metrics import REQUEST_COUNTER, REQUEST_LATENCY, record_latency

logger = structlog.get_logger("http")

UNMATCHED_PATH = "<unmatched>"


def _route_path(request: Request) -> str:
    # route template, never the raw request path
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = request_id
    structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration = (time.perf_counter() - start) * 1000
        _record(request, duration, http.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.exception("request.error", duration_ms=round(duration, 2))
        structlog.contextvars.clear_contextvars()
        raise

    duration = (time.perf_counter() - start) * 1000
    _record(request, duration, response.status_code)
    logger.info("request.completed", status_code=response.status_code, duration_ms=round(duration, 2))
    structlog.contextvars.clear_contextvars()
    response.headers["X-Request-Id"] = request_id
    return response


def _record(request: Request, duration_ms: float, status_code: int) -> None:
    path = _route_path(request)
    record_latency(path, duration_ms)
    REQUEST_COUNTER.labels(path=path, method=request.method, status=str(status_code)).inc()
    REQUEST_LATENCY.labels(path=path, method=request.method).observe(duration_ms / 1000)


def register_request_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception("request.unhandled_exception", exc_type=type(exc).__name__, error=str(exc))
    return fail(
        "internal_error",
        "Internal Server Error",
        status_code=http.HTTP_500_INTERNAL_SERVER_ERROR,
        details={"requestId": request_id} if request_id else None,
    )
