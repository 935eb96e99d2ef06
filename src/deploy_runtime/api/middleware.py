"""Request middleware and exception handlers."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import Counter, Histogram
from starlette.exceptions import HTTPException as StarletteHTTPException

from deploy_runtime.core.exceptions import (
    DeployRuntimeError,
    NotFoundError,
    PathInUseError,
    ValidationError,
)

logger = structlog.get_logger()

REQUEST_COUNT = Counter(
    "deploy_runtime_http_requests_total",
    "Total HTTP requests",
    ["method", "context", "status"],
)

REQUEST_DURATION = Histogram(
    "deploy_runtime_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "context"],
)


def status_for(exc: DeployRuntimeError) -> int:
    """HTTP status for a deployment error that escaped its route."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, PathInUseError):
        return 409
    return 500


def _metrics_context(path: str) -> str:
    # First segment only; deployed artifacts make full paths unbounded
    return "/" + path.strip("/").split("/", 1)[0]


def setup_error_handling(app: FastAPI) -> None:
    """Render errors in the endpoint's ``Error - <reason>`` text protocol."""

    @app.exception_handler(DeployRuntimeError)
    async def deploy_error_handler(request: Request, exc: DeployRuntimeError) -> PlainTextResponse:
        status = status_for(exc)
        logger.warning("Deployment error", error=exc.__class__.__name__, reason=str(exc), status_code=status)
        return PlainTextResponse(f"Error - {exc}\n", status_code=status)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        return PlainTextResponse(f"Error - {exc.detail}\n", status_code=exc.status_code, headers=exc.headers)


def setup_request_middleware(app: FastAPI, metrics_enabled: bool = True) -> None:
    """Bind a request id for log correlation, log the outcome and record metrics."""

    @app.middleware("http")
    async def observe_request(request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request failed", duration_seconds=time.perf_counter() - start)
            raise

        duration = time.perf_counter() - start
        logger.info("Request completed", status_code=response.status_code, duration_seconds=duration)
        if metrics_enabled:
            context = _metrics_context(request.url.path)
            REQUEST_COUNT.labels(method=request.method, context=context, status=response.status_code).inc()
            REQUEST_DURATION.labels(method=request.method, context=context).observe(duration)

        response.headers["X-Request-ID"] = request_id
        return response
