"""
Pieces every EveryCall HTTP service shares: health and metrics routes,
per-request trace ids, and the mapping of errors to JSON responses.
"""

import uuid

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from everycall.errors import EveryCallError
from everycall.logging_config import set_correlation_id

logger = structlog.get_logger(__name__)

TRACE_HEADER = "X-Trace-Id"


def validation_details(exc: RequestValidationError) -> list:
    """Field errors without the rejected input values."""
    details = []
    for err in exc.errors():
        details.append({
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        })
    return details


def build_common_router(service_name: str) -> APIRouter:
    router = APIRouter()

    @router.get("/healthz")
    async def healthz():
        return {"ok": True, "service": service_name}

    @router.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return router


def install_common(app: FastAPI, service_name: str) -> None:
    """Attach health/metrics routes, trace ids and error handlers to ``app``."""
    unhandled_code = f"{service_name.replace('-', '_')}_unhandled_error"

    @app.middleware("http")
    async def trace_context(request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid.uuid4())
        request.state.trace_id = trace_id
        structlog.contextvars.clear_contextvars()
        set_correlation_id(trace_id)
        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(EveryCallError)
    async def everycall_error_handler(request: Request, exc: EveryCallError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("request_validation_failed", path=request.url.path, error_count=len(exc.errors()))
        return JSONResponse(
            status_code=422,
            content={"error": "invalid_payload", "details": validation_details(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(unhandled_code, path=request.url.path, error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"error": "internal_error"})

    app.include_router(build_common_router(service_name))
