"""FastAPI application for OrderTrack."""

from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from ordertrack import __version__
from ordertrack.core.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
    get_logger,
)
from ordertrack.web.routes import health, orders

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="OrderTrack",
    description="Work order import, reconciliation and archival",
    version=__version__,
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        clear_run_context()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        bind_run_context(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLoggingMiddleware)

app.include_router(health.router)
app.include_router(orders.router)
