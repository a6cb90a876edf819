# =============================================================================
# File: telemetry_service/core/middleware.py
# Description: Middleware configuration for FastAPI application
# =============================================================================

import logging
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

from telemetry_service.core.fastapi_types import FastAPI
from telemetry_service.common.tracing import HTTP_TRACE_ID_HEADER, trace_context

logger = logging.getLogger("telemetry.middleware")


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the FastAPI application"""
    setup_tracing(app)


def setup_tracing(app: FastAPI) -> None:
    """
    Bind a trace id for each request.

    The caller's X-Trace-Id is reused when present, otherwise a new one is
    generated. It is echoed on the response and carried on every event the
    request publishes.
    """

    @app.middleware("http")
    async def bind_trace_id(
            request: Request,
            call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        with trace_context(request.headers.get(HTTP_TRACE_ID_HEADER)) as trace_id:
            response = await call_next(request)
        response.headers[HTTP_TRACE_ID_HEADER] = trace_id
        return response

    logger.debug("Trace id middleware configured")
