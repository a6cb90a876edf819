# =============================================================================
# File: telemetry_service/core/exceptions.py
# Description: Exception handlers for FastAPI application
# =============================================================================

import logging
from fastapi import Request
from telemetry_service.core.fastapi_types import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette import status
from starlette.responses import JSONResponse

from telemetry_service.common.base.base_model import utc_now
from telemetry_service.common.exceptions.exceptions import InfrastructureError, ValidationError

logger = logging.getLogger("telemetry.exceptions")

SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""

    app.add_exception_handler(ValidationError, telemetry_validation_exception_handler)
    app.add_exception_handler(InfrastructureError, infrastructure_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


def error_body(status_code: int, message: str) -> dict:
    return {
        "status": status_code,
        "message": message,
        "timestamp": utc_now().isoformat(),
    }


async def telemetry_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Rejected readings (missing fields, future date)"""
    logger.info(f"Rejected request on path {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, str(exc)),
    )


async def infrastructure_exception_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
    """Database down, or an event that could be neither published nor parked"""
    logger.error(f"{type(exc).__name__} on path {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body(status.HTTP_503_SERVICE_UNAVAILABLE, SERVICE_UNAVAILABLE_MESSAGE),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body type errors"""
    logger.warning(f"Validation error on path {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "loc": error["loc"],
            "msg": error["msg"],
            "type": error["type"],
        }

        if "ctx" in error:
            ctx = {}
            for key, value in error["ctx"].items():
                if isinstance(value, Exception):
                    ctx[key] = str(value)
                else:
                    ctx[key] = value
            error_dict["ctx"] = ctx

        errors.append(error_dict)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general unhandled exceptions"""
    logger.error(f"Unhandled exception on path {request.url.path}: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE),
    )
