"""
API Error Envelope - unified error response format

Every error response has the same shape:

{
  "ok": false,
  "error_code": "CYCLE_DETECTED",
  "message": "Human-readable message",
  "details": {...},
  "timestamp": "2026-01-31T12:34:56.789Z"
}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from resourcedeps.core.dependencies.errors import (
    ConflictError,
    DependencyError,
    GraphTooDeepError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from resourcedeps.core.time import utc_now_iso

logger = logging.getLogger(__name__)

GRAPH_FAILURE_MESSAGE = "Dependency graph could not be computed"

# Status code per error family; subclasses inherit their family's code
STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


class ErrorEnvelope:
    """Builds error response bodies"""

    @staticmethod
    def format_error(
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Format an error response with consistent structure

        Args:
            error_code: Machine-readable error code (e.g. "NOT_FOUND")
            message: Human-readable error message
            details: Additional error details (optional)
        """
        return {
            "ok": False,
            "error_code": error_code,
            "message": message,
            "details": jsonable_encoder(details or {}),
            "timestamp": utc_now_iso(),
        }


def status_for(error: DependencyError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_error_handlers(app: FastAPI) -> None:
    """
    Register error handlers for consistent error responses

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(DependencyError)
    async def dependency_error_handler(request: Request, exc: DependencyError):
        if isinstance(exc, GraphTooDeepError):
            # Integrity problem, already logged by the graph builder; keep internals private
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorEnvelope.format_error(
                    error_code="INTERNAL_ERROR",
                    message=GRAPH_FAILURE_MESSAGE,
                ),
            )

        status_code = status_for(exc)
        logger.warning(
            f"{exc.error_code} on {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorEnvelope.format_error(
                error_code=exc.error_code,
                message=exc.message,
                details=exc.details(),
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert pydantic validation errors into the standard envelope"""
        formatted_errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]

        logger.warning(f"Validation error on {request.method} {request.url.path}: {formatted_errors}")

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorEnvelope.format_error(
                error_code="VALIDATION_ERROR",
                message="Request validation failed",
                details={"errors": formatted_errors},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        logger.warning(
            f"HTTP exception on {request.method} {request.url.path}: "
            f"status={exc.status_code}, detail={detail}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorEnvelope.format_error(
                error_code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
                message=str(detail) if detail else "An error occurred",
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all: log with traceback, never expose internals"""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorEnvelope.format_error(
                error_code="INTERNAL_ERROR",
                message="Internal server error",
            ),
        )
