# backend/pawsync/middleware/error_handler.py
"""
Error handling middleware for the FastAPI application.

Catches anything a router let escape, logs it with a correlation id and
returns a generic JSON error. Internal messages only reach the response body
in development.
"""

import traceback
import uuid

import psycopg
from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..config import settings
from ..database.exceptions import DatabaseOperationError
from ..enums import LogEmoji, LoggerName
from ..services.logger import get_service_logger
from ..utils.time_utils import format_iso, utc_now

logger = get_service_logger(LoggerName.ERROR_HANDLER, LogEmoji.ERROR)

CORRELATION_HEADER = "X-Correlation-ID"


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Centralized error handling middleware.

    Catches all unhandled exceptions, logs them with correlation IDs,
    and returns user-friendly error responses.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.debug_mode = settings.environment == "development"

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
        except Exception as exc:
            self._log_error(exc, request, correlation_id)
            response = self._create_error_response(exc, correlation_id)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    def _log_error(self, exc: Exception, request: Request, correlation_id: str) -> None:
        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}",
            exception=exc,
            extra_context={
                "correlation_id": correlation_id,
                "exception_type": type(exc).__name__,
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "client_ip": getattr(request.client, "host", "unknown"),
            },
        )

    @staticmethod
    def _error_body(error_type: str, message: str, correlation_id: str) -> dict:
        return {
            "error": {
                "type": error_type,
                "message": message,
                "correlation_id": correlation_id,
                "timestamp": format_iso(utc_now()),
            }
        }

    def _create_error_response(self, exc: Exception, correlation_id: str) -> JSONResponse:
        if isinstance(exc, HTTPException):
            body = self._error_body("http_error", str(exc.detail), correlation_id)
            return JSONResponse(status_code=exc.status_code, content=body)

        if isinstance(exc, ValidationError):
            body = self._error_body(
                "validation_error", "Request validation failed", correlation_id
            )
            body["error"]["details"] = [
                {
                    "field": " -> ".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                    "type": error["type"],
                }
                for error in exc.errors()
            ]
            return JSONResponse(status_code=422, content=body)

        if isinstance(exc, psycopg.OperationalError):
            body = self._error_body(
                "database_error", "Database connection or operation failed", correlation_id
            )
            return JSONResponse(status_code=503, content=body)

        if isinstance(exc, (psycopg.Error, DatabaseOperationError)):
            body = self._error_body("database_error", "Database error occurred", correlation_id)
            return JSONResponse(status_code=500, content=body)

        body = self._error_body(
            "internal_error", "An internal server error occurred", correlation_id
        )
        if self.debug_mode:
            body["error"]["exception_type"] = type(exc).__name__
            body["error"]["exception_message"] = str(exc)
            body["error"]["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=body)
