# backend/pawsync/middleware/request_logger.py
"""
Request logging middleware: one line per request with status and timing.
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..enums import LogEmoji, LoggerName
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.MIDDLEWARE, LogEmoji.REQUEST)

SLOW_REQUEST_SECONDS = 5.0


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Logs every request except health checks and API docs."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.exclude_paths = {
            "/api/health",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/favicon.ico",
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.monotonic()
        correlation_id = getattr(request.state, "correlation_id", "unknown")

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            logger.error(
                f"{request.method} {request.url.path} -> FAILED ({duration_ms}ms)",
                extra_context={
                    "correlation_id": correlation_id,
                    "exception_type": type(exc).__name__,
                },
            )
            raise

        duration = time.monotonic() - start_time
        duration_ms = round(duration * 1000, 2)
        message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)"
        context = {"correlation_id": correlation_id, "status_code": response.status_code}

        if response.status_code >= 500:
            logger.error(message, extra_context=context)
        elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
            logger.warning(message, extra_context=context, emoji=LogEmoji.WARNING)
        else:
            logger.info(message, extra_context=context)
        return response
