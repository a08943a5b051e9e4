"""
Application Middleware for the Engagement API.

- `CorrelationMiddleware`: assigns a correlation ID to every request (taken
  from `X-Correlation-ID` / `X-Request-ID` when the caller sends one), stores
  it for the logging filter and echoes it on the response.
- `engagement_exception_handler`: renders `EngagementAPIException` subclasses
  as the standard JSON error body with the matching HTTP status.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import set_correlation_id, get_logger
from .exceptions import EngagementAPIException, to_http_exception

logger = get_logger("core.middleware")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        return response


async def engagement_exception_handler(
    request: Request, exc: EngagementAPIException
) -> JSONResponse:
    """Translate application exceptions into JSON error responses"""
    http_exc = to_http_exception(exc)
    log = logger.error if http_exc.status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "error_type": type(exc).__name__,
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=http_exc.status_code,
        content={
            "error": {
                "type": type(exc).__name__,
                "code": exc.error_code,
                "message": exc.message,
                "details": exc.details,
                "correlation_id": getattr(request.state, "correlation_id", None),
            }
        },
    )
