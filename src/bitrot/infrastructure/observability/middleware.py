"""Request logging middleware with correlation IDs."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from bitrot.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


# Hey future me, the extensions hit /release/lookup on every page view, so the per-request
# line stays at DEBUG for 2xx and only failures go out at INFO/ERROR. The correlation id is
# set BEFORE the route runs, so the matcher's log lines for a manual match carry it too.
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its duration and echo the correlation ID header."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        set_correlation_id(request.headers.get(CORRELATION_HEADER))
        method = request.method
        path = request.url.path

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed: %s %s",
                method,
                path,
                extra={"method": method, "path": path, "error_type": type(e).__name__},
            )
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        level = logging.DEBUG if response.status_code < 400 else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%dms)",
            method,
            path,
            response.status_code,
            duration_ms,
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers[CORRELATION_HEADER] = get_correlation_id()
        return response
