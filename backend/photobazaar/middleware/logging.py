"""
PhotoBazaar Backend: Request Logging Middleware
================================================

One access line per request:

    POST /api/photos/1b2c…/purchase 201 38.4ms 512B [a1b2c3d4] from 10.0.0.7

Levels:
    5xx                      ERROR
    4xx                      WARNING
    public image hits (2xx)  DEBUG (thumbnails dominate traffic)
    everything else          INFO

/health is not logged at all. Request bodies, Authorization headers and
uploaded bytes are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from photobazaar.middleware.request_id import request_id_var
from photobazaar.services.file_service import PUBLIC_URL_PREFIX

logger = logging.getLogger("photobazaar.access")

QUIET_PATHS = {"/health"}


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def access_level(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path.startswith(PUBLIC_URL_PREFIX + "/"):
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = access_level(path, response.status_code)
        if not logger.isEnabledFor(level):
            return response

        rid = request_id_var.get("")
        size = response.headers.get("content-length", "-")
        logger.log(
            level,
            "%s %s %d %.1fms %sB [%s] from %s",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            size,
            rid,
            client_ip(request),
            extra={
                "request_id": rid,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        return response
