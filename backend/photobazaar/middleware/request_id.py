"""
PhotoBazaar Backend: Request ID Middleware
===========================================

What:  Assigns every request a short correlation id and echoes it back in
       the X-Request-ID response header.
How:   A client-supplied X-Request-ID is reused; otherwise eight hex chars of
       a fresh UUID. The id lives in a ContextVar so loggers and exception
       handlers can read it without access to the request object.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local; concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        # Cap client-supplied ids so they cannot bloat log lines
        rid = rid[:64]

        # Left set after the response so the outer 500 handler can still read it
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
