"""
DocPortal — Request ID Middleware
===================================

What:  Tags every request with a short correlation id.
Why:   Error responses carry the id, so a reader reporting "search failed"
       can be matched to the exact log lines of that request.
How:   Reuses an incoming X-Request-ID header (reverse proxies often set one)
       or generates 8 hex chars; stores it in a ContextVar for loggers and
       exception handlers and echoes it back in the response header.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
