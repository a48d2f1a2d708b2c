"""
DocPortal — Request Logging Middleware
========================================

What:  One access-log line per request on the `docportal.access` logger.
Why:   uvicorn's own access log is silenced in setup_logging(); this one adds
       the request id and the handling time.
How:   Measures call_next() with perf_counter and picks the level from the
       status code (5xx → ERROR, 4xx → WARNING, otherwise INFO).

Line format:
    GET /docs/v1.0/getting-started 200 12.3ms [a1b2c3d4] from 10.0.0.7

Not logged:
    - /health (polled by probes every few seconds)
    - /static/* and /docs-media/* (one page view pulls many assets)
    - request bodies and cookies
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from docportal.middleware.request_id import request_id_var

logger = logging.getLogger("docportal.access")

QUIET_PATHS = {"/health", "/favicon.ico"}
QUIET_PREFIXES = ("/static/", "/docs-media/")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS or path.startswith(QUIET_PREFIXES):
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
