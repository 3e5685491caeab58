"""
StitchCraft Backend — Request Logging Middleware
=================================================

What:  One access log line per HTTP request.
How:   Logs method, path, status, duration, request ID and the organization
       the request acted for, at a level chosen by the status code.
When:  After RequestIDMiddleware (uses the request ID for correlation).

Example:
    POST /api/clients/3f.../measurements/sync 201 18.4ms [a1b2c3d4] org=9c... from 10.0.0.7

Privacy: request bodies (measurements, names, phone numbers) are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("stitchcraft.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with its outcome.

    5xx → ERROR, 4xx → WARNING, everything else → INFO.
    /health is skipped; probes hit it every few seconds.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        # Set by get_request_context on tenant-scoped routes
        organization_id = getattr(request.state, "organization_id", None) or "-"

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] org=%s from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            organization_id,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "organization_id": organization_id,
                "client_ip": client_ip,
            },
        )

        return response
