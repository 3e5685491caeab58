"""
StitchCraft Backend — Rate Limiting Middleware
===============================================

What:  Per-IP sliding window rate limiter.
How:   Tracks request timestamps per client IP in memory. The organization
       header is caller-supplied and unverified, so it never selects the
       bucket.
When:  First in the middleware chain (rejects abuse before any processing).

Algorithm: Sliding Window Counter
    1. Each key gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If the remaining count >= limit, reject with 429
    4. Otherwise record the current timestamp and allow through

Single-process only. Multi-worker deployments need a shared store (Redis).
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Configuration (from settings):
        rate_limit_requests: Max requests per window
        rate_limit_window: Window duration in seconds

    Health checks and API docs are never limited.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        key = rate_limit_key(request)
        now = time.time()
        window_start = now - settings.rate_limit_window

        self._requests[key] = [ts for ts in self._requests[key] if ts > window_start]

        if len(self._requests[key]) >= settings.rate_limit_requests:
            oldest = self._requests[key][0]
            exc = RateLimitExceededError(
                retry_after=int(oldest + settings.rate_limit_window - now) + 1
            )
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                key,
                len(self._requests[key]),
                settings.rate_limit_window,
            )
            # Exception handlers do not see errors raised in middleware
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        self._requests[key].append(now)

        # Every ~1000 requests, forget keys with no recent traffic
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_keys(window_start)

        return await call_next(request)

    def _cleanup_inactive_keys(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for key in inactive:
            del self._requests[key]

        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))
