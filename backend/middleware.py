"""
Rate limiting middleware for Echo Transcribe.
Only POST /transcribe is gated; the limiter runs before the upload is parsed.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from domain.errors import RateLimitError
from ports.rate_limiter import RateLimiterPort

logger = logging.getLogger(__name__)

RATE_LIMITED_PATHS = {"/transcribe"}

RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"


def client_identity(request: Request) -> str:
    """Identify the caller: CF-Connecting-IP, then X-Forwarded-For, then the socket peer."""
    client_ip = request.headers.get("cf-connecting-ip", "").strip()
    if not client_ip:
        client_ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else ""
    return client_ip or "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: RateLimiterPort, max_requests: int = 5, window_seconds: float = 300):
        super().__init__(app)
        self._limiter = limiter
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        identity = client_identity(request)
        if not self._limiter.admit(identity, self._max_requests, self._window_seconds):
            logger.warning(f"Rate limit exceeded for {identity}")
            err = RateLimitError(RATE_LIMIT_MESSAGE)
            return JSONResponse(
                status_code=err.status_code,
                content={"error": err.message},
                headers={RATE_LIMIT_REMAINING_HEADER: "0"},
            )

        response = await call_next(request)
        response.headers[RATE_LIMIT_REMAINING_HEADER] = str(self._limiter.remaining(identity, self._max_requests))
        return response
