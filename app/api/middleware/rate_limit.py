"""
Rate Limiting Middleware

Per-client-IP rate limiting with Redis backend, proper headers, and logging.
Fails open: when Redis is unavailable every request is allowed.
"""

import logging

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.infra.redis import get_rate_limiter_store

logger = logging.getLogger(__name__)

# Paths that skip rate limiting (health checks, docs)
RATE_LIMIT_SKIP_PATHS = {
    "/",
    "/health",
    "/health/ready",
    "/health/live",
    "/docs",
    "/redoc",
    "/openapi.json",
}

# Header names
HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"


def should_skip_rate_limit(request: Request) -> bool:
    """
    Check if request should skip rate limiting.

    Skips:
    - Health check endpoints
    - Documentation endpoints
    - OPTIONS requests (CORS preflight)
    """
    if request.url.path in RATE_LIMIT_SKIP_PATHS:
        return True

    if request.method == "OPTIONS":
        return True

    return False


def client_identifier(request: Request) -> str:
    """Rate limit key for the caller, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def add_rate_limit_headers(
    response: Response,
    limit: int,
    remaining: int,
    reset_seconds: int,
) -> None:
    """Add rate limit headers to response."""
    response.headers[HEADER_LIMIT] = str(limit)
    response.headers[HEADER_REMAINING] = str(remaining)
    response.headers[HEADER_RESET] = str(reset_seconds)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware that enforces the per-IP limit and adds rate limit headers.

    Rejected requests get a 429 with Retry-After; the handler is not called.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if should_skip_rate_limit(request):
            return await call_next(request)

        store = await get_rate_limiter_store()
        identifier = client_identifier(request)
        allowed, remaining, reset_seconds = await store.is_allowed(identifier)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded | Client: {identifier} | "
                f"Limit: {store.max_requests} | Path: {request.url.path}"
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate limit exceeded",
                    "limit": store.max_requests,
                    "retry_after": reset_seconds,
                },
                headers={
                    HEADER_LIMIT: str(store.max_requests),
                    HEADER_REMAINING: "0",
                    HEADER_RESET: str(reset_seconds),
                    HEADER_RETRY_AFTER: str(reset_seconds),
                },
            )

        response = await call_next(request)
        add_rate_limit_headers(response, store.max_requests, remaining, reset_seconds)
        return response

