"""
Rate limiting for API endpoints.

Uses slowapi with in-process storage.  Forwarded ``/v1`` calls are limited
per client IP; preview calls are limited per identity (the Authorization
header, hashed so the raw credential never becomes a storage key), falling
back to the client IP.
"""

import hashlib
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
PREVIEW_RATE_LIMIT_MESSAGE = "Too many preview requests, please slow down."


def get_identity_key(request: Request) -> str:
    """Key preview requests by credential, or by client IP when anonymous."""
    authorization = request.headers.get("Authorization", "")
    if authorization:
        digest = hashlib.sha256(authorization.encode("utf-8")).hexdigest()
        return f"auth:{digest}"
    return f"ip:{get_remote_address(request)}"


# No default limits; each endpoint declares its own
limiter = Limiter(
    key_func=get_remote_address,
    strategy="fixed-window",
    default_limits=[],
    headers_enabled=True,
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a 429 with ``Retry-After`` and ``X-RateLimit-*`` headers."""
    message = (
        PREVIEW_RATE_LIMIT_MESSAGE
        if request.url.path.startswith("/posts/")
        else RATE_LIMIT_MESSAGE
    )
    logger.warning("Rate limit exceeded on %s: %s", request.url.path, exc.detail)
    response = JSONResponse(status_code=429, content={"error": message})
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
