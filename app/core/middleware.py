"""HTTP middleware: origin allowlist and security headers."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

CORS_ALLOWED_METHODS = ["GET", "OPTIONS"]
CORS_ALLOWED_HEADERS = [
    "Content-Type",
    "X-Requested-With",
    "X-HTTP-Method-Override",
    "Origin",
    "Accept",
    "Authorization",
]

SECURITY_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def origin_allowlist(allowed_origins: list[str] | None):
    """Build a middleware rejecting requests from origins outside the list.

    Requests without an ``Origin`` header (curl, mobile apps) pass through,
    as does everything when *allowed_origins* is ``None``.
    """
    allowed = frozenset(allowed_origins or ())

    async def reject_disallowed_origin(request: Request, call_next: CallNext) -> Response:
        origin = request.headers.get("origin")
        if allowed_origins is None or not origin or origin in allowed:
            return await call_next(request)
        logger.warning("Rejected request from origin %s", origin)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": "Origin not allowed by CORS policy"},
        )

    return reject_disallowed_origin


async def security_headers(request: Request, call_next: CallNext) -> Response:
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
