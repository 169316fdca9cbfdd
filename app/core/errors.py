"""Error taxonomy and the FastAPI handlers that render it.

Every error body leaving the gateway has the shape ``{"error": <message>}``.
Messages are short summaries; they never carry credentials, request headers
or upstream bodies.
"""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# ── Credentials ──────────────────────────────────────────────────────


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class MissingCredential(AuthError):
    default_message = "Authorization header required"


class MalformedBasicCredential(AuthError):
    default_message = "Invalid Basic authorization header"


class MalformedBearerCredential(AuthError):
    default_message = "Invalid Bearer authorization header"


# ── Target URL validation ────────────────────────────────────────────


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


# ── Upstream API ─────────────────────────────────────────────────────


class UpstreamError(AppError):
    default_message = "API request failed"


class UpstreamTimeout(UpstreamError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Gateway timeout"


# ── Preview (never surfaced as a failing status) ─────────────────────


class PreviewError(AppError):
    default_message = "Failed to fetch preview metadata"


class FetchError(PreviewError):
    """Raised when the preview page cannot be retrieved."""


class FetchTimeout(PreviewError):
    default_message = "Preview request timed out"


class ContentTooLarge(PreviewError):
    default_message = "Preview response is too large"


class UnsupportedContentType(PreviewError):
    default_message = "Preview response is not HTML"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = "Not found"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


async def python_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
