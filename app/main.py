from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api.router import router
from app.core.config import settings
from app.core.errors import (
    AppError,
    app_error_handler,
    http_exception_handler,
    python_exception_handler,
)
from app.core.log_filters import RedactLegacyTokenFilter
from app.core.middleware import (
    CORS_ALLOWED_HEADERS,
    CORS_ALLOWED_METHODS,
    origin_allowlist,
    security_headers,
)
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.models.common import HealthResponse
from app.services.upstream.client import close_http_client as close_upstream_client
from app.workers.fetcher import close_http_client as close_preview_client

_STARTED_AT = time.monotonic()


def _configure_logging() -> None:
    """Configure the ``app`` logger namespace.

    ``logging.basicConfig`` is a no-op when the root logger already has
    handlers (e.g. when uvicorn sets up its own handlers before our lifespan
    runs).  Configuring the ``app`` namespace directly, with
    ``propagate = False``, ensures all application logs reach stdout
    regardless of uvicorn's root-logger setup.

    uvicorn's access log gets a filter that masks ``auth_token`` values.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    )
    app_log = logging.getLogger("app")
    app_log.setLevel(level)
    if not app_log.handlers:
        app_log.addHandler(handler)
    app_log.propagate = False

    access_log = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, RedactLegacyTokenFilter) for f in access_log.filters):
        access_log.addFilter(RedactLegacyTokenFilter())


_configure_logging()
logger = logging.getLogger("app.main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ── Startup ──────────────────────────────────────────────────────
    origins = settings.allowed_origin_list
    if origins:
        logger.info("CORS: restricted to %d origins", len(origins))
    else:
        logger.info("CORS: all origins allowed (set ALLOWED_ORIGINS to restrict)")
    yield
    # ── Shutdown ─────────────────────────────────────────────────────
    await close_preview_client()
    await close_upstream_client()


app = FastAPI(
    title="Pinboard Bridge",
    description="Credential-normalizing gateway for the Pinboard API with link previews.",
    version="2.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter

# Last added runs first: the origin check wraps CORS handling.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origin_list or ["*"],
    allow_credentials=True,
    allow_methods=CORS_ALLOWED_METHODS,
    allow_headers=CORS_ALLOWED_HEADERS,
)
app.middleware("http")(origin_allowlist(settings.allowed_origin_list))
app.middleware("http")(security_headers)
# Outermost: the rate limiter must see the forwarded client address
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.forwarded_allow_ips)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, python_exception_handler)

app.include_router(router)


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        uptime=time.monotonic() - _STARTED_AT,
        timestamp=datetime.now(timezone.utc),
    )
