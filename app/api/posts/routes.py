import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.rate_limit import get_identity_key, limiter
from app.models.common import ErrorResponse
from app.services.auth.resolver import CredentialResolver
from app.services.enrichment.service import EnrichmentService
from app.services.upstream.client import UpstreamClient
from app.services.upstream.client import get_http_client as get_upstream_client
from app.workers.fetcher import PreviewFetcher
from app.workers.fetcher import get_http_client as get_preview_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def _get_service() -> EnrichmentService:
    """FastAPI dependency that builds an ``EnrichmentService`` for each request."""
    return EnrichmentService(
        CredentialResolver(),
        UpstreamClient(settings, get_upstream_client(settings)),
        PreviewFetcher(settings, get_preview_client(settings)),
    )


# ---------------------------------------------------------------------------
# GET /posts/suggest-with-preview
# ---------------------------------------------------------------------------


@router.get(
    "/suggest-with-preview",
    summary="Upstream tag suggestions plus a link preview for a URL",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
@limiter.limit(settings.rate_limit_preview, key_func=get_identity_key)
async def suggest_with_preview(
    request: Request,
    url: list[str] | None = Query(default=None),
    service: EnrichmentService = Depends(_get_service),
) -> JSONResponse:
    """Return upstream suggestions for *url* together with its preview.

    The preview never fails the request: ``previewStatus`` is ``fresh``,
    ``no_data`` or ``error`` (with ``previewError``).

    - **200** — suggestions, plus preview outcome
    - **400** — missing, invalid, non-http(s) or private URL
    - **401** — missing or malformed credentials
    - **504** / other — the suggestion call failed
    """
    result = await service.suggest_with_preview(url, request.headers.get("Authorization"))
    return JSONResponse(content=result.to_response())
