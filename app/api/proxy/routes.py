import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.rate_limit import limiter
from app.models.common import ErrorResponse
from app.services.auth.resolver import CredentialResolver
from app.services.proxy.service import ProxyService
from app.services.upstream.client import UpstreamClient, get_http_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["proxy"])


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def _get_service() -> ProxyService:
    """FastAPI dependency that builds a ``ProxyService`` for each request."""
    return ProxyService(
        CredentialResolver(),
        UpstreamClient(settings, get_http_client(settings)),
    )


# ---------------------------------------------------------------------------
# GET /v1/*
# ---------------------------------------------------------------------------


@router.get(
    "/{path:path}",
    summary="Forward a request to the upstream API",
    responses={
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
@limiter.limit(settings.rate_limit_default)
async def forward(
    request: Request,
    path: str,
    service: ProxyService = Depends(_get_service),
) -> Response:
    """Forward the path and query to the upstream API.

    ``Authorization: Basic`` becomes upstream Basic auth; ``Authorization:
    Bearer user:token`` becomes the upstream ``auth_token`` parameter.  A
    client-supplied ``auth_token`` query parameter is always dropped.

    - **200** — upstream body, XML converted to JSON
    - **401** — missing or malformed credentials
    - **504** — upstream timed out
    - other — upstream status relayed
    """
    reply = await service.forward(
        request.url.path,
        request.query_params.multi_items(),
        request.headers.get("Authorization"),
    )
    if reply.is_json:
        return JSONResponse(status_code=reply.status_code, content=reply.payload)
    return Response(
        status_code=reply.status_code,
        content=reply.content,
        media_type=reply.media_type,
    )
