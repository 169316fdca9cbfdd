"""Client for the upstream bookmarking API.

Issues authenticated GET requests against ``settings.upstream_base_url``.
The shared AsyncClient follows the same lifecycle as the preview fetcher's:
created on first use, closed from the application lifespan.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from app.core.config import Settings
from app.core.errors import UpstreamError, UpstreamTimeout
from app.models.credentials import UpstreamAuth

logger = logging.getLogger(__name__)

SUGGEST_PATH = "/v1/posts/suggest"
_SUMMARY_LENGTH = 200

# Module-level shared client
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client(settings: Settings) -> httpx.AsyncClient:
    """Return the shared AsyncClient.  Creates one if missing."""
    global _http_client  # noqa: PLW0603
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.upstream_timeout))
    return _http_client


async def close_http_client() -> None:
    """Close the shared AsyncClient gracefully."""
    global _http_client  # noqa: PLW0603
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        _http_client = None
        logger.info("Upstream HTTP client closed.")


def summarize_error(response: httpx.Response) -> str:
    """Short message for a failed upstream response.

    Prefers an ``error`` field from a JSON body, otherwise the leading text
    of the body.  Never returns more than a couple of hundred characters.
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("error"), str):
        message = data["error"]
    elif isinstance(data, str):
        message = data
    else:
        message = response.text

    message = " ".join(message.split())[:_SUMMARY_LENGTH]
    return message or "API request failed"


class UpstreamClient:
    """Thin wrapper that maps transport failures onto the error taxonomy."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    def url_for(self, path: str) -> str:
        return self._settings.upstream_base_url.rstrip("/") + "/" + path.lstrip("/")

    async def get(self, path: str, upstream_auth: UpstreamAuth) -> httpx.Response:
        """GET *path* with the translated credential attached.

        Responses with a 4xx/5xx status raise :class:`UpstreamError` carrying
        the upstream status; other statuses are returned as-is.

        Raises:
            UpstreamTimeout: the upstream did not answer within the timeout.
            UpstreamError: error status or transport failure.
        """
        try:
            response = await self._client.get(
                self.url_for(path),
                params=upstream_auth.params,
                auth=upstream_auth.auth,
                timeout=self._settings.upstream_timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("Upstream request timed out: path=%s", path)
            raise UpstreamTimeout() from exc
        except httpx.RequestError as exc:
            logger.error("Upstream request failed: path=%s error=%s", path, type(exc).__name__)
            raise UpstreamError("Internal server error") from exc

        if response.is_error:
            logger.warning(
                "Upstream returned %s for path=%s user=%s",
                response.status_code,
                path,
                upstream_auth.identity,
            )
            raise UpstreamError(summarize_error(response), status_code=response.status_code)
        return response

    async def suggest(self, upstream_auth: UpstreamAuth) -> Any:
        """Call ``posts/suggest`` and return the decoded JSON body.

        The target URL travels in ``upstream_auth.params`` alongside
        ``format=json``.
        """
        response = await self.get(SUGGEST_PATH, upstream_auth)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Failed to parse suggestion response") from exc
