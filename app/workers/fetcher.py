"""Async preview fetcher.

Retrieves a single HTML page for link-preview extraction under strict
limits: a total time budget, a redirect cap, a streamed size cap and an
HTML-only content type.  Every outbound hop, redirects included, is checked
against the private-host guard before it is sent.

Uses httpx.AsyncClient which is meant to be long-lived and reused.
A single shared client is managed by the module; see ``get_http_client``
and ``close_http_client`` for lifecycle hooks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit

import httpx

from app.core.config import Settings
from app.core.errors import (
    ContentTooLarge,
    FetchError,
    FetchTimeout,
    PreviewError,
    UnsupportedContentType,
)
from app.models.preview.schemas import PreviewRecord
from app.services.preview.extractor import MetadataExtractor
from app.services.preview.guard import is_private_host

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
ACCEPT_HEADER = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"

# Module-level shared client
_http_client: Optional[httpx.AsyncClient] = None


async def _guard_request(request: httpx.Request) -> None:
    """httpx request hook: refuse to contact private hosts, including via redirect."""
    if is_private_host(request.url.host):
        raise FetchError("Preview host is not reachable from the proxy")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.preview_timeout),
        follow_redirects=True,
        max_redirects=settings.preview_max_redirects,
        headers={"User-Agent": settings.preview_user_agent, "Accept": ACCEPT_HEADER},
        event_hooks={"request": [_guard_request]},
    )


def get_http_client(settings: Settings) -> httpx.AsyncClient:
    """Return the shared AsyncClient.  Creates one if missing."""
    global _http_client  # noqa: PLW0603
    if _http_client is None or _http_client.is_closed:
        _http_client = build_http_client(settings)
    return _http_client


async def close_http_client() -> None:
    """Close the shared AsyncClient gracefully."""
    global _http_client  # noqa: PLW0603
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        _http_client = None
        logger.info("Preview HTTP client closed.")


def _is_html(content_type: str) -> bool:
    lowered = content_type.lower()
    return any(kind in lowered for kind in HTML_CONTENT_TYPES)


def _decode(body: bytes, charset: str | None) -> str | bytes:
    """Decode with the header charset; without one, leave sniffing to the parser.

    BeautifulSoup reads a ``<meta charset>`` declaration from raw bytes.
    """
    if not charset:
        return body
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body


class PreviewFetcher:
    """Fetches a page and hands it to the :class:`MetadataExtractor`."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        extractor: MetadataExtractor | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._extractor = extractor or MetadataExtractor()

    async def fetch(self, target_url: str) -> PreviewRecord | None:
        """Fetch *target_url* and extract its preview metadata.

        Returns ``None`` when the page carries no usable metadata.

        Raises:
            FetchTimeout: the whole exchange exceeded ``preview_timeout``.
            ContentTooLarge: the body exceeded ``preview_max_bytes``.
            UnsupportedContentType: the response is not HTML.
            FetchError: any other transport or status failure.
        """
        try:
            html, final_url = await asyncio.wait_for(
                self._download(target_url), timeout=self._settings.preview_timeout
            )
        except asyncio.TimeoutError as exc:
            raise FetchTimeout() from exc

        return self._extractor.extract(html, final_url, target_url)

    async def _download(self, url: str) -> tuple[str | bytes, str]:
        """Stream the page body, enforcing the size cap during transfer."""
        limit = self._settings.preview_max_bytes
        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchError(
                        f"Preview request failed with status {response.status_code}"
                    )

                if not _is_html(response.headers.get("content-type", "")):
                    raise UnsupportedContentType()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise ContentTooLarge(f"Preview response exceeds {limit} bytes")

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        raise ContentTooLarge(f"Preview response exceeds {limit} bytes")

                final_url = str(response.url)
                document = _decode(bytes(body), response.charset_encoding)
        except PreviewError:
            raise
        except httpx.TimeoutException as exc:
            raise FetchTimeout() from exc
        except httpx.TooManyRedirects as exc:
            raise FetchError("Preview request exceeded the redirect limit") from exc
        except httpx.InvalidURL as exc:
            raise FetchError("Invalid preview URL") from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Preview fetch failed for host=%s: %s", urlsplit(url).hostname, type(exc).__name__
            )
            raise FetchError(f"Preview request failed: {type(exc).__name__}") from exc

        return document, final_url
