from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.errors import UpstreamError
from app.services.auth.resolver import CredentialResolver
from app.services.upstream.client import UpstreamClient
from app.services.xml_converter import XMLConversionError, xml_to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardedReply:
    """What to send back to the client for a forwarded request.

    ``payload`` is set for a converted 200 response; otherwise ``content`` is
    relayed verbatim with ``status_code`` and ``media_type``.
    """

    status_code: int
    payload: Any = None
    content: bytes = b""
    media_type: str | None = None
    is_json: bool = False


def _wants_json(query: Iterable[tuple[str, str]], response: httpx.Response) -> bool:
    if any(key == "format" and value == "json" for key, value in query):
        return True
    return "json" in response.headers.get("content-type", "").lower()


class ProxyService:
    """Forwards ``/v1/*`` requests to the upstream API."""

    def __init__(self, resolver: CredentialResolver, upstream: UpstreamClient) -> None:
        self._resolver = resolver
        self._upstream = upstream

    async def forward(
        self,
        path: str,
        query: Iterable[tuple[str, str]],
        authorization: str | None,
    ) -> ForwardedReply:
        """Forward *path* with the sanitized *query* and translated credential.

        Raises:
            AuthError: credential missing or malformed.
            UpstreamError: upstream error status, transport failure, or an
                XML body that cannot be converted.
        """
        query = list(query)
        upstream_auth = self._resolver.resolve(authorization, query)
        response = await self._upstream.get(path, upstream_auth)

        if response.status_code != httpx.codes.OK:
            return ForwardedReply(
                status_code=response.status_code,
                content=response.content,
                media_type=response.headers.get("content-type"),
            )

        if _wants_json(query, response):
            try:
                return ForwardedReply(
                    status_code=response.status_code, payload=response.json(), is_json=True
                )
            except ValueError:
                logger.debug("Upstream body for path=%s is not JSON, trying XML", path)

        try:
            payload = xml_to_dict(response.content)
        except XMLConversionError as exc:
            logger.error("XML parsing error for path=%s: %s", path, exc)
            raise UpstreamError("Failed to parse XML response") from exc
        return ForwardedReply(status_code=response.status_code, payload=payload, is_json=True)
