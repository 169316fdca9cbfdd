from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from pydantic import HttpUrl
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import PreviewError, ValidationError
from app.models.preview.schemas import EnrichmentResult, PreviewRecord, PreviewStatus
from app.services.auth.resolver import CredentialResolver
from app.services.preview.guard import is_private_host
from app.services.upstream.client import UpstreamClient
from app.workers.fetcher import PreviewFetcher

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
GENERIC_PREVIEW_ERROR = "Failed to fetch preview metadata"


@dataclass(frozen=True)
class TargetURL:
    url: str
    host: str


@dataclass(frozen=True)
class PreviewOutcome:
    record: PreviewRecord | None = None
    error: str | None = None

    @property
    def status(self) -> PreviewStatus:
        if self.error is not None:
            return PreviewStatus.ERROR
        if self.record is None:
            return PreviewStatus.NO_DATA
        return PreviewStatus.FRESH

    @property
    def log_outcome(self) -> str:
        return {
            PreviewStatus.FRESH: "preview_generated",
            PreviewStatus.NO_DATA: "preview_not_found",
            PreviewStatus.ERROR: "preview_failed",
        }[self.status]


def validate_target(urls: list[str] | None) -> TargetURL:
    """Validate the client-supplied target; only the first value is used.

    Raises:
        ValidationError: missing, unparseable, non-http(s) or private target.
    """
    raw = urls[0].strip() if urls else ""
    if not raw:
        raise ValidationError("url query parameter is required")

    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise ValidationError("Invalid url parameter") from exc
    if not parts.scheme:
        raise ValidationError("Invalid url parameter")
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError("URL must use http or https")

    try:
        normalised = str(HttpUrl(raw))
        host = urlsplit(normalised).hostname
    except (PydanticValidationError, ValueError) as exc:
        raise ValidationError("Invalid url parameter") from exc
    if not host:
        raise ValidationError("Invalid url parameter")

    if is_private_host(host):
        raise ValidationError("URL host is not reachable from the proxy")
    return TargetURL(url=normalised, host=host)


class EnrichmentService:
    """Suggestions from the upstream API merged with a link preview.

    The suggestion call is mandatory: its failure fails the request.  The
    preview is optional: its failure is reported inside a successful
    response.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        upstream: UpstreamClient,
        fetcher: PreviewFetcher,
    ) -> None:
        self._resolver = resolver
        self._upstream = upstream
        self._fetcher = fetcher

    async def suggest_with_preview(
        self, urls: list[str] | None, authorization: str | None
    ) -> EnrichmentResult:
        # ── Validating ───────────────────────────────────────────────
        target = validate_target(urls)
        upstream_auth = self._resolver.resolve(
            authorization, [("url", target.url), ("format", "json")]
        )

        # ── Dispatching ──────────────────────────────────────────────
        suggestions, outcome = await asyncio.gather(
            self._upstream.suggest(upstream_auth),
            self._preview(target.url),
            return_exceptions=True,
        )

        # ── Merging ──────────────────────────────────────────────────
        if isinstance(suggestions, BaseException):
            raise suggestions
        if isinstance(outcome, BaseException):
            outcome = PreviewOutcome(error=GENERIC_PREVIEW_ERROR)

        result = EnrichmentResult(
            suggestions=suggestions,
            preview=outcome.record,
            preview_status=outcome.status,
            preview_error=outcome.error,
        )

        # ── Responding ───────────────────────────────────────────────
        observation = {
            "identity": upstream_auth.identity,
            "target_host": target.host,
            "outcome": outcome.log_outcome,
        }
        if outcome.error:
            logger.info(
                "[preview] user=%s host=%s outcome=%s message=%r",
                upstream_auth.identity,
                target.host,
                outcome.log_outcome,
                outcome.error,
                extra=observation,
            )
        else:
            logger.info(
                "[preview] user=%s host=%s outcome=%s",
                upstream_auth.identity,
                target.host,
                outcome.log_outcome,
                extra=observation,
            )
        return result

    async def _preview(self, url: str) -> PreviewOutcome:
        """Run the preview fetch; failures become a sanitized message."""
        try:
            return PreviewOutcome(record=await self._fetcher.fetch(url))
        except PreviewError as exc:
            return PreviewOutcome(error=exc.message)
        except Exception:
            logger.exception("Unexpected preview failure")
            return PreviewOutcome(error=GENERIC_PREVIEW_ERROR)
