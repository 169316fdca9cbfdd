from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.core.errors import (
    FetchTimeout,
    MissingCredential,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from app.models.preview.schemas import PreviewRecord, PreviewStatus
from app.services.auth.resolver import CredentialResolver
from app.services.enrichment.service import EnrichmentService, validate_target
from app.services.upstream.client import UpstreamClient
from app.workers.fetcher import PreviewFetcher

_SUGGESTIONS = [{"popular": ["python"]}, {"recommended": ["code", "python"]}]
_RECORD = PreviewRecord(
    url="https://example.com/",
    title="Example",
    fetched_at=datetime.now(timezone.utc),
)
_BEARER = "Bearer alice:tok123"


@pytest.fixture
def upstream():
    mock = AsyncMock(spec=UpstreamClient)
    mock.suggest.return_value = _SUGGESTIONS
    return mock


@pytest.fixture
def fetcher():
    mock = AsyncMock(spec=PreviewFetcher)
    mock.fetch.return_value = _RECORD
    return mock


@pytest.fixture
def service(upstream, fetcher):
    return EnrichmentService(CredentialResolver(), upstream, fetcher)


# ---------------------------------------------------------------------------
# Target validation
# ---------------------------------------------------------------------------


class TestValidateTarget:
    def test_first_value_wins(self):
        target = validate_target(["https://example.com/a", "https://evil.test/"])
        assert target.url == "https://example.com/a"
        assert target.host == "example.com"

    def test_url_is_normalised(self):
        assert validate_target(["https://Example.com"]).url == "https://example.com/"

    @pytest.mark.parametrize(
        "urls, message",
        [
            (None, "url query parameter is required"),
            ([], "url query parameter is required"),
            ([""], "url query parameter is required"),
            (["example.com/path"], "Invalid url parameter"),
            (["/relative"], "Invalid url parameter"),
            (["http://"], "Invalid url parameter"),
            (["ftp://example.com/file"], "URL must use http or https"),
            (["javascript:alert(1)"], "URL must use http or https"),
            (["http://127.0.0.1/x"], "URL host is not reachable from the proxy"),
            (["http://localhost:8080/"], "URL host is not reachable from the proxy"),
            (["http://[::1]/"], "URL host is not reachable from the proxy"),
            (["http://10.0.0.5/admin"], "URL host is not reachable from the proxy"),
        ],
    )
    def test_rejections(self, urls, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_target(urls)
        assert exc_info.value.message == message
        assert exc_info.value.status_code == 400


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class TestEnrichmentService:
    async def test_fresh_preview(self, service, upstream, fetcher):
        result = await service.suggest_with_preview(["https://example.com/"], _BEARER)

        assert result.suggestions == _SUGGESTIONS
        assert result.preview == _RECORD
        assert result.preview_status is PreviewStatus.FRESH
        assert result.preview_error is None
        fetcher.fetch.assert_awaited_once_with("https://example.com/")

        upstream_auth = upstream.suggest.await_args.args[0]
        assert upstream_auth.params == [
            ("url", "https://example.com/"),
            ("format", "json"),
            ("auth_token", "alice:tok123"),
        ]

    async def test_no_data(self, service, fetcher):
        fetcher.fetch.return_value = None

        result = await service.suggest_with_preview(["https://example.com/"], _BEARER)
        payload = result.to_response()

        assert payload["previewStatus"] == "no_data"
        assert payload["preview"] is None
        assert "previewError" not in payload

    async def test_preview_timeout_is_not_fatal(self, service, fetcher):
        fetcher.fetch.side_effect = FetchTimeout()

        result = await service.suggest_with_preview(["https://example.com/"], _BEARER)
        payload = result.to_response()

        assert payload["suggestions"] == _SUGGESTIONS
        assert payload["previewStatus"] == "error"
        assert payload["previewError"] == "Preview request timed out"
        assert payload["preview"] is None

    async def test_unexpected_preview_failure_is_sanitized(self, service, fetcher):
        fetcher.fetch.side_effect = RuntimeError("secret internals Authorization: Basic xyz")

        result = await service.suggest_with_preview(["https://example.com/"], _BEARER)

        assert result.preview_status is PreviewStatus.ERROR
        assert result.preview_error == "Failed to fetch preview metadata"

    @pytest.mark.parametrize(
        "error",
        [UpstreamError("Forbidden", status_code=403), UpstreamTimeout()],
    )
    async def test_suggestion_failure_is_fatal(self, service, upstream, fetcher, error):
        upstream.suggest.side_effect = error

        with pytest.raises(UpstreamError) as exc_info:
            await service.suggest_with_preview(["https://example.com/"], _BEARER)
        assert exc_info.value is error

    async def test_suggestion_failure_wins_over_preview_failure(self, service, upstream, fetcher):
        upstream.suggest.side_effect = UpstreamError("boom", status_code=500)
        fetcher.fetch.side_effect = FetchTimeout()

        with pytest.raises(UpstreamError, match="boom"):
            await service.suggest_with_preview(["https://example.com/"], _BEARER)

    async def test_calls_run_concurrently(self, service, upstream, fetcher):
        started = asyncio.Event()

        async def slow_suggest(upstream_auth):
            await asyncio.wait_for(started.wait(), timeout=1)
            return _SUGGESTIONS

        async def preview(url):
            started.set()
            return _RECORD

        upstream.suggest.side_effect = slow_suggest
        fetcher.fetch.side_effect = preview

        result = await service.suggest_with_preview(["https://example.com/"], _BEARER)
        assert result.preview_status is PreviewStatus.FRESH

    async def test_private_target_never_fetched(self, service, upstream, fetcher):
        with pytest.raises(ValidationError):
            await service.suggest_with_preview(["http://127.0.0.1/x"], _BEARER)
        fetcher.fetch.assert_not_awaited()
        upstream.suggest.assert_not_awaited()

    async def test_missing_credentials(self, service, upstream, fetcher):
        with pytest.raises(MissingCredential):
            await service.suggest_with_preview(["https://example.com/"], None)
        fetcher.fetch.assert_not_awaited()

    async def test_observation_is_logged_without_secrets(
        self, service, fetcher, caplog, monkeypatch
    ):
        # The "app" namespace does not propagate to the root handler by default
        monkeypatch.setattr(logging.getLogger("app"), "propagate", True)
        fetcher.fetch.side_effect = FetchTimeout()

        with caplog.at_level(logging.INFO, logger="app.services.enrichment.service"):
            await service.suggest_with_preview(["https://example.com/?q=private"], _BEARER)

        # The record may reach caplog through both the propagated root handler
        # and the handler at_level attaches, so count distinct records
        records = list(
            {id(r): r for r in caplog.records if getattr(r, "outcome", None)}.values()
        )
        assert len(records) == 1
        record = records[0]
        assert record.identity == "alice"
        assert record.target_host == "example.com"
        assert record.outcome == "preview_failed"
        assert "tok123" not in caplog.text
        assert "q=private" not in caplog.text
