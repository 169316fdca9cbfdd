from __future__ import annotations

import httpx
import pytest
import respx

from app.core.errors import MissingCredential, UpstreamError, UpstreamTimeout
from app.services.auth.resolver import CredentialResolver
from app.services.proxy.service import ProxyService
from app.services.upstream.client import UpstreamClient, summarize_error
from app.services.xml_converter import XMLConversionError, xml_to_dict

_BASE = "https://api.pinboard.in"


@pytest.fixture
async def service(settings):
    async with httpx.AsyncClient() as http_client:
        yield ProxyService(CredentialResolver(), UpstreamClient(settings, http_client))


# ---------------------------------------------------------------------------
# Forwarding
# ---------------------------------------------------------------------------


class TestProxyService:
    @respx.mock
    async def test_json_passthrough(self, service):
        route = respx.get(f"{_BASE}/v1/posts/recent").mock(
            return_value=httpx.Response(200, json={"posts": []})
        )

        reply = await service.forward(
            "/v1/posts/recent", [("format", "json")], "Bearer alice:tok"
        )

        assert reply.status_code == 200
        assert reply.is_json
        assert reply.payload == {"posts": []}
        params = route.calls.last.request.url.params
        assert params.get_list("auth_token") == ["alice:tok"]
        assert params["format"] == "json"

    @respx.mock
    async def test_xml_is_converted(self, service):
        respx.get(f"{_BASE}/v1/posts/update").mock(
            return_value=httpx.Response(
                200,
                headers={"content-type": "text/xml"},
                text='<?xml version="1.0"?><update time="2024-01-01T00:00:00Z" />',
            )
        )

        reply = await service.forward("/v1/posts/update", [], "Bearer alice:tok")

        assert reply.payload == {"update": {"@_time": "2024-01-01T00:00:00Z"}}

    @respx.mock
    async def test_unparseable_xml_is_500(self, service):
        respx.get(f"{_BASE}/v1/posts/update").mock(
            return_value=httpx.Response(200, headers={"content-type": "text/xml"}, text="<oops")
        )

        with pytest.raises(UpstreamError, match="Failed to parse XML response") as exc_info:
            await service.forward("/v1/posts/update", [], "Bearer alice:tok")
        assert exc_info.value.status_code == 500

    @respx.mock
    async def test_basic_auth_uses_transport_auth(self, service):
        route = respx.get(f"{_BASE}/v1/tags/get").mock(
            return_value=httpx.Response(200, json={})
        )

        await service.forward(
            "/v1/tags/get",
            [("format", "json"), ("auth_token", "mallory:stolen")],
            "Basic YWxpY2U6cHc=",
        )

        request = route.calls.last.request
        assert request.headers["authorization"] == "Basic YWxpY2U6cHc="
        assert "auth_token" not in request.url.params

    @respx.mock
    async def test_inbound_legacy_token_is_replaced(self, service):
        route = respx.get(f"{_BASE}/v1/tags/get").mock(
            return_value=httpx.Response(200, json={})
        )

        await service.forward(
            "/v1/tags/get",
            [("format", "json"), ("auth_token", "mallory:stolen")],
            "Bearer alice:tok",
        )

        request = route.calls.last.request
        assert request.url.params.get_list("auth_token") == ["alice:tok"]
        assert "authorization" not in request.headers

    @respx.mock
    async def test_non_200_success_is_relayed_verbatim(self, service):
        respx.get(f"{_BASE}/v1/posts/all").mock(
            return_value=httpx.Response(
                202, headers={"content-type": "text/plain"}, content=b"queued"
            )
        )

        reply = await service.forward("/v1/posts/all", [], "Bearer alice:tok")

        assert not reply.is_json
        assert reply.status_code == 202
        assert reply.content == b"queued"
        assert reply.media_type == "text/plain"

    @respx.mock
    async def test_upstream_error_status_is_raised(self, service):
        respx.get(f"{_BASE}/v1/posts/all").mock(
            return_value=httpx.Response(429, text="Too Many Requests")
        )

        with pytest.raises(UpstreamError) as exc_info:
            await service.forward("/v1/posts/all", [], "Bearer alice:tok")
        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Too Many Requests"

    @respx.mock
    async def test_upstream_timeout(self, service):
        respx.get(f"{_BASE}/v1/posts/all").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(UpstreamTimeout) as exc_info:
            await service.forward("/v1/posts/all", [], "Bearer alice:tok")
        assert exc_info.value.status_code == 504

    @respx.mock
    async def test_transport_failure_is_500(self, service):
        respx.get(f"{_BASE}/v1/posts/all").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(UpstreamError) as exc_info:
            await service.forward("/v1/posts/all", [], "Bearer alice:tok")
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Internal server error"

    async def test_missing_credentials_never_reach_upstream(self, service):
        with respx.mock(assert_all_called=False) as router:
            route = router.get(f"{_BASE}/v1/posts/all")
            with pytest.raises(MissingCredential):
                await service.forward("/v1/posts/all", [], None)
            assert not route.called


# ---------------------------------------------------------------------------
# Error summaries
# ---------------------------------------------------------------------------


class TestSummarizeError:
    def test_json_error_field(self):
        response = httpx.Response(401, json={"error": "bad token", "detail": "x"})
        assert summarize_error(response) == "bad token"

    def test_text_is_truncated(self):
        response = httpx.Response(500, text="line one\nline two " + "x" * 500)
        message = summarize_error(response)
        assert message.startswith("line one line two")
        assert len(message) == 200

    def test_empty_body(self):
        assert summarize_error(httpx.Response(503)) == "API request failed"


# ---------------------------------------------------------------------------
# XML conversion
# ---------------------------------------------------------------------------


class TestXmlToDict:
    def test_repeated_children_become_lists(self):
        payload = (
            '<posts user="alice">'
            '<post href="https://a.example/" tag="x" />'
            '<post href="https://b.example/" tag="y" />'
            "</posts>"
        )
        assert xml_to_dict(payload) == {
            "posts": {
                "@_user": "alice",
                "post": [
                    {"@_href": "https://a.example/", "@_tag": "x"},
                    {"@_href": "https://b.example/", "@_tag": "y"},
                ],
            }
        }

    def test_text_and_mixed_content(self):
        assert xml_to_dict("<result>done</result>") == {"result": "done"}
        assert xml_to_dict('<result code="ok">done</result>') == {
            "result": {"@_code": "ok", "#text": "done"}
        }

    def test_empty_element(self):
        assert xml_to_dict("<tags></tags>") == {"tags": ""}

    def test_malformed(self):
        with pytest.raises(XMLConversionError):
            xml_to_dict("<a><b></a>")
