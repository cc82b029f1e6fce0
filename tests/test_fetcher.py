import httpx
import pytest
import respx

from claude_tokens.errors import (
    AuthFailed,
    HttpError,
    InvalidCredential,
    InvalidResponse,
    NetworkError,
    NoCredential,
)
from claude_tokens.fetcher import CLAUDE_BASE_URL, ClaudeFetcher, cookie_header

ACCOUNT_URL = f"{CLAUDE_BASE_URL}/auth/current_account"


class TestCookieHeader:
    def test_prefixes_raw_token(self) -> "None":
        assert cookie_header("sk-ant-sid01-abc") == "sessionKey=sk-ant-sid01-abc"

    def test_keeps_prefixed_cookie(self) -> "None":
        assert cookie_header(" sessionKey=sk-ant-sid01-abc \n") == (
            "sessionKey=sk-ant-sid01-abc"
        )

    @pytest.mark.parametrize("credential", [None, "", "   "])
    def test_empty_credential(self, credential: "str | None") -> "None":
        assert cookie_header(credential) is None

    @pytest.mark.parametrize(
        "credential", ["sk-ant\u2026bad", "sk-ant-sid01-abc\nX-Other: 1"]
    )
    def test_unsendable_credential(self, credential: "str") -> "None":
        with pytest.raises(InvalidCredential):
            cookie_header(credential)


class TestClaudeFetcherUrls:
    def test_builds_endpoint_urls(self) -> "None":
        fetcher = ClaudeFetcher(base_url="https://example.test/api/")
        assert fetcher.account_url() == "https://example.test/api/auth/current_account"
        assert fetcher.usage_url("org-1") == (
            "https://example.test/api/organizations/org-1/rate_limit_status"
        )


class TestClaudeFetcherFetch:
    @pytest.mark.asyncio
    @respx.mock
    async def test_no_credential_makes_no_request(self) -> "None":
        route = respx.get(ACCOUNT_URL).mock(
            return_value=httpx.Response(200, json={}),
        )

        fetcher = ClaudeFetcher()
        with pytest.raises(NoCredential):
            await fetcher.fetch(ACCOUNT_URL, "")

        assert route.call_count == 0
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_json_and_sends_headers(self) -> "None":
        route = respx.get(ACCOUNT_URL).mock(
            return_value=httpx.Response(200, json={"id": "org-1"}),
        )

        fetcher = ClaudeFetcher()
        data = await fetcher.fetch(ACCOUNT_URL, "sk-ant-sid01-abc")

        assert data == {"id": "org-1"}
        request = route.calls.last.request
        assert request.headers["Cookie"] == "sessionKey=sk-ant-sid01-abc"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Referer"] == "https://claude.ai/"
        assert "Mozilla/5.0" in request.headers["User-Agent"]
        await fetcher.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    @respx.mock
    async def test_auth_statuses(self, status: "int") -> "None":
        respx.get(ACCOUNT_URL).mock(return_value=httpx.Response(status))

        fetcher = ClaudeFetcher()
        with pytest.raises(AuthFailed):
            await fetcher.fetch(ACCOUNT_URL, "token")
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_other_status_is_http_error(self) -> "None":
        respx.get(ACCOUNT_URL).mock(return_value=httpx.Response(503))

        fetcher = ClaudeFetcher()
        with pytest.raises(HttpError) as excinfo:
            await fetcher.fetch(ACCOUNT_URL, "token")

        assert excinfo.value.status == 503
        assert excinfo.value.message == "HTTP 503"
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json(self) -> "None":
        respx.get(ACCOUNT_URL).mock(
            return_value=httpx.Response(200, text="<html>login</html>"),
        )

        fetcher = ClaudeFetcher()
        with pytest.raises(InvalidResponse):
            await fetcher.fetch(ACCOUNT_URL, "token")
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_failure_is_network_error(self) -> "None":
        respx.get(ACCOUNT_URL).mock(side_effect=httpx.ConnectError("boom"))

        fetcher = ClaudeFetcher()
        with pytest.raises(NetworkError) as excinfo:
            await fetcher.fetch(ACCOUNT_URL, "token")

        assert excinfo.value.message == "Network error: boom"
        await fetcher.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.DecodingError("bad gzip"),
            httpx.TooManyRedirects("redirect loop"),
        ],
    )
    @respx.mock
    async def test_other_httpx_failures_are_network_errors(
        self, error: "Exception"
    ) -> "None":
        respx.get(ACCOUNT_URL).mock(side_effect=error)

        fetcher = ClaudeFetcher()
        with pytest.raises(NetworkError):
            await fetcher.fetch(ACCOUNT_URL, "token")
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_ascii_credential_makes_no_request(self) -> "None":
        route = respx.get(ACCOUNT_URL).mock(
            return_value=httpx.Response(200, json={}),
        )

        fetcher = ClaudeFetcher()
        with pytest.raises(InvalidCredential):
            await fetcher.fetch(ACCOUNT_URL, "sk-ant…bad")

        assert route.call_count == 0
        await fetcher.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_follows_redirects(self) -> "None":
        moved = "https://claude.ai/api/v2/auth/current_account"
        respx.get(ACCOUNT_URL).mock(
            return_value=httpx.Response(302, headers={"Location": moved}),
        )
        respx.get(moved).mock(
            return_value=httpx.Response(200, json={"id": "org-1"}),
        )

        fetcher = ClaudeFetcher()
        data = await fetcher.fetch(ACCOUNT_URL, "token")

        assert data == {"id": "org-1"}
        await fetcher.close()
