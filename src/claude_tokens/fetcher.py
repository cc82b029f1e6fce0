from typing import Any

import httpx
import structlog

from claude_tokens.errors import (
    AuthFailed,
    HttpError,
    InvalidCredential,
    InvalidResponse,
    NetworkError,
    NoCredential,
)

logger = structlog.get_logger()

CLAUDE_BASE_URL = "https://claude.ai/api"
CLAUDE_ORIGIN = "https://claude.ai/"
COOKIE_NAME = "sessionKey"

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def cookie_header(credential: "str | None") -> "str | None":
    """
    normalizes a raw sessionKey value or a full "sessionKey=..."
    string to the cookie header form. Returns None when there
    is nothing to send and raises InvalidCredential when the
    value cannot go into an HTTP header.
    """
    key = (credential or "").strip()
    if not key:
        return None
    if not key.isascii() or "\n" in key or "\r" in key:
        raise InvalidCredential()

    if key.startswith(f"{COOKIE_NAME}="):
        return key
    return f"{COOKIE_NAME}={key}"


class ClaudeFetcher:
    """
    ClaudeFetcher issues authenticated GET requests against the
    claude.ai internal API and maps transport and status outcomes
    to FetchError subclasses. It never retries; retrying is the
    scheduler's job.
    """

    def __init__(
        self,
        base_url: "str" = CLAUDE_BASE_URL,
        timeout: "float" = 10.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
                "Referer": CLAUDE_ORIGIN,
            },
        )

    @property
    def base_url(self) -> "str":
        return self._base_url

    def account_url(self) -> "str":
        return f"{self._base_url}/auth/current_account"

    def usage_url(self, org_id: "str") -> "str":
        return f"{self._base_url}/organizations/{org_id}/rate_limit_status"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def fetch(self, url: "str", credential: "str | None") -> "Any":
        """
        fetches url with the credential as session cookie and
        returns the decoded JSON body.
        """
        cookie = cookie_header(credential)
        if cookie is None:
            raise NoCredential()

        logger.debug("claude_fetch", url=url)
        try:
            resp = await self._client.get(url, headers={"Cookie": cookie})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("claude_transport_error", url=url, error=str(exc))
            raise NetworkError(str(exc) or type(exc).__name__) from exc

        if resp.status_code in (401, 403):
            raise AuthFailed()
        if not resp.is_success:
            raise HttpError(resp.status_code)

        try:
            return resp.json()
        except ValueError as exc:
            raise InvalidResponse() from exc
