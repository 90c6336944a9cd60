"""
Async client for the Confluence Cloud REST API.

Every call is made as one of two identities:
- "app": the service account configured in settings (basic auth)
- "user": the current user, via a bearer token forwarded by the caller

Cleanup and diagram writes act as "app" so later cleanup recognizes
what was written; only the actor lookup acts as "user".
"""

from __future__ import annotations

import logging
from typing import Any, Literal
from urllib.parse import quote

import httpx

from flowme.config import get_settings
from flowme.exceptions import ConfluenceApiError, InvalidRequestError

logger = logging.getLogger(__name__)

Mode = Literal["app", "user"]


def segment(value: Any) -> str:
    """Quote a value for use as a single URL path segment."""
    return quote(str(value), safe="")


class ConfluenceClient:
    """
    Thin wrapper around httpx.AsyncClient bound to one Confluence site.

    The underlying connection pool is shared between copies made with
    with_user_token(), so per-request user binding is cheap.
    """

    def __init__(
        self,
        base_url: str,
        app_email: str = "",
        app_token: str = "",
        user_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._app_email = app_email
        self._app_token = app_token
        self._user_token = user_token
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def with_user_token(self, user_token: str | None) -> "ConfluenceClient":
        """Return a client acting for the given user, sharing this client's pool."""
        return ConfluenceClient(
            base_url="",
            app_email=self._app_email,
            app_token=self._app_token,
            user_token=user_token,
            http_client=self._http,
        )

    def _auth(self, mode: Mode) -> tuple[dict[str, str], httpx.Auth | None]:
        """Headers and auth for the given identity."""
        if mode == "user":
            if not self._user_token:
                raise InvalidRequestError("No user token available for user request")
            return {"Authorization": f"Bearer {self._user_token}"}, None
        if self._app_email and self._app_token:
            return {}, httpx.BasicAuth(self._app_email, self._app_token)
        return {}, None

    async def request(
        self,
        method: str,
        path: str,
        *,
        mode: Mode = "app",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        files: Any = None,
    ) -> httpx.Response:
        """Send a request and return the raw response, whatever its status."""
        auth_headers, auth = self._auth(mode)
        all_headers = {"Accept": "application/json", **auth_headers}
        if headers:
            all_headers.update(headers)
        logger.debug(f"Confluence {method} {path} as {mode} params={params}")
        return await self._http.request(
            method,
            path,
            params=params,
            headers=all_headers,
            data=data,
            files=files,
            auth=auth,
        )

    async def request_json(self, path: str, *, mode: Mode = "app", **kwargs) -> Any:
        """GET (or other method via kwargs) and decode JSON; non-2xx raises."""
        method = kwargs.pop("method", "GET")
        response = await self.request(method, path, mode=mode, **kwargs)
        if not response.is_success:
            raise ConfluenceApiError(response.status_code, response.text)
        return response.json()

    async def request_text(self, path: str, *, mode: Mode = "app", **kwargs) -> str:
        """Like request_json but returns the body as text."""
        method = kwargs.pop("method", "GET")
        response = await self.request(method, path, mode=mode, **kwargs)
        if not response.is_success:
            raise ConfluenceApiError(response.status_code, response.text)
        return response.text

    async def close(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()


# Module-level singleton
_client: ConfluenceClient | None = None


def get_confluence_client() -> ConfluenceClient:
    """Get the app-identity Confluence client singleton."""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.confluence_base_url:
            raise ValueError("CONFLUENCE_BASE_URL not configured")
        _client = ConfluenceClient(
            base_url=settings.confluence_base_url,
            app_email=settings.confluence_app_email,
            app_token=settings.confluence_app_token,
            timeout=settings.confluence_timeout_seconds,
        )
    return _client


async def close_confluence_client():
    """Close the singleton client if it was created."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
