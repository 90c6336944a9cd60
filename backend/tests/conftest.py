"""
Shared test fixtures for pytest.

Provides an in-memory fake of the Confluence REST API (served through
httpx.MockTransport), a fake AI configuration repository, and a FastAPI
test client wired to both.
"""
import pytest
import os
import json
import re
from email.parser import BytesParser
from email.policy import default as default_policy
from typing import Any

import httpx
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key-for-unit-tests-only"
os.environ["ADMIN_CODES"] = "TEST-ADMIN-123,ADMIN-123"
os.environ["CONFLUENCE_BASE_URL"] = "https://test.atlassian.net"
os.environ["CONFLUENCE_APP_EMAIL"] = "flowme-bot@example.com"
os.environ["CONFLUENCE_APP_TOKEN"] = "test-app-token"
os.environ["STORAGE_PATH"] = "test-flowme.db"

from flowme.main import app
from flowme.config import get_settings, Settings
from flowme.routers.common import get_confluence
from flowme.services.config_store import get_config_repository
from flowme.services.confluence import ConfluenceClient

SITE_URL = "https://test.atlassian.net"


class InMemoryConfigRepository:
    """ConfigRepository fake holding the record in a dict."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self.value = dict(initial) if initial else None
        self.writes = 0

    async def get(self) -> dict[str, Any] | None:
        return dict(self.value) if self.value is not None else None

    async def set(self, value: dict[str, Any]) -> None:
        self.value = dict(value)
        self.writes += 1


def parse_multipart(request: httpx.Request) -> dict[str, tuple[str | None, bytes]]:
    """Form parts of a multipart request: name -> (filename, content)."""
    content_type = request.headers["content-type"]
    message = BytesParser(policy=default_policy).parsebytes(
        b"Content-Type: " + content_type.encode() + b"\r\n\r\n" + request.content
    )
    parts = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        parts[name] = (part.get_filename(), part.get_payload(decode=True))
    return parts


def _digits(value: str) -> str:
    match = re.search(r"\d+", value or "")
    return match.group(0) if match else ""


class ConfluenceSite:
    """
    Minimal stateful fake of the Confluence endpoints FlowMe uses.

    Attachments keep every uploaded version. Pages hold a storage body,
    an ADF body and a draft flag. Set `failures[(method, path)] = status`
    to make an endpoint fail, or `reject_post_updates` to refuse in-place
    updates sent as POST the way some sites do.
    """

    def __init__(self):
        self.attachments: dict[str, dict[str, Any]] = {}
        self.pages: dict[str, dict[str, Any]] = {}
        self.users: dict[str, str] = {"acc-1": "Ada Lovelace"}
        self.current_user: dict[str, Any] | None = {"accountId": "acc-1", "displayName": "Ada Lovelace"}
        self.failures: dict[tuple[str, str], int] = {}
        self.reject_post_updates = False
        self.requests: list[httpx.Request] = []
        self._next_id = 1000

    # -- setup helpers -------------------------------------------------------

    def add_attachment(
        self,
        page_id: str,
        title: str,
        content: str = "",
        comment: str = "",
        versions: list[dict[str, Any]] | None = None,
    ) -> str:
        self._next_id += 1
        attachment_id = str(self._next_id)
        self.attachments[attachment_id] = {
            "id": attachment_id,
            "title": title,
            "pageId": page_id,
            "comment": comment,
            "versions": versions or [{"number": 1, "content": content, "message": comment}],
        }
        return attachment_id

    def set_page(self, page_id: str, storage: str = "", adf: Any = None, draft: bool = False):
        self.pages[page_id] = {"storage": storage, "adf": adf, "draft": draft}

    def titles(self, page_id: str) -> set[str]:
        return {a["title"] for a in self.attachments.values() if a["pageId"] == page_id}

    def calls(self, method: str, fragment: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    def client(self, user_token: str | None = "user-token") -> ConfluenceClient:
        return ConfluenceClient(
            base_url=SITE_URL,
            app_email="flowme-bot@example.com",
            app_token="test-app-token",
            user_token=user_token,
            transport=httpx.MockTransport(self),
        )

    # -- request handling ----------------------------------------------------

    def _meta(self, attachment: dict[str, Any]) -> dict[str, Any]:
        latest = attachment["versions"][-1]
        return {
            "id": f"att{attachment['id']}",
            "title": attachment["title"],
            "pageId": attachment["pageId"],
            "comment": attachment["comment"],
            "version": {"number": latest["number"]},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method
        params = request.url.params

        forced = self.failures.get((method, path))
        if forced:
            return httpx.Response(forced, text=f"forced failure {forced}")

        match = re.fullmatch(r"/wiki/api/v2/pages/([^/]+)/attachments", path)
        if match and method == "GET":
            page_id = match.group(1)
            items = [a for a in self.attachments.values() if a["pageId"] == page_id]
            if "filename" in params:
                items = [a for a in items if a["title"] == params["filename"]]
            limit = int(params.get("limit", 25))
            offset = int(params.get("cursor", 0))
            page = items[offset:offset + limit]
            body: dict[str, Any] = {"results": [self._meta(a) for a in page], "_links": {}}
            if offset + limit < len(items):
                body["_links"]["next"] = f"/wiki/api/v2/pages/{page_id}/attachments?cursor={offset + limit}&limit={limit}"
            return httpx.Response(200, json=body)

        match = re.fullmatch(r"/wiki/rest/api/content/([^/]+)/child/attachment/([^/]+)/download", path)
        if match and method == "GET":
            attachment = self.attachments.get(_digits(match.group(2)))
            if not attachment:
                return httpx.Response(404, text="attachment not found")
            versions = attachment["versions"]
            if "version" in params:
                versions = [v for v in versions if str(v["number"]) == params["version"]]
                if not versions:
                    return httpx.Response(404, text="version not found")
            return httpx.Response(200, text=versions[-1]["content"])

        match = re.fullmatch(r"/wiki/rest/api/content/([^/]+)/child/attachment", path)
        if match and method in ("POST", "PUT"):
            return self._upload(match.group(1), request)

        match = re.fullmatch(r"/wiki/api/v2/attachments/([^/]+)", path)
        if match and method == "DELETE":
            if self.attachments.pop(_digits(match.group(1)), None) is None:
                return httpx.Response(404, text="attachment not found")
            return httpx.Response(204)

        match = re.fullmatch(r"/wiki/api/v2/attachments/([^/]+)/versions", path)
        if match and method == "GET":
            attachment = self.attachments.get(_digits(match.group(1)))
            if not attachment:
                return httpx.Response(404, text="attachment not found")
            results = [{k: v for k, v in version.items() if k != "content"} for version in attachment["versions"]]
            return httpx.Response(200, json={"results": results})

        match = re.fullmatch(r"/wiki/api/v2/pages/([^/]+)", path)
        if match and method == "GET":
            return self._page(match.group(1), params)

        if path == "/wiki/rest/api/user/current" and method == "GET":
            if not request.headers.get("authorization", "").startswith("Bearer "):
                return httpx.Response(401, text="user token required")
            if self.current_user is None:
                return httpx.Response(500, text="user service down")
            return httpx.Response(200, json=self.current_user)

        if path == "/wiki/rest/api/user" and method == "GET":
            name = self.users.get(params.get("accountId", ""))
            if not name:
                return httpx.Response(404, text="user not found")
            return httpx.Response(200, json={"accountId": params["accountId"], "displayName": name})

        return httpx.Response(404, text=f"no fake route for {method} {path}")

    def _upload(self, page_id: str, request: httpx.Request) -> httpx.Response:
        parts = parse_multipart(request)
        filename, content = parts["file"]
        comment = parts["comment"][1].decode("utf-8") if "comment" in parts else ""
        existing_id = _digits(request.url.params.get("id", ""))

        if existing_id:
            attachment = self.attachments.get(existing_id)
            if not attachment:
                return httpx.Response(404, text="attachment not found")
            if request.method == "POST" and self.reject_post_updates:
                return httpx.Response(
                    400,
                    text="Cannot add a new attachment with same file name as an existing attachment",
                )
        else:
            if filename in self.titles(page_id):
                return httpx.Response(
                    400,
                    text="Cannot add a new attachment with same file name as an existing attachment",
                )
            self._next_id += 1
            attachment = {
                "id": str(self._next_id),
                "title": filename,
                "pageId": page_id,
                "comment": comment,
                "versions": [],
            }
            self.attachments[attachment["id"]] = attachment

        attachment["comment"] = comment
        attachment["versions"].append({
            "number": len(attachment["versions"]) + 1,
            "content": content.decode("utf-8"),
            "message": comment,
        })
        return httpx.Response(200, json={"results": [self._meta(attachment)]})

    def _page(self, page_id: str, params: httpx.QueryParams) -> httpx.Response:
        page = self.pages.get(page_id)
        if page is None:
            return httpx.Response(404, text="page not found")
        if params.get("get-draft") == "true":
            if not page["draft"]:
                return httpx.Response(404, text="no draft")
            return httpx.Response(200, json={"id": page_id, "status": "draft"})
        body_format = params.get("body-format")
        if body_format == "storage":
            body = {"storage": {"value": page["storage"], "representation": "storage"}}
        elif body_format == "atlas_doc_format":
            adf = page["adf"]
            value = adf if isinstance(adf, str) or adf is None else json.dumps(adf)
            body = {"atlas_doc_format": {"value": value or "", "representation": "atlas_doc_format"}}
        else:
            body = {}
        return httpx.Response(200, json={"id": page_id, "status": "current", "body": body})


@pytest.fixture
def test_settings() -> Settings:
    """Override settings for tests."""
    return get_settings()


@pytest.fixture
def site() -> ConfluenceSite:
    """Fresh fake Confluence site."""
    return ConfluenceSite()


@pytest.fixture
def confluence(site) -> ConfluenceClient:
    """Confluence client talking to the fake site."""
    return site.client()


@pytest.fixture
def config_repo() -> InMemoryConfigRepository:
    """Valid, enabled AI configuration."""
    return InMemoryConfigRepository({
        "enabled": True,
        "aiProvider": "openai",
        "secretValue": "sk-test-secret",
        "model": "gpt-test",
        "apiBaseUrl": "https://api.openai.com",
        "allowedAiHosts": "api.openai.com",
        "timeoutSeconds": 30,
    })


@pytest.fixture
def client(site, config_repo):
    """FastAPI test client wired to the fake site and config repository."""
    app.dependency_overrides[get_confluence] = lambda: site.client()
    app.dependency_overrides[get_config_repository] = lambda: config_repo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_jwt_token(test_settings) -> str:
    """Generate an admin JWT token for testing."""
    from jose import jwt
    from datetime import datetime, timedelta, timezone

    payload = {
        "code": "TEST-ADMIN-123",
        "is_admin": True,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, test_settings.jwt_secret, algorithm="HS256")


@pytest.fixture
def expired_jwt_token(test_settings) -> str:
    """Generate an expired JWT token for testing."""
    from jose import jwt
    from datetime import datetime, timedelta, timezone

    payload = {
        "code": "TEST-ADMIN-123",
        "is_admin": True,
        "exp": datetime.now(timezone.utc) - timedelta(hours=1),
        "iat": datetime.now(timezone.utc) - timedelta(hours=2),
    }
    return jwt.encode(payload, test_settings.jwt_secret, algorithm="HS256")
