import json
from urllib.parse import parse_qs

import httpx
import pytest

from moneytree.auth.persistence import MemoryKeyValueStore
from moneytree.auth.services.storage import TokenStore

NOW = 1_700_000_000.0

LOGIN_PAGE_HTML = """
<html>
  <head><meta name="csrf-token" content="meta-token"></head>
  <body>
    <form action="/guests/login" method="post">
      <input type="hidden" name="authenticity_token" value="csrf-123">
      <input type="email" name="guest[email]">
      <input type="password" name="guest[password]">
    </form>
  </body>
</html>
"""


class StubProvider:
    """In-process stand-in for the Moneytree login and token endpoints."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.login_page_status = 200
        self.login_page_html = LOGIN_PAGE_HTML
        self.login_status = 302
        self.login_body = ""
        self.authorize_location: str | None = (
            "https://app.getmoneytree.com/callback?code=auth-code-1&state=abc"
        )
        self.token_status = 200
        self.token_body: dict | None = None
        self.refresh_status = 200
        self.expires_in = 3600
        self.issued = 0
        self.network_down = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == "/guests/login" and request.method == "GET":
            return httpx.Response(
                self.login_page_status,
                text=self.login_page_html,
                headers=[
                    ("set-cookie", "_session=s1; path=/; HttpOnly"),
                    ("set-cookie", "locale=en; path=/"),
                ],
            )
        if path == "/guests/login" and request.method == "POST":
            headers = []
            if self.login_status == 302:
                headers = [
                    ("location", "https://myaccount.getmoneytree.com/"),
                    ("set-cookie", "_session=s2; path=/; HttpOnly"),
                    ("set-cookie", "remember_guest_token=r1; path=/"),
                ]
            return httpx.Response(
                self.login_status, text=self.login_body, headers=headers
            )
        if path == "/oauth/authorize":
            if self.authorize_location is None:
                return httpx.Response(200, text="<html>authorize</html>")
            return httpx.Response(302, headers={"location": self.authorize_location})
        if path == "/oauth/token.json":
            body = json.loads(request.content)
            status = (
                self.token_status
                if body["grant_type"] == "authorization_code"
                else self.refresh_status
            )
            if status != 200:
                return httpx.Response(status, json={"error": "invalid_grant"})
            if self.token_body is not None:
                return httpx.Response(200, json=self.token_body)
            self.issued += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{self.issued}",
                    "refresh_token": f"refresh-{self.issued}",
                    "token_type": "Bearer",
                    "expires_in": self.expires_in,
                    "scope": "guest_read subscription",
                },
            )
        return httpx.Response(404)

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path == path
        ]

    def token_requests(self, grant_type: str) -> list[dict]:
        bodies = [json.loads(r.content) for r in self.requests_to("POST", "/oauth/token.json")]
        return [b for b in bodies if b["grant_type"] == grant_type]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
async def http_client(provider):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)) as client:
        yield client


@pytest.fixture
def backend() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def token_store(backend) -> TokenStore:
    return TokenStore(backend)


@pytest.fixture
def clock():
    return lambda: NOW
