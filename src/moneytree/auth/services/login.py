"""Automated web login for the Moneytree OAuth flow.

Moneytree has no redirect-capable public client, so the authorization code is
obtained by replaying what the browser does: load the login page, post the
credentials with its CSRF token and session cookies, then call the authorize
endpoint and read the code from the redirect it answers with.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from moneytree.auth.constants import (
    AUTHORIZE_PATH,
    BROWSER_ACCEPT,
    BROWSER_ACCEPT_LANGUAGE,
    CLIENT_ID,
    COUNTRY,
    DEFAULT_TIMEOUT,
    LOCALE,
    LOGIN_PATH,
    OAUTH_BASE_URL,
    OAUTH_STATE,
    REDIRECT_URI,
    SCOPE,
    USER_AGENT,
    sdk_configs,
)
from moneytree.auth.models.errors import (
    CredentialError,
    MissingArtifactError,
    NetworkError,
    ProtocolError,
)
from moneytree.auth.models.security import PKCEParameters
from moneytree.auth.primitives.cookies import SessionCookies
from moneytree.auth.primitives.csrf import extract_authenticity_token
from moneytree.auth.primitives.redirects import extract_code_from_url

logger = logging.getLogger(__name__)

_REJECTED_CREDENTIAL_STATUSES = frozenset({401, 403, 422})
_PASSWORD_FIELD = 'name="guest[password]"'


def build_login_page_url(base_url: str = OAUTH_BASE_URL) -> str:
    params = {
        "client_id": CLIENT_ID,
        "configs": sdk_configs(),
        "country": COUNTRY,
        "locale": LOCALE,
        "state": OAUTH_STATE,
    }
    return f"{base_url}{LOGIN_PATH}?{urlencode(params)}"


def build_authorize_url(code_challenge: str, base_url: str = OAUTH_BASE_URL) -> str:
    """Build the authorize URL for a PKCE challenge.

    Also used by the manual flow, where a person opens the URL in a browser
    and pastes the resulting code back.
    """
    params = {
        "client_id": CLIENT_ID,
        "response_type": "code",
        "scope": SCOPE,
        "redirect_uri": REDIRECT_URI,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": OAUTH_STATE,
        "country": COUNTRY,
        "configs": sdk_configs(),
        "locale": LOCALE,
    }
    return f"{base_url}{AUTHORIZE_PATH}?{urlencode(params)}"


class WebLoginClient:
    """Turns an email/password pair into an authorization code.

    Each call to :meth:`obtain_authorization_code` is one attempt with its
    own cookie set. The steps are strictly sequential because every request
    depends on cookies set by the previous one. Redirects are never
    followed: the login POST signals success with a 302 and the authorize
    response's ``Location`` header is where the code lives.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = OAUTH_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the login client.

        Args:
            http_client: Client to send requests with; one is created (and
                owned) when omitted
            base_url: Provider base URL
            timeout: HTTP request timeout in seconds for an owned client
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    def build_authorize_url(self, code_challenge: str) -> str:
        return build_authorize_url(code_challenge, self.base_url)

    async def obtain_authorization_code(
        self, email: str, password: str, pkce: PKCEParameters
    ) -> str:
        """Run one login attempt and return the authorization code.

        Args:
            email: Account email
            password: Account password
            pkce: Parameters generated for this attempt; only the challenge
                leaves the process here

        Returns:
            The authorization code from the authorize redirect

        Raises:
            NetworkError: On transport failures or timeouts
            ProtocolError: On unexpected HTTP statuses
            MissingArtifactError: If the CSRF token, redirect or code is absent
            CredentialError: If the provider rejects the credentials
        """
        cookies = SessionCookies()
        login_page_url = build_login_page_url(self.base_url)
        self._http_client.cookies.clear()
        try:
            # 1. Login page
            logger.debug("Fetching login page")
            page = await self._send(
                "GET",
                login_page_url,
                headers=self._browser_headers(cookies),
                step="login page",
            )
            if not page.is_success:
                raise ProtocolError(
                    "Failed to load login page",
                    status_code=page.status_code,
                    body=page.text,
                )

            # 2. CSRF token
            authenticity_token = extract_authenticity_token(page.text)
            if not authenticity_token:
                raise MissingArtifactError(
                    "Failed to extract CSRF token from login page"
                )

            # 3. Session cookies
            cookies.merge_response(page)

            # 4. Credentials
            logger.debug(f"Submitting credentials with {len(cookies)} cookies")
            login_headers = self._browser_headers(cookies, referer=login_page_url)
            login_headers["Content-Type"] = "application/x-www-form-urlencoded"
            login_headers["Origin"] = self.base_url
            login = await self._send(
                "POST",
                login_page_url,
                headers=login_headers,
                content=urlencode(
                    {
                        "authenticity_token": authenticity_token,
                        "guest[email]": email,
                        "guest[password]": password,
                        "guest[remember_me]": "1",
                    }
                ),
                step="login submit",
            )
            self._check_login_response(login)

            # 5. Updated session cookies
            cookies.merge_response(login)

            # 6. Authorize
            authorize_url = self.build_authorize_url(pkce.code_challenge)
            logger.debug("Requesting authorization code")
            authorize = await self._send(
                "GET",
                authorize_url,
                headers=self._browser_headers(cookies, referer=login_page_url),
                step="authorize",
            )

            # 7. Code from the redirect target
            location = authorize.headers.get("location")
            if not location:
                raise MissingArtifactError(
                    "Authorization failed: no redirect location received "
                    f"(HTTP {authorize.status_code})"
                )
            code = extract_code_from_url(location, base_url=authorize_url)
            if not code:
                raise MissingArtifactError(
                    "Failed to extract authorization code from redirect"
                )

            logger.info("Obtained authorization code from web login")
            return code
        finally:
            cookies.clear()
            # Keep the client's own jar from carrying session state between
            # attempts; every request here sets its Cookie header explicitly.
            self._http_client.cookies.clear()

    def _browser_headers(
        self, cookies: SessionCookies, referer: str | None = None
    ) -> dict[str, str]:
        headers = {
            "Accept": BROWSER_ACCEPT,
            "Accept-Language": BROWSER_ACCEPT_LANGUAGE,
            "User-Agent": USER_AGENT,
        }
        if referer:
            headers["Referer"] = referer
        if cookies:
            headers["Cookie"] = cookies.to_header()
        return headers

    def _check_login_response(self, response: httpx.Response) -> None:
        if response.status_code in _REJECTED_CREDENTIAL_STATUSES:
            raise CredentialError(
                f"Login rejected ({response.status_code}). "
                "Check your email and password."
            )
        if response.status_code == 200 and _PASSWORD_FIELD in response.text:
            # The provider re-renders the form instead of redirecting
            raise CredentialError("Login rejected. Check your email and password.")
        if response.status_code not in (200, 302):
            raise ProtocolError(
                "Login failed",
                status_code=response.status_code,
                body=response.text,
            )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        step: str,
        content: str | None = None,
    ) -> httpx.Response:
        try:
            return await self._http_client.request(
                method,
                url,
                headers=headers,
                content=content,
                follow_redirects=False,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"HTTP error during {step}: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
