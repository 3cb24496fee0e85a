"""Authorization code exchange and refresh against the Moneytree token endpoint.

Unlike plain RFC 6749 servers, Moneytree expects JSON bodies and checks the
SDK identification, ``Origin`` and ``Referer`` headers of its own web client.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from moneytree.auth.constants import (
    DEFAULT_TIMEOUT,
    OAUTH_BASE_URL,
    SDK_PLATFORM,
    SDK_VERSION,
    TOKEN_PATH,
    USER_AGENT,
    WEB_APP_ORIGIN,
)
from moneytree.auth.models.errors import NetworkError, ProtocolError, TokenRefreshError
from moneytree.auth.models.tokens import (
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
    TokenSet,
)

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """Exchanges authorization codes and refresh tokens for token sets.

    Both operations POST to the same endpoint and differ only in grant type.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = OAUTH_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token client.

        Args:
            http_client: Client to send requests with; one is created (and
                owned) when omitted
            base_url: Provider base URL
            timeout: HTTP request timeout in seconds for an owned client
            clock: Source of the current Unix time
        """
        self.token_endpoint = f"{base_url.rstrip('/')}{TOKEN_PATH}"
        self._clock = clock
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def exchange(self, code: str, code_verifier: str) -> TokenSet:
        """Exchange an authorization code for a token set.

        Args:
            code: Authorization code from the authorize redirect
            code_verifier: PKCE verifier of the attempt that produced ``code``

        Raises:
            NetworkError: On transport failures or timeouts
            ProtocolError: On a non-2xx status or malformed body
        """
        logger.debug(f"Exchanging authorization code at {self.token_endpoint}")
        request = TokenRequest(code=code, code_verifier=code_verifier)
        response = await self._post(request.to_json(), "token exchange")
        if not response.is_success:
            logger.warning(f"Token exchange failed with {response.status_code}")
            raise ProtocolError(
                "Failed to exchange code for token",
                status_code=response.status_code,
                body=response.text,
            )

        token_set = self._parse_token_set(response, verifier_used=code_verifier)
        logger.info("Token exchange successful")
        return token_set

    async def refresh(
        self, refresh_token: str, verifier_used: str | None = None
    ) -> TokenSet:
        """Refresh a token set.

        Args:
            refresh_token: Stored refresh token
            verifier_used: Verifier of the original exchange, carried over to
                the new token set

        Raises:
            NetworkError: On transport failures or timeouts
            TokenRefreshError: If the endpoint rejects the refresh token
            ProtocolError: If a successful response is malformed
        """
        logger.debug(f"Refreshing access token at {self.token_endpoint}")
        request = RefreshTokenRequest(refresh_token=refresh_token)
        response = await self._post(request.to_json(), "token refresh")
        if not response.is_success:
            logger.warning(f"Token refresh failed with {response.status_code}")
            raise TokenRefreshError(
                "Failed to refresh token",
                status_code=response.status_code,
                body=response.text,
            )

        token_set = self._parse_token_set(
            response,
            verifier_used=verifier_used,
            previous_refresh_token=refresh_token,
        )
        logger.info("Token refresh successful")
        return token_set

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "mt-sdk-platform": SDK_PLATFORM,
            "mt-sdk-version": SDK_VERSION,
            "Origin": WEB_APP_ORIGIN,
            "Referer": f"{WEB_APP_ORIGIN}/",
            "User-Agent": USER_AGENT,
        }

    async def _post(self, payload: dict[str, str], step: str) -> httpx.Response:
        try:
            return await self._http_client.post(
                self.token_endpoint,
                json=payload,
                headers=self._headers(),
                follow_redirects=False,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"HTTP error during {step}: {e}") from e

    def _parse_token_set(
        self,
        response: httpx.Response,
        verifier_used: str | None,
        previous_refresh_token: str | None = None,
    ) -> TokenSet:
        try:
            token_response = TokenResponse(**response.json())
            return token_response.to_token_set(
                now=self._clock(),
                verifier_used=verifier_used,
                previous_refresh_token=previous_refresh_token,
            )
        except (ValueError, TypeError, ValidationError) as e:
            raise ProtocolError(
                f"Invalid token response format: {e}",
                status_code=response.status_code,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
