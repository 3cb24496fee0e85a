"""Token lifecycle management for the Moneytree API.

:class:`AuthenticationManager` is the only object an API client talks to.
It hands out bearer tokens, refreshing them shortly before expiry and
falling back to a full web login when the refresh token is no longer
accepted.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import httpx

from moneytree.auth.config import AuthSettings, Credentials
from moneytree.auth.constants import DEFAULT_TIMEOUT, EXPIRY_BUFFER_SECONDS
from moneytree.auth.models.errors import (
    CredentialError,
    MissingArtifactError,
    MoneytreeAuthError,
    ReauthenticationError,
    StorageError,
)
from moneytree.auth.models.tokens import TokenSet
from moneytree.auth.persistence import JsonFileKeyValueStore
from moneytree.auth.primitives.pkce import PKCEManager
from moneytree.auth.primitives.redirects import normalize_authorization_code
from moneytree.auth.services.login import WebLoginClient
from moneytree.auth.services.storage import TokenStore
from moneytree.auth.services.tokens import TokenExchangeClient

logger = logging.getLogger(__name__)


class AuthState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


@runtime_checkable
class CacheInvalidator(Protocol):
    """Response cache that must be emptied when the user logs out."""

    def invalidate_all(self) -> None: ...


class AuthenticationManager:
    """Owns the token set and drives login, refresh and logout.

    One ``asyncio.Lock`` serialises every operation that may write the
    token store. A caller that waited for the lock re-reads the store first,
    so concurrent ``get_access_token()`` calls share a single login.

    The automated path (:meth:`authenticate_with_credentials`) and the
    manual path (:meth:`get_authorization_url` then
    :meth:`authenticate_with_code`) share the same exchange and storage.
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        credentials: Credentials | None = None,
        login_client: WebLoginClient | None = None,
        token_client: TokenExchangeClient | None = None,
        cache: CacheInvalidator | None = None,
        pkce_manager: PKCEManager | None = None,
        clock: Callable[[], float] = time.time,
        expiry_buffer: float = EXPIRY_BUFFER_SECONDS,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the manager.

        Args:
            store: Token store holding the single token set
            credentials: Email/password for automated login; read from the
                environment at login time when omitted
            login_client: Web login client; built on a shared, owned HTTP
                client when omitted
            token_client: Token exchange client; same default as above
            cache: Cache to invalidate on logout
            pkce_manager: PKCE generator
            clock: Source of the current Unix time
            expiry_buffer: Seconds before expiry at which a token is refreshed
            timeout: HTTP timeout in seconds for the owned HTTP client
        """
        self._store = store
        self._credentials = credentials
        self._cache = cache
        self._pkce = pkce_manager or PKCEManager()
        self._clock = clock
        self.expiry_buffer = expiry_buffer

        self._http_client: httpx.AsyncClient | None = None
        if login_client is None or token_client is None:
            self._http_client = httpx.AsyncClient(timeout=timeout)
        self._login_client = login_client or WebLoginClient(self._http_client)
        self._token_client = token_client or TokenExchangeClient(
            self._http_client, clock=clock
        )

        self._lock = asyncio.Lock()
        self._state = AuthState.UNAUTHENTICATED
        self._pending_verifier: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings | None = None,
        credentials: Credentials | None = None,
        cache: CacheInvalidator | None = None,
    ) -> AuthenticationManager:
        """Build a manager persisting tokens to the configured JSON file."""
        settings = settings or AuthSettings.from_env()
        return cls(
            TokenStore(JsonFileKeyValueStore(settings.storage_path)),
            credentials=credentials,
            cache=cache,
            expiry_buffer=settings.expiry_buffer,
            timeout=settings.timeout,
        )

    @property
    def state(self) -> AuthState:
        return self._state

    async def authenticate(self) -> str:
        """Log in with the configured credentials and return an access token."""
        return await self.authenticate_with_credentials()

    async def authenticate_with_credentials(self) -> str:
        """Run the automated web login and store the resulting token set.

        Raises:
            CredentialError: If credentials are missing or rejected
            NetworkError, ProtocolError, MissingArtifactError: If the
                login or exchange fails
        """
        async with self._lock:
            token_set = await self._login_and_store()
        return token_set.access_token

    def get_authorization_url(self) -> str:
        """Start the manual flow: return an authorize URL for a person to open.

        The verifier for this URL is kept in memory until the code is handed
        to :meth:`authenticate_with_code`.
        """
        pkce = self._pkce.generate_parameters()
        self._pending_verifier = pkce.code_verifier
        return self._login_client.build_authorize_url(pkce.code_challenge)

    async def authenticate_with_code(
        self, code: str, code_verifier: str | None = None
    ) -> str:
        """Exchange a code obtained outside the automated login.

        Args:
            code: Authorization code, or the full callback URL containing it
            code_verifier: Verifier matching the code's challenge; defaults
                to the one from the last :meth:`get_authorization_url` call

        Raises:
            MissingArtifactError: If no code can be read from ``code``
            PKCEError: If ``code_verifier`` is not a valid verifier
        """
        authorization_code = normalize_authorization_code(code)
        if not authorization_code:
            raise MissingArtifactError("Could not extract authorization code")

        if code_verifier is not None:
            # Validates the verifier format before it reaches the provider
            verifier = self._pkce.from_verifier(code_verifier).code_verifier
        elif self._pending_verifier is not None:
            verifier = self._pending_verifier
        else:
            verifier = self._pkce.generate_parameters().code_verifier

        async with self._lock:
            self._state = AuthState.AUTHENTICATING
            try:
                token_set = await self._token_client.exchange(
                    authorization_code, verifier
                )
                await self._store.save(token_set)
            except BaseException:
                self._state = AuthState.UNAUTHENTICATED
                raise
            self._pending_verifier = None
            self._state = AuthState.AUTHENTICATED

        logger.info("Authenticated with authorization code")
        return token_set.access_token

    async def get_access_token(self) -> str:
        """Return a bearer token valid beyond the expiry buffer.

        Logs in when nothing is stored and refreshes an expiring token. A
        rejected refresh clears the store and falls back to a full login.

        Raises:
            ReauthenticationError: If both the refresh and the fallback
                login fail
            MoneytreeAuthError: If the initial login fails
        """
        async with self._lock:
            stored = await self._store.load()
            if stored is None:
                logger.debug("No stored tokens; logging in")
                return (await self._login_and_store()).access_token

            if stored.is_usable(self._clock(), self.expiry_buffer):
                self._state = AuthState.AUTHENTICATED
                return stored.access_token

            return (await self._refresh_or_login(stored)).access_token

    async def is_authenticated(self) -> bool:
        """True iff a token set is stored and not within the expiry buffer."""
        stored = await self._store.load()
        return stored is not None and stored.is_usable(
            self._clock(), self.expiry_buffer
        )

    async def logout(self) -> None:
        """Clear stored tokens and invalidate the response cache.

        Clearing is confirmed by re-reading the store and retried once.

        Raises:
            StorageError: If the tokens are still present after the retry
        """
        async with self._lock:
            error = await self._clear_and_confirm()
            if self._cache is not None:
                self._cache.invalidate_all()
            if error is not None:
                logger.warning(f"Logout did not clear tokens ({error}); retrying")
                error = await self._clear_and_confirm()
                if error is not None:
                    raise error
            self._pending_verifier = None
            self._state = AuthState.LOGGED_OUT
        logger.info("Logged out")

    async def _login_and_store(self) -> TokenSet:
        """Run web login and exchange. Caller holds the lock."""
        credentials = self._credentials or Credentials.from_env()
        if credentials is None or not credentials.is_complete():
            raise CredentialError("Email and password must be configured")

        self._state = AuthState.AUTHENTICATING
        try:
            pkce = self._pkce.generate_parameters()
            code = await self._login_client.obtain_authorization_code(
                credentials.email, credentials.password.get_secret_value(), pkce
            )
            token_set = await self._token_client.exchange(code, pkce.code_verifier)
            await self._store.save(token_set)
        except BaseException:
            self._state = AuthState.UNAUTHENTICATED
            raise

        self._state = AuthState.AUTHENTICATED
        logger.info("Authenticated with email and password")
        return token_set

    async def _refresh_or_login(self, stored: TokenSet) -> TokenSet:
        """Refresh ``stored``, or log in again if the refresh fails."""
        self._state = AuthState.REFRESHING
        try:
            refreshed = await self._token_client.refresh(
                stored.refresh_token, stored.verifier_used
            )
        except MoneytreeAuthError as refresh_error:
            logger.warning(f"Token refresh failed, logging in again: {refresh_error}")
            self._state = AuthState.UNAUTHENTICATED
            try:
                await self._store.clear()
                return await self._login_and_store()
            except MoneytreeAuthError as auth_error:
                raise ReauthenticationError(refresh_error, auth_error) from auth_error
        except BaseException:
            self._state = AuthState.UNAUTHENTICATED
            raise

        try:
            await self._store.save(refreshed)
        except BaseException:
            self._state = AuthState.UNAUTHENTICATED
            raise
        self._state = AuthState.AUTHENTICATED
        logger.info("Refreshed access token")
        return refreshed

    async def _clear_and_confirm(self) -> StorageError | None:
        try:
            await self._store.clear()
        except StorageError as e:
            return e
        if await self._store.load() is not None:
            return StorageError("Tokens were not cleared properly")
        return None

    async def close(self) -> None:
        """Close the HTTP client created by this manager, if any."""
        if self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> AuthenticationManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
