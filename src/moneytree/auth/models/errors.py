"""Exception hierarchy for Moneytree authentication errors.

Each failure mode gets its own type so callers can tell a stale provider
page apart from rejected credentials or a broken network.
"""

from __future__ import annotations

from moneytree.auth.constants import ERROR_BODY_LIMIT


def truncate_body(body: str | None, limit: int = ERROR_BODY_LIMIT) -> str:
    """Shorten a response body for inclusion in error messages."""
    if not body:
        return ""
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class MoneytreeAuthError(Exception):
    """Base exception for all authentication related errors."""

    pass


class NetworkError(MoneytreeAuthError):
    """Raised when a request fails at the transport level or times out."""

    pass


class ProtocolError(MoneytreeAuthError):
    """Raised when the provider answers with an unexpected status or body."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = truncate_body(body)
        detail = message
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        if self.body:
            detail = f"{detail}: {self.body}"
        super().__init__(detail)


class TokenRefreshError(ProtocolError):
    """Raised when the token endpoint rejects a refresh token."""

    pass


class MissingArtifactError(MoneytreeAuthError):
    """Raised when an expected CSRF token, redirect or code is absent.

    Usually means the provider changed its login markup or flow.
    """

    pass


class CredentialError(MoneytreeAuthError):
    """Raised when the email/password pair is missing or rejected."""

    pass


class StorageError(MoneytreeAuthError):
    """Raised when tokens cannot be written to or cleared from storage."""

    pass


class PKCEError(MoneytreeAuthError):
    """Raised when PKCE parameter generation or validation fails."""

    pass


class ReauthenticationError(MoneytreeAuthError):
    """Raised when both a token refresh and the fallback login fail."""

    def __init__(
        self,
        refresh_error: BaseException,
        authentication_error: BaseException,
    ) -> None:
        self.refresh_error = refresh_error
        self.authentication_error = authentication_error
        super().__init__(
            f"Token refresh failed ({refresh_error}) and re-authentication "
            f"failed ({authentication_error}). Check your email and password."
        )
