"""Token set and token endpoint models.

Contains the persisted token set, the raw token endpoint response and the
request payloads sent to the token endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

from moneytree.auth.constants import CLIENT_ID, REDIRECT_URI


@dataclass(frozen=True)
class TokenSet:
    """The single credential set held for this installation.

    Replaced wholesale on refresh; never mutated in place.
    """

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: float  # Unix timestamp
    verifier_used: str | None = field(default=None, repr=False)

    def is_usable(self, now: float, buffer_seconds: float) -> bool:
        """Check the token stays valid for more than ``buffer_seconds``."""
        return self.expires_at - now > buffer_seconds


class TokenResponse(BaseModel):
    """Token endpoint response body.

    Moneytree follows RFC 6749 Section 5 and additionally sends
    ``created_at`` (Unix seconds) alongside ``expires_in``.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    created_at: int | None = None
    scope: str | None = None

    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.access_token is not None

    def calculate_expires_at(self, now: float) -> float:
        """Absolute expiry, anchored on ``created_at`` when the provider sends it."""
        issued_at = float(self.created_at) if self.created_at is not None else now
        return issued_at + self.expires_in

    def to_token_set(
        self,
        now: float,
        verifier_used: str | None = None,
        previous_refresh_token: str | None = None,
    ) -> TokenSet:
        """Convert a successful response to a TokenSet.

        Raises:
            ValueError: If the response is not successful or carries no
                refresh token and none can be carried over, or lacks
                ``expires_in``
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenSet")
        if self.expires_in is None:
            raise ValueError("Token response missing expires_in")

        refresh_token = self.refresh_token or previous_refresh_token
        if not refresh_token:
            raise ValueError("Token response missing refresh_token")

        return TokenSet(
            access_token=self.access_token,
            refresh_token=refresh_token,
            expires_at=self.calculate_expires_at(now),
            verifier_used=verifier_used,
        )


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange payload."""

    code: str
    code_verifier: str = field(repr=False)
    client_id: str = CLIENT_ID
    redirect_uri: str = REDIRECT_URI
    grant_type: str = "authorization_code"

    def to_json(self) -> dict[str, str]:
        return {
            "code": self.code,
            "client_id": self.client_id,
            "grant_type": self.grant_type,
            "redirect_uri": self.redirect_uri,
            "code_verifier": self.code_verifier,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token payload, sent to the same endpoint as the exchange."""

    refresh_token: str = field(repr=False)
    client_id: str = CLIENT_ID
    redirect_uri: str = REDIRECT_URI
    grant_type: str = "refresh_token"

    def to_json(self) -> dict[str, str]:
        return {
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "grant_type": self.grant_type,
            "redirect_uri": self.redirect_uri,
        }
