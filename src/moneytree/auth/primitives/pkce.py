"""PKCE (Proof Key for Code Exchange) manager.

Implements RFC 7636 S256 parameter generation. The verifier is 32 bytes of
``secrets`` randomness in URL-safe base64, matching what the Moneytree web
client sends.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from moneytree.auth.models.errors import PKCEError
from moneytree.auth.models.security import PKCEParameters

_VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


class PKCEManager:
    """Generates and checks PKCE parameters for authorization attempts.

    A challenge is only ever derived from a verifier held by this client;
    :meth:`verify` exists so that externally supplied pairs can be
    recomputed instead of trusted.
    """

    def generate_parameters(self) -> PKCEParameters:
        """Generate a new verifier/challenge pair.

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            return self.from_verifier(self._generate_code_verifier())
        except PKCEError:
            raise
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

    def from_verifier(self, code_verifier: str) -> PKCEParameters:
        """Rebuild the parameters for an existing verifier.

        Raises:
            PKCEError: If the verifier is not a valid RFC 7636 verifier
        """
        try:
            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=self._generate_code_challenge(code_verifier),
                code_challenge_method="S256",
            )
        except (ValueError, UnicodeEncodeError) as e:
            raise PKCEError(f"Invalid code verifier: {e}") from e

    def verify(self, code_verifier: str, code_challenge: str) -> bool:
        """Check that ``code_challenge`` is the S256 transform of the verifier."""
        try:
            expected = self._generate_code_challenge(code_verifier)
        except UnicodeEncodeError:
            return False
        return secrets.compare_digest(expected, code_challenge)

    def _generate_code_verifier(self) -> str:
        """Return a 43-character verifier from 32 random bytes."""
        return _b64url(secrets.token_bytes(_VERIFIER_BYTES))

    def _generate_code_challenge(self, code_verifier: str) -> str:
        """BASE64URL-ENCODE(SHA256(ASCII(code_verifier))), RFC 7636 Section 4.2."""
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return _b64url(digest)
