"""Persistence of the single token set.

Partial or unreadable state loads as "no credentials" so the manager falls
through to a fresh login instead of failing.
"""

from __future__ import annotations

import logging

from moneytree.auth.constants import (
    STORAGE_KEY_ACCESS_TOKEN,
    STORAGE_KEY_CODE_VERIFIER,
    STORAGE_KEY_EXPIRES_AT,
    STORAGE_KEY_REFRESH_TOKEN,
    STORAGE_KEYS,
)
from moneytree.auth.models.errors import StorageError
from moneytree.auth.models.tokens import TokenSet
from moneytree.auth.persistence import KeyValueStore

logger = logging.getLogger(__name__)


class TokenStore:
    """Loads, saves and clears the token set in a key-value store.

    Not locked itself; the authentication manager serialises every write.
    """

    def __init__(self, backend: KeyValueStore):
        self._backend = backend

    async def load(self) -> TokenSet | None:
        """Return the stored token set, or None if absent or unreadable."""
        try:
            access_token = await self._backend.get(STORAGE_KEY_ACCESS_TOKEN)
            refresh_token = await self._backend.get(STORAGE_KEY_REFRESH_TOKEN)
            expires_at = await self._backend.get(STORAGE_KEY_EXPIRES_AT)
            verifier = await self._backend.get(STORAGE_KEY_CODE_VERIFIER)
        except Exception as e:
            logger.warning(f"Could not read stored tokens: {e}")
            return None

        if not access_token or not refresh_token or not expires_at:
            return None

        try:
            expires_at_value = float(expires_at)
        except ValueError:
            logger.warning("Stored token expiry is not a number; ignoring tokens")
            return None

        return TokenSet(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at_value,
            verifier_used=verifier or None,
        )

    async def save(self, token_set: TokenSet) -> None:
        """Persist every field of ``token_set``, replacing the previous set.

        Raises:
            StorageError: If the backend fails to write
        """
        try:
            await self._backend.set(STORAGE_KEY_ACCESS_TOKEN, token_set.access_token)
            await self._backend.set(
                STORAGE_KEY_REFRESH_TOKEN, token_set.refresh_token
            )
            await self._backend.set(
                STORAGE_KEY_EXPIRES_AT, repr(float(token_set.expires_at))
            )
            if token_set.verifier_used:
                await self._backend.set(
                    STORAGE_KEY_CODE_VERIFIER, token_set.verifier_used
                )
            else:
                await self._backend.remove(STORAGE_KEY_CODE_VERIFIER)
        except Exception as e:
            raise StorageError(f"Failed to save tokens: {e}") from e
        logger.debug("Saved token set")

    async def clear(self) -> None:
        """Remove every stored field. Safe to call when nothing is stored.

        Raises:
            StorageError: If the backend fails to remove a key
        """
        try:
            for key in STORAGE_KEYS:
                await self._backend.remove(key)
        except Exception as e:
            raise StorageError(f"Failed to clear tokens: {e}") from e
        logger.debug("Cleared stored tokens")
