"""User-supplied configuration.

Endpoints and client identification are compiled in (see ``constants``);
only the account credentials and a few runtime knobs come from the user.

Environment variables
---------------------
MONEYTREE_EMAIL, MONEYTREE_PASSWORD
    Account credentials used by the automated login.
MONEYTREE_AUTH_TIMEOUT
    Per-request HTTP timeout in seconds (default 30).
MONEYTREE_AUTH_STORAGE_PATH
    Token file for :class:`~moneytree.auth.persistence.JsonFileKeyValueStore`.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr

from moneytree.auth.constants import DEFAULT_TIMEOUT, EXPIRY_BUFFER_SECONDS
from moneytree.auth.persistence import default_storage_path

EMAIL_ENV = "MONEYTREE_EMAIL"
PASSWORD_ENV = "MONEYTREE_PASSWORD"
TIMEOUT_ENV = "MONEYTREE_AUTH_TIMEOUT"


class Credentials(BaseModel):
    """Email/password pair. Held in memory only, never persisted."""

    email: str
    password: SecretStr

    def is_complete(self) -> bool:
        return bool(self.email.strip() and self.password.get_secret_value())

    @classmethod
    def from_env(cls) -> Credentials | None:
        """Read credentials from the environment, or None if either is unset."""
        email = os.getenv(EMAIL_ENV)
        password = os.getenv(PASSWORD_ENV)
        if not email or not password:
            return None
        return cls(email=email, password=password)


class AuthSettings(BaseModel):
    """Runtime settings for the authentication manager and its clients."""

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    expiry_buffer: float = Field(default=EXPIRY_BUFFER_SECONDS, ge=0)
    storage_path: Path = Field(default_factory=default_storage_path)

    @classmethod
    def from_env(cls) -> AuthSettings:
        timeout = os.getenv(TIMEOUT_ENV)
        if timeout:
            return cls(timeout=float(timeout))
        return cls()
