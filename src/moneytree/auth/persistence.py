"""Key-value persistence primitives backing the token store.

Every write coroutine returns only once the value is durable, so callers can
re-read immediately to confirm a write or a removal.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

STORAGE_PATH_ENV = "MONEYTREE_AUTH_STORAGE_PATH"


def default_storage_path() -> Path:
    return Path(
        os.getenv(STORAGE_PATH_ENV) or Path.home() / ".moneytree" / "auth.json"
    ).expanduser()


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal persistence contract: private to the user, durable across runs."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store, for tests and short-lived scripts."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore:
    """Single JSON document on disk, rewritten atomically on every change.

    Writes go to a temporary file that replaces the document with
    ``os.replace``, so readers see either the old or the new version. The
    file is created with mode 0600.
    """

    def __init__(self, path: str | os.PathLike[str] | None = None):
        self.path = Path(path).expanduser() if path else default_storage_path()

    async def get(self, key: str) -> str | None:
        value = (await asyncio.to_thread(self._read)).get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._update, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._update, key, None)

    def _update(self, key: str, value: str | None) -> None:
        data = self._read()
        if value is not None:
            data[key] = value
        elif key in data:
            del data[key]
        else:
            return
        self._write(data)

    def _read(self) -> dict[str, str]:
        """Load the document; an unreadable one counts as empty.

        The next write replaces a corrupt document, so a damaged file never
        blocks saving new tokens or clearing old ones.
        """
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring token file {self.path}: not a JSON object")
            return {}
        return data

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, separators=(",", ":"), sort_keys=True)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)  # atomic on POSIX
