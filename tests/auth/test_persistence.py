"""Tests for the key-value persistence primitives."""

import json
import os
import stat
import threading

import pytest

from moneytree.auth.models.tokens import TokenSet
from moneytree.auth.persistence import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from moneytree.auth.services.storage import TokenStore


class TestMemoryKeyValueStore:
    async def test_get_set_remove(self):
        store = MemoryKeyValueStore()

        await store.set("k", "v")
        assert await store.get("k") == "v"

        await store.remove("k")
        await store.remove("k")
        assert await store.get("k") is None

    def test_satisfies_protocol(self):
        assert isinstance(MemoryKeyValueStore(), KeyValueStore)


class TestJsonFileKeyValueStore:
    async def test_values_survive_a_new_instance(self, tmp_path):
        path = tmp_path / "auth.json"
        await JsonFileKeyValueStore(path).set("k", "v")

        assert await JsonFileKeyValueStore(path).get("k") == "v"

    async def test_missing_file_reads_as_empty(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path / "nested" / "auth.json")

        assert await store.get("k") is None

    async def test_remove(self, tmp_path):
        path = tmp_path / "auth.json"
        store = JsonFileKeyValueStore(path)
        await store.set("a", "1")
        await store.set("b", "2")

        await store.remove("a")

        assert json.loads(path.read_text()) == {"b": "2"}

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    async def test_file_is_private(self, tmp_path):
        path = tmp_path / "auth.json"

        await JsonFileKeyValueStore(path).set("k", "v")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert not (tmp_path / "auth.json.tmp").exists()

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    async def test_corrupt_file_reads_as_empty(self, tmp_path, content):
        path = tmp_path / "auth.json"
        path.write_text(content)

        assert await JsonFileKeyValueStore(path).get("k") is None

    async def test_corrupt_file_is_replaced_on_write(self, tmp_path):
        # Arrange
        path = tmp_path / "auth.json"
        path.write_text("{not json")
        store = JsonFileKeyValueStore(path)

        # Act
        await store.remove("k")
        await store.set("k", "v")

        # Assert
        assert json.loads(path.read_text()) == {"k": "v"}

    async def test_token_store_recovers_from_corrupt_file(self, tmp_path):
        # Arrange
        path = tmp_path / "auth.json"
        path.write_text("{not json")
        token_store = TokenStore(JsonFileKeyValueStore(path))
        token_set = TokenSet(access_token="a", refresh_token="r", expires_at=10.0)

        # Act
        await token_store.save(token_set)
        loaded = await token_store.load()
        await token_store.clear()

        # Assert
        assert loaded == token_set
        assert await token_store.load() is None

    async def test_file_io_runs_off_the_event_loop(self, tmp_path, monkeypatch):
        # Arrange
        store = JsonFileKeyValueStore(tmp_path / "auth.json")
        threads = []
        read = store._read

        def recording_read():
            threads.append(threading.get_ident())
            return read()

        monkeypatch.setattr(store, "_read", recording_read)

        # Act
        await store.set("k", "v")
        await store.get("k")
        await store.remove("k")

        # Assert
        assert len(threads) == 3
        assert threading.get_ident() not in threads

    def test_env_overrides_default_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MONEYTREE_AUTH_STORAGE_PATH", str(tmp_path / "x.json"))

        assert JsonFileKeyValueStore().path == tmp_path / "x.json"
