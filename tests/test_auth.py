"""
Tests for auth token persistence.

Tests cover:
- Saving and loading the token plus user model
- Purging on logout
- Owner-only file permissions and corrupt files
"""
import os
import stat

import pytest

from keysafe.auth import (
    AUTH_MODEL_KEY,
    AUTH_TOKEN_KEY,
    AuthResult,
    FileTokenStorage,
    MemoryTokenStorage,
)
from keysafe.data import User

ALICE = User(id="u1", email="alice@example.com", name="Alice")


@pytest.fixture(params=["memory", "file"])
def storage(request, tmp_path):
    if request.param == "memory":
        return MemoryTokenStorage()
    return FileTokenStorage(tmp_path / "state" / "auth.json")


class TestTokenStorage:

    @pytest.mark.asyncio
    async def test_save_and_load(self, storage):
        await storage.save_auth(AuthResult(token="tok", user=ALICE))
        loaded = await storage.load_auth()
        assert loaded.token == "tok"
        assert loaded.user == ALICE

    @pytest.mark.asyncio
    async def test_load_empty(self, storage):
        assert await storage.load_auth() is None

    @pytest.mark.asyncio
    async def test_purge(self, storage):
        await storage.save_auth(AuthResult(token="tok", user=ALICE))
        await storage.purge()
        assert await storage.get(AUTH_TOKEN_KEY) is None
        assert await storage.get(AUTH_MODEL_KEY) is None
        assert await storage.load_auth() is None

    @pytest.mark.asyncio
    async def test_unreadable_model(self, storage, caplog):
        await storage.set(AUTH_TOKEN_KEY, "tok")
        await storage.set(AUTH_MODEL_KEY, "{not json")
        assert await storage.load_auth() is None
        assert "tok" not in caplog.text

    @pytest.mark.asyncio
    async def test_delete_missing_key(self, storage):
        await storage.delete("nothing")
        assert await storage.get("nothing") is None


class TestFileTokenStorage:

    @pytest.mark.asyncio
    async def test_owner_only_permissions(self, tmp_path):
        path = tmp_path / "auth.json"
        storage = FileTokenStorage(path)
        await storage.set(AUTH_TOKEN_KEY, "tok")
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        path = tmp_path / "auth.json"
        await FileTokenStorage(path).save_auth(AuthResult(token="tok", user=ALICE))
        loaded = await FileTokenStorage(path).load_auth()
        assert loaded.user.id == "u1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [b"[]", b"\"token\"", b"42", b"null"])
    async def test_non_object_file_treated_as_empty(self, tmp_path, caplog, content):
        path = tmp_path / "auth.json"
        path.write_bytes(content)
        storage = FileTokenStorage(path)
        assert await storage.get(AUTH_TOKEN_KEY) is None
        assert await storage.load_auth() is None
        assert "corrupt" in caplog.text
        await storage.set(AUTH_TOKEN_KEY, "tok")
        assert await storage.get(AUTH_TOKEN_KEY) == "tok"

    @pytest.mark.asyncio
    async def test_corrupt_file_treated_as_empty(self, tmp_path, caplog):
        path = tmp_path / "auth.json"
        path.write_bytes(b"\x00garbage")
        storage = FileTokenStorage(path)
        assert await storage.get(AUTH_TOKEN_KEY) is None
        assert "corrupt" in caplog.text
        await storage.set(AUTH_TOKEN_KEY, "tok")
        assert await storage.get(AUTH_TOKEN_KEY) == "tok"
