"""
Account authentication collaborators.

The vault layer does not authenticate accounts itself: an
:class:`AuthBackend` checks email/password and returns a token plus the
user model. Tokens survive restarts through a :class:`TokenStorage`,
which logout purges.

Security Note:
    Tokens are bearer credentials. Never log them.
"""
import os
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import NamedTuple, Optional, Union

import orjson

from .data import User

logger = logging.getLogger("keysafe.auth")

AUTH_TOKEN_KEY = "auth_token"
AUTH_MODEL_KEY = "auth_model"


class AuthResult(NamedTuple):
    token: str
    user: User


class AuthBackend(ABC):
    """External identity provider."""

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> AuthResult:
        """Check account credentials.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """

    @abstractmethod
    async def register(self, email: str, password: str, name: str) -> User:
        """Create an account. Does not log in."""

    @abstractmethod
    def validate_token(self, token: str) -> bool:
        """Whether a persisted token is still usable."""

    @abstractmethod
    def restore(self, token: str, user: User) -> None:
        """Reuse a persisted token for subsequent calls."""

    @abstractmethod
    def clear(self) -> None:
        """Forget the current token."""


class TokenStorage(ABC):
    """Async key/value storage for auth state."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    async def save_auth(self, result: AuthResult) -> None:
        await self.set(AUTH_TOKEN_KEY, result.token)
        await self.set(
            AUTH_MODEL_KEY, orjson.dumps(result.user.model_dump()).decode("utf-8"),
        )

    async def load_auth(self) -> Optional[AuthResult]:
        """Return the persisted auth, or None when missing or unreadable."""
        token = await self.get(AUTH_TOKEN_KEY)
        model = await self.get(AUTH_MODEL_KEY)
        if not token or not model:
            return None
        try:
            user = User.model_validate(orjson.loads(model))
        except ValueError as err:
            logger.warning("Discarding unreadable persisted auth model: %s", err)
            return None
        return AuthResult(token=token, user=user)

    async def purge(self) -> None:
        await self.delete(AUTH_TOKEN_KEY)
        await self.delete(AUTH_MODEL_KEY)


class MemoryTokenStorage(TokenStorage):
    def __init__(self):
        self._items: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set(self, key: str, value: str) -> None:
        self._items[key] = value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)


class FileTokenStorage(TokenStorage):
    """JSON file readable by the owner only (mode 0600)."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    # Blocking file I/O inside the async methods: the file holds two short
    # entries and is touched only on login, restore and logout.

    def _read(self) -> dict[str, str]:
        try:
            items = orjson.loads(self._path.read_bytes())
        except FileNotFoundError:
            return {}
        except orjson.JSONDecodeError as err:
            logger.warning("Token file %s is corrupt, ignoring: %s", self._path, err)
            return {}
        if not isinstance(items, dict):
            logger.warning(
                "Token file %s is corrupt, ignoring: expected an object, got %s",
                self._path, type(items).__name__,
            )
            return {}
        return items

    def _write(self, items: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fp:
            fp.write(orjson.dumps(items))

    async def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    async def set(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    async def delete(self, key: str) -> None:
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)
