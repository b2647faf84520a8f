"""
PocketBase client — RecordStore and AuthBackend over the REST API.

Endpoints used:
    POST   /api/collections/users/auth-with-password
    POST   /api/collections/users/records
    GET    /api/collections/{collection}/records?filter=...&sort=...&page=N
    GET    /api/collections/{collection}/records/{id}
    POST   /api/collections/{collection}/records
    PATCH  /api/collections/{collection}/records/{id}
    DELETE /api/collections/{collection}/records/{id}

Security Note:
    Never log request bodies, tokens or passwords.
"""
import time
import base64
import logging
from collections.abc import Mapping
from typing import Any, Optional

import aiohttp
import orjson

from ..auth import AuthBackend, AuthResult
from ..data import User
from ..exceptions import AuthenticationError, RecordNotFound, StoreError
from .base import Record, RecordStore

logger = logging.getLogger("keysafe.store")

USERS_COLLECTION = "users"
PER_PAGE = 200
DEFAULT_TIMEOUT = 30


def quote_value(value: Any) -> str:
    """Render a value as a PocketBase filter literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_filter(filter: Optional[Mapping[str, Any]]) -> str:
    """Equality filter: ``a = "x" && b = "y"``."""
    return " && ".join(f"{k} = {quote_value(v)}" for k, v in (filter or {}).items())


def token_expiry(token: str) -> Optional[int]:
    """``exp`` claim of a JWT, without verifying its signature."""
    try:
        payload = token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = orjson.loads(base64.urlsafe_b64decode(payload))
        return int(claims["exp"])
    except (IndexError, KeyError, TypeError, ValueError):
        return None


class PocketBaseClient(RecordStore, AuthBackend):
    """Async client for a PocketBase server.

    Args:
        base_url: Server root, e.g. ``http://127.0.0.1:8090``.
        timeout: Total timeout per request in seconds.
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT):
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._token: Optional[str] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> Optional[str]:
        return self._token

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session. Call on shutdown."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _records_url(self, collection: str, record_id: Optional[str] = None) -> str:
        url = f"{self._base_url}/api/collections/{collection}/records"
        return f"{url}/{record_id}" if record_id else url

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        session = await self._get_session()
        headers = {"Authorization": self._token} if self._token else {}
        try:
            async with session.request(
                method, url, params=params, json=json, headers=headers,
            ) as resp:
                body = await resp.read()
                if resp.status == 404:
                    raise RecordNotFound(f"Not found: {method} {url}", status=404)
                if resp.status >= 400:
                    raise StoreError(
                        f"{method} {url} failed: {self._error_message(body)}",
                        status=resp.status,
                    )
                return orjson.loads(body) if body else None
        except aiohttp.ClientError as err:
            raise StoreError(f"{method} {url} failed: {err}") from err

    @staticmethod
    def _error_message(body: bytes) -> str:
        try:
            return str(orjson.loads(body).get("message", "unknown error"))
        except (AttributeError, ValueError):
            return "unknown error"

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    async def list(
        self,
        collection: str,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
    ) -> list[Record]:
        params = {"perPage": PER_PAGE}
        if filter:
            params["filter"] = build_filter(filter)
        if sort:
            params["sort"] = sort
        items: list[Record] = []
        page = 1
        while True:
            data = await self._request(
                "GET", self._records_url(collection), params={**params, "page": page},
            )
            items.extend(data.get("items", []))
            if page >= int(data.get("totalPages", 1)):
                break
            page += 1
        return items

    async def get(self, collection: str, record_id: str) -> Record:
        return await self._request("GET", self._records_url(collection, record_id))

    async def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        record = await self._request("POST", self._records_url(collection), json=data)
        logger.debug("Created record id=%s in %s", record.get("id"), collection)
        return record

    async def update(
        self, collection: str, record_id: str, data: Mapping[str, Any],
    ) -> Record:
        return await self._request(
            "PATCH", self._records_url(collection, record_id), json=data,
        )

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", self._records_url(collection, record_id))

    # ------------------------------------------------------------------
    # AuthBackend
    # ------------------------------------------------------------------

    async def authenticate(self, email: str, password: str) -> AuthResult:
        url = f"{self._base_url}/api/collections/{USERS_COLLECTION}/auth-with-password"
        try:
            data = await self._request(
                "POST", url, json={"identity": email, "password": password},
            )
        except StoreError as err:
            if err.status in (400, 401, 403, 404):
                raise AuthenticationError("Invalid email or password") from err
            raise
        self._token = data["token"]
        user = User.model_validate(data["record"])
        logger.info("Authenticated user=%s", user.id)
        return AuthResult(token=self._token, user=user)

    async def register(self, email: str, password: str, name: str) -> User:
        record = await self._request(
            "POST",
            self._records_url(USERS_COLLECTION),
            json={
                "email": email,
                "password": password,
                "passwordConfirm": password,
                "name": name,
            },
        )
        user = User.model_validate(record)
        logger.info("Registered user=%s", user.id)
        return user

    def validate_token(self, token: str) -> bool:
        exp = token_expiry(token)
        return exp is not None and exp > time.time()

    def restore(self, token: str, user: User) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None
