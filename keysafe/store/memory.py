"""
In-memory RecordStore.

Behaves like the remote store as far as the vault layer can tell: records
are copied through JSON on the way in and out, ids and timestamps are
generated server-side, and declared unique keys are enforced.
"""
import string
import secrets
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from itertools import count
from typing import Any, Optional

import orjson

from ..exceptions import RecordNotFound, StoreError
from .base import Record, RecordStore

logger = logging.getLogger("keysafe.store")

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_LENGTH = 15


def _new_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _copy(data: Mapping[str, Any]) -> Record:
    return orjson.loads(orjson.dumps(dict(data)))


class MemoryRecordStore(RecordStore):
    """Dict-backed store.

    Args:
        unique: Per-collection field tuples that must be unique, e.g.
            ``{"env_vars": [("user", "name", "environment", "project")]}``.
    """

    def __init__(self, unique: Optional[Mapping[str, Sequence[Sequence[str]]]] = None):
        self._collections: dict[str, dict[str, Record]] = {}
        self._order: dict[str, int] = {}
        self._seq = count()
        self._unique = {k: [tuple(u) for u in v] for k, v in (unique or {}).items()}

    def _collection(self, name: str) -> dict[str, Record]:
        return self._collections.setdefault(name, {})

    def _lookup(self, collection: str, record_id: str) -> Record:
        try:
            return self._collection(collection)[record_id]
        except KeyError:
            raise RecordNotFound(
                f"Record {record_id} not found in {collection}", status=404,
            ) from None

    def _check_unique(self, collection: str, record: Record) -> None:
        for fields in self._unique.get(collection, ()):
            key = tuple(record.get(f) for f in fields)
            for other in self._collection(collection).values():
                if other["id"] == record["id"]:
                    continue
                if tuple(other.get(f) for f in fields) == key:
                    raise StoreError(
                        f"Value of {', '.join(fields)} must be unique in {collection}",
                        status=400,
                    )

    def raw(self, collection: str) -> list[Record]:
        """Stored records as-is (ciphertext included), for inspection."""
        return [_copy(r) for r in self._collection(collection).values()]

    async def list(
        self,
        collection: str,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
    ) -> list[Record]:
        records = [
            r for r in self._collection(collection).values()
            if all(r.get(k) == v for k, v in (filter or {}).items())
        ]
        if sort:
            field = sort.lstrip("-")
            records.sort(
                key=lambda r: (str(r.get(field, "")), self._order[r["id"]]),
                reverse=sort.startswith("-"),
            )
        return [_copy(r) for r in records]

    async def get(self, collection: str, record_id: str) -> Record:
        return _copy(self._lookup(collection, record_id))

    async def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        now = _timestamp()
        record = _copy(data)
        record.update(id=_new_id(), created=now, updated=now)
        self._check_unique(collection, record)
        self._collection(collection)[record["id"]] = record
        self._order[record["id"]] = next(self._seq)
        logger.debug("Created record id=%s in %s", record["id"], collection)
        return _copy(record)

    async def update(
        self, collection: str, record_id: str, data: Mapping[str, Any],
    ) -> Record:
        current = self._lookup(collection, record_id)
        record = {**current, **_copy(data)}
        record.update(id=record_id, created=current["created"], updated=_timestamp())
        self._check_unique(collection, record)
        self._collection(collection)[record_id] = record
        logger.debug("Updated record id=%s in %s", record_id, collection)
        return _copy(record)

    async def delete(self, collection: str, record_id: str) -> None:
        self._lookup(collection, record_id)
        del self._collection(collection)[record_id]
        self._order.pop(record_id, None)
        logger.debug("Deleted record id=%s from %s", record_id, collection)
