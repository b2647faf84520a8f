"""
Record Store contract — the external datastore seen by the vault layer.

Records are plain dicts carrying at least ``id``, ``created`` and
``updated``. The store performs no cryptography: every sensitive field
arrives already encrypted.
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Optional

Record = dict[str, Any]


class RecordStore(ABC):
    """Async CRUD over named collections."""

    @abstractmethod
    async def list(
        self,
        collection: str,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
    ) -> list[Record]:
        """List records matching all ``filter`` equalities.

        Args:
            collection: Collection name.
            filter: Field/value pairs that must all match.
            sort: Field name, prefixed with ``-`` for descending order.
        """

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Record:
        """Fetch one record.

        Raises:
            RecordNotFound: If no record has this id.
        """

    @abstractmethod
    async def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        """Create a record and return it with its generated fields."""

    @abstractmethod
    async def update(
        self, collection: str, record_id: str, data: Mapping[str, Any],
    ) -> Record:
        """Apply a partial update and return the stored record.

        Raises:
            RecordNotFound: If no record has this id.
        """

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record.

        Raises:
            RecordNotFound: If no record has this id.
        """

    async def first(
        self, collection: str, filter: Mapping[str, Any],
    ) -> Optional[Record]:
        """Return the first record matching ``filter``, or None."""
        records = await self.list(collection, filter=filter)
        return records[0] if records else None

    async def close(self) -> None:
        """Release backend resources."""
