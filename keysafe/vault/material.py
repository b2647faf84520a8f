"""
Master key material persistence (``user_settings`` collection).

One record per user holds ``master_salt`` and ``master_hash``. The record
lives in the shared store, not on the device, so every device unlocking
the account derives the same key. No cryptography happens here.
"""
import logging
from typing import Optional

from ..data import MasterKeyMaterial
from ..store.base import RecordStore

logger = logging.getLogger("keysafe.vault")

SETTINGS_COLLECTION = "user_settings"


class MasterKeyStore:
    """Find/create/update a user's MasterKeyMaterial."""

    def __init__(self, store: RecordStore, collection: str = SETTINGS_COLLECTION):
        self._store = store
        self._collection = collection

    async def find(self, user_id: str) -> Optional[MasterKeyMaterial]:
        """Return the user's material, or None if never set up."""
        record = await self._store.first(self._collection, {"user": user_id})
        if record is None:
            return None
        return MasterKeyMaterial.model_validate(record)

    async def save(self, user_id: str, salt: str, hash: str) -> MasterKeyMaterial:
        """Update the existing record or create one.

        Two devices setting up at the same time race here; the last write
        wins.
        """
        existing = await self.find(user_id)
        fields = {"master_salt": salt, "master_hash": hash}
        if existing is not None and existing.id:
            record = await self._store.update(self._collection, existing.id, fields)
            logger.info("Updated master key material for user=%s", user_id)
        else:
            record = await self._store.create(
                self._collection, {"user": user_id, **fields},
            )
            logger.info("Created master key material for user=%s", user_id)
        return MasterKeyMaterial.model_validate(record)
