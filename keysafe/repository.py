"""
Encrypted repositories — decrypt on read, encrypt on write.

Each repository maps one store collection to a typed record model.
Sensitive fields are encrypted with the VaultSession's resident key
before they reach the store and decrypted right after they come back;
everything else passes through as plaintext. A record that fails to
decrypt makes the whole read fail: no blank value is ever substituted.

Security Note:
    Never log field values. Log record ids and collection names only.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel

from .data import (
    CredentialForm,
    CredentialRecord,
    EnvVarForm,
    EnvVarRecord,
    Environment,
    ImportResult,
    normalize_env_name,
)
from .exceptions import (
    DecryptionError,
    MalformedInputError,
    RecordNotFound,
    StoreError,
    VaultLockedError,
)
from .store.base import Record, RecordStore
from .vault.session import VaultSession

logger = logging.getLogger("keysafe.vault")

R = TypeVar("R", bound=BaseModel)
F = TypeVar("F", bound=BaseModel)

UNGROUPED = "Ungrouped"


class EncryptedRecordRepository(Generic[F, R]):
    """CRUD over one collection with field-level encryption.

    Subclasses declare the collection, the record model, the wire names of
    the encrypted fields and which of those are required. Optional
    encrypted fields are stored as ``""`` when empty.
    """

    collection: ClassVar[str]
    record_model: ClassVar[type[BaseModel]]
    encrypted_fields: ClassVar[tuple[str, ...]] = ()
    required_encrypted: ClassVar[frozenset[str]] = frozenset()
    sort: ClassVar[str] = "-created"

    def __init__(self, store: RecordStore, session: VaultSession):
        self._store = store
        self._session = session

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _owner_id(self) -> str:
        user = self._session.require_user()
        if not self._session.is_unlocked:
            raise VaultLockedError("Vault is locked")
        return user.id

    async def _owned(self, record_id: str) -> Record:
        owner = self._owner_id()
        record = await self._store.get(self.collection, record_id)
        if record.get("user") != owner:
            raise RecordNotFound(
                f"Record {record_id} not found in {self.collection}", status=404,
            )
        return record

    def _encrypt_payload(self, form: F) -> dict[str, Any]:
        payload = form.model_dump(by_alias=True)
        for field in self.encrypted_fields:
            value = payload.get(field) or ""
            if value or field in self.required_encrypted:
                payload[field] = self._session.encrypt(value)
            else:
                payload[field] = ""
        return payload

    def _decrypt_record(self, record: Record) -> R:
        data = dict(record)
        for field in self.encrypted_fields:
            value = data.get(field) or ""
            if not value and field not in self.required_encrypted:
                data[field] = ""
                continue
            try:
                data[field] = self._session.decrypt(value)
            except DecryptionError as err:
                logger.error(
                    "Cannot decrypt field %s of %s record=%s: %s",
                    field, self.collection, record.get("id"), err,
                )
                raise
        return self.record_model.model_validate(data)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def list(self) -> list[R]:
        """All records of the current user, newest first."""
        owner = self._owner_id()
        records = await self._store.list(
            self.collection, filter={"user": owner}, sort=self.sort,
        )
        logger.debug("Fetched %d %s record(s) for user=%s", len(records), self.collection, owner)
        return [self._decrypt_record(r) for r in records]

    async def get(self, record_id: str) -> R:
        return self._decrypt_record(await self._owned(record_id))

    async def create(self, form: F) -> R:
        owner = self._owner_id()
        payload = self._encrypt_payload(form)
        payload["user"] = owner
        record = await self._store.create(self.collection, payload)
        logger.debug("Created %s record=%s", self.collection, record.get("id"))
        return self._decrypt_record(record)

    async def update(self, record_id: str, form: F) -> R:
        await self._owned(record_id)
        payload = self._encrypt_payload(form)
        record = await self._store.update(self.collection, record_id, payload)
        logger.debug("Updated %s record=%s", self.collection, record_id)
        return self._decrypt_record(record)

    async def delete(self, record_id: str) -> None:
        await self._owned(record_id)
        await self._store.delete(self.collection, record_id)
        logger.debug("Deleted %s record=%s", self.collection, record_id)


class CredentialRepository(EncryptedRecordRepository[CredentialForm, CredentialRecord]):
    """Website/app credentials (``passwords`` collection)."""

    collection = "passwords"
    record_model = CredentialRecord
    encrypted_fields = ("username", "password", "notes", "totpSecret")
    required_encrypted = frozenset({"username", "password"})

    async def categories(self) -> list[str]:
        """Sorted distinct non-empty categories."""
        return sorted({r.category for r in await self.list() if r.category})

    async def import_credentials(
        self,
        items: Iterable[Mapping[str, Any]],
        skip_existing: bool = True,
        default_category: str = "",
    ) -> ImportResult:
        """Create credentials from already-parsed rows.

        Rows missing name, username or password are skipped with an error
        message. With ``skip_existing``, a row whose case-insensitive
        ``name:username`` already exists is skipped silently.
        """
        result = ImportResult()
        existing = {
            f"{r.name.lower()}:{r.username.lower()}" for r in await self.list()
        }
        for item in items:
            name = (item.get("name") or "").strip()
            username = item.get("username") or ""
            password = item.get("password") or ""
            if not name or not username or not password:
                result.errors.append(
                    f"Skipped entry with missing required fields: {name or 'unnamed'}"
                )
                result.skipped += 1
                continue
            dedup = f"{name.lower()}:{username.lower()}"
            if skip_existing and dedup in existing:
                result.skipped += 1
                continue
            form = CredentialForm(
                name=name,
                username=username,
                password=password,
                url=item.get("url") or "",
                notes=item.get("notes") or "",
                category=item.get("category") or default_category,
                totp_secret=item.get("totp_secret") or item.get("totpSecret") or "",
            )
            try:
                await self.create(form)
            except StoreError as err:
                result.errors.append(f'Failed to import "{name}": {err}')
                continue
            existing.add(dedup)
            result.imported += 1
        logger.info(
            "Credential import: %d imported, %d skipped, %d error(s)",
            result.imported, result.skipped, len(result.errors),
        )
        return result


class EnvVarRepository(EncryptedRecordRepository[EnvVarForm, EnvVarRecord]):
    """Environment variables (``env_vars`` collection)."""

    collection = "env_vars"
    record_model = EnvVarRecord
    encrypted_fields = ("value",)
    required_encrypted = frozenset({"value"})

    async def projects(self) -> list[str]:
        """Sorted distinct non-empty project names."""
        return sorted({r.project for r in await self.list() if r.project})

    async def group_by_project(self) -> dict[str, list[EnvVarRecord]]:
        """Records keyed by project; records without one go to ``Ungrouped``."""
        grouped: dict[str, list[EnvVarRecord]] = {UNGROUPED: []}
        for record in await self.list():
            grouped.setdefault(record.project or UNGROUPED, []).append(record)
        if not grouped[UNGROUPED]:
            del grouped[UNGROUPED]
        return grouped

    async def import_env_vars(
        self,
        pairs: Iterable[tuple[str, str]],
        environment: Environment,
        project: Optional[str] = None,
        skip_existing: bool = False,
    ) -> ImportResult:
        """Create variables from already-parsed ``(name, value)`` pairs.

        Invalid names are rejected with an error message before reaching
        the store.
        """
        result = ImportResult()
        existing = {r.name for r in await self.list()}
        for raw_name, value in pairs:
            try:
                name = normalize_env_name(raw_name)
            except MalformedInputError as err:
                result.errors.append(str(err))
                result.skipped += 1
                continue
            if skip_existing and name in existing:
                result.skipped += 1
                continue
            form = EnvVarForm(
                name=name, value=value, environment=environment, project=project or "",
            )
            try:
                await self.create(form)
            except StoreError as err:
                logger.error("Failed to import variable %s: %s", name, err)
                result.errors.append(f"Failed to import {name}")
                continue
            existing.add(name)
            result.imported += 1
        logger.info(
            "Env var import: %d imported, %d skipped, %d error(s)",
            result.imported, result.skipped, len(result.errors),
        )
        return result
