"""
Typed records exchanged with the external record store.

Store payloads are validated into these models before use; unknown fields
are dropped and ``None`` values fall back to the field defaults. Wire names
of the store (``user``, ``totpSecret``) are kept as aliases.

Record models always hold *plaintext*: encryption happens at the
repository boundary (see ``keysafe.repository``).
"""
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidEnvVarName

Environment = Literal["development", "staging", "production", "all"]
ENVIRONMENTS: tuple[str, ...] = ("development", "staging", "production", "all")

ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def normalize_env_name(name: str) -> str:
    """Validate an environment variable name and upper-case it.

    Raises:
        InvalidEnvVarName: If the name is not an identifier.
    """
    candidate = (name or "").strip()
    if not ENV_NAME_PATTERN.match(candidate):
        raise InvalidEnvVarName(
            f"Invalid variable name {name!r}: use letters, digits and "
            "underscores, not starting with a digit"
        )
    return candidate.upper()


class StoreModel(BaseModel):
    """Base for models read from or written to the record store."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class User(StoreModel):
    id: str
    email: str = ""
    name: str = ""
    created: str = ""
    updated: str = ""


class MasterKeyMaterial(StoreModel):
    """Salt and verification hash of a user's master password.

    Lives in the shared ``user_settings`` collection so that every device
    re-derives the same key.
    """

    id: str = ""
    user: str
    master_salt: str = ""
    master_hash: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.master_salt and self.master_hash)


# --- Credentials ---

class CredentialForm(StoreModel):
    """Plaintext input for creating or updating a credential."""

    name: str
    username: str
    password: str
    url: str = ""
    notes: str = ""
    category: str = ""
    totp_secret: str = Field(default="", alias="totpSecret")


class CredentialRecord(StoreModel):
    """Decrypted credential."""

    id: str
    owner_id: str = Field(alias="user")
    name: str
    username: str
    password: str
    url: str = ""
    notes: str = ""
    category: str = ""
    totp_secret: str = Field(default="", alias="totpSecret")
    created: str = ""
    updated: str = ""

    @property
    def has_totp(self) -> bool:
        return bool(self.totp_secret)


# --- Environment variables ---

class EnvVarForm(StoreModel):
    """Plaintext input for an environment variable; the name is normalized."""

    name: str
    value: str
    environment: Environment = "development"
    project: str = ""
    description: str = ""

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return normalize_env_name(v)


class EnvVarRecord(StoreModel):
    """Decrypted environment variable."""

    id: str
    owner_id: str = Field(alias="user")
    name: str
    value: str
    environment: Environment = "development"
    project: str = ""
    description: str = ""
    created: str = ""
    updated: str = ""


class ImportResult(BaseModel):
    """Outcome of a bulk import."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
