"""Vault — master-password key management, field cipher, TOTP and session lock.

Security Note (Threat Model):
    The session key and decrypted values live in process memory while the
    vault is unlocked. A memory dump of the client process could expose
    them. Locking overwrites the key buffer, but copies made by callers
    (decrypted strings) are beyond its reach. Hardware-backed key storage
    is out of scope.
"""

from .config import VaultConfig
from .crypto import (
    derive_key,
    generate_salt,
    hash_password,
    verify_password,
    encrypt,
    decrypt,
)
from .generator import generate_password
from .material import MasterKeyStore
from .session import SessionState, VaultSession
from .tasks import PeriodicTask
from .totp import (
    TOTPDisplay,
    generate_code,
    verify_code,
    remaining_seconds,
    generate_secret,
    parse_uri,
)

__all__ = [
    "VaultConfig",
    "derive_key",
    "generate_salt",
    "hash_password",
    "verify_password",
    "encrypt",
    "decrypt",
    "generate_password",
    "MasterKeyStore",
    "SessionState",
    "VaultSession",
    "PeriodicTask",
    "TOTPDisplay",
    "generate_code",
    "verify_code",
    "remaining_seconds",
    "generate_secret",
    "parse_uri",
]
