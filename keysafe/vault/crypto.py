"""
Vault Crypto Core — Master-password key derivation and field encryption.

Implements the client-side crypto shared with the web and mobile clients:
- Key derivation: PBKDF2-HMAC-SHA256(password, salt, 100000) → 32-byte key (hex)
- Verification hash: same derivation, persisted as ``master_hash``
- Field layer: AES-256-CBC + PKCS7 → ``<iv hex>:<ciphertext hex>``

Security Note:
    Never log passwords, keys, plaintext or ciphertext values.
    The field format carries no MAC; a wrong key is detected only through
    the PKCS7 padding check and UTF-8 decoding of the result.
    The IV is random 128-bit on every call and is never reused.
"""
import os
import hmac
import logging
from typing import Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import DecryptionError, MalformedFieldError

logger = logging.getLogger("keysafe.vault")

KDF_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 16  # 128-bit salt
IV_SIZE = 16  # 128-bit IV
BLOCK_BITS = 128

FIELD_SEPARATOR = ":"

KeyLike = Union[str, bytes, bytearray, memoryview]


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def _pbkdf2(password: str, salt: str) -> bytes:
    # The hex salt string itself is the KDF salt (UTF-8 bytes, not decoded).
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def generate_salt() -> str:
    """Generate a random 128-bit salt.

    Returns:
        32-char lowercase hex string.
    """
    return os.urandom(SALT_SIZE).hex()


def derive_key(password: str, salt: str) -> str:
    """Derive the 256-bit session key from the master password.

    Args:
        password: Master password.
        salt: Hex salt string stored in the user's settings.

    Returns:
        64-char lowercase hex key.
    """
    return _pbkdf2(password, salt).hex()


def hash_password(password: str, salt: str) -> str:
    """Compute the verification hash persisted as ``master_hash``.

    Uses the very same derivation as :func:`derive_key`, so the stored hash
    equals the session key. Existing stored data depends on this.

    Args:
        password: Master password.
        salt: Hex salt string.

    Returns:
        64-char lowercase hex hash.
    """
    return _pbkdf2(password, salt).hex()


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    """Check a master-password attempt against the stored hash."""
    candidate = hash_password(password, salt)
    return hmac.compare_digest(candidate, expected_hash.lower())


# ---------------------------------------------------------------------------
# Field encryption
# ---------------------------------------------------------------------------

def key_bytes(key: KeyLike) -> bytes:
    """Normalize a hex key string or raw key into 32 bytes.

    Raises:
        ValueError: If the key is not valid hex or not 32 bytes long.
    """
    if isinstance(key, str):
        try:
            raw = bytes.fromhex(key)
        except ValueError:
            raise ValueError("Encryption key must be a hex string") from None
    else:
        raw = bytes(key)
    if len(raw) != KEY_LENGTH:
        raise ValueError(
            f"Encryption key must be {KEY_LENGTH} bytes, got {len(raw)}"
        )
    return raw


def encrypt(plaintext: str, key: KeyLike) -> str:
    """Encrypt one string field.

    Format: ``<iv 32 hex>:<ciphertext hex>``

    Args:
        plaintext: Value to encrypt.
        key: 64-char hex key or 32 raw bytes.

    Returns:
        Encrypted field wire string.
    """
    iv = os.urandom(IV_SIZE)
    padder = padding.PKCS7(BLOCK_BITS).padder()
    data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key_bytes(key)), modes.CBC(iv)).encryptor()
    ct = encryptor.update(data) + encryptor.finalize()
    return f"{iv.hex()}{FIELD_SEPARATOR}{ct.hex()}"


def split_field(field: str) -> tuple[bytes, bytes]:
    """Split an encrypted field into (iv, ciphertext).

    Raises:
        MalformedFieldError: If the field does not follow the wire format.
    """
    parts = field.split(FIELD_SEPARATOR)
    if len(parts) != 2:
        raise MalformedFieldError(
            "Encrypted field must contain exactly one ':' separator"
        )
    iv_hex, ct_hex = parts
    try:
        iv = bytes.fromhex(iv_hex)
        ct = bytes.fromhex(ct_hex)
    except ValueError:
        raise MalformedFieldError("Encrypted field is not hex-encoded") from None
    if len(iv) != IV_SIZE:
        raise MalformedFieldError(
            f"IV must be {IV_SIZE} bytes, got {len(iv)}"
        )
    if not ct or len(ct) % (BLOCK_BITS // 8):
        raise MalformedFieldError(
            f"Ciphertext length {len(ct)} is not a positive block multiple"
        )
    return iv, ct


def decrypt(field: str, key: KeyLike) -> str:
    """Decrypt one string field.

    Args:
        field: Encrypted field in ``<iv hex>:<ciphertext hex>`` form.
        key: 64-char hex key or 32 raw bytes.

    Returns:
        Decrypted plaintext.

    Raises:
        MalformedFieldError: If the field is not in the wire format.
        DecryptionError: If the key is wrong or the data is corrupted.
    """
    iv, ct = split_field(field)
    decryptor = Cipher(algorithms.AES(key_bytes(key)), modes.CBC(iv)).decryptor()
    data = decryptor.update(ct) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    try:
        data = unpadder.update(data) + unpadder.finalize()
        return data.decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        raise DecryptionError(
            "Failed to decrypt data. Invalid key or corrupted data."
        ) from None
