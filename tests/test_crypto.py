"""
Tests for key derivation and the field cipher.

Tests cover:
- PBKDF2 parameters and determinism of derive_key / hash_password
- Salt generation
- Encrypt/decrypt wire format, IV freshness and round-trips
- Wrong-key and malformed-field detection
"""
import hashlib
import re

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from keysafe.exceptions import (
    DecryptionError,
    MalformedFieldError,
    MalformedInputError,
)
from keysafe.vault import crypto

HEX64 = re.compile(r"^[0-9a-f]{64}$")
FIELD = re.compile(r"^[0-9a-f]{32}:(?:[0-9a-f]{32})+$")

SALT = "00112233445566778899aabbccddeeff"


@pytest.fixture(scope="module")
def key():
    return crypto.derive_key("longpassword1", SALT)


@pytest.fixture(scope="module")
def other_key():
    return crypto.derive_key("wrongpassword", SALT)


# --- Key derivation ---

class TestKeyDerivation:

    def test_derive_key_is_hex_256_bits(self, key):
        """Test the key is 64 lowercase hex chars."""
        assert HEX64.match(key)

    def test_derive_key_deterministic(self, key):
        """Test same password and salt always give the same key."""
        assert crypto.derive_key("longpassword1", SALT) == key

    def test_derive_key_matches_pbkdf2_sha256(self, key):
        """Test the KDF is PBKDF2-HMAC-SHA256, 100000 rounds, salt string as bytes."""
        expected = hashlib.pbkdf2_hmac(
            "sha256", b"longpassword1", SALT.encode("utf-8"), 100_000, 32,
        ).hex()
        assert key == expected

    def test_changing_password_changes_key(self, key, other_key):
        assert key != other_key

    def test_changing_salt_changes_key(self, key):
        assert crypto.derive_key("longpassword1", crypto.generate_salt()) != key

    def test_hash_password_uses_same_derivation(self, key):
        """Test the verification hash equals the derived key (stored-data compatibility)."""
        assert crypto.hash_password("longpassword1", SALT) == key

    def test_verify_password(self, key):
        assert crypto.verify_password("longpassword1", SALT, key) is True
        assert crypto.verify_password("longpassword1", SALT, key.upper()) is True
        assert crypto.verify_password("wrongpassword", SALT, key) is False

    def test_generate_salt(self):
        """Test salts are 128-bit hex and never repeat."""
        salts = {crypto.generate_salt() for _ in range(50)}
        assert len(salts) == 50
        assert all(re.match(r"^[0-9a-f]{32}$", s) for s in salts)


# --- Field cipher ---

class TestFieldCipher:

    def test_wire_format(self, key):
        """Test encrypt returns '<32 hex iv>:<hex ciphertext>'."""
        field = crypto.encrypt("hunter2", key)
        assert FIELD.match(field)

    def test_roundtrip(self, key):
        for text in ("hunter2", "", "p@ss:word", "ünïcødé ✓ 密码", "x" * 1000):
            assert crypto.decrypt(crypto.encrypt(text, key), key) == text

    def test_raw_key_bytes_accepted(self, key):
        raw = bytes.fromhex(key)
        field = crypto.encrypt("secret", bytearray(raw))
        assert crypto.decrypt(field, key) == "secret"

    def test_iv_freshness(self, key):
        """Test identical plaintexts never produce identical fields."""
        fields = {crypto.encrypt("same", key) for _ in range(20)}
        assert len(fields) == 20
        assert len({f.split(":")[0] for f in fields}) == 20

    def test_aes_cbc_pkcs7_interop(self, key):
        """Test the ciphertext is plain AES-256-CBC with PKCS7 padding."""
        field = crypto.encrypt("interop", key)
        iv_hex, ct_hex = field.split(":")
        decryptor = Cipher(
            algorithms.AES(bytes.fromhex(key)), modes.CBC(bytes.fromhex(iv_hex)),
        ).decryptor()
        padded = decryptor.update(bytes.fromhex(ct_hex)) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        assert unpadder.update(padded) + unpadder.finalize() == b"interop"

    def test_decrypt_with_wrong_key_fails(self, key, other_key):
        """Test a wrong key raises instead of returning garbage."""
        field = crypto.encrypt("my secret value", key)
        with pytest.raises(DecryptionError):
            crypto.decrypt(field, other_key)

    def test_tampered_iv_detected(self, key):
        """Test a padding-breaking change is reported as a decryption error."""
        field = crypto.encrypt("secret", key)
        iv_hex, ct_hex = field.split(":")
        iv = bytearray.fromhex(iv_hex)
        iv[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            crypto.decrypt(f"{iv.hex()}:{ct_hex}", key)

    @pytest.mark.parametrize("field", [
        "no-separator",
        "",
        "zz" * 16 + ":" + "00" * 16,
        "00" * 16 + ":not-hex",
        "00" * 16 + ":" + "00" * 16 + ":" + "00" * 16,
        "00" * 8 + ":" + "00" * 16,
        "00" * 16 + ":",
        "00" * 16 + ":" + "00" * 15,
    ])
    def test_malformed_field(self, key, field):
        """Test malformed fields raise MalformedFieldError."""
        with pytest.raises(MalformedFieldError) as exc:
            crypto.decrypt(field, key)
        assert isinstance(exc.value, DecryptionError)
        assert isinstance(exc.value, MalformedInputError)

    @pytest.mark.parametrize("bad_key", ["abcd", "zz" * 32, b"\x00" * 16])
    def test_invalid_key_rejected(self, bad_key):
        with pytest.raises(ValueError):
            crypto.encrypt("secret", bad_key)
