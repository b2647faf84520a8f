"""Exceptions raised by the KeySafe vault layer."""


class VaultError(Exception):
    """Base class for all KeySafe errors."""


class AuthenticationError(VaultError):
    """The auth collaborator rejected the account credentials."""


class NotAuthenticatedError(VaultError):
    """Operation requires a logged-in user."""


class VaultLockedError(VaultError):
    """Operation requires the session key, but the vault is locked."""


class DecryptionError(VaultError):
    """An encrypted field could not be decrypted.

    Raised for a wrong key as well as for corrupted data. Callers must not
    turn this into a blank value.
    """


class MalformedInputError(VaultError):
    """Input does not follow the expected format (not retried)."""


class MalformedFieldError(DecryptionError, MalformedInputError):
    """Encrypted field is not in ``<iv hex>:<ciphertext hex>`` form."""


class MalformedSecretError(MalformedInputError):
    """TOTP secret is not valid Base32."""


class InvalidEnvVarName(MalformedInputError, ValueError):
    """Environment variable name is not a valid identifier."""


class StoreError(VaultError):
    """The external record store failed."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class RecordNotFound(StoreError):
    """Requested record does not exist in the store."""
