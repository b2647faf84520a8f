"""KeySafe — client-side vault for credentials, env vars and TOTP seeds."""
from typing import Optional

from .version import __version__
from .auth import AuthBackend, FileTokenStorage, TokenStorage
from .vault import VaultConfig, VaultSession, SessionState, MasterKeyStore
from .repository import CredentialRepository, EnvVarRepository
from .store import MemoryRecordStore, RecordStore
from .store.pocketbase import PocketBaseClient


def create_vault(
    store: Optional[RecordStore] = None,
    auth: Optional[AuthBackend] = None,
    config: Optional[VaultConfig] = None,
    tokens: Optional[TokenStorage] = None,
) -> tuple[VaultSession, CredentialRepository, EnvVarRepository]:
    """Wire a VaultSession and its repositories around one store.

    Without a ``store``, a PocketBaseClient on ``config.store_url`` is
    created and also serves as the auth backend. Without ``tokens``, the
    auth token persists to ``config.token_path`` when it is set.

    Returns:
        Tuple of (session, credentials repository, env var repository).
    """
    config = config or VaultConfig()
    if store is None:
        store = PocketBaseClient(config.store_url)
    if auth is None:
        if not isinstance(store, AuthBackend):
            raise ValueError(
                f"{type(store).__name__} does not authenticate; pass an auth backend"
            )
        auth = store
    if tokens is None and config.token_path:
        tokens = FileTokenStorage(config.token_path)
    session = VaultSession(auth, MasterKeyStore(store), config=config, tokens=tokens)
    return (
        session,
        CredentialRepository(store, session),
        EnvVarRepository(store, session),
    )


__all__ = [
    "__version__",
    "create_vault",
    "VaultConfig",
    "VaultSession",
    "SessionState",
    "CredentialRepository",
    "EnvVarRepository",
    "MemoryRecordStore",
    "RecordStore",
    "PocketBaseClient",
]
