"""
VaultSession — master-password lock/unlock state machine.

States::

    LOGGED_OUT --login/register/restore--> LOCKED --unlock--> UNLOCKED
    UNLOCKED --lock/timeout/background--> LOCKED
    any --logout--> LOGGED_OUT

Provides the public API used by the application layer:
- ``login()`` / ``register()`` / ``restore()`` — establish identity (LOCKED)
- ``unlock(password)`` — set up or verify the master password (UNLOCKED)
- ``lock()`` / ``logout()`` — discard the session key
- ``record_activity()`` / ``check_inactivity()`` / ``app_state_changed()``
  — inactivity auto-lock and app backgrounding
- ``encrypt()`` / ``decrypt()`` — field cipher under the resident key

The session object is the single writer of the key. It is created by the
application's composition root and injected into every repository.

Security Note:
    Never log passwords, keys or field values. Only log user ids and
    state transitions. The key is kept in a ``bytearray`` that is
    overwritten with zeros when discarded.
"""
import time
import logging
import threading
from enum import Enum
from collections.abc import Callable
from typing import Optional

from ..auth import AuthBackend, MemoryTokenStorage, TokenStorage
from ..data import MasterKeyMaterial, User
from ..exceptions import NotAuthenticatedError, VaultLockedError
from . import crypto
from .config import VaultConfig
from .material import MasterKeyStore
from .tasks import PeriodicTask

logger = logging.getLogger("keysafe.vault")

BACKGROUND_STATES = frozenset({"background", "inactive"})


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


StateListener = Callable[[SessionState], None]


class VaultSession:
    """Holds the user identity and, while unlocked, the session key.

    Args:
        auth: Account authentication backend.
        settings: Store of the user's master key material.
        config: Timeouts; defaults to a 5-minute auto-lock.
        tokens: Persistent storage for the auth token.
        clock: Monotonic clock used for inactivity tracking.
    """

    def __init__(
        self,
        auth: AuthBackend,
        settings: MasterKeyStore,
        config: Optional[VaultConfig] = None,
        tokens: Optional[TokenStorage] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._auth = auth
        self._settings = settings
        self._config = config or VaultConfig()
        self._tokens = tokens if tokens is not None else MemoryTokenStorage()
        self._clock = clock
        self._state = SessionState.LOGGED_OUT
        self._user: Optional[User] = None
        self._material: Optional[MasterKeyMaterial] = None
        self._key: Optional[bytearray] = None
        self._key_lock = threading.Lock()
        self._last_activity = clock()
        self._listeners: list[StateListener] = []
        self._poller = PeriodicTask(
            self._config.poll_interval, self.check_inactivity, name="auto-lock",
        )

    def __repr__(self) -> str:
        user = self._user.id if self._user else None
        return f"<VaultSession [state:{self._state.value}, user:{user}]>"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def tokens(self) -> TokenStorage:
        return self._tokens

    @property
    def is_locked(self) -> bool:
        return self._state is SessionState.LOCKED

    @property
    def is_unlocked(self) -> bool:
        return self._state is SessionState.UNLOCKED

    @property
    def has_master_key(self) -> bool:
        """Whether master key material is known to exist for the user."""
        return self._material is not None and self._material.is_set

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def auto_lock_running(self) -> bool:
        return self._poller.running

    def require_user(self) -> User:
        if self._user is None:
            raise NotAuthenticatedError("No user logged in")
        return self._user

    # ------------------------------------------------------------------
    # State listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(state)`` on every state change.

        Returns:
            A callable removing the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.info(
            "Vault session %s -> %s (user=%s)",
            previous.value, state.value, self._user.id if self._user else None,
        )
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as err:
                logger.error("Session listener failed on %s: %s", state.value, err)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def _establish(self, user: User) -> None:
        self._discard_key()
        self._user = user
        self._material = await self._settings.find(user.id)
        self._set_state(SessionState.LOCKED)

    async def login(self, email: str, password: str) -> User:
        """Authenticate the account; the vault stays locked.

        Raises:
            AuthenticationError: If the backend rejects the credentials.
        """
        result = await self._auth.authenticate(email, password)
        await self._tokens.save_auth(result)
        await self._establish(result.user)
        return result.user

    async def register(self, email: str, password: str, name: str) -> User:
        """Create the account, then log in (vault locked)."""
        await self._auth.register(email, password, name)
        return await self.login(email, password)

    async def restore(self) -> bool:
        """Resume a persisted login at start-up.

        Returns:
            True when a valid persisted token was found (state LOCKED).
        """
        saved = await self._tokens.load_auth()
        if saved is None:
            return False
        if not self._auth.validate_token(saved.token):
            logger.info("Persisted token for user=%s is no longer valid", saved.user.id)
            await self.logout()
            return False
        self._auth.restore(saved.token, saved.user)
        await self._establish(saved.user)
        return True

    # ------------------------------------------------------------------
    # Lock / unlock
    # ------------------------------------------------------------------

    async def unlock(self, password: str) -> bool:
        """Unlock with the master password.

        The first unlock of an account (no material in the store yet)
        establishes ``password`` as the master password.

        Returns:
            True if the session is now unlocked, False on a wrong password.

        Raises:
            NotAuthenticatedError: If no user is logged in.
        """
        user = self.require_user()
        material = self._material
        if material is None or not material.is_set:
            material = await self._settings.find(user.id)
        if self._user is not user:
            logger.info("Session changed during unlock for user=%s", user.id)
            return False
        if material is None or not material.is_set:
            return await self._setup_master_password(user, password)

        self._material = material
        if not crypto.verify_password(password, material.master_salt, material.master_hash):
            logger.info("Unlock failed for user=%s: incorrect password", user.id)
            return False
        self._set_key(crypto.derive_key(password, material.master_salt))
        return True

    async def _setup_master_password(self, user: User, password: str) -> bool:
        salt = crypto.generate_salt()
        hashed = crypto.hash_password(password, salt)
        key = crypto.derive_key(password, salt)
        material = await self._settings.save(user.id, salt, hashed)
        if self._user is not user:
            return False
        self._material = material
        logger.info("Master password established for user=%s", user.id)
        self._set_key(key)
        return True

    def _set_key(self, key_hex: str) -> None:
        with self._key_lock:
            self._zero_key()
            self._key = bytearray.fromhex(key_hex)
        self._last_activity = self._clock()
        try:
            self._poller.start()
        except RuntimeError:
            logger.debug("No running event loop; auto-lock poller not started")
        self._set_state(SessionState.UNLOCKED)

    def _zero_key(self) -> None:
        if self._key is not None:
            self._key[:] = bytes(len(self._key))
            self._key = None

    def _discard_key(self) -> None:
        self._poller.stop()
        with self._key_lock:
            self._zero_key()

    def lock(self) -> None:
        """Discard the session key. No-op when logged out."""
        if self._state is SessionState.LOGGED_OUT:
            return
        self._discard_key()
        self._set_state(SessionState.LOCKED)

    async def logout(self) -> None:
        """Forget identity, key and cached material; purge persisted tokens."""
        self._discard_key()
        self._auth.clear()
        self._user = None
        self._material = None
        self._set_state(SessionState.LOGGED_OUT)
        await self._tokens.purge()

    # ------------------------------------------------------------------
    # Inactivity
    # ------------------------------------------------------------------

    def record_activity(self) -> None:
        """Mark user interaction (keystroke, click, press)."""
        self._last_activity = self._clock()

    def check_inactivity(self, now: Optional[float] = None) -> bool:
        """Lock when the inactivity timeout has elapsed.

        Returns:
            True if this call locked the session.
        """
        if self._state is not SessionState.UNLOCKED:
            return False
        now = self._clock() if now is None else now
        idle = now - self._last_activity
        if idle > self._config.lock_timeout:
            logger.info("Auto-locking after %.0fs of inactivity", idle)
            self.lock()
            return True
        return False

    def app_state_changed(self, app_state: str) -> None:
        """React to the host app moving between foreground and background.

        Backgrounding locks immediately since timers cannot be trusted
        while suspended. Returning to the foreground locks if the timeout
        elapsed meanwhile, otherwise counts as activity.
        """
        if self._state is not SessionState.UNLOCKED:
            return
        if app_state in BACKGROUND_STATES:
            logger.info("App moved to %s, locking vault", app_state)
            self.lock()
        elif app_state == "active" and not self.check_inactivity():
            self.record_activity()

    # ------------------------------------------------------------------
    # Field cipher under the session key
    # ------------------------------------------------------------------

    def _require_key(self) -> bytearray:
        if self._key is None:
            raise VaultLockedError("Vault is locked")
        return self._key

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a field with the resident key.

        Raises:
            VaultLockedError: If no key is resident.
        """
        with self._key_lock:
            return crypto.encrypt(plaintext, self._require_key())

    def decrypt(self, field: str) -> str:
        """Decrypt a field with the resident key.

        Raises:
            VaultLockedError: If no key is resident.
            DecryptionError: If the field cannot be decrypted with it.
        """
        with self._key_lock:
            return crypto.decrypt(field, self._require_key())

    def current_key(self) -> str:
        """Hex copy of the resident key.

        Raises:
            VaultLockedError: If no key is resident.
        """
        with self._key_lock:
            return self._require_key().hex()

    async def close(self) -> None:
        """Stop background tasks and drop the key, keeping the identity."""
        self.lock()
