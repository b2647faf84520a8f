"""Shared fixtures: in-memory store, fake auth backend and a vault session."""
import pytest

from keysafe.auth import AuthBackend, AuthResult, MemoryTokenStorage
from keysafe.data import User
from keysafe.exceptions import AuthenticationError
from keysafe.repository import CredentialRepository, EnvVarRepository
from keysafe.store.memory import MemoryRecordStore
from keysafe.vault.config import VaultConfig
from keysafe.vault.material import MasterKeyStore
from keysafe.vault.session import VaultSession

MASTER_PASSWORD = "longpassword1"
ENV_VAR_UNIQUE = {"env_vars": [("user", "name", "environment", "project")]}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthBackend(AuthBackend):
    """Accepts registered email/password pairs and issues opaque tokens."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, User]] = {}
        self.valid_tokens: set[str] = set()
        self.token = None

    async def register(self, email: str, password: str, name: str) -> User:
        user = User(id=f"user{len(self.accounts) + 1}", email=email, name=name)
        self.accounts[email] = (password, user)
        return user

    async def authenticate(self, email: str, password: str) -> AuthResult:
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise AuthenticationError("Invalid email or password")
        self.token = f"token-{account[1].id}"
        self.valid_tokens.add(self.token)
        return AuthResult(token=self.token, user=account[1])

    def validate_token(self, token: str) -> bool:
        return token in self.valid_tokens

    def restore(self, token: str, user: User) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


@pytest.fixture
def store():
    return MemoryRecordStore(unique=ENV_VAR_UNIQUE)


@pytest.fixture
def auth():
    return FakeAuthBackend()


@pytest.fixture
def tokens():
    return MemoryTokenStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return VaultConfig(lock_timeout=300, poll_interval=10)


@pytest.fixture
def session(store, auth, tokens, clock, config):
    """A logged-out session over the in-memory store."""
    return VaultSession(
        auth, MasterKeyStore(store), config=config, tokens=tokens, clock=clock,
    )


@pytest.fixture
def credentials(store, session):
    return CredentialRepository(store, session)


@pytest.fixture
def env_vars(store, session):
    return EnvVarRepository(store, session)


@pytest.fixture
def register(session):
    """Coroutine registering an account through the session (left LOCKED)."""
    async def _register(email="alice@example.com", password="account-pw", name="Alice"):
        return await session.register(email, password, name)
    return _register


@pytest.fixture
def unlock(session, register):
    """Coroutine registering an account and unlocking it."""
    async def _unlock(password=MASTER_PASSWORD):
        await register()
        assert await session.unlock(password) is True
        return session
    return _unlock
