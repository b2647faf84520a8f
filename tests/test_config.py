"""Tests for VaultConfig validation and environment overrides."""
import pytest
from pydantic import ValidationError

from keysafe.vault.config import VaultConfig

ENV_VARS = (
    "KEYSAFE_LOCK_TIMEOUT",
    "KEYSAFE_POLL_INTERVAL",
    "KEYSAFE_TOTP_REFRESH",
    "KEYSAFE_STORE_URL",
    "KEYSAFE_TOKEN_PATH",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestVaultConfig:

    def test_defaults(self):
        config = VaultConfig()
        assert config.lock_timeout == 300
        assert config.poll_interval == 10
        assert config.totp_refresh == 1.0
        assert config.store_url == "http://127.0.0.1:8090"
        assert config.token_path is None

    def test_store_url_trailing_slash(self):
        assert VaultConfig(store_url="https://pb.example.com/").store_url == "https://pb.example.com"

    def test_store_url_scheme_required(self):
        with pytest.raises(ValidationError):
            VaultConfig(store_url="ftp://pb.example.com")

    @pytest.mark.parametrize("field", ["lock_timeout", "poll_interval", "totp_refresh"])
    def test_positive_values(self, field):
        with pytest.raises(ValidationError):
            VaultConfig(**{field: 0})

    def test_poll_must_be_shorter_than_timeout(self):
        """Test a poll interval at or above the timeout is rejected."""
        with pytest.raises(ValidationError):
            VaultConfig(lock_timeout=10, poll_interval=10)
        with pytest.raises(ValidationError):
            VaultConfig(lock_timeout=5, poll_interval=10)


class TestFromEnv:

    def test_no_overrides(self, clean_env):
        assert VaultConfig.from_env() == VaultConfig()

    def test_overrides(self, clean_env, tmp_path):
        clean_env.setenv("KEYSAFE_LOCK_TIMEOUT", "60")
        clean_env.setenv("KEYSAFE_POLL_INTERVAL", "5")
        clean_env.setenv("KEYSAFE_TOTP_REFRESH", "0.5")
        clean_env.setenv("KEYSAFE_STORE_URL", "https://vault.example.com/")
        clean_env.setenv("KEYSAFE_TOKEN_PATH", str(tmp_path / "auth.json"))
        config = VaultConfig.from_env()
        assert config.lock_timeout == 60
        assert config.poll_interval == 5
        assert config.totp_refresh == 0.5
        assert config.store_url == "https://vault.example.com"
        assert config.token_path == str(tmp_path / "auth.json")

    def test_invalid_override(self, clean_env):
        clean_env.setenv("KEYSAFE_LOCK_TIMEOUT", "soon")
        with pytest.raises(ValidationError):
            VaultConfig.from_env()
