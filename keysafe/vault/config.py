"""
Vault Configuration — validated session settings.

Reads optional overrides from environment variables:
    KEYSAFE_LOCK_TIMEOUT = <seconds of inactivity before auto-lock>
    KEYSAFE_POLL_INTERVAL = <seconds between inactivity checks>
    KEYSAFE_TOTP_REFRESH = <seconds between TOTP display refreshes>
    KEYSAFE_STORE_URL = <base URL of the record store>
    KEYSAFE_TOKEN_PATH = <file persisting the auth token>

Key derivation, cipher and TOTP parameters are fixed constants of the
stored-data format and are deliberately not configurable here.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("keysafe.vault")

DEFAULT_LOCK_TIMEOUT = 5 * 60
DEFAULT_POLL_INTERVAL = 10
DEFAULT_TOTP_REFRESH = 1.0
DEFAULT_STORE_URL = "http://127.0.0.1:8090"


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    totp_refresh: float = Field(default=DEFAULT_TOTP_REFRESH, gt=0)
    store_url: str = Field(default=DEFAULT_STORE_URL)
    token_path: Optional[str] = None

    @field_validator("store_url")
    @classmethod
    def validate_store_url(cls, v: str) -> str:
        """Require an http(s) URL and drop the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Store URL must be http(s): {v}")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_poll_interval(self) -> "VaultConfig":
        """The inactivity poll must run more often than the timeout."""
        if self.poll_interval >= self.lock_timeout:
            raise ValueError(
                f"poll_interval ({self.poll_interval}s) must be shorter than "
                f"lock_timeout ({self.lock_timeout}s)"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig from ``KEYSAFE_*`` environment variables.

        Returns:
            Populated VaultConfig instance.
        """
        values = {}
        for field, env in (
            ("lock_timeout", "KEYSAFE_LOCK_TIMEOUT"),
            ("poll_interval", "KEYSAFE_POLL_INTERVAL"),
            ("totp_refresh", "KEYSAFE_TOTP_REFRESH"),
            ("store_url", "KEYSAFE_STORE_URL"),
            ("token_path", "KEYSAFE_TOKEN_PATH"),
        ):
            raw = os.environ.get(env)
            if raw is not None:
                values[field] = raw
        config = cls(**values)
        logger.debug(
            "Vault config: lock_timeout=%ss poll_interval=%ss store=%s",
            config.lock_timeout, config.poll_interval, config.store_url,
        )
        return config
