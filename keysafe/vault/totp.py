"""
TOTP Engine — time-based one-time codes for stored TOTP secrets.

Codes are standard RFC 6238: HMAC-SHA1, 6 digits, 30-second period,
Base32 secret. Every function is a pure function of the secret and the
wall-clock time passed in (``time.time()`` when omitted).

Security Note:
    Never log TOTP secrets or codes.
"""
import re
import time
import base64
import binascii
import logging
from collections.abc import Callable, Mapping
from typing import NamedTuple, Optional, Union

import pyotp

from ..exceptions import MalformedSecretError
from .config import DEFAULT_TOTP_REFRESH
from .session import SessionState, VaultSession
from .tasks import PeriodicTask

logger = logging.getLogger("keysafe.vault")

TOTP_DIGITS = 6
TOTP_PERIOD = 30
TOTP_WINDOW = 1  # steps tolerated on each side for clock drift
PLACEHOLDER_CODE = "-" * TOTP_DIGITS

_WHITESPACE = re.compile(r"\s+")

ForTime = Optional[Union[int, float]]


class TOTPUri(NamedTuple):
    """Secret, issuer and label extracted from an ``otpauth://`` URI."""

    secret: str
    issuer: str
    label: str


def normalize_secret(secret: str) -> str:
    """Return the canonical Base32 form of a secret.

    Spaces are removed, letters upper-cased and trailing padding stripped.

    Raises:
        MalformedSecretError: If the secret is empty or not valid Base32.
    """
    cleaned = _WHITESPACE.sub("", secret or "").upper().rstrip("=")
    if not cleaned:
        raise MalformedSecretError("TOTP secret is empty")
    padded = cleaned + "=" * (-len(cleaned) % 8)
    try:
        base64.b32decode(padded)
    except (binascii.Error, ValueError):
        raise MalformedSecretError("TOTP secret is not valid Base32") from None
    return cleaned


def _totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(
        normalize_secret(secret), digits=TOTP_DIGITS, interval=TOTP_PERIOD,
    )


def generate_code(secret: str, for_time: ForTime = None) -> str:
    """Compute the 6-digit code for the time step containing ``for_time``."""
    now = time.time() if for_time is None else for_time
    return _totp(secret).at(int(now))


def verify_code(secret: str, code: str, for_time: ForTime = None) -> bool:
    """Validate a code against the current step ±1."""
    now = time.time() if for_time is None else for_time
    otp = _totp(secret)
    code = (code or "").strip()
    if len(code) != TOTP_DIGITS or not code.isdigit():
        return False
    return otp.verify(code, for_time=int(now), valid_window=TOTP_WINDOW)


def remaining_seconds(now: ForTime = None) -> int:
    """Seconds until the current code rolls over, in ``[1, 30]``."""
    now = time.time() if now is None else now
    return TOTP_PERIOD - (int(now) % TOTP_PERIOD)


def generate_secret() -> str:
    """Generate a new random Base32 secret (160 bits)."""
    return pyotp.random_base32(length=32)


def provisioning_uri(secret: str, label: str, issuer: str = "") -> str:
    """Build the ``otpauth://totp/...`` URI for enrolling an authenticator."""
    return _totp(secret).provisioning_uri(name=label, issuer_name=issuer or None)


def parse_uri(uri: str) -> Optional[TOTPUri]:
    """Parse an ``otpauth://totp/`` URI.

    Only SHA1 / 6-digit / 30-second URIs are accepted, since codes are
    always rendered with those parameters.

    Returns:
        TOTPUri, or None when the URI is not a valid TOTP URI.
    """
    try:
        otp = pyotp.parse_uri((uri or "").strip())
    except ValueError as err:
        logger.debug("Rejected otpauth URI: %s", err)
        return None
    if not isinstance(otp, pyotp.TOTP):
        return None
    if (
        otp.digest().name != "sha1"
        or otp.digits != TOTP_DIGITS
        or otp.interval != TOTP_PERIOD
    ):
        logger.warning(
            "Unsupported TOTP parameters (algorithm=%s, digits=%s, period=%s)",
            otp.digest().name, otp.digits, otp.interval,
        )
        return None
    try:
        secret = normalize_secret(otp.secret)
    except MalformedSecretError:
        return None
    return TOTPUri(
        secret=secret, issuer=otp.issuer or "", label=(otp.name or "").strip(),
    )


class TOTPDisplay:
    """Live code renderer for records carrying a TOTP secret.

    Every ``refresh`` seconds, codes are recomputed for all secrets and
    handed to ``on_tick(codes, remaining)``. A secret that fails to decode
    is logged and rendered as ``------``; the failure is not hidden from
    the log. When bound to a VaultSession the ticker stops as soon as the
    session leaves the unlocked state.
    """

    def __init__(
        self,
        on_tick: Callable[[dict[str, str], int], None],
        refresh: float = DEFAULT_TOTP_REFRESH,
        clock: Callable[[], float] = time.time,
    ):
        self._on_tick = on_tick
        self._clock = clock
        self._secrets: dict[str, str] = {}
        self._task = PeriodicTask(refresh, self.tick, name="totp-display")
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    def for_session(
        cls,
        session: VaultSession,
        on_tick: Callable[[dict[str, str], int], None],
        clock: Callable[[], float] = time.time,
    ) -> "TOTPDisplay":
        """Display refreshing at the session's configured ``totp_refresh``."""
        return cls(on_tick, refresh=session.config.totp_refresh, clock=clock)

    @property
    def refresh(self) -> float:
        return self._task.interval

    def set_secrets(self, secrets: Mapping[str, str]) -> None:
        """Replace the rendered set, keeping only non-empty secrets."""
        self._secrets = {rid: s for rid, s in secrets.items() if s}

    def render(self) -> dict[str, str]:
        now = self._clock()
        codes = {}
        for record_id, secret in self._secrets.items():
            try:
                codes[record_id] = generate_code(secret, now)
            except MalformedSecretError as err:
                logger.warning("Cannot render TOTP for record=%s: %s", record_id, err)
                codes[record_id] = PLACEHOLDER_CODE
        return codes

    def tick(self) -> None:
        self._on_tick(self.render(), remaining_seconds(self._clock()))

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self, session: Optional[VaultSession] = None) -> bool:
        """Render once and start ticking, replacing any previous run.

        Args:
            session: Optional VaultSession; the ticker stops when it locks
                and does not start while it is not unlocked.

        Returns:
            True if the ticker is now running.
        """
        self.stop()
        if session is not None:
            if not session.is_unlocked:
                logger.debug("TOTP display not started: vault is %s", session.state.value)
                return False

            def _on_state(state):
                if state is not SessionState.UNLOCKED:
                    self.stop()

            self._unsubscribe = session.subscribe(_on_state)
        self.tick()
        self._task.start()
        return True

    def stop(self) -> None:
        self._task.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
