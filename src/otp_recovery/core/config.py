"""Immutable recovery configuration.

`Settings` reads the environment; `RecoveryConfig` is the frozen value that is
built once from it and handed to every component at construction time. No
component reads `settings` directly for cryptographic material.

Example:
    from otp_recovery.core.config import load_recovery_config
    config = load_recovery_config()
    print(config.period_seconds)
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from threading import Lock

from otp_recovery.core.settings import Settings, settings

MAX_DIGITS = 10


@dataclass(frozen=True)
class RecoveryConfig:
    """Configuration shared by the code generator, signer and orchestrator.

    Attributes:
        secret: Server-held key used for code derivation and envelope signing.
        period_seconds: Length of one time slice.
        digits: Width of generated one-time codes.
        window: Number of adjacent slices accepted on each side of "now".
        algorithm: ``hashlib`` name used for code derivation.
        step1_ttl_minutes: Lifetime of envelopes issued by phase 1.
        step2_ttl_minutes: Lifetime of envelopes issued by phase 2.
        phone_pattern: Regular expression a phone on file must match.
    """

    secret: bytes
    period_seconds: int = 60
    digits: int = 6
    window: int = 1
    algorithm: str = "sha256"
    step1_ttl_minutes: int = 15
    step2_ttl_minutes: int = 10
    phone_pattern: str = r"^[67]\d{7,8}$"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Recovery secret must not be empty")
        if self.period_seconds <= 0:
            raise ValueError("TOTP period must be positive")
        if not 1 <= self.digits <= MAX_DIGITS:
            raise ValueError(f"TOTP digits must be between 1 and {MAX_DIGITS}")
        if self.window < 0:
            raise ValueError("TOTP window must not be negative")
        if self.algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {self.algorithm}")
        if self.step1_ttl_minutes <= 0 or self.step2_ttl_minutes <= 0:
            raise ValueError("Envelope lifetimes must be positive")


def load_recovery_config(source: Settings | None = None) -> RecoveryConfig:
    """Build configuration object from global settings."""

    source = source or settings
    return RecoveryConfig(
        secret=source.secret_key.encode("utf-8"),
        period_seconds=source.totp_period_seconds,
        digits=source.totp_digits,
        window=source.totp_window,
        algorithm=source.totp_algorithm.lower(),
        step1_ttl_minutes=source.step1_ttl_minutes,
        step2_ttl_minutes=source.step2_ttl_minutes,
        phone_pattern=source.phone_pattern,
    )


_CONFIG_LOCK = Lock()
_CONFIG: RecoveryConfig | None = None


def get_recovery_config() -> RecoveryConfig:
    """Return the process-wide configuration, built on first use."""
    global _CONFIG

    with _CONFIG_LOCK:
        if _CONFIG is None:
            _CONFIG = load_recovery_config()
        return _CONFIG
