# src/otp_recovery/services/__init__.py
"""Business logic services for the recovery workflow."""

from .recovery import RecoveryService, build_recovery_service
from .replay import InMemoryNonceLedger, RedisNonceLedger
from .secure_payload import SecurePayloadService
from .session_tokens import SessionTokenService

__all__ = [
    "RecoveryService",
    "build_recovery_service",
    "InMemoryNonceLedger",
    "RedisNonceLedger",
    "SecurePayloadService",
    "SessionTokenService",
]
