"""Action-scoped session tokens carrying a one-time code commitment."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from otp_recovery.core.security import code_commitment
from otp_recovery.core.totp import TOTPGenerator
from otp_recovery.services.envelope import EnvelopeCodec, new_nonce
from otp_recovery.services.results import RecoveryErrorCode, VerificationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSessionToken:
    """Token pair plus the code it commits to.

    `code` is for in-process handoff to the SMS dispatcher only and must never
    be placed in a client response.
    """

    token: str
    signature: str
    code: str
    nonce: str
    expires_at: int


class SessionTokenService:
    """Issues and verifies tokens bound to a subject and a workflow action."""

    def __init__(self, codec: EnvelopeCodec, totp: TOTPGenerator) -> None:
        self._codec = codec
        self._totp = totp

    def issue(self, subject_id: int, action: str, ttl_minutes: int = 15) -> IssuedSessionToken:
        """Mint a token for `action` whose commitment binds the current code."""
        if not action:
            raise ValueError("Session token action must be provided")

        nonce = new_nonce()
        code = self._totp.generate(self._codec.now(), subject_id)
        envelope, body = self._codec.seal(
            {
                "subject_id": subject_id,
                "action": action,
                "code_commitment": code_commitment(code, action, subject_id, nonce),
            },
            ttl_minutes * 60,
            nonce=nonce,
        )
        return IssuedSessionToken(
            token=envelope.encoded,
            signature=envelope.signature,
            code=code,
            nonce=nonce,
            expires_at=body["expires_at"],
        )

    def verify(
        self,
        token: str,
        signature: str,
        expected_action: str,
        *,
        consume: bool = True,
    ) -> VerificationResult:
        """Validate a token for `expected_action`.

        Checks run in order: encoding, signature, expiry, action, nonce. With
        `consume` the nonce is recorded on success, so a second call fails
        with ``REPLAYED``; without it the caller records the nonce itself once
        the whole request is accepted.
        """
        result = self._codec.open(token, signature)
        if not result.valid:
            logger.info("Session token rejected: %s", result.reason)
            return result

        payload = result.data
        if not isinstance(payload.get("subject_id"), int) or not isinstance(
            payload.get("code_commitment"), str
        ):
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, "session token is missing required fields"
            )

        if payload.get("action") != expected_action:
            logger.info("Session token rejected: action mismatch")
            return VerificationResult.failure(RecoveryErrorCode.WRONG_ACTION, "wrong action")

        if consume and not self._codec.consume(payload):
            return VerificationResult.failure(RecoveryErrorCode.REPLAYED, "token already used")
        return result

    def verify_code(self, code: str, payload: Mapping[str, Any]) -> bool:
        """Return True if `code` is currently valid and is the one this token committed to."""
        subject_id = int(payload["subject_id"])
        in_window = self._totp.verify(code, subject_id)
        expected = code_commitment(code, str(payload["action"]), subject_id, str(payload["nonce"]))
        bound = hmac.compare_digest(expected, str(payload["code_commitment"]))
        return in_window and bound

    def consume(self, payload: Mapping[str, Any]) -> bool:
        return self._codec.consume(payload)

    def claim(self, payload: Mapping[str, Any], purpose: str, ttl_seconds: int) -> bool:
        return self._codec.claim(payload, purpose, ttl_seconds)

    def release(self, payload: Mapping[str, Any], purpose: str) -> None:
        self._codec.release(payload, purpose)
