# src/otp_recovery/services/envelope.py
"""Encoding, signing and verification shared by every envelope type.

An envelope is base64-encoded JSON plus a detached hex HMAC computed over the
encoded text. The signature is checked before anything is decoded, so any
change to either half is reported as a bad signature.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from otp_recovery.core.security import SIGNATURE_HEX_LENGTH, MessageSigner
from otp_recovery.services.replay import NonceLedger
from otp_recovery.services.results import RecoveryErrorCode, VerificationResult

NONCE_BYTES = 16
RESERVED_FIELDS = frozenset({"nonce", "issued_at", "expires_at"})


@dataclass(frozen=True)
class SignedEnvelope:
    """Encoded envelope and its detached signature."""

    encoded: str
    signature: str


def new_nonce() -> str:
    """Return a 128-bit random nonce, hex encoded."""
    return secrets.token_hex(NONCE_BYTES)


class EnvelopeCodec:
    """Issues and verifies time-bounded, single-use signed envelopes."""

    def __init__(
        self,
        signer: MessageSigner,
        ledger: NonceLedger,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.signer = signer
        self.ledger = ledger
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    def seal(
        self,
        fields: Mapping[str, Any],
        ttl_seconds: int,
        *,
        nonce: str | None = None,
    ) -> tuple[SignedEnvelope, dict[str, Any]]:
        """Stamp `fields` with nonce and lifetime, then encode and sign them.

        Returns:
            The signed envelope and the exact body that was encoded.
        """
        clash = RESERVED_FIELDS.intersection(fields)
        if clash:
            raise ValueError(f"Envelope fields are reserved: {', '.join(sorted(clash))}")
        if ttl_seconds <= 0:
            raise ValueError("Envelope lifetime must be positive")

        issued_at = self.now()
        body = dict(fields)
        body["nonce"] = nonce or new_nonce()
        body["issued_at"] = issued_at
        body["expires_at"] = issued_at + int(ttl_seconds)
        return self.encode(body), body

    def encode(self, body: Mapping[str, Any]) -> SignedEnvelope:
        raw = json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8")
        encoded = base64.b64encode(raw).decode("ascii")
        return SignedEnvelope(encoded=encoded, signature=self.signer.sign(encoded.encode("ascii")))

    def open(self, encoded: str, signature: str) -> VerificationResult:
        """Authenticate and decode an envelope, then check its lifetime and nonce.

        The nonce is inspected here but not recorded; see `consume`.
        """
        if not isinstance(encoded, str) or not isinstance(signature, str):
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, "envelope and signature must be strings"
            )
        if not encoded or len(signature) != SIGNATURE_HEX_LENGTH:
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, "malformed envelope"
            )

        message = encoded.encode("utf-8", "surrogatepass")
        if not self.signer.verify(message, signature):
            return VerificationResult.failure(
                RecoveryErrorCode.INVALID_SIGNATURE, "signature mismatch"
            )

        try:
            body = json.loads(base64.b64decode(message, validate=True))
        except (binascii.Error, ValueError) as err:
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, f"undecodable envelope: {type(err).__name__}"
            )
        if not isinstance(body, dict):
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, "envelope body is not an object"
            )

        nonce = body.get("nonce")
        expires_at = body.get("expires_at")
        if not isinstance(nonce, str) or not nonce or not isinstance(expires_at, int):
            return VerificationResult.failure(
                RecoveryErrorCode.MALFORMED_ENVELOPE, "envelope is missing required fields"
            )

        if self.now() > expires_at:
            return VerificationResult.failure(RecoveryErrorCode.EXPIRED, "envelope expired")

        if self.ledger.is_used(nonce):
            return VerificationResult.failure(RecoveryErrorCode.REPLAYED, "envelope already used")

        return VerificationResult.success(body)

    def consume(self, body: Mapping[str, Any]) -> bool:
        """Record the envelope's nonce as used.

        Returns:
            False if another caller recorded it first.
        """
        ttl = max(1, int(body["expires_at"]) - self.now())
        return self.ledger.mark_if_unused(str(body["nonce"]), ttl)

    def claim(self, body: Mapping[str, Any], purpose: str, ttl_seconds: int) -> bool:
        """Take a short-lived exclusive hold on `purpose` for this envelope.

        The hold lives under its own key, so the envelope itself stays unused.
        """
        return self.ledger.mark_if_unused(f"{purpose}:{body['nonce']}", ttl_seconds)

    def release(self, body: Mapping[str, Any], purpose: str) -> None:
        self.ledger.release(f"{purpose}:{body['nonce']}")

    def open_and_consume(self, encoded: str, signature: str) -> VerificationResult:
        result = self.open(encoded, signature)
        if result.valid and not self.consume(result.data):
            return VerificationResult.failure(RecoveryErrorCode.REPLAYED, "envelope already used")
        return result
