"""Keyed-hash utilities shared by every envelope type."""
from __future__ import annotations

import hashlib
import hmac

import blake3

from otp_recovery.core.config import RecoveryConfig

SIGNATURE_ALGORITHM = "sha256"
SIGNATURE_HEX_LENGTH = 64
_FINGERPRINT_CONTEXT = "otp-recovery 2024 subject fingerprint"


class MessageSigner:
    """HMAC-SHA256 signer over opaque byte payloads.

    The algorithm is fixed for a deployment; changing it invalidates every
    outstanding envelope.
    """

    def __init__(self, config: RecoveryConfig) -> None:
        self._secret = config.secret

    def sign(self, message: bytes) -> str:
        """Return the hex-encoded HMAC of `message`."""
        return hmac.new(self._secret, message, SIGNATURE_ALGORITHM).hexdigest()

    def verify(self, message: bytes, signature: str) -> bool:
        """Return True if `signature` is the HMAC of `message`.

        Args:
            message: Exact bytes that were signed.
            signature: Hex signature supplied by the client.

        Returns:
            True only on a full match; the comparison never short-circuits.
        """
        expected = self.sign(message).encode("ascii")
        supplied = signature.encode("utf-8", "surrogatepass")
        return hmac.compare_digest(expected, supplied)


def sha256_hex(value: str) -> str:
    """Return a SHA-256 hex digest of the provided text."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def code_commitment(code: str, action: str, subject_id: int, nonce: str) -> str:
    """Bind a one-time code to one action, subject and nonce.

    ``sha256(code || sha256(action || subject_id || nonce))``
    """
    action_hash = sha256_hex(f"{action}{subject_id}{nonce}")
    return sha256_hex(f"{code}{action_hash}")


def subject_fingerprint(config: RecoveryConfig, subject_id: int) -> str:
    """Return a keyed, non-reversible hash of a subject id for log correlation."""
    key = blake3.blake3(config.secret, derive_key_context=_FINGERPRINT_CONTEXT).digest()
    return blake3.blake3(str(subject_id).encode(), key=key).hexdigest()
