"""Signed, single-use envelopes carrying arbitrary step data."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from otp_recovery.services.envelope import EnvelopeCodec, SignedEnvelope
from otp_recovery.services.results import VerificationResult

logger = logging.getLogger(__name__)


class SecurePayloadService:
    """Issues and verifies envelopes whose schema belongs to the caller.

    There is no action binding at this layer; callers compare the decoded
    fields against whatever they verified alongside the payload.
    """

    def __init__(self, codec: EnvelopeCodec) -> None:
        self._codec = codec

    def issue(self, data: Mapping[str, Any], ttl_minutes: int = 15) -> SignedEnvelope:
        envelope, _ = self._codec.seal(data, ttl_minutes * 60)
        return envelope

    def verify(self, payload: str, signature: str, *, consume: bool = True) -> VerificationResult:
        """Decode, authenticate and check lifetime and nonce of a payload."""
        if consume:
            result = self._codec.open_and_consume(payload, signature)
        else:
            result = self._codec.open(payload, signature)
        if not result.valid:
            logger.info("Secure payload rejected: %s", result.reason)
        return result

    def consume(self, data: Mapping[str, Any]) -> bool:
        return self._codec.consume(data)
