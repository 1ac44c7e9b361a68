"""Tagged verification results and the recovery error taxonomy."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RecoveryErrorCode(str, Enum):
    """Classified failure reasons surfaced by verifiers and the orchestrator."""

    MALFORMED_ENVELOPE = "malformed_envelope"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    WRONG_ACTION = "wrong_action"
    REPLAYED = "replayed"
    SUBJECT_MISMATCH = "subject_mismatch"
    DATA_MISMATCH = "data_mismatch"
    CODE_INCORRECT_OR_EXPIRED = "code_incorrect_or_expired"
    UPSTREAM_DISPATCH_FAILURE = "upstream_dispatch_failure"
    SUBJECT_NOT_FOUND = "subject_not_found"
    PHONE_NOT_ON_FILE = "phone_not_on_file"
    PHONE_FORMAT_INVALID = "phone_format_invalid"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a signed envelope.

    `data` is only populated when `valid` is True; `error` and `reason` only
    when it is False.
    """

    valid: bool
    data: Mapping[str, Any] = field(default_factory=dict)
    error: RecoveryErrorCode | None = None
    reason: str = ""

    @classmethod
    def success(cls, data: Mapping[str, Any]) -> VerificationResult:
        return cls(valid=True, data=data)

    @classmethod
    def failure(cls, error: RecoveryErrorCode, reason: str) -> VerificationResult:
        return cls(valid=False, error=error, reason=reason)


class RecoveryError(RuntimeError):
    """Raised by the orchestrator when a recovery phase cannot proceed.

    `detail` is safe to show to the client; `retryable` tells the client it
    may repeat the same phase instead of restarting from phase 1.
    """

    def __init__(
        self,
        code: RecoveryErrorCode,
        detail: str,
        *,
        retryable: bool = False,
    ) -> None:
        super().__init__(detail)
        self.code = code
        self.detail = detail
        self.retryable = retryable
