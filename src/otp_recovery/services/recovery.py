"""Three-phase password recovery over SMS.

    start      login            -> step-1 token pair, masked phone
    send_code  step-1 pair+phone -> SMS code, step-2 token pair
    complete   step-2 pair+code  -> credential updated

No phase stores anything server side except the nonces of envelopes it has
accepted. A failure in any phase means the client restarts from `start`,
except for SMS dispatch failures which may be retried with the same pair.
"""

from __future__ import annotations

import functools
import logging
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from otp_recovery.core.config import RecoveryConfig, get_recovery_config
from otp_recovery.core.security import MessageSigner, subject_fingerprint
from otp_recovery.core.totp import TOTPGenerator
from otp_recovery.services.envelope import EnvelopeCodec
from otp_recovery.services.replay import NonceLedger, get_nonce_ledger
from otp_recovery.services.results import (
    RecoveryError,
    RecoveryErrorCode,
    VerificationResult,
)
from otp_recovery.services.secure_payload import SecurePayloadService
from otp_recovery.services.session_tokens import SessionTokenService
from otp_recovery.services.sms import SMSGateway, get_sms_gateway, mask_phone
from otp_recovery.services.subjects import SubjectDirectory

logger = logging.getLogger(__name__)

STEP1_ACTION = "password_reset_step1"
STEP2_ACTION = "password_reset_step2"

START_REFUSED_DETAIL = "Password recovery cannot be started for this account"
_DECOY_SUBJECT_ID = 0
_DECOY_PHONE = "600000000"

# Held while an SMS for a step-1 token is in flight; outlives the gateway timeout.
DISPATCH_CLAIM_SECONDS = 120
_DISPATCH_PURPOSE = "dispatch"

T = TypeVar("T")


@dataclass(frozen=True)
class PhaseOneResult:
    session_token: str
    session_signature: str
    payload: str
    payload_signature: str
    masked_phone: str
    subject_hash: str
    expires_in: int


@dataclass(frozen=True)
class PhaseTwoResult:
    session_token: str
    session_signature: str
    payload: str
    payload_signature: str
    masked_phone: str
    expires_in: int


def _guarded(phase: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Turn unexpected exceptions into a generic internal `RecoveryError`."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except RecoveryError:
                raise
            except Exception as exc:
                logger.exception("Unexpected failure during recovery %s", phase)
                raise RecoveryError(
                    RecoveryErrorCode.INTERNAL_ERROR, "Internal error"
                ) from exc

        return wrapper

    return decorator


class RecoveryService:
    """Orchestrates the recovery phases on top of the envelope services."""

    def __init__(
        self,
        config: RecoveryConfig,
        subjects: SubjectDirectory,
        sms: SMSGateway,
        tokens: SessionTokenService,
        payloads: SecurePayloadService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._subjects = subjects
        self._sms = sms
        self._tokens = tokens
        self._payloads = payloads
        self._clock = clock
        self._phone_re = re.compile(config.phone_pattern)

    # --- Phase 1 ----------------------------------------------------------------------
    @_guarded("start")
    def start(self, login: str) -> PhaseOneResult:
        """Look up the account and hand out the step-1 token pair.

        Unknown accounts, accounts without a phone and phones that fail the
        format check all produce the same error after the same signing work.
        """
        subject = self._subjects.find_by_login_identifier(login)
        subject_id = subject.id if subject is not None else _DECOY_SUBJECT_ID
        phone = self._subjects.get_phone_number(subject_id)

        refusal: RecoveryErrorCode | None = None
        if subject is None:
            refusal = RecoveryErrorCode.SUBJECT_NOT_FOUND
        elif not phone:
            refusal = RecoveryErrorCode.PHONE_NOT_ON_FILE
        elif not self._phone_re.fullmatch(phone):
            refusal = RecoveryErrorCode.PHONE_FORMAT_INVALID

        # Refusals run the full issuance on decoy values.
        if refusal is not None or not phone:
            subject_id, phone = _DECOY_SUBJECT_ID, _DECOY_PHONE

        ttl = self._config.step1_ttl_minutes
        session = self._tokens.issue(subject_id, STEP1_ACTION, ttl)
        payload = self._payloads.issue({"subject_id": subject_id, "phone": phone, "step": 1}, ttl)
        result = PhaseOneResult(
            session_token=session.token,
            session_signature=session.signature,
            payload=payload.encoded,
            payload_signature=payload.signature,
            masked_phone=mask_phone(phone),
            subject_hash=subject_fingerprint(self._config, subject_id),
            expires_in=ttl * 60,
        )

        if refusal is not None:
            logger.info("Recovery start refused: %s", refusal.value)
            raise RecoveryError(refusal, START_REFUSED_DETAIL)

        logger.info("Recovery started for subject %d", subject_id)
        return result

    # --- Phase 2 ----------------------------------------------------------------------
    @_guarded("send_code")
    def send_code(
        self,
        session_token: str,
        session_signature: str,
        payload: str,
        payload_signature: str,
        phone: str,
    ) -> PhaseTwoResult:
        """Confirm the phone, text a one-time code and hand out the step-2 pair.

        The step-1 nonces are only consumed once the SMS provider accepted
        the message, so a dispatch failure can be retried with the same pair.
        Concurrent requests for the same pair are refused while one dispatch
        is in flight.
        """
        session_data, payload_data = self._verify_pair(
            session_token,
            session_signature,
            payload,
            payload_signature,
            action=STEP1_ACTION,
            step=1,
        )
        supplied_phone = phone.strip()
        if payload_data.get("phone") != supplied_phone:
            raise RecoveryError(
                RecoveryErrorCode.DATA_MISMATCH, "Phone number does not match"
            )

        subject_id = int(session_data["subject_id"])
        if self._subjects.find_by_id(subject_id) is None:
            raise RecoveryError(RecoveryErrorCode.SUBJECT_NOT_FOUND, START_REFUSED_DETAIL)

        if not self._tokens.claim(session_data, _DISPATCH_PURPOSE, DISPATCH_CLAIM_SECONDS):
            logger.info("Recovery code dispatch already in progress for subject %d", subject_id)
            raise RecoveryError(
                RecoveryErrorCode.REPLAYED, "Invalid session token: token already used"
            )

        ttl = self._config.step2_ttl_minutes
        try:
            issued = self._tokens.issue(subject_id, STEP2_ACTION, ttl)
            dispatch = self._sms.send(
                supplied_phone,
                f"Your password reset code is {issued.code}. Do not share it with anyone.",
            )
            if not dispatch.success:
                logger.warning(
                    "SMS dispatch failed for subject %d: %s", subject_id, dispatch.message
                )
                raise RecoveryError(
                    RecoveryErrorCode.UPSTREAM_DISPATCH_FAILURE,
                    "The verification code could not be sent, please try again",
                    retryable=True,
                )

            self._consume(session_data, payload_data)
        finally:
            self._tokens.release(session_data, _DISPATCH_PURPOSE)

        next_payload = self._payloads.issue(
            {
                "subject_id": subject_id,
                "phone": supplied_phone,
                "step": 2,
                "sms_sent_at": int(self._clock()),
            },
            ttl,
        )
        logger.info("Recovery code sent for subject %d", subject_id)
        return PhaseTwoResult(
            session_token=issued.token,
            session_signature=issued.signature,
            payload=next_payload.encoded,
            payload_signature=next_payload.signature,
            masked_phone=mask_phone(supplied_phone),
            expires_in=ttl * 60,
        )

    # --- Phase 3 ----------------------------------------------------------------------
    @_guarded("complete")
    def complete(
        self,
        session_token: str,
        session_signature: str,
        payload: str,
        payload_signature: str,
        code: str,
        new_credential: str,
        confirm_credential: str,
    ) -> None:
        """Check the SMS code against the step-2 token and replace the credential."""
        if new_credential != confirm_credential:
            raise RecoveryError(
                RecoveryErrorCode.DATA_MISMATCH, "Password confirmation does not match"
            )

        session_data, payload_data = self._verify_pair(
            session_token,
            session_signature,
            payload,
            payload_signature,
            action=STEP2_ACTION,
            step=2,
        )
        subject_id = int(session_data["subject_id"])
        if not self._tokens.verify_code(code.strip(), session_data):
            logger.info("Recovery code rejected for subject %d", subject_id)
            raise RecoveryError(
                RecoveryErrorCode.CODE_INCORRECT_OR_EXPIRED,
                "Verification code is incorrect or has expired",
            )

        self._consume(session_data, payload_data)
        if not self._subjects.update_credential(subject_id, new_credential):
            raise RecoveryError(
                RecoveryErrorCode.INTERNAL_ERROR, "Credential could not be updated"
            )
        logger.info("Credential reset completed for subject %d", subject_id)

    # --- Helpers ----------------------------------------------------------------------
    @staticmethod
    def _reject(result: VerificationResult, label: str) -> RecoveryError:
        code = result.error or RecoveryErrorCode.MALFORMED_ENVELOPE
        return RecoveryError(code, f"Invalid {label}: {result.reason}")

    def _verify_pair(
        self,
        session_token: str,
        session_signature: str,
        payload: str,
        payload_signature: str,
        *,
        action: str,
        step: int,
    ) -> tuple[Mapping[str, Any], Mapping[str, Any]]:
        session = self._tokens.verify(session_token, session_signature, action, consume=False)
        if not session.valid:
            raise self._reject(session, "session token")

        data = self._payloads.verify(payload, payload_signature, consume=False)
        if not data.valid:
            raise self._reject(data, "payload")

        if data.data.get("subject_id") != session.data["subject_id"]:
            logger.warning("Recovery token and payload belong to different subjects")
            raise RecoveryError(
                RecoveryErrorCode.SUBJECT_MISMATCH, "Session token and payload do not match"
            )
        if data.data.get("step") != step:
            raise RecoveryError(
                RecoveryErrorCode.DATA_MISMATCH, "Payload belongs to another recovery step"
            )
        return session.data, data.data

    def _consume(self, session_data: Mapping[str, Any], payload_data: Mapping[str, Any]) -> None:
        # The session nonce is taken first; concurrent requests race on it.
        if not self._tokens.consume(session_data):
            raise RecoveryError(RecoveryErrorCode.REPLAYED, "Invalid session token: token already used")
        if not self._payloads.consume(payload_data):
            raise RecoveryError(RecoveryErrorCode.REPLAYED, "Invalid payload: envelope already used")


def build_recovery_service(
    subjects: SubjectDirectory,
    *,
    config: RecoveryConfig | None = None,
    ledger: NonceLedger | None = None,
    sms: SMSGateway | None = None,
    clock: Callable[[], float] = time.time,
) -> RecoveryService:
    """Wire a `RecoveryService` from configuration and collaborators."""
    config = config or get_recovery_config()
    codec = EnvelopeCodec(MessageSigner(config), ledger or get_nonce_ledger(), clock)
    totp = TOTPGenerator(config, clock)
    return RecoveryService(
        config,
        subjects,
        sms or get_sms_gateway(),
        SessionTokenService(codec, totp),
        SecurePayloadService(codec),
        clock,
    )
