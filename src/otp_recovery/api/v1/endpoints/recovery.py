# src/otp_recovery/api/v1/endpoints/recovery.py
"""Password recovery endpoints for the API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from otp_recovery.core.config import get_recovery_config
from otp_recovery.db.session import get_db
from otp_recovery.schemas.recovery import (
    CompleteRequest,
    CompleteResponse,
    RecoveryStartRequest,
    RecoveryStartResponse,
    SendCodeRequest,
    SendCodeResponse,
)
from otp_recovery.services.recovery import RecoveryService, build_recovery_service
from otp_recovery.services.results import RecoveryError, RecoveryErrorCode
from otp_recovery.services.subjects import SqlSubjectDirectory

router = APIRouter(prefix="/auth/password-reset", tags=["password-recovery"])

SessionDep = Annotated[Session, Depends(get_db)]

RETRY_AFTER_SECONDS = "30"

_STATUS_BY_CODE: dict[RecoveryErrorCode, int] = {
    RecoveryErrorCode.REPLAYED: status.HTTP_429_TOO_MANY_REQUESTS,
    RecoveryErrorCode.UPSTREAM_DISPATCH_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    RecoveryErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_recovery_service(db: SessionDep) -> RecoveryService:
    return build_recovery_service(SqlSubjectDirectory(db), config=get_recovery_config())


RecoveryServiceDep = Annotated[RecoveryService, Depends(get_recovery_service)]


def _to_http_error(err: RecoveryError) -> HTTPException:
    """Translate a recovery failure into the client-facing response."""
    status_code = _STATUS_BY_CODE.get(err.code, status.HTTP_400_BAD_REQUEST)
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if err.retryable else None
    return HTTPException(status_code=status_code, detail=err.detail, headers=headers)


@router.post("/step1", response_model=RecoveryStartResponse)
def start_recovery(body: RecoveryStartRequest, service: RecoveryServiceDep) -> RecoveryStartResponse:
    """Identify the account and return the step-1 token pair."""
    try:
        result = service.start(body.login)
    except RecoveryError as err:
        raise _to_http_error(err) from err

    return RecoveryStartResponse(
        session_token=result.session_token,
        session_signature=result.session_signature,
        payload=result.payload,
        payload_signature=result.payload_signature,
        masked_phone=result.masked_phone,
        subject_hash=result.subject_hash,
        expires_in=result.expires_in,
    )


@router.post("/step2", response_model=SendCodeResponse)
def send_recovery_code(body: SendCodeRequest, service: RecoveryServiceDep) -> SendCodeResponse:
    """Confirm the phone number and send the one-time code by SMS."""
    try:
        result = service.send_code(
            body.session_token,
            body.session_signature,
            body.payload,
            body.payload_signature,
            body.phone,
        )
    except RecoveryError as err:
        raise _to_http_error(err) from err

    return SendCodeResponse(
        session_token=result.session_token,
        session_signature=result.session_signature,
        payload=result.payload,
        payload_signature=result.payload_signature,
        masked_phone=result.masked_phone,
        expires_in=result.expires_in,
    )


@router.post("/step3", response_model=CompleteResponse)
def complete_recovery(body: CompleteRequest, service: RecoveryServiceDep) -> CompleteResponse:
    """Verify the SMS code and set the new password."""
    try:
        service.complete(
            body.session_token,
            body.session_signature,
            body.payload,
            body.payload_signature,
            body.code,
            body.new_password,
            body.confirm_password,
        )
    except RecoveryError as err:
        raise _to_http_error(err) from err

    return CompleteResponse(success=True, message="Password updated successfully")
