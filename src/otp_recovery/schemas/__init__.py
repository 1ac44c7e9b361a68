"""Pydantic schemas for the recovery API."""

from .recovery import (
    CompleteRequest,
    CompleteResponse,
    RecoveryStartRequest,
    RecoveryStartResponse,
    SendCodeRequest,
    SendCodeResponse,
)

__all__ = [
    "RecoveryStartRequest",
    "RecoveryStartResponse",
    "SendCodeRequest",
    "SendCodeResponse",
    "CompleteRequest",
    "CompleteResponse",
]
