"""Password recovery Pydantic schemas."""

from pydantic import BaseModel, Field, model_validator

MIN_CREDENTIAL_LENGTH = 6


class SignedPair(BaseModel):
    """Token pair issued by the previous phase and echoed back by the client."""

    session_token: str = Field(..., min_length=1, description="Base64 session token")
    session_signature: str = Field(..., min_length=1, description="Hex HMAC of the session token")
    payload: str = Field(..., min_length=1, description="Base64 secure payload")
    payload_signature: str = Field(..., min_length=1, description="Hex HMAC of the payload")


class RecoveryStartRequest(BaseModel):
    """Phase 1: identify the account to recover."""

    login: str = Field(..., min_length=3, max_length=254, description="Login e-mail")


class RecoveryStartResponse(SignedPair):
    masked_phone: str = Field(..., description="Phone on file with the middle digits hidden")
    subject_hash: str = Field(..., description="Opaque account fingerprint for support correlation")
    expires_in: int = Field(..., description="Seconds until the token pair expires")


class SendCodeRequest(SignedPair):
    """Phase 2: confirm the phone on file and request the SMS code."""

    phone: str = Field(..., min_length=1, max_length=32, description="Phone number typed by the user")


class SendCodeResponse(SignedPair):
    masked_phone: str
    expires_in: int


class CompleteRequest(SignedPair):
    """Phase 3: prove possession of the SMS code and set the new password."""

    code: str = Field(..., pattern=r"^\d{4,10}$", description="Code received by SMS")
    new_password: str = Field(..., min_length=MIN_CREDENTIAL_LENGTH)
    confirm_password: str = Field(..., min_length=MIN_CREDENTIAL_LENGTH)

    @model_validator(mode="after")
    def _passwords_match(self) -> "CompleteRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class CompleteResponse(BaseModel):
    success: bool
    message: str
