"""SMS dispatch client.

The recovery workflow only depends on the `SMSGateway` contract: send a text
to a phone number and report whether the provider accepted it. Transport
failures are reported as unsuccessful results, never raised.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

import httpx
from jose import jwt

from otp_recovery.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200


@dataclass(frozen=True)
class SmsDispatchResult:
    """Provider verdict for a single message."""

    success: bool
    message: str


class SMSGateway(Protocol):
    def send(self, phone_number: str, message: str) -> SmsDispatchResult: ...


@dataclass(frozen=True)
class SmsGatewayConfig:
    """Immutable configuration for the HTTP SMS gateway."""

    base_url: str | None
    timeout_seconds: float
    shared_secret: str | None
    audience: str
    sender_id: str
    token_ttl_seconds: int = 60


def load_sms_gateway_config() -> SmsGatewayConfig:
    """Build configuration object from global settings."""

    return SmsGatewayConfig(
        base_url=settings.sms_gateway_url,
        timeout_seconds=float(settings.sms_gateway_timeout_seconds),
        shared_secret=settings.sms_gateway_shared_secret,
        audience=settings.sms_gateway_audience,
        sender_id=settings.sms_sender_id,
    )


def mask_phone(phone: str) -> str:
    """Return the phone with everything but the first and last two characters hidden."""
    if len(phone) <= 4:
        return "****"
    return f"{phone[:2]}****{phone[-2:]}"


class HttpSMSGateway:
    """HTTP client wrapper for the SMS provider."""

    def __init__(
        self,
        config: SmsGatewayConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or load_sms_gateway_config()
        if not self.config.base_url:
            raise ValueError("SMS gateway base URL is not configured")
        self._client = httpx.Client(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            transport=transport,
        )

    def _build_auth_headers(self) -> dict[str, str]:
        headers = {"X-Sender-Id": self.config.sender_id}

        if self.config.shared_secret:
            now = int(time.time())
            payload = {
                "iss": self.config.sender_id,
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(payload, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"

        return headers

    def send(self, phone_number: str, message: str) -> SmsDispatchResult:
        masked = mask_phone(phone_number)
        try:
            response = self._client.post(
                "/messages",
                json={"to": phone_number, "message": message, "sender": self.config.sender_id},
                headers=self._build_auth_headers(),
            )
        except httpx.TimeoutException:
            logger.warning("SMS gateway timed out sending to %s", masked)
            return SmsDispatchResult(success=False, message="SMS gateway timed out")
        except httpx.HTTPError as exc:
            logger.warning("SMS gateway request to %s failed: %s", masked, exc)
            return SmsDispatchResult(success=False, message="SMS gateway unreachable")

        if response.status_code != HTTP_OK:
            logger.warning(
                "SMS gateway rejected message to %s with status %d",
                masked,
                response.status_code,
            )
            return SmsDispatchResult(
                success=False,
                message=f"SMS gateway responded with {response.status_code}",
            )

        detail = "SMS sent"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            detail = body["message"]
        logger.info("SMS dispatched to %s", masked)
        return SmsDispatchResult(success=True, message=detail)

    def close(self) -> None:
        self._client.close()


class DisabledSMSGateway:
    """Gateway used when no provider is configured; every send fails."""

    def send(self, phone_number: str, message: str) -> SmsDispatchResult:
        logger.error("SMS gateway is not configured; dropping message to %s", mask_phone(phone_number))
        return SmsDispatchResult(success=False, message="SMS gateway is not configured")


_GATEWAY_LOCK = Lock()
_GATEWAY: SMSGateway | None = None


def get_sms_gateway() -> SMSGateway:
    """Return a lazily-initialised SMS gateway singleton."""
    global _GATEWAY

    with _GATEWAY_LOCK:
        if _GATEWAY is None:
            _GATEWAY = HttpSMSGateway() if settings.sms_gateway_url else DisabledSMSGateway()
        return _GATEWAY


def close_sms_gateway() -> None:
    global _GATEWAY

    with _GATEWAY_LOCK:
        if isinstance(_GATEWAY, HttpSMSGateway):
            _GATEWAY.close()
        _GATEWAY = None
