"""Tests for the HTTP SMS gateway client."""

import threading
import time

import httpx
import pytest
from jose import jwt

from otp_recovery.services import sms
from otp_recovery.services.sms import (
    DisabledSMSGateway,
    HttpSMSGateway,
    SmsGatewayConfig,
    mask_phone,
)


def _config(**overrides) -> SmsGatewayConfig:
    values = {
        "base_url": "https://sms.test",
        "timeout_seconds": 30.0,
        "shared_secret": None,
        "audience": "sms-gateway",
        "sender_id": "OTPRecovery",
    }
    values.update(overrides)
    return SmsGatewayConfig(**values)


def test_successful_dispatch_posts_message() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"message": "queued"})

    gateway = HttpSMSGateway(_config(), transport=httpx.MockTransport(handler))
    result = gateway.send("612345678", "Your code is 123456")

    assert result.success is True
    assert result.message == "queued"
    assert seen[0].url.path == "/messages"
    assert seen[0].headers["X-Sender-Id"] == "OTPRecovery"
    assert "Authorization" not in seen[0].headers
    assert b'"to":"612345678"' in seen[0].content.replace(b" ", b"")


def test_shared_secret_adds_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    gateway = HttpSMSGateway(
        _config(shared_secret="gateway-secret"), transport=httpx.MockTransport(handler)
    )
    assert gateway.send("612345678", "hello").success is True

    scheme, token = seen[0].headers["Authorization"].split(" ", 1)
    assert scheme == "Bearer"
    claims = jwt.decode(token, "gateway-secret", algorithms=["HS256"], audience="sms-gateway")
    assert claims["iss"] == "OTPRecovery"


@pytest.mark.parametrize("status_code", [400, 429, 500, 503])
def test_non_200_is_a_failure(status_code: int) -> None:
    gateway = HttpSMSGateway(
        _config(), transport=httpx.MockTransport(lambda request: httpx.Response(status_code))
    )
    result = gateway.send("612345678", "hello")
    assert result.success is False
    assert str(status_code) in result.message


def test_timeouts_and_network_errors_are_failures() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    slow = HttpSMSGateway(_config(), transport=httpx.MockTransport(timeout))
    down = HttpSMSGateway(_config(), transport=httpx.MockTransport(refused))

    assert slow.send("612345678", "hello").message == "SMS gateway timed out"
    assert down.send("612345678", "hello").success is False


def test_gateway_requires_base_url() -> None:
    with pytest.raises(ValueError):
        HttpSMSGateway(_config(base_url=None))


def test_disabled_gateway_always_fails() -> None:
    assert DisabledSMSGateway().send("612345678", "hello").success is False


@pytest.mark.parametrize(
    ("phone", "masked"),
    [("612345678", "61****78"), ("71234567", "71****67"), ("123", "****")],
)
def test_mask_phone(phone: str, masked: str) -> None:
    assert mask_phone(phone) == masked


def test_gateway_singleton_is_built_once_under_concurrency(monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[object] = []
    closed: list[object] = []

    class SlowGateway:
        def __init__(self) -> None:
            time.sleep(0.05)
            built.append(self)

        def close(self) -> None:
            closed.append(self)

    monkeypatch.setattr(sms, "HttpSMSGateway", SlowGateway)
    monkeypatch.setattr(sms.settings, "sms_gateway_url", "https://sms.test")
    sms.close_sms_gateway()

    barrier = threading.Barrier(4)
    seen: list[object] = []
    seen_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        gateway = sms.get_sms_gateway()
        with seen_lock:
            seen.append(gateway)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
    finally:
        sms.close_sms_gateway()

    assert len(built) == 1
    assert all(gateway is built[0] for gateway in seen)
    assert closed == built
