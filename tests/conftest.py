# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from otp_recovery.api.v1.endpoints.recovery import get_recovery_service
from otp_recovery.core.config import RecoveryConfig
from otp_recovery.core.security import MessageSigner
from otp_recovery.core.totp import TOTPGenerator
from otp_recovery.main import app as fastapi_app
from otp_recovery.services.envelope import EnvelopeCodec
from otp_recovery.services.recovery import RecoveryService
from otp_recovery.services.replay import InMemoryNonceLedger
from otp_recovery.services.secure_payload import SecurePayloadService
from otp_recovery.services.session_tokens import SessionTokenService
from otp_recovery.services.sms import SmsDispatchResult
from otp_recovery.services.subjects import SubjectRecord

START_TIME = 1_700_000_040.0
SUBJECT_ID = 42
SUBJECT_LOGIN = "ana@example.com"
SUBJECT_PHONE = "612345678"


class FrozenClock:
    """Manually advanced clock shared by every component under test."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemorySubjectDirectory:
    def __init__(self, records: list[SubjectRecord]) -> None:
        self.records = {record.id: record for record in records}
        self.credentials: dict[int, str] = {}

    def find_by_login_identifier(self, identifier: str) -> SubjectRecord | None:
        for record in self.records.values():
            if record.login == identifier.strip().lower():
                return record
        return None

    def find_by_id(self, subject_id: int) -> SubjectRecord | None:
        return self.records.get(subject_id)

    def get_phone_number(self, subject_id: int) -> str | None:
        record = self.records.get(subject_id)
        return record.phone if record else None

    def update_credential(self, subject_id: int, new_secret: str) -> bool:
        if subject_id not in self.records:
            return False
        self.credentials[subject_id] = new_secret
        return True


@dataclass
class RecordingSMSGateway:
    """Captures outgoing messages; flip `success` to simulate provider failures."""

    success: bool = True
    sent: list[tuple[str, str]] = field(default_factory=list)

    def send(self, phone_number: str, message: str) -> SmsDispatchResult:
        if not self.success:
            return SmsDispatchResult(success=False, message="provider unavailable")
        self.sent.append((phone_number, message))
        return SmsDispatchResult(success=True, message="queued")


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def config() -> RecoveryConfig:
    return RecoveryConfig(secret=b"unit-test-secret")


@pytest.fixture()
def ledger(clock: FrozenClock) -> InMemoryNonceLedger:
    return InMemoryNonceLedger(clock)


@pytest.fixture()
def totp(config: RecoveryConfig, clock: FrozenClock) -> TOTPGenerator:
    return TOTPGenerator(config, clock)


@pytest.fixture()
def codec(config: RecoveryConfig, ledger: InMemoryNonceLedger, clock: FrozenClock) -> EnvelopeCodec:
    return EnvelopeCodec(MessageSigner(config), ledger, clock)


@pytest.fixture()
def session_tokens(codec: EnvelopeCodec, totp: TOTPGenerator) -> SessionTokenService:
    return SessionTokenService(codec, totp)


@pytest.fixture()
def secure_payloads(codec: EnvelopeCodec) -> SecurePayloadService:
    return SecurePayloadService(codec)


@pytest.fixture()
def subjects() -> InMemorySubjectDirectory:
    return InMemorySubjectDirectory(
        [
            SubjectRecord(id=SUBJECT_ID, login=SUBJECT_LOGIN, phone=SUBJECT_PHONE),
            SubjectRecord(id=43, login="nophone@example.com", phone=None),
            SubjectRecord(id=44, login="landline@example.com", phone="912345678"),
            SubjectRecord(id=45, login="bea@example.com", phone="712345678"),
        ]
    )


@pytest.fixture()
def sms_gateway() -> RecordingSMSGateway:
    return RecordingSMSGateway()


@pytest.fixture()
def recovery_service(
    config: RecoveryConfig,
    subjects: InMemorySubjectDirectory,
    sms_gateway: RecordingSMSGateway,
    session_tokens: SessionTokenService,
    secure_payloads: SecurePayloadService,
    clock: FrozenClock,
) -> RecoveryService:
    return RecoveryService(config, subjects, sms_gateway, session_tokens, secure_payloads, clock)


@pytest.fixture()
def app(recovery_service: RecoveryService) -> Iterator[FastAPI]:
    fastapi_app.dependency_overrides[get_recovery_service] = lambda: recovery_service
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_recovery_service, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
