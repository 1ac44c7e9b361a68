"""Subject lookup and credential updates used by the recovery workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import nacl.pwhash
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from otp_recovery.models import Subject

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubjectRecord:
    """Read-only view of an account as seen by the recovery workflow."""

    id: int
    login: str
    phone: str | None


class SubjectDirectory(Protocol):
    """Collaborator contract for account persistence."""

    def find_by_login_identifier(self, identifier: str) -> SubjectRecord | None: ...

    def find_by_id(self, subject_id: int) -> SubjectRecord | None: ...

    def get_phone_number(self, subject_id: int) -> str | None: ...

    def update_credential(self, subject_id: int, new_secret: str) -> bool: ...


def hash_credential(new_secret: str) -> str:
    """Return an Argon2id hash suitable for storage."""
    return nacl.pwhash.str(new_secret.encode("utf-8")).decode("ascii")


class SqlSubjectDirectory:
    """`SubjectDirectory` backed by the `subject` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @staticmethod
    def _to_record(row: Subject) -> SubjectRecord:
        return SubjectRecord(id=row.id, login=row.email, phone=row.phone)

    def find_by_login_identifier(self, identifier: str) -> SubjectRecord | None:
        normalized = identifier.strip().lower()
        row = self.db.execute(
            select(Subject).where(Subject.email == normalized).limit(1)
        ).scalar_one_or_none()
        return self._to_record(row) if row is not None else None

    def find_by_id(self, subject_id: int) -> SubjectRecord | None:
        row = self.db.get(Subject, subject_id)
        return self._to_record(row) if row is not None else None

    def get_phone_number(self, subject_id: int) -> str | None:
        row = self.db.get(Subject, subject_id)
        if row is None or not row.phone:
            return None
        return row.phone.strip()

    def update_credential(self, subject_id: int, new_secret: str) -> bool:
        row = self.db.get(Subject, subject_id)
        if row is None:
            return False
        row.credential_hash = hash_credential(new_secret)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Credential update failed for subject %d", subject_id)
            return False
        return True
