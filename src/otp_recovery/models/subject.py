"""SQLAlchemy model for accounts that can recover their credential."""

from __future__ import annotations

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from otp_recovery.db.session import Base


class Subject(Base):
    """Account identified by its login e-mail, with an optional phone on file."""

    __tablename__ = "subject"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Argon2id hash; never the credential itself.
    credential_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
