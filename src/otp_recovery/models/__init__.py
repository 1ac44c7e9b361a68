"""SQLAlchemy models for the recovery service."""

from .subject import Subject

__all__ = ["Subject"]
