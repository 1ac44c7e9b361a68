# src/otp_recovery/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import recovery_router

__all__ = ["recovery_router"]
