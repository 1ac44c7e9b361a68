# src/otp_recovery/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .recovery import router as recovery_router

__all__ = ["recovery_router"]
