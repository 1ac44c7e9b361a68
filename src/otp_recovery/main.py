# src/otp_recovery/main.py
"""Main entry point for the recovery service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from otp_recovery.api.v1 import recovery_router
from otp_recovery.core.config import get_recovery_config
from otp_recovery.core.settings import settings
from otp_recovery.services.replay import NonceCompactionWorker, get_nonce_ledger
from otp_recovery.services.sms import close_sms_gateway

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title="OTP Recovery API",
    description="Stateless password recovery verified by SMS one-time codes",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(recovery_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    get_recovery_config()
    worker = NonceCompactionWorker(get_nonce_ledger())
    await worker.start()
    app.state.compaction_worker = worker


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: NonceCompactionWorker | None = getattr(app.state, "compaction_worker", None)
    if worker:
        await worker.stop()
    close_sms_gateway()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "OTP Recovery API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("otp_recovery.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
