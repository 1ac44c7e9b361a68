"""Application settings and configuration.

This module defines all configuration options for the recovery service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="OTP Recovery", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server-held secret shared by the code generator and the message signer
    secret_key: str = Field(alias="SECRET_KEY")

    # One-time code generation
    totp_period_seconds: int = Field(default=60, alias="TOTP_PERIOD_SECONDS")
    totp_digits: int = Field(default=6, alias="TOTP_DIGITS")
    totp_window: int = Field(default=1, alias="TOTP_WINDOW")
    totp_algorithm: str = Field(default="sha256", alias="TOTP_ALGORITHM")

    # Recovery workflow lifetimes and phone policy
    step1_ttl_minutes: int = Field(default=15, alias="STEP1_TTL_MINUTES")
    step2_ttl_minutes: int = Field(default=10, alias="STEP2_TTL_MINUTES")
    phone_pattern: str = Field(default=r"^[67]\d{7,8}$", alias="PHONE_PATTERN")

    # Nonce ledger; the in-process ledger is used when no Redis URL is set
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    nonce_compaction_interval_seconds: float = Field(
        default=300.0,
        alias="NONCE_COMPACTION_INTERVAL_SECONDS",
    )

    # SMS gateway
    sms_gateway_url: str | None = Field(default=None, alias="SMS_GATEWAY_URL")
    sms_gateway_timeout_seconds: float = Field(
        default=30.0,
        alias="SMS_GATEWAY_TIMEOUT_SECONDS",
    )
    sms_gateway_shared_secret: str | None = Field(
        default=None,
        alias="SMS_GATEWAY_SHARED_SECRET",
    )
    sms_gateway_audience: str = Field(default="sms-gateway", alias="SMS_GATEWAY_AUDIENCE")
    sms_sender_id: str = Field(default="OTPRecovery", alias="SMS_SENDER_ID")

    # Database configuration
    database_url: str = Field(default="sqlite:///./recovery.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
