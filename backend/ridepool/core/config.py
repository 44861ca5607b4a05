"""Application configuration loaded from environment variables.

Settings for database, API, authentication, OTP verification and the
booking inventory. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "ridepool_dev_password"  # nosec B105

# Development-only signing secret. Production requires AUTH_SECRET.
_INSECURE_DEFAULT_AUTH_SECRET = "ridepool-dev-secret-change-me"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "ridepool"
    database_user: str = "ridepool_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Verification tokens (Bearer credentials minted on successful OTP)
    auth_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_AUTH_SECRET)
    auth_issuer: str = "ridepool"
    auth_audience: str = "ridepool-api"
    verification_token_ttl_minutes: int = 60

    # OTP lifecycle
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 3
    otp_sweep_interval_seconds: int = 300

    # OTP delivery
    # "log" prints codes to the application log (development only).
    # "resend" emails codes for email keys; phone keys report a failed delivery.
    notifier_backend: Literal["log", "resend"] = "log"
    email_from: str = "noreply@ridepool.app"
    resend_api_key: SecretStr = SecretStr("")

    # Booking inventory
    # "memory": local-first mode, state lives in the process.
    # "database": rides and bookings persisted in PostgreSQL.
    inventory_backend: Literal["memory", "database"] = "memory"
    default_currency: str = "INR"

    # Rate Limiting
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_otp_send: str = "5/minute"
    rate_limit_otp_verify: str = "10/minute"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        """Whether the app runs with production safety rules."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production security requirements.

        Checks:
        - OTP TTL, attempt limit and sweep interval must be positive
        - Verification token TTL must be positive
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set, non-default and >= 32 chars in production
        - The log notifier must not be used in production (it prints codes)
        """
        for name in (
            "otp_ttl_minutes",
            "otp_max_attempts",
            "otp_sweep_interval_seconds",
            "verification_token_ttl_minutes",
        ):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.is_production:
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value or secret_value == _INSECURE_DEFAULT_AUTH_SECRET:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if self.notifier_backend == "log":
                msg = (
                    "NOTIFIER_BACKEND=log prints OTP codes and cannot be used "
                    "in production."
                )
                raise ValueError(msg)

        return self


settings = Settings()
