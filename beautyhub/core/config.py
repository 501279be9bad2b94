"""Application configuration using Pydantic settings."""

from typing import Any, Self

from pydantic import PostgresDsn, RedisDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "BeautyHub API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "beautyhub"
    DATABASE_URL: PostgresDsn | None = None

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: str | None, info: Any) -> str:
        """Build database URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=data.get("POSTGRES_USER"),
                password=data.get("POSTGRES_PASSWORD"),
                host=data.get("POSTGRES_SERVER"),
                port=data.get("POSTGRES_PORT"),
                path=f"{data.get('POSTGRES_DB') or ''}",
            ),
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_URL: RedisDsn | None = None

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_connection(cls, v: str | None, info: Any) -> str:
        """Build Redis URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        password_part = f":{data.get('REDIS_PASSWORD')}@" if data.get("REDIS_PASSWORD") else ""
        return f"redis://{password_part}{data.get('REDIS_HOST')}:{data.get('REDIS_PORT')}/{data.get('REDIS_DB')}"

    # Security
    SECRET_KEY: str = "change-this-to-a-random-secret-key-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Shared secret for the scheduler calling the automation endpoint.
    # INTERNAL_API_SECRET is accepted as a fallback name.
    CRON_SECRET: str | None = None
    INTERNAL_API_SECRET: str | None = None

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60

    # Messaging (platform-level fallbacks; providers may override per tenant)
    DEFAULT_SENDER_NAME: str = "BeautyHub"
    DEFAULT_FROM_EMAIL: str = "no-reply@beautyhub.app"
    RESEND_API_KEY: str | None = None
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None
    TWILIO_WHATSAPP_NUMBER: str | None = None
    TELNYX_API_KEY: str | None = None
    TELNYX_FROM_NUMBER: str | None = None
    TELNYX_MESSAGING_PROFILE_ID: str | None = None

    # External Service Timeouts (seconds)
    TELNYX_TIMEOUT: float = 10.0
    TWILIO_TIMEOUT: float = 10.0
    RESEND_TIMEOUT: float = 15.0

    # Automations
    DEFAULT_TIMEZONE: str = "UTC"  # Used when a provider has no timezone set
    AUTOMATION_WORKER_ENABLED: bool = False  # External scheduler calls the endpoint by default
    AUTOMATION_POLL_INTERVAL_SECONDS: int = 600
    AUTOMATION_DISPATCH_TIMEOUT: float = 20.0  # Per-recipient send timeout
    AUTOMATION_LOCK_TTL_SECONDS: int = 900

    # Monitoring
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 1.0

    @property
    def cron_secret(self) -> str | None:
        """Configured scheduler secret, if any."""
        return self.CRON_SECRET or self.INTERNAL_API_SECRET

    @model_validator(mode="after")
    def validate_production_security(self) -> Self:
        """Validate that production-critical secrets are not using defaults.

        Only enforced when DEBUG=False (production mode).
        """
        if not self.DEBUG and self.SECRET_KEY == "change-this-to-a-random-secret-key-in-production":
            raise ValueError(
                "SECRET_KEY must be changed from default value in production! "
                'Generate a secure key with: python -c "import secrets; print(secrets.token_hex(32))"'
            )

        return self


settings = Settings()
