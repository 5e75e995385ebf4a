"""
BrewOps Configuration

Environment-based settings for the workforce sync service.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "BrewOps Workforce Sync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # Database: accepts either DATABASE_URL or individual fields
    database_url_external: str = Field(default="", alias="DATABASE_URL")
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "brewops"
    postgres_password: str = "brewops"
    postgres_db: str = "brewops"

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_external:
            url = self.database_url_external
            # Replace postgres:// with postgresql+asyncpg://
            if url.startswith("postgres://"):
                url = "postgresql+asyncpg://" + url[len("postgres://"):]
            elif url.startswith("postgresql://"):
                url = "postgresql+asyncpg://" + url[len("postgresql://"):]
            return url
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
        )

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Sync PostgreSQL URL for Alembic migrations."""
        if self.database_url_external:
            url = self.database_url_external
            if url.startswith("postgres://"):
                url = "postgresql://" + url[len("postgres://"):]
            elif url.startswith("postgresql+asyncpg://"):
                url = "postgresql://" + url[len("postgresql+asyncpg://"):]
            return url
        return str(
            PostgresDsn.build(
                scheme="postgresql",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
        )

    # Redis: accepts either REDIS_URL or individual fields
    redis_url_external: str = Field(default="", alias="REDIS_URL")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL (Celery broker and result backend)."""
        if self.redis_url_external:
            return self.redis_url_external
        return str(
            RedisDsn.build(
                scheme="redis",
                host=self.redis_host,
                port=self.redis_port,
                path=str(self.redis_db),
            )
        )

    # Security
    secret_key: str = Field(
        default="CHANGE-ME-IN-PRODUCTION-use-openssl-rand-hex-32",
        description="Secret key for JWT signing",
    )
    encryption_key: str = Field(
        default="CHANGE-ME-IN-PRODUCTION-use-fernet-generate-key",
        description="Fernet key for encrypting OAuth tokens",
    )
    access_token_expire_minutes: int = 60

    # Square OAuth application
    square_app_id: str = Field(default="", description="Square application (client) ID")
    square_app_secret: str = Field(default="", description="Square application secret")
    square_environment: Literal["sandbox", "production"] = "sandbox"
    square_api_version: str = "2025-05-21"
    square_app_access_token: str = Field(
        default="",
        description="Application-level token used to manage webhook subscriptions",
    )

    # Square webhooks
    square_webhook_signature_key: str = Field(
        default="",
        description="Signature key shown on the webhook subscription",
    )
    square_webhook_notification_url: str = Field(
        default="",
        description="Exact notification URL registered with Square (used verbatim for signatures)",
    )

    # Square sync behaviour
    square_sync_interval_minutes: int = 15
    square_sync_initial_delay_seconds: int = 30
    square_token_refresh_window_minutes: int = 60
    square_bootstrap_lookback_days: int = 30
    square_workday_timezone: str = "America/Los_Angeles"
    square_default_token_lifetime_days: int = 30
    square_request_timeout_seconds: float = 30.0

    @computed_field
    @property
    def square_is_configured(self) -> bool:
        """True when OAuth client credentials are present."""
        return bool(self.square_app_id and self.square_app_secret)

    @computed_field
    @property
    def square_base_url(self) -> str:
        """Square Connect host for the configured environment."""
        if self.square_environment == "production":
            return "https://connect.squareup.com"
        return "https://connect.squareupsandbox.com"

    # Error Monitoring
    sentry_dsn: str = Field(
        default="",
        description="Sentry DSN for error monitoring (leave empty to disable)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
