"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="helpdesk-approvals", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")
    secret_key: str = Field(
        default="dev-secret-key-change-in-production",
        description="Secret key for signing",
    )

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="CORS allowed origins",
    )

    # Database
    db_driver: str = Field(
        default="postgresql+asyncpg", description="SQLAlchemy async driver"
    )
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: int = Field(default=5432, description="PostgreSQL port")
    db_user: str = Field(default="postgres", description="PostgreSQL user")
    db_password: str = Field(default="postgres", description="PostgreSQL password")
    db_name: str = Field(default="helpdesk", description="PostgreSQL database name")

    # Redis (Celery broker)
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_password: str | None = Field(default=None, description="Redis password")

    # JWT Authentication
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(
        default=30, description="Access token expiration in minutes"
    )

    # Approval workflow
    approval_resubmission_ceiling: int = Field(
        default=3,
        ge=1,
        description="Rejections allowed before a ticket can no longer be resubmitted",
    )
    approval_default_capability: str = Field(
        default="tickets:approve",
        description="Capability required to act on a Line Manager gate with no named approver",
    )
    approval_hod_capability: str = Field(
        default="tickets:approve-hod",
        description="Capability required to act on a Head of Department gate with no named approver",
    )
    approval_override_capability: str = Field(
        default="tickets:assign",
        description="Capability allowing a user to act on any gate",
    )
    approval_hod_priorities: list[str] = Field(
        default=[],
        description="Ticket priorities that always require Head of Department approval",
    )

    # Notifications
    notification_backend: Literal["log", "celery"] = Field(
        default="log", description="Where workflow notifications are sent"
    )
    notification_webhook_url: str | None = Field(
        default=None, description="Webhook receiving delivered notifications"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    @computed_field
    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return (
            f"{self.db_driver}://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
