"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.

Handlers never read ``Settings`` directly: they receive an env getter
(``settings_env`` in production) so tests can inject their own values.
"""

from functools import lru_cache
from typing import Callable, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Signature of the environment collaborator handed to every handler.
EnvGetter = Callable[[str], Optional[str]]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # Server
    PORT: int = Field(default=8000, description="Port to bind to (Render injects this)")

    # Supabase
    SUPABASE_URL: str = Field(default="")
    SUPABASE_ANON_KEY: str = Field(default="")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="")
    SUPABASE_DATABASE_URL: str = Field(default="")

    # RevenueCat
    REVENUECAT_WEBHOOK_SECRET: str = Field(default="")

    # Sign in with Apple
    APPLE_TEAM_ID: str = Field(default="")
    APPLE_CLIENT_ID: str = Field(default="")
    APPLE_KEY_ID: str = Field(default="")
    APPLE_PRIVATE_KEY: str = Field(
        default="",
        description="PKCS#8 PEM for the Sign in with Apple key (\\n escapes allowed)",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Log levels are matched upper-case by the logging module."""
        return v.upper()

    @property
    def database_url_async(self) -> str:
        """Convert database URL to async format for asyncpg."""
        return to_async_database_url(self.SUPABASE_DATABASE_URL)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"


def to_async_database_url(url: str) -> str:
    """Rewrite a ``postgresql://`` URL so SQLAlchemy uses asyncpg."""
    if not url:
        return ""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url.replace("postgresql://", "postgresql+asyncpg://", 1)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


def settings_env(key: str) -> Optional[str]:
    """
    Env getter backed by :class:`Settings`.

    Unknown keys and empty values both read as ``None`` so callers can
    treat "unset" uniformly.
    """
    value = getattr(get_settings(), key, None)
    if value is None or value == "":
        return None
    return str(value)


# Export a default settings instance
settings = get_settings()
