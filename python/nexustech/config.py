"""Application settings loaded from environment variables.

Environment Configuration:
    NEXUSTECH_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)
    NEXUSTECH_INTERNAL_SECRET: Internal API secret (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (broker for the worker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Auth Configuration (required in staging/prod):
    AUTH_JWKS_URL: Full URL to the identity provider JWKS endpoint
    AUTH_ISSUER: Expected JWT issuer (trailing slash stripped)
    AUTH_AUDIENCES: Comma-separated list of allowed audiences

Shard Ledger:
    WELCOME_BONUS_SHARDS: Shards granted on first sign-in (default 100)
    DEFAULT_MONTHLY_ALLOWANCE: Monthly allowance for new users (default 100)
    SHARD_MARKUP: Multiplier applied to raw model cost (default 1.0)
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - AUTH_JWKS_URL, AUTH_ISSUER, AUTH_AUDIENCES are required in staging and prod
    - NEXUSTECH_INTERNAL_SECRET is required in staging and prod
    """

    nexustech_env: Environment = Field(default=Environment.LOCAL, alias="NEXUSTECH_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    nexustech_internal_secret: str | None = Field(
        default=None, alias="NEXUSTECH_INTERNAL_SECRET"
    )

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Identity provider settings
    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    # Test auth settings (optional, with defaults)
    test_token_issuer: str = Field(default="test-issuer", alias="TEST_TOKEN_ISSUER")
    test_token_audiences: str = Field(default="test-audience", alias="TEST_TOKEN_AUDIENCES")

    # Shard ledger
    welcome_bonus_shards: float = Field(default=100, alias="WELCOME_BONUS_SHARDS")
    default_monthly_allowance: float = Field(default=100, alias="DEFAULT_MONTHLY_ALLOWANCE")
    shard_markup: float = Field(default=1.0, alias="SHARD_MARKUP")

    # Shared content and retention
    shared_manual_nexus_name: str = Field(
        default="USER MANUAL", alias="SHARED_MANUAL_NEXUS_NAME"
    )
    conversation_retention_days: int = Field(default=7, alias="CONVERSATION_RETENTION_DAYS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure deployment-only settings are present in staging/prod."""
        if self.shard_markup <= 0:
            raise ValueError("SHARD_MARKUP must be positive")

        if self.nexustech_env not in (Environment.STAGING, Environment.PROD):
            return self

        missing = []
        if not self.auth_jwks_url:
            missing.append("AUTH_JWKS_URL")
        if not self.auth_issuer:
            missing.append("AUTH_ISSUER")
        if not self.auth_audiences:
            missing.append("AUTH_AUDIENCES")
        if not self.nexustech_internal_secret:
            missing.append("NEXUSTECH_INTERNAL_SECRET")

        if missing:
            raise ValueError(
                f"Missing required settings for NEXUSTECH_ENV={self.nexustech_env.value}: "
                f"{', '.join(missing)}"
            )

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether every request must include the internal secret header."""
        return self.nexustech_env in (Environment.STAGING, Environment.PROD)

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.auth_audiences:
            return [a.strip() for a in self.auth_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.auth_issuer:
            return self.auth_issuer.rstrip("/")
        return None

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
