"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are validated using Pydantic and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "collabdocs"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            if v.strip().startswith("["):
                return v
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "collabdocs"
    POSTGRES_PASSWORD: str = "collabdocs_dev_password"
    POSTGRES_DB: str = "collabdocs"

    # Optional full DSN overrides (used by some deployments and tooling)
    POSTGRES_URL: Optional[str] = None
    POSTGRES_URL_SYNC: Optional[str] = None

    # Test-only DB overrides (used by pytest fixtures)
    TEST_DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL_SYNC: Optional[str] = None

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # Per-statement timeout handed to asyncpg; a timed out call fails its stage.
    DB_COMMAND_TIMEOUT_SECONDS: float = 10.0

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL:
            return self.TEST_DATABASE_URL
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL_SYNC:
            return self.TEST_DATABASE_URL_SYNC
        if self.POSTGRES_URL_SYNC:
            return self.POSTGRES_URL_SYNC
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # -------------------------------------------------------------------------
    # Versioning
    # -------------------------------------------------------------------------
    VERSION_CHANGE_SUMMARY_MAX_LENGTH: int = Field(default=2048, ge=1)
    VERSION_DIFF_MAX_LINES: int = Field(default=4000, ge=1)
    # Attempts for the whole allocate+insert transaction on write conflicts
    VERSION_INGEST_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    # Attempts for the current-version pointer update after a successful insert
    VERSION_POINTER_UPDATE_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    VERSION_RETRY_BACKOFF_SECONDS: float = Field(default=0.05, ge=0.0)

    # -------------------------------------------------------------------------
    # Collaboration
    # -------------------------------------------------------------------------
    # Shared secret expected in X-Webhook-Token from the snapshot exporter.
    # Empty disables the webhook (every delivery is rejected).
    SNAPSHOT_WEBHOOK_TOKEN: str = ""

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.APP_ENV == "test"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once and reused.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
