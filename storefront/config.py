from typing import Final

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_PORT, DEFAULT_SWEEP_INTERVAL_SECONDS
from .domain.constants import DEFAULT_UNDO_TIMEOUT_MS


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env files."""

    # Server configuration
    debug: bool = Field(default=True, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Server port")

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./storefront.db", description="Database connection URL"
    )

    # Application configuration
    app_name: str = Field(default="Storefront Admin", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")

    # Undo configuration
    undo_timeout_ms: int = Field(
        default=DEFAULT_UNDO_TIMEOUT_MS,
        gt=0,
        description="Length of the undo window after a soft delete",
    )
    undo_sweep_interval_seconds: float = Field(
        default=DEFAULT_SWEEP_INTERVAL_SECONDS,
        gt=0,
        description="How often expired undo tokens are swept",
    )

    # Logging configuration
    log_to_file: bool = Field(
        default=False, description="Force logging to file even in debug mode"
    )

    # Pydantic Settings configuration
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def async_database_url(self) -> str:
        """Get the database URL with an async driver."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://")
        return self.database_url


# Global settings instance
settings: Final = Settings()
