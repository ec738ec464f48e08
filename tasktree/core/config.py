"""Configuration management for tasktree."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment reported to Logfire")

    # Task Composition
    default_subtask_capacity: int = Field(
        default=10,
        ge=0,
        description="Capacity applied to a new container task when none is supplied",
    )

    # Listing
    default_page_size: int = Field(default=10, ge=1, description="Page size used when a listing omits one")
    max_page_size: int = Field(default=100, ge=1, description="Upper bound on the requested page size")


# Application Constants
class Constants:
    """Application-wide constants."""

    # Leaf progress by status
    PROGRESS_COMPLETE: int = 100
    PROGRESS_IN_PROGRESS: int = 50
    PROGRESS_NOT_STARTED: int = 0

    # Snapshot store
    FIRST_TASK_ID: int = 1


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
