"""
Application configuration using Pydantic Settings.

Automatically loads environment variables from .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI (mock mode when unset)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    max_output_tokens: int = 100_000

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Upload
    max_upload_bytes: int = 25 * 1024 * 1024
    file_id_prefix: str = "file-"
    vector_store_expiry_days: int = Field(default=7, ge=1)

    # Polling (fixed delay unless backoff factor > 1)
    poll_interval_seconds: float = Field(default=1.5, gt=0)
    poll_max_interval_seconds: float | None = None
    poll_backoff_factor: float = Field(default=1.0, ge=1.0)
    container_ready_timeout_seconds: float = Field(default=120.0, gt=0)
    indexing_job_timeout_seconds: float = Field(default=90.0, gt=0)
    await_container_ready: bool = False

    # Extraction
    preview_max_chars: int = 1200

    model_config = SettingsConfigDict(
        # Load from .env file in the package directory
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Case insensitive environment variable names
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration loaded from environment.
    """
    return Settings()
