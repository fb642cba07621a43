"""
Configuration management

Centralized settings using Pydantic BaseSettings for type-safe configuration
with environment variable support.
"""

import logging
import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .paths import get_database_file, get_diffs_dir, get_env_file

logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD = 0.10


def _default_workers() -> int:
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """
    Application settings with environment variable support

    Settings can be overridden via environment variables:
    - DATABASE_PATH=/custom/path/regressions.db
    - DEFAULT_THRESHOLD=0.05
    - MAX_WORKERS=4
    - LOG_LEVEL=DEBUG
    """

    # Storage
    database_path: Path = get_database_file()
    diffs_dir: Path = get_diffs_dir()

    # Comparison policy
    default_threshold: float = DEFAULT_THRESHOLD  # Fraction of differing pixels (0.0 - 1.0)
    pixel_threshold: float = 0.1  # Per-pixel perceptual floor (0.0 - 1.0)
    diff_alpha: float = 0.1  # Opacity of unchanged pixels in diff images
    include_antialiasing: bool = False
    upsert_regressions: bool = True

    # Batch execution
    max_workers: int = _default_workers()
    fetch_timeout: float = 30.0
    fetch_retries: int = 3
    fetch_backoff: float = 0.5  # Seconds, doubled on each retry

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 5050
    cors_origins: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(get_env_file()),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_threshold", "pixel_threshold", "diff_alpha")
    @classmethod
    def _check_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"must be between 0.0 and 1.0, got {value}")
        return value

    @field_validator("max_workers")
    @classmethod
    def _check_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value


# Singleton pattern for settings
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings (singleton)

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        logger.debug(f"Settings loaded (database={_settings.database_path})")
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment"""
    global _settings
    _settings = None

