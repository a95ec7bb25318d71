"""
Configuration management for fileready.

Uses pydantic-settings to load watcher defaults from environment variables
and .env files, and a pydantic model to validate constructor arguments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fileready.errors import ConfigurationError

DEFAULT_INTERVAL_MS = 1000


class Settings(BaseSettings):
    """Watcher settings loaded from environment."""

    # Watch target
    watch_root: Optional[Path] = None
    watch_pattern: str = "*"
    include_subdirectories: bool = True

    # Stall detection
    interval_ms: int = DEFAULT_INTERVAL_MS

    # Subscription recovery
    health_check_interval: float = 5.0  # seconds
    restart_delay: float = 1.0  # seconds

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FILEREADY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class WatcherOptions(BaseModel):
    """Validated construction arguments of a DirectoryWatcher."""

    root: str
    pattern: str
    interval_ms: int = DEFAULT_INTERVAL_MS
    include_subdirectories: bool = True
    restart_delay: float = 1.0

    @field_validator("root", "pattern", mode="before")
    @classmethod
    def _not_blank(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be None")
        value = str(value)
        if not value.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return value

    @field_validator("interval_ms")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("interval_ms must be greater than zero")
        return value

    @field_validator("restart_delay")
    @classmethod
    def _non_negative_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("restart_delay cannot be negative")
        return value

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


def build_options(**kwargs) -> WatcherOptions:
    """Validate watcher arguments, raising ConfigurationError on bad input."""
    try:
        return WatcherOptions(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
