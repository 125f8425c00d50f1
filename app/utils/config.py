"""
Configuration management for ni-watcher.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Watch Configuration
    watch_folder: Path = Path("ni_watch")
    event_scope: Literal["rename", "any"] = "rename"
    poll_interval: float = 1.0  # seconds

    # Debounce Configuration
    debounce_seconds: float = 2.0
    recent_window_seconds: float = 2.0
    strict_per_path: bool = False

    # Normalization Configuration
    output_format: str = "png"
    canvas_width: int = 800
    canvas_height: int = 800
    padding: int = 50
    tolerance: int = 10
    decode_retries: int = 5
    decode_retry_delay: float = 0.2  # seconds

    # Logging Configuration
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_max_bytes: int = 10 * 1024 * 1024
    log_max_segments: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_canvas_size(self) -> tuple[int, int]:
        """Canvas size as (width, height)."""
        return self.canvas_width, self.canvas_height


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
