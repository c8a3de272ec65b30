"""
Codio settings.

Every knob of the recorder, the player and the HTTP surface lives on one
pydantic-settings model. Values come from the process environment first,
then a local ``.env`` file, then the defaults below. Names match the
environment variables, case-insensitively.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Recorder, player, audio and API settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================

    APP_NAME: str = Field(
        default="Codio",
        description="Name reported by the API and in logs",
    )

    APP_ENV: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, API docs)",
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level",
    )

    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated origins allowed to call the API (host editor UIs)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """ALLOWED_ORIGINS split on commas, blanks dropped."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    # =========================================================================
    # API Server Settings
    # =========================================================================

    API_HOST: str = Field(
        default="127.0.0.1",
        description="Host interface for the transport API",
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the transport API",
    )

    # =========================================================================
    # Playback Settings
    # =========================================================================

    TIMER_TICK_INTERVAL_MS: int = Field(
        default=200,
        ge=10,
        le=5000,
        description="Interval between progress clock ticks in milliseconds",
    )

    DEFAULT_SKIP_SECONDS: float = Field(
        default=10.0,
        gt=0.0,
        le=3600.0,
        description="Seconds skipped by rewind/forward when no amount is given",
    )

    MATERIALIZE_YIELD_EVERY: int = Field(
        default=500,
        ge=1,
        description="Applied events between event loop yields during frame rebuilds",
    )

    # =========================================================================
    # Audio Settings
    # =========================================================================

    AUDIO_ENABLED: bool = Field(
        default=True,
        description="Capture and play narration audio",
    )

    FFMPEG_PATH: str = Field(
        default="ffmpeg",
        description="ffmpeg executable used for audio capture",
    )

    FFPLAY_PATH: str = Field(
        default="ffplay",
        description="ffplay executable used for audio playback",
    )

    AUDIO_INPUT_FORMAT: str | None = Field(
        default=None,
        description="ffmpeg input format (avfoundation, dshow, pulse); derived from the OS when unset",
    )

    AUDIO_INPUT_DEVICE: str = Field(
        default="default",
        description="Input device passed to ffmpeg when recording",
    )

    AUDIO_START_MAX_RETRIES: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts to spawn an audio process before giving up",
    )

    AUDIO_STOP_TIMEOUT: float = Field(
        default=2.0,
        ge=0.1,
        le=30.0,
        description="Seconds to wait for an audio process to exit before killing it",
    )

    # =========================================================================
    # Storage Settings
    # =========================================================================

    TIMELINE_FILENAME: str = Field(default="codio.json")
    METADATA_FILENAME: str = Field(default="meta.json")
    AUDIO_FILENAME: str = Field(default="audio.mp3")
    SUBTITLES_FILENAME: str = Field(default="subtitles.srt")
    WORKSPACE_DIRNAME: str = Field(default="workspace")

    CODIO_FORMAT_VERSION: str = Field(
        default="0.2.0",
        description="Version written into codio metadata",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once. ``get_settings.cache_clear()`` rereads them."""
    return Settings()


__all__ = [
    "Settings",
    "get_settings",
]
