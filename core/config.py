# core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root: .../midicompare
BASE_DIR = Path(__file__).resolve().parents[1]

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """
    midicompare settings.

    Reads from:
    - environment variables
    - .env in project root

    Service knobs (env, upload limit, logging) are clamped to sane values.
    Comparison defaults are passed through untouched: invalid tolerances
    surface as ConfigError when ComparisonConfig.from_settings() runs.
    """

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ---- Environment / server ----
    app_env: str = Field(default="development", validation_alias="APP_ENV")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_allow_origins: Optional[str] = Field(default=None, validation_alias="CORS_ALLOW_ORIGINS")

    # ---- Upload safety ----
    max_upload_size_mb: int = Field(default=10, validation_alias="MAX_UPLOAD_SIZE_MB")

    # ---- Comparison defaults ----
    timing_tolerance_sec: float = Field(
        default=0.1,
        validation_alias=AliasChoices("TIMING_TOLERANCE_SEC", "TIMING_TOLERANCE"),
    )
    pitch_tolerance_semitones: int = Field(
        default=0,
        validation_alias=AliasChoices("PITCH_TOLERANCE_SEMITONES", "PITCH_TOLERANCE"),
    )
    velocity_tolerance: int = Field(default=10, validation_alias="VELOCITY_TOLERANCE")
    density_window_sec: float = Field(default=1.0, validation_alias="DENSITY_WINDOW_SEC")
    polyphony_window_sec: float = Field(default=0.1, validation_alias="POLYPHONY_WINDOW_SEC")

    def model_post_init(self, __context) -> None:
        if self.max_upload_size_mb <= 0:
            self.max_upload_size_mb = 10

        level = (self.log_level or "").strip().upper()
        self.log_level = level if level in _LOG_LEVELS else "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
