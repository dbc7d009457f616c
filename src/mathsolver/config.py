"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )
    gemini_api_version: str = Field(
        default="v1beta",
        validation_alias=AliasChoices("GEMINI_API_VERSION", "gemini_api_version"),
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_MODEL", "gemini_model"),
    )
    gemini_fallback_model: Optional[str] = Field(
        default="gemini-2.5-pro",
        validation_alias=AliasChoices(
            "GEMINI_FALLBACK_MODEL", "gemini_fallback_model"
        ),
    )

    # Overall budgets for one request, in seconds
    solve_deadline_seconds: float = Field(
        default=25.0,
        ge=1,
        validation_alias=AliasChoices(
            "SOLVE_DEADLINE_SECONDS", "solve_deadline_seconds"
        ),
    )
    solve_sync_deadline_seconds: float = Field(
        default=8.0,
        ge=1,
        validation_alias=AliasChoices(
            "SOLVE_SYNC_DEADLINE_SECONDS", "solve_sync_deadline_seconds"
        ),
    )
    transcribe_deadline_seconds: float = Field(
        default=24.0,
        ge=1,
        validation_alias=AliasChoices(
            "TRANSCRIBE_DEADLINE_SECONDS", "transcribe_deadline_seconds"
        ),
    )
    summarize_deadline_seconds: float = Field(
        default=12.0,
        ge=1,
        validation_alias=AliasChoices(
            "SUMMARIZE_DEADLINE_SECONDS", "summarize_deadline_seconds"
        ),
    )
    upstream_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        validation_alias=AliasChoices(
            "UPSTREAM_MAX_ATTEMPTS",
            "TRANSCRIBE_MAX_ATTEMPTS",
            "SUMMARIZE_MAX_ATTEMPTS",
            "upstream_max_attempts",
        ),
    )
    retry_backoff_seconds: float = Field(
        default=0.4,
        ge=0,
        validation_alias=AliasChoices(
            "RETRY_BACKOFF_SECONDS", "retry_backoff_seconds"
        ),
    )

    # Media download limits
    image_fetch_timeout_seconds: float = Field(
        default=6.0,
        gt=0,
        validation_alias=AliasChoices(
            "IMAGE_FETCH_TIMEOUT_SECONDS", "image_fetch_timeout_seconds"
        ),
    )
    image_max_bytes: int = Field(
        default=6_000_000,
        ge=1,
        validation_alias=AliasChoices("IMAGE_MAX_BYTES", "image_max_bytes"),
    )
    audio_max_bytes: int = Field(
        default=15_000_000,
        ge=1,
        validation_alias=AliasChoices("AUDIO_MAX_BYTES", "audio_max_bytes"),
    )

    # Server-Sent Events framing
    heartbeat_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        validation_alias=AliasChoices(
            "SSE_HEARTBEAT_SECONDS", "heartbeat_interval_seconds"
        ),
    )
    stream_padding_bytes: int = Field(
        default=2048,
        ge=0,
        validation_alias=AliasChoices("SSE_PADDING_BYTES", "stream_padding_bytes"),
    )

    summary_max_input_chars: int = Field(
        default=16000,
        ge=1,
        validation_alias=AliasChoices(
            "SUMMARY_MAX_INPUT_CHARS", "summary_max_input_chars"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
