"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files and provides
typed access to model selection, retry policy, pacing and storage paths.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional at load time:
        GEMINI_API_KEY: Google AI Studio key (required once a client is built)

    Tuning:
        MODEL_PRIMARY / MODEL_FALLBACK: Model identifiers
        RETRY_MAX_ATTEMPTS / RETRY_BASE_DELAY_SECONDS: Backoff policy
        INTER_CALL_DELAY_SECONDS: Courtesy delay between sequential stages
        SPECIALIST_QUORUM: Minimum specialist successes before synthesis
        LOCAL_HISTORY_LIMIT: Max sessions kept by the local store
        DATA_DIR: Directory for the durable and local stores
        REPORT_TIMEZONE: Timezone for prompt dates and update cutoffs
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    GEMINI_API_KEY: str | None = Field(default=None, description="Google Gemini API key")

    MODEL_PRIMARY: str = Field(
        default="gemini-2.5-flash",
        description="Model used for every engine unless overridden per run",
    )
    MODEL_FALLBACK: str = Field(
        default="gemini-2.5-flash",
        description="Model substituted when the primary model's quota is exhausted",
    )

    RETRY_MAX_ATTEMPTS: int = Field(
        default=3, ge=0, le=10, description="Additional attempts on rate limits"
    )
    RETRY_BASE_DELAY_SECONDS: float = Field(
        default=2.0, ge=0.0, description="Base delay for exponential backoff"
    )
    INTER_CALL_DELAY_SECONDS: float = Field(
        default=15.0, ge=0.0, description="Delay between sequential stage calls"
    )
    SPECIALIST_QUORUM: int = Field(
        default=3, ge=1, le=6, description="Minimum successful specialists"
    )
    LOCAL_HISTORY_LIMIT: int = Field(
        default=20, ge=1, le=500, description="Maximum sessions in local history"
    )

    DATA_DIR: Path = Field(default=Path(".vantage"), description="Data directory")
    REPORT_TIMEZONE: str = Field(default="Asia/Kolkata", description="Report timezone")

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("MODEL_PRIMARY", "MODEL_FALLBACK")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Reject blank model identifiers."""
        v = v.strip()
        if not v:
            raise ValueError("Model identifier must not be empty")
        return v

    @property
    def gemini_api_key(self) -> str | None:
        """Get the Gemini API key, treating blanks as unset."""
        if self.GEMINI_API_KEY and self.GEMINI_API_KEY.strip():
            return self.GEMINI_API_KEY.strip()
        return None

    @property
    def database_path(self) -> Path:
        """SQLite file backing the durable session store."""
        return self.DATA_DIR / "vantage.db"

    @property
    def local_store_path(self) -> Path:
        """Directory backing the local single-device store."""
        return self.DATA_DIR / "local"

    @property
    def log_file(self) -> Path:
        """JSON Lines log file."""
        return self.DATA_DIR / "logs" / "vantage.jsonl"

    def ensure_directories(self) -> None:
        """Create the data directories if they don't exist."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.local_store_path.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | None]:
        """Return settings with API keys redacted for display."""

        def redact(value: str | None) -> str | None:
            if value is None:
                return None
            return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"

        return {
            "GEMINI_API_KEY": redact(self.gemini_api_key),
            "MODEL_PRIMARY": self.MODEL_PRIMARY,
            "MODEL_FALLBACK": self.MODEL_FALLBACK,
            "RETRY_MAX_ATTEMPTS": self.RETRY_MAX_ATTEMPTS,
            "RETRY_BASE_DELAY_SECONDS": self.RETRY_BASE_DELAY_SECONDS,
            "INTER_CALL_DELAY_SECONDS": self.INTER_CALL_DELAY_SECONDS,
            "SPECIALIST_QUORUM": self.SPECIALIST_QUORUM,
            "LOCAL_HISTORY_LIMIT": self.LOCAL_HISTORY_LIMIT,
            "DATA_DIR": str(self.DATA_DIR),
            "REPORT_TIMEZONE": self.REPORT_TIMEZONE,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
