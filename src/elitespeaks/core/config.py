"""
Configuration management for Elite Speaks.

Supports environment variables, .env files, and YAML configuration.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Settings for the evaluation and transcription provider API keys."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Gemini (evaluation)
    gemini_api_key: SecretStr | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")

    # Deepgram (transcription)
    deepgram_api_key: SecretStr | None = Field(default=None, alias="DEEPGRAM_API_KEY")
    deepgram_base_url: str = Field(
        default="https://api.deepgram.com/v1",
        alias="DEEPGRAM_BASE_URL",
    )
    deepgram_model: str = Field(default="nova-2", alias="DEEPGRAM_MODEL")

    @property
    def has_gemini(self) -> bool:
        """Check if Gemini is configured."""
        return self.gemini_api_key is not None and bool(self.gemini_api_key.get_secret_value())

    @property
    def has_deepgram(self) -> bool:
        """Check if Deepgram is configured."""
        return self.deepgram_api_key is not None and bool(self.deepgram_api_key.get_secret_value())


class QueueSettings(BaseSettings):
    """Admission-control queue settings for the evaluation provider."""

    model_config = SettingsConfigDict(
        env_prefix="ELITESPEAKS_QUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Free-tier quota is per-second and shared, keep at 1
    max_concurrent: int = Field(default=1, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0, description="Base backoff in seconds")
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # Reject new evaluations once this many are already waiting
    admission_threshold: int = Field(default=5, ge=0)

    # Outer timeout applied by the HTTP layer, independent of queue retries
    request_timeout: float = Field(default=60.0, gt=0.0)


class ServerSettings(BaseSettings):
    """API server settings."""

    model_config = SettingsConfigDict(
        env_prefix="ELITESPEAKS_SERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v


class Settings(BaseSettings):
    """Combined application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    environment: str = Field(default="development", alias="ENVIRONMENT")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
