"""Configuration management for the Uniclass Match Gateway.

This module provides centralized configuration management using Pydantic Settings,
supporting environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingSettings(BaseSettings):
    """Gemini embedding provider settings."""

    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    model: str = Field(default="text-embedding-004", description="Gemini model, routed as gemini/<model>")
    chunk_max: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Maximum texts per embedding call",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=0, ge=0, le=5)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)

    model_config = SettingsConfigDict(env_prefix="GEMINI_")


class SimilarityStoreSettings(BaseSettings):
    """Supabase similarity store settings."""

    url: Optional[str] = Field(default=None, description="Supabase project URL")
    anon_key: Optional[str] = Field(default=None, description="Supabase anon key")
    match_function: str = Field(default="match_uniclass")
    timeout_seconds: float = Field(default=15.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")


class MatchingSettings(BaseSettings):
    """Batch matching policy."""

    max_batch_size: int = Field(default=2000, ge=1)
    similarity_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    match_count: int = Field(default=3, ge=1, le=50)
    max_concurrent_lookups: int = Field(default=50, ge=1)

    model_config = SettingsConfigDict(env_prefix="MATCHING_")


class ObservabilitySettings(BaseSettings):
    """Logging and metrics settings."""

    service_name: str = Field(default="uniclass-gateway")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in ("json", "console"):
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v.lower()

    model_config = SettingsConfigDict(env_prefix="OTEL_")


class Settings(BaseSettings):
    """Main application settings."""

    # Application
    app_name: str = Field(default="Uniclass Match Gateway")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    env: str = Field(default="development")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1)

    # Sub-settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    store: SimilarityStoreSettings = Field(default_factory=SimilarityStoreSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment.

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()


# Global settings instance for convenient access
settings = get_settings()
