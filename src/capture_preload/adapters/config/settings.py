# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Tiered cache configuration.

    Controls entry lifetime and the durable tier's location and capacity.
    """

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        le=86400,
        description="Maximum age of a cache entry in seconds",
    )

    cache_dir: str = Field(
        default="~/.capture_preload/cache",
        description="Directory for the durable cache tier",
    )

    max_durable_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=64 * 1024,
        le=1024 * 1024 * 1024,
        description="Capacity of the durable tier in bytes",
    )

    stale_sweep_seconds: float = Field(
        default=86400.0,
        gt=0,
        description="Age beyond which durable entries are swept after a failed write",
    )

    durable_enabled: bool = Field(
        default=True,
        description="Persist entries to the durable tier",
    )


class PreloadSettings(BaseSettings):
    """List paging and payload loading configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_PRELOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    page_size: int = Field(
        default=4,
        ge=1,
        le=100,
        description="Items per page for list fetches",
    )

    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single remote request",
    )


class ClientSettings(BaseSettings):
    """REST backend connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the HR backend",
    )

    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token for API requests",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL without trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    json_output: bool = Field(
        default=True,
        description="Render JSON lines (False: colored console output)",
    )


class Settings(BaseSettings):
    """Root settings container.

    Aggregates all subsettings into a single object.

    Example:
        >>> settings = Settings()
        >>> settings.cache.ttl_seconds
        600.0
        >>> settings.preload.page_size
        4
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache: CacheSettings = Field(default_factory=CacheSettings)
    preload: PreloadSettings = Field(default_factory=PreloadSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton.

    Loads configuration from environment variables and .env file.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (for testing).

    Forces reload of configuration from environment.
    """
    global _settings
    _settings = Settings()
    return _settings
