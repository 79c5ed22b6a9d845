# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for SchoolLink.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.store.backend)
    'memory'
"""

from functools import lru_cache
from typing import Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Remote document store configuration.

    The memory backend keeps every document in process and is used for
    local development and tests. The firestore backend talks to Google
    Cloud Firestore.

    Attributes:
        backend: Which document store implementation to use.
        project_id: Google Cloud project hosting the Firestore database.
        database: Firestore database name.
        credentials_path: Optional service account JSON file.
    """

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        extra="ignore",
    )

    backend: Literal["memory", "firestore"] = "memory"
    project_id: str | None = None
    database: str = "(default)"
    credentials_path: str | None = None


class IdentitySettings(BaseSettings):
    """Identity provider configuration (Firebase Authentication REST API).

    Attributes:
        api_key: Web API key of the Firebase project.
        auth_base_url: Base URL of the Identity Toolkit accounts API.
        token_base_url: Base URL of the Secure Token API used for refresh.
        timeout: Request timeout in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        extra="ignore",
    )

    api_key: SecretStr = SecretStr("")
    auth_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    token_base_url: str = "https://securetoken.googleapis.com/v1"
    timeout: float = 15.0


class DataSettings(BaseSettings):
    """Defaults for the data access layer.

    Attributes:
        announcement_limit: Announcements returned by the dashboard fetch.
        homework_limit: Per-day homework containers fetched per call.
        upcoming_events_limit: Events returned by the upcoming-events fetch.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATA_",
        extra="ignore",
    )

    announcement_limit: int = Field(default=5, ge=1)
    homework_limit: int = Field(default=10, ge=1)
    upcoming_events_limit: int = Field(default=5, ge=1)


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        timezone: IANA zone used to decide what "today" means for counters.
        store: Document store settings.
        identity: Identity provider settings.
        data: Data access layer defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    timezone: str = "UTC"

    # Subsettings - loaded with their own env prefixes
    store: StoreSettings = Field(default_factory=StoreSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    data: DataSettings = Field(default_factory=DataSettings)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject zone names unknown to the tz database."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production against the memory store
                or without an identity API key.
        """
        if self.environment == "production":
            if self.store.backend == "memory":
                raise ValueError(
                    "The in-memory store cannot be used in production. "
                    "Set STORE_BACKEND=firestore."
                )
            if not self.identity.api_key.get_secret_value():
                raise ValueError(
                    "Identity API key must be set in production. "
                    "Set IDENTITY_API_KEY environment variable."
                )
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        """Zone object for the configured timezone."""
        return ZoneInfo(self.timezone)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
