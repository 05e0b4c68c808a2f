"""
Feature management configuration using Pydantic Settings.

Every field can be set from the environment with the FEATURE_ prefix
(FEATURE_BACKEND=memory, FEATURE_CACHE_TTL=30, ...) or from a .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureManagementSettings(BaseSettings):
    """Feature management configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Definition provider
    backend: str = Field(
        default="configuration",
        description="Definition provider: configuration, memory, database",
    )
    configuration_path: Path | None = Field(
        default=None,
        description="JSON document read by the configuration provider",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./features.db",
        description="SQLAlchemy async URL for the database provider",
    )
    cache_ttl: int = Field(
        default=0,
        description="Seconds to cache fetched definitions (0 disables caching)",
    )

    # Evaluation
    ignore_missing_features: bool = Field(
        default=True,
        description="Evaluate unknown features as disabled instead of raising",
    )
    ignore_missing_filters: bool = Field(
        default=False,
        description="Skip unregistered filters with a warning instead of raising",
    )
    targeting_ignore_case: bool = Field(
        default=False,
        description="Compare user ids and groups case-insensitively",
    )
    telemetry_enabled: bool = Field(
        default=True,
        description="Global switch over per-feature telemetry",
    )

    # HTTP targeting
    user_id_header: str = Field(default="X-User-Id")
    groups_header: str = Field(default="X-User-Groups")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or console")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {"configuration", "memory", "database"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache_ttl must not be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = {"json", "console"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"log_format must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def validate_backend_requirements(self) -> "FeatureManagementSettings":
        if self.configuration_path is not None and self.backend != "configuration":
            raise ValueError("configuration_path is only used by the configuration backend")
        return self

    @property
    def uses_cache(self) -> bool:
        return self.cache_ttl > 0


@lru_cache
def get_settings() -> FeatureManagementSettings:
    """Get cached settings instance."""
    return FeatureManagementSettings()
