"""
Configuration management for the venue catalog deduplication engine.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user: str = "venue_catalog"
    password: str = ""  # Required: Set POSTGRES_PASSWORD in .env
    host: str = "localhost"
    port: int = 5432
    db: str = "venue_catalog"

    # Full URL override (DATABASE_URL), e.g. sqlite:///catalog.db for local runs
    url_override: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    @property
    def url(self) -> str:
        """Construct database URL."""
        if self.url_override:
            return self.url_override
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class PipelineSettings(BaseSettings):
    """General pipeline settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_rotation: str = "10 MB"
    log_retention: str = "1 week"


class DedupSettings(BaseSettings):
    """Deduplication engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="DEDUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Where the plan artifact goes: a JSON Lines file or database tables
    plan_sink: Literal["file", "database"] = "file"
    plan_dir: Path = Field(default=Path("./data/dedup_plans"))

    # Grouping strategies, evaluated in this order
    strategies: list[str] = Field(
        default_factory=lambda: ["address", "city_only", "name", "proximity"]
    )

    # An address shorter than this (after normalization) has no street-level detail
    min_street_address_length: int = 10

    proximity_threshold_meters: float = 10.0
    proximity_name_length_slack: int = 3

    # Descriptions differing in length by more than this share of the shorter one diverge
    description_divergence_ratio: float = 0.5

    @field_validator("plan_dir", mode="before")
    @classmethod
    def ensure_path(cls, v):
        """Convert string to Path."""
        return Path(v)

    @field_validator("strategies")
    @classmethod
    def known_strategies(cls, v: list[str]) -> list[str]:
        """Reject strategy names the grouper does not know about."""
        known = {"address", "city_only", "name", "proximity"}
        unknown = [name for name in v if name not in known]
        if unknown:
            raise ValueError(f"Unknown grouping strategies: {', '.join(unknown)}")
        return v


class Settings(BaseSettings):
    """Main settings class that combines all settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience handle for quick access
settings = get_settings()
