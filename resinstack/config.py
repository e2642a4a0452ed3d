"""Configuration management for resinstack."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RSTACK_",
        extra="ignore",
    )

    # Paths
    output_dir: Path = Field(default=Path("output"), description="Output directory for optimized projects")

    # Resources
    cache_ram_gb: float = Field(default=1.5, gt=0, description="RAM budget for the layer frame cache (GB)")
    max_workers: int = Field(default=4, ge=1, description="Worker threads used to decode layer images")

    # Logging
    log_level: str = Field(default="INFO", description="Log level for the CLI")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(settings: Settings) -> None:
    """Override global settings."""
    global _settings
    _settings = settings
