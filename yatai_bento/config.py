"""Configuration settings for yatai_bento.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "yatai-bento" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the YATAI_BENTO_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="YATAI_BENTO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Object store
    s3_endpoint_url: str | None = Field(
        default=None,
        description="S3-compatible endpoint used when an organization sets none",
    )
    object_collection: str = Field(
        default="bentos",
        description="Top-level key prefix for uploaded Bento archives",
    )

    # Image naming
    image_tag_prefix: str = Field(
        default="yatai",
        description="Leading component of built image tags",
    )

    # Build pods
    builder_namespace: str = Field(
        default="yatai-builders",
        description="Kubernetes namespace for image builder pods",
    )
    builder_image: str = Field(
        default="gcr.io/kaniko-project/executor:latest",
        description="Container image that builds from a Dockerfile context",
    )
    kube_name_max_length: int = Field(
        default=63,
        ge=16,
        le=253,
        description="Maximum length of generated Kubernetes resource names",
    )

    # Kubernetes client-side rate limiting
    kube_qps: float = Field(
        default=1e6,
        gt=0,
        description="Sustained Kubernetes API requests per second",
    )
    kube_burst: int = Field(
        default=1_000_000,
        ge=1,
        description="Kubernetes API request burst size",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
