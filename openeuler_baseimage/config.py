"""Configuration settings for openeuler_baseimage.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from openeuler_baseimage.types import Architecture

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; WOW64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/80.0.3987.163 Safari/537.36"
)


def _default_architectures() -> list[Architecture]:
    """Return the architectures prepared when none are configured."""
    return [Architecture.X86_64, Architecture.AARCH64]


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the OE_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="OE_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=Path.cwd,
        description="Root directory for prepared archives",
    )
    distro_root: str = Field(
        default="openEuler",
        description="Top-level directory name under the work directory",
    )
    dockerfile_template: Path | None = Field(
        default=None,
        description="Dockerfile copied into each prepared directory "
        "(defaults to <work_dir>/Dockerfile)",
    )

    # Upstream sources
    mirror_url: str = Field(
        default="https://repo.openeuler.org",
        description="openEuler mirror root with one directory per release",
    )
    registry_api_url: str = Field(
        default="https://hub.docker.com/v2/repositories",
        description="Docker Hub repositories API endpoint",
    )
    registry_repository: str = Field(
        default="openeuler2k8s/openeuler",
        description="Repository (namespace/name) holding published tags",
    )
    registry_username: str | None = Field(
        default=None,
        description="Registry user for image pulls",
    )
    registry_password: str | None = Field(
        default=None,
        description="Registry password for image pulls",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent sent to the mirror",
    )

    # Operational
    architectures: list[Architecture] = Field(
        default_factory=_default_architectures,
        description="Architectures prepared for each missing release",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Concurrency
    max_concurrent_downloads: int = Field(
        default=2,
        ge=1,
        le=2,
        description="Concurrent downloads per version/architecture pair",
    )

    # Timeouts (in seconds)
    request_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for listing and API requests",
    )
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for image downloads",
    )
    build_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for submitting an image build",
    )

    def resolved_dockerfile_template(self, work_dir: Path | None = None) -> Path:
        """Return the Dockerfile template path, falling back to the work dir.

        Args:
            work_dir: Root to look in instead of the configured work_dir.
        """
        if self.dockerfile_template is not None:
            return self.dockerfile_template
        return (work_dir if work_dir is not None else self.work_dir) / "Dockerfile"


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
    return settings.model_dump_json(indent=2, exclude={"registry_password"})


__all__ = ["DEFAULT_USER_AGENT", "Settings", "get_settings", "print_settings_json"]
