"""Configuration settings for runner_imagegen.

Uses pydantic-settings for process-wide settings parsed from environment
variables and defaults, and a plain pydantic model for the per-builder
options handed to the build executor trigger.
Configuration precedence: CLI flags > env vars > defaults.
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from runner_imagegen.types import Architecture, Os

DEFAULT_COMPUTE_TYPE = "BUILD_GENERAL1_SMALL"
DEFAULT_TIMEOUT = timedelta(hours=1)
DEFAULT_REBUILD_INTERVAL = timedelta(days=7)

COMPUTE_TYPES = (
    "BUILD_GENERAL1_SMALL",
    "BUILD_GENERAL1_MEDIUM",
    "BUILD_GENERAL1_LARGE",
    "BUILD_GENERAL1_2XLARGE",
)


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "runner-imagegen" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the RUNNER_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="RUNNER_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for build invocation records",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Completion signal
    signal_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout in seconds for delivering the completion signal",
    )
    log_excerpt_limit: int = Field(
        default=400,
        ge=1,
        le=4096,
        description="Maximum bytes of build log sent as the signal reason",
    )


class NetworkPlacement(BaseModel):
    """Network placement of the build executor.

    Attributes:
        vpc_id: VPC to run the build in.
        subnet_ids: Subnets to attach the build to.
        security_group_ids: Security groups for the build.
        subnet_type: Kind of subnets selected (public, private, isolated).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    vpc_id: str
    subnet_ids: tuple[str, ...] = ()
    security_group_ids: tuple[str, ...] = ()
    subnet_type: Literal["public", "private", "isolated"] = "private"


class BuilderOptions(BaseModel):
    """Options for a single image builder.

    Every option is optional; defaults are resolved at synthesis time
    where they depend on the platform.

    Attributes:
        os: Target operating system.
        architecture: Target CPU architecture.
        compute_type: Build executor compute profile.
        build_image: Image the executor runs `docker build` in
            (default depends on os/architecture).
        timeout: Time after which the executor stops the build.
        rebuild_interval: Period between scheduled rebuilds; zero disables them.
        network: Optional network placement.
        base_image: Base image of the produced container image
            (default depends on os).
        environment: ENV directives added to the image, in order.
        log_retention_days: Retention of the build log group.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    os: Os = Os.LINUX_UBUNTU
    architecture: Architecture = Architecture.X86_64
    compute_type: str = DEFAULT_COMPUTE_TYPE
    build_image: str | None = None
    timeout: timedelta = DEFAULT_TIMEOUT
    rebuild_interval: timedelta = DEFAULT_REBUILD_INTERVAL
    network: NetworkPlacement | None = None
    base_image: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    log_retention_days: int = Field(default=30, ge=1)

    @field_validator("compute_type")
    @classmethod
    def validate_compute_type(cls, v: str) -> str:
        """Validate compute type is a known profile."""
        if v not in COMPUTE_TYPES:
            raise ValueError(f"compute_type must be one of {COMPUTE_TYPES}, got '{v}'")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: timedelta) -> timedelta:
        """Validate timeout is within the executor's 5 minute to 36 hour range."""
        if not timedelta(minutes=5) <= v <= timedelta(hours=36):
            raise ValueError("timeout must be between 5 minutes and 36 hours")
        return v

    @field_validator("rebuild_interval")
    @classmethod
    def validate_rebuild_interval(cls, v: timedelta) -> timedelta:
        """Validate rebuild interval is zero or a positive whole number of minutes."""
        seconds = v.total_seconds()
        if seconds < 0 or seconds % 60:
            raise ValueError(
                "rebuild_interval must be zero or a positive whole number of minutes"
            )
        return v


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


__all__ = [
    "COMPUTE_TYPES",
    "DEFAULT_COMPUTE_TYPE",
    "DEFAULT_REBUILD_INTERVAL",
    "DEFAULT_TIMEOUT",
    "BuilderOptions",
    "NetworkPlacement",
    "Settings",
    "get_settings",
    "print_settings_json",
]
