"""Base configuration with pydantic-settings.

Both services inherit ``BaseSettings`` and declare their own required fields,
using the field factories below so names, aliases and descriptions stay the
same on either side of the system surface.

Usage in service:
    from shared.config import BaseSettings, redis_url_field

    class Settings(BaseSettings):
        redis_url: str = redis_url_field()
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class BaseSettings(PydanticBaseSettings):
    """Settings shared by the control API and the provisioner worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    service_name: str = Field(default="unknown", description="Service name for structured logging")
    log_format: Literal["json", "console"] = Field(default="console")
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR or CRITICAL")

    # Gateway hosts are reached over ssh with a single deploy key
    ssh_key_path: str = Field(
        default="~/.ssh/openclaw_studio_ed25519",
        description="Private key used for SSH access to gateway hosts",
    )
    ssh_connect_timeout: int = Field(
        default=10,
        ge=1,
        description="SSH ConnectTimeout for gateway hosts in seconds",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {sorted(LOG_LEVELS)}")
        return level


def database_url_field():
    return Field(
        ...,
        description="Async SQLAlchemy database URL",
        examples=["postgresql+asyncpg://control:pass@db:5432/control"],
    )


def redis_url_field():
    return Field(
        ..., description="Redis URL for the provisioning stream", examples=["redis://redis:6379"]
    )


def api_base_url_field():
    """Control API root as seen from the worker. Paths are appended as ``/api/system/...``."""
    return Field(
        default="http://api:8000",
        alias="API_BASE_URL",
        description="Control API service URL (must NOT include /api prefix)",
    )


def provisioner_secret_field(required: bool = True):
    """Pre-shared secret guarding the system surface.

    The worker cannot run without it; the API starts without one and answers
    500 on every system route.
    """
    if required:
        return Field(..., min_length=16, description="Provisioner shared secret")
    return Field(default="", description="Provisioner shared secret (system surface disabled if empty)")
