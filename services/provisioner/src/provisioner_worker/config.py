"""Provisioner worker configuration.

Requires: REDIS_URL, PROVISIONER_SECRET
Optional: API_BASE_URL, GATEWAY_IMAGE, GATEWAY_MEMORY_LIMIT, INSTANCES_ROOT, AGENT_SETTINGS
"""

from functools import lru_cache

from pydantic import Field

from shared.config import (
    BaseSettings,
    api_base_url_field,
    provisioner_secret_field,
    redis_url_field,
)
from shared.naming import DEFAULT_INSTANCES_ROOT


class Settings(BaseSettings):
    """Provisioner worker settings."""

    service_name: str = Field(default="provisioner")

    # Required
    redis_url: str = redis_url_field()
    provisioner_secret: str = provisioner_secret_field(required=True)

    api_base_url: str = api_base_url_field()

    gateway_image: str = Field(
        default="ghcr.io/openclaw/openclaw:latest",
        description="Container image for gateway instances",
    )
    gateway_memory_limit: str = Field(
        default="2g",
        pattern=r"^\d+[bkmgBKMG]?$",
        description="Docker --memory and --memory-swap value per instance",
    )
    instances_root: str = Field(
        default=DEFAULT_INSTANCES_ROOT,
        description="Host directory holding per-instance state",
    )
    agent_settings: dict[str, str] = Field(
        default_factory=dict,
        description='Agent defaults for openclaw.json as JSON, e.g. {"agent.thinking": "high"}',
    )
    max_concurrent_jobs: int = Field(default=4, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises ValidationError if REDIS_URL or PROVISIONER_SECRET are missing.
    """
    return Settings()
