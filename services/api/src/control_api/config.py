"""API service configuration.

Requires: DATABASE_URL, REDIS_URL
Optional: PROVISIONER_SECRET (system surface answers 500 without it)
"""

from functools import lru_cache

from pydantic import Field

from shared.config import (
    BaseSettings,
    database_url_field,
    provisioner_secret_field,
    redis_url_field,
)


class Settings(BaseSettings):
    """API service settings."""

    service_name: str = Field(default="api")

    # Required
    database_url: str = database_url_field()
    redis_url: str = redis_url_field()

    # Optional - without it the provisioner cannot call back
    provisioner_secret: str = provisioner_secret_field(required=False)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Validates required env vars on first call.
    Raises ValidationError if DATABASE_URL or REDIS_URL are missing.
    """
    return Settings()
