"""Provider credential model - API keys handed to gateway runtimes."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProviderCredential(Base):
    """Credential for an AI provider. ``org_id`` NULL means system-wide."""

    __tablename__ = "provider_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(100), index=True)  # e.g. "anthropic"
    org_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    key: Mapped[str] = mapped_column(String(255))  # e.g. "ai.anthropic_api_key"
    value: Mapped[str] = mapped_column(String)
    sensitive: Mapped[bool] = mapped_column(Boolean, default=True)
