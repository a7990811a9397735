"""Server model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ServerStatus(str, Enum):
    """Server status lifecycle."""

    PROVISIONING = "provisioning"  # VPS is being created at the provider
    RUNNING = "running"  # Reachable, eligible for placement
    STOPPED = "stopped"
    ERROR = "error"
    UNASSIGNED = "unassigned"  # Up, but not yet handed to any org or pool


class Server(Base):
    """Server model - represents a VPS that hosts gateway instances."""

    __tablename__ = "servers"

    handle: Mapped[str] = mapped_column(String(255), primary_key=True)
    hostname: Mapped[str] = mapped_column(String(255))
    public_ip: Mapped[str] = mapped_column(String(255))
    ssh_user: Mapped[str] = mapped_column(String(50), default="root")
    ssh_port: Mapped[int] = mapped_column(Integer, default=22)

    status: Mapped[str] = mapped_column(String(50), default=ServerStatus.PROVISIONING.value)

    # Declared capacity. NULL means unmanaged: never auto-placed, only targeted explicitly.
    max_instances: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Optional owning organization (dedicated VPS)
    org_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Provider / cost metadata
    provider_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    region: Mapped[str | None] = mapped_column(String(100))
    plan: Mapped[str | None] = mapped_column(String(100))
    monthly_cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Bumped by every admission targeting this server; the UPDATE is the admission lock.
    admission_seq: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    last_health_check: Mapped[datetime | None] = mapped_column(DateTime)
    labels: Mapped[dict] = mapped_column(JSON, default=dict)
