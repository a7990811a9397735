"""Gateway instance model - a running workload on a server."""

from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class GatewayInstanceStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    UNKNOWN = "unknown"


class GatewayInstance(Base):
    """Gateway container created by a successful deployment."""

    __tablename__ = "gateway_instances"
    __table_args__ = (
        UniqueConstraint("server_handle", "name", name="uq_gateway_instance_server_name"),
        UniqueConstraint("server_handle", "port", name="uq_gateway_instance_server_port"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    server_handle: Mapped[str] = mapped_column(ForeignKey("servers.handle"), index=True)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(64))
    port: Mapped[int] = mapped_column(Integer)
    token: Mapped[str | None] = mapped_column(String(255))
    url: Mapped[str | None] = mapped_column(String(512))
    state_dir: Mapped[str | None] = mapped_column(String(512))
    status: Mapped[str] = mapped_column(String(32), default=GatewayInstanceStatus.UNKNOWN.value)

    # Best-effort, adjusted by agent management outside this service
    agent_count: Mapped[int] = mapped_column(Integer, default=0)
    primary_agent_name: Mapped[str | None] = mapped_column(String(255))

    def __repr__(self) -> str:
        return (
            f"<GatewayInstance(id={self.id}, name={self.name}, "
            f"server={self.server_handle}, port={self.port}, status={self.status})>"
        )
