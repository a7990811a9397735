"""Organization and org-to-server access grant models."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id, utcnow


class Organization(Base):
    """Tenant. Only the fields the control plane reads are modelled."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    plan: Mapped[str] = mapped_column(String(50), default="free")

    # Org-wide instance limit across all servers; NULL = unlimited
    max_instances: Mapped[int | None] = mapped_column(Integer, nullable=True)


class OrgServerAccess(Base):
    """Grant of an organization onto a server, with a per-grant instance quota."""

    __tablename__ = "org_server_access"
    __table_args__ = (UniqueConstraint("org_id", "server_handle", name="uq_org_server_access"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), index=True)
    server_handle: Mapped[str] = mapped_column(ForeignKey("servers.handle"), index=True)
    max_instances: Mapped[int] = mapped_column(Integer, default=1)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
