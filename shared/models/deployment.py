"""Deployment model and the fixed provisioning step vocabulary."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id, utcnow


class DeploymentStatus(str, Enum):
    """Top-level deployment status."""

    QUEUED = "queued"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    FAILED = "failed"
    CANCELLED = "cancelled"


IN_FLIGHT_STATUSES = (DeploymentStatus.QUEUED.value, DeploymentStatus.PROVISIONING.value)
TERMINAL_STATUSES = frozenset(
    {
        DeploymentStatus.RUNNING.value,
        DeploymentStatus.FAILED.value,
        DeploymentStatus.CANCELLED.value,
    }
)


class StepId(str, Enum):
    """Provisioning pipeline steps, in execution order."""

    PROVISION = "provision"
    PUSH_CONFIG = "push-config"
    START_CONTAINER = "start-container"
    FIX_PERMISSIONS = "fix-permissions"
    DEPLOY_WORKSPACE = "deploy-workspace"
    HEALTH = "health"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


DEPLOYMENT_STEPS: tuple[tuple[StepId, str], ...] = (
    (StepId.PROVISION, "Provisioning config"),
    (StepId.PUSH_CONFIG, "Pushing config to VPS"),
    (StepId.START_CONTAINER, "Starting container"),
    (StepId.FIX_PERMISSIONS, "Fixing permissions"),
    (StepId.DEPLOY_WORKSPACE, "Deploying workspace"),
    (StepId.HEALTH, "Verifying gateway health"),
)


def initial_steps() -> list[dict[str, Any]]:
    """Fresh step list: every step pending."""
    return [
        {"id": step_id.value, "name": name, "status": StepStatus.PENDING.value}
        for step_id, name in DEPLOYMENT_STEPS
    ]


class Deployment(Base):
    """One attempt to provision a gateway instance onto one server.

    ``steps`` is a JSON list of step records; it is always replaced as a whole
    (never mutated in place) so SQLAlchemy detects the change.
    """

    __tablename__ = "deployments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), index=True)
    server_handle: Mapped[str] = mapped_column(ForeignKey("servers.handle"), index=True)
    instance_name: Mapped[str] = mapped_column(String(64))

    # Immutable after creation: model, skill_ids, brain_files, gateway_auth, ...
    config: Mapped[dict] = mapped_column(JSON, default=dict)

    status: Mapped[str] = mapped_column(
        String(32), default=DeploymentStatus.QUEUED.value, index=True
    )
    steps: Mapped[list] = mapped_column(JSON, default=initial_steps)

    port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gateway_instance_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Deployment(id={self.id}, instance={self.instance_name}, "
            f"server={self.server_handle}, status={self.status})>"
        )
