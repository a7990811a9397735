from datetime import datetime
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.deployment import DeploymentStatus, StepId, StepStatus

REDACTED = "********"

_FILE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


class ModelChoice(BaseModel):
    primary: str = Field(min_length=1)
    fallbacks: list[str] = Field(default_factory=list)


class BrainFile(BaseModel):
    """Seed file written into the gateway workspace."""

    name: str
    content: str = ""

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _FILE_NAME_RE.match(v) or ".." in v:
            raise ValueError(f"Invalid brain file name: {v!r}")
        return v


class AgentIdentity(BaseModel):
    name: str
    email: str | None = None
    gender: str | None = None


class GatewayAuth(BaseModel):
    mode: Literal["token"] = "token"
    token: str = Field(min_length=1)


class DeploymentConfig(BaseModel):
    """Immutable configuration captured at admission time."""

    model: ModelChoice
    skill_ids: list[str] = Field(default_factory=list)
    brain_files: list[BrainFile] = Field(default_factory=list)
    role_template: str | None = None
    agent_identity: AgentIdentity | None = None
    gateway_auth: GatewayAuth


class DeploymentCreate(BaseModel):
    """Admission request. ``server_handle`` overrides automatic placement."""

    org_id: str
    server_handle: str | None = None
    instance_name: str
    config: DeploymentConfig


class StepDTO(BaseModel):
    id: StepId
    name: str
    status: StepStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class DeploymentDTO(BaseModel):
    """Deployment response. ``config`` is redacted unless built for the system surface."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    server_handle: str
    instance_name: str
    status: DeploymentStatus
    steps: list[StepDTO]
    config: dict[str, Any]
    port: int | None = None
    gateway_instance_id: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, deployment: Any, *, redact: bool = True) -> "DeploymentDTO":
        dto = cls.model_validate(deployment)
        if redact:
            dto.config = redact_config(dto.config)
        return dto


def redact_config(config: dict[str, Any]) -> dict[str, Any]:
    """Copy of a deployment config with the gateway auth token masked."""
    redacted = dict(config)
    auth = redacted.get("gateway_auth")
    if isinstance(auth, dict) and auth.get("token"):
        redacted["gateway_auth"] = {**auth, "token": REDACTED}
    return redacted


class StepUpdate(BaseModel):
    status: StepStatus
    error: str | None = None


class PortUpdate(BaseModel):
    port: int = Field(ge=1, le=65535)


class DeploymentComplete(BaseModel):
    gateway_instance_id: str


class DeploymentFail(BaseModel):
    error: str = Field(min_length=1)
