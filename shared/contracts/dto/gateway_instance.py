from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from shared.models.gateway_instance import GatewayInstanceStatus

REDACTED = "********"


class LifecycleAction(str, Enum):
    STOP = "stop"
    START = "start"
    RESTART = "restart"
    DELETE = "delete"
    LOGS = "logs"


class GatewayInstanceCreate(BaseModel):
    """System-side creation after a successful pipeline."""

    server_handle: str
    org_id: str
    name: str
    port: int = Field(ge=1, le=65535)
    token: str | None = None
    url: str | None = None
    state_dir: str | None = None
    status: GatewayInstanceStatus = GatewayInstanceStatus.RUNNING
    agent_count: int = 1
    primary_agent_name: str | None = None


class GatewayInstanceDTO(BaseModel):
    """Gateway instance response with the auth token masked."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    server_handle: str
    org_id: str
    name: str
    port: int
    token: str | None = None
    url: str | None = None
    state_dir: str | None = None
    status: GatewayInstanceStatus
    agent_count: int = 0
    primary_agent_name: str | None = None

    @field_serializer("token")
    def mask_token(self, token: str | None) -> str | None:
        return REDACTED if token else None


class SkillAssignment(BaseModel):
    skill_ids: list[str]


class LifecycleRequest(BaseModel):
    action: LifecycleAction


class LifecycleResult(BaseModel):
    success: bool = True
    action: LifecycleAction
    logs: str | None = None
    status: GatewayInstanceStatus | None = None
