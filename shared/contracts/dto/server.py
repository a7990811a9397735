from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from shared.models.server import ServerStatus


class ServerCreate(BaseModel):
    """Create server request (manual entry or provider sync)."""

    handle: str
    hostname: str
    public_ip: str
    ssh_user: str = "root"
    ssh_port: int = Field(default=22, ge=1, le=65535)
    status: ServerStatus = ServerStatus.PROVISIONING
    max_instances: int | None = Field(default=None, ge=1)
    org_id: str | None = None
    provider_id: str | None = None
    region: str | None = None
    plan: str | None = None
    monthly_cost: float | None = None
    labels: dict = {}


class ServerUpdate(BaseModel):
    """Update server request. Unset fields are left untouched."""

    hostname: str | None = None
    public_ip: str | None = None
    ssh_user: str | None = None
    ssh_port: int | None = Field(default=None, ge=1, le=65535)
    status: ServerStatus | None = None
    max_instances: int | None = Field(default=None, ge=1)
    org_id: str | None = None
    region: str | None = None
    plan: str | None = None
    monthly_cost: float | None = None
    labels: dict | None = None


class ServerDTO(BaseModel):
    """Server response."""

    model_config = ConfigDict(from_attributes=True)

    handle: str
    hostname: str
    public_ip: str
    ssh_user: str = "root"
    ssh_port: int = 22
    status: str
    max_instances: int | None = None
    org_id: str | None = None
    provider_id: str | None = None
    region: str | None = None
    plan: str | None = None
    monthly_cost: float | None = None
    labels: dict = {}
    last_health_check: datetime | None = None


class ServerCapacityDTO(ServerDTO):
    """Server with its derived capacity figures."""

    instance_count: int = 0
    in_flight: int = 0
    remaining: int | None = None  # None: no declared capacity


class ReservedPorts(BaseModel):
    """Ports the control plane already hands out on a server."""

    server_handle: str
    ports: list[int] = []
