from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str = Field(pattern=r"^[a-z0-9][a-z0-9-]{0,62}$")
    plan: str = "free"
    max_instances: int | None = Field(default=None, ge=1)


class OrganizationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    plan: str
    max_instances: int | None = None


class OrgServerAccessCreate(BaseModel):
    server_handle: str
    max_instances: int = Field(ge=1)


class OrgServerAccessUpdate(BaseModel):
    max_instances: int = Field(ge=1)


class OrgServerAccessDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    org_id: str
    server_handle: str
    max_instances: int
    assigned_at: datetime | None = None
