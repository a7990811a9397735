from pydantic import BaseModel, ConfigDict


class ProviderCredentialCreate(BaseModel):
    provider: str
    key: str
    value: str
    org_id: str | None = None
    sensitive: bool = True


class ProviderCredentialSummary(BaseModel):
    """Credential listing for operators; the value never leaves the system surface."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: str
    key: str
    org_id: str | None = None
    sensitive: bool = True


class ProviderCredentialDTO(BaseModel):
    """Credential as handed to the provisioner."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: str
    key: str
    value: str
    org_id: str | None = None
