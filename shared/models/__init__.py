"""Database models package."""

from .base import Base
from .deployment import (
    DEPLOYMENT_STEPS,
    Deployment,
    DeploymentStatus,
    StepId,
    StepStatus,
    initial_steps,
)
from .gateway_instance import GatewayInstance, GatewayInstanceStatus
from .organization import Organization, OrgServerAccess
from .provider_credential import ProviderCredential
from .server import Server, ServerStatus
from .skill import InstanceSkill, Skill

__all__ = [
    "Base",
    "DEPLOYMENT_STEPS",
    "Deployment",
    "DeploymentStatus",
    "GatewayInstance",
    "GatewayInstanceStatus",
    "InstanceSkill",
    "Organization",
    "OrgServerAccess",
    "ProviderCredential",
    "Server",
    "ServerStatus",
    "Skill",
    "StepId",
    "StepStatus",
    "initial_steps",
]
