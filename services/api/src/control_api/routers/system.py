"""System surface used by the provisioner worker.

Every route requires the ``X-Provisioner-Secret`` header. Reads here are
unredacted: the worker needs the gateway token and provider keys.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.contracts.dto.credential import ProviderCredentialDTO
from shared.contracts.dto.deployment import (
    DeploymentComplete,
    DeploymentDTO,
    DeploymentFail,
    PortUpdate,
    StepUpdate,
)
from shared.contracts.dto.gateway_instance import (
    GatewayInstanceCreate,
    GatewayInstanceDTO,
    SkillAssignment,
)
from shared.contracts.dto.organization import OrganizationDTO
from shared.contracts.dto.server import ReservedPorts, ServerDTO
from shared.contracts.dto.skill import SkillDTO
from shared.models import (
    Deployment,
    GatewayInstance,
    InstanceSkill,
    Organization,
    ProviderCredential,
    Server,
    Skill,
)

from ..database import get_async_session
from ..dependencies import require_provisioner_secret
from ..errors import ConflictError, NotFoundError
from ..services import capacity, deployment_state

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/system",
    tags=["system"],
    dependencies=[Depends(require_provisioner_secret)],
)


async def _get_deployment(db: AsyncSession, deployment_id: str) -> Deployment:
    deployment = await db.get(Deployment, deployment_id)
    if not deployment:
        raise NotFoundError("deployment", deployment_id)
    return deployment


@router.get("/deployments/{deployment_id}", response_model=DeploymentDTO)
async def get_deployment(
    deployment_id: str, db: AsyncSession = Depends(get_async_session)
) -> DeploymentDTO:
    return DeploymentDTO.from_record(await _get_deployment(db, deployment_id), redact=False)


@router.post("/deployments/{deployment_id}/steps/{step_id}", response_model=DeploymentDTO)
async def update_step(
    deployment_id: str,
    step_id: str,
    update: StepUpdate,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    deployment = await _get_deployment(db, deployment_id)
    deployment_state.update_step(deployment, step_id, update.status, update.error)
    await db.commit()
    return DeploymentDTO.from_record(deployment)


@router.post("/deployments/{deployment_id}/port", response_model=DeploymentDTO)
async def set_port(
    deployment_id: str,
    update: PortUpdate,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    deployment = deployment_state.set_port(await _get_deployment(db, deployment_id), update.port)
    await db.commit()
    return DeploymentDTO.from_record(deployment)


@router.post("/deployments/{deployment_id}/complete", response_model=DeploymentDTO)
async def complete_deployment(
    deployment_id: str,
    body: DeploymentComplete,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    deployment = await _get_deployment(db, deployment_id)
    instance = await db.get(GatewayInstance, body.gateway_instance_id)
    if not instance:
        raise NotFoundError("gateway instance", body.gateway_instance_id)
    deployment_state.complete(deployment, instance)
    await db.commit()
    return DeploymentDTO.from_record(deployment)


@router.post("/deployments/{deployment_id}/fail", response_model=DeploymentDTO)
async def fail_deployment(
    deployment_id: str,
    body: DeploymentFail,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    deployment = deployment_state.fail(await _get_deployment(db, deployment_id), body.error)
    await db.commit()
    return DeploymentDTO.from_record(deployment)


@router.post(
    "/gateway-instances", response_model=GatewayInstanceDTO, status_code=status.HTTP_201_CREATED
)
async def create_gateway_instance(
    instance_in: GatewayInstanceCreate,
    db: AsyncSession = Depends(get_async_session),
) -> GatewayInstance:
    """Record the gateway created by a successful pipeline run."""
    instance = GatewayInstance(**instance_in.model_dump(mode="json"))
    db.add(instance)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            f"Server {instance_in.server_handle} already has an instance "
            f"named {instance_in.name!r} or bound to port {instance_in.port}",
            details={"server_handle": instance_in.server_handle},
        ) from e

    logger.info(
        "gateway_instance_created",
        instance_id=instance.id,
        server_handle=instance.server_handle,
        port=instance.port,
    )
    return instance


@router.post("/gateway-instances/{instance_id}/skills")
async def assign_skills(
    instance_id: str,
    body: SkillAssignment,
    db: AsyncSession = Depends(get_async_session),
) -> dict:
    if not await db.get(GatewayInstance, instance_id):
        raise NotFoundError("gateway instance", instance_id)

    existing = set(
        (
            await db.execute(
                select(InstanceSkill.skill_id).where(InstanceSkill.instance_id == instance_id)
            )
        )
        .scalars()
        .all()
    )
    assigned = []
    for skill_id in dict.fromkeys(body.skill_ids):
        if skill_id in existing:
            continue
        if not await db.get(Skill, skill_id):
            raise NotFoundError("skill", skill_id)
        db.add(InstanceSkill(instance_id=instance_id, skill_id=skill_id))
        assigned.append(skill_id)
    await db.commit()
    return {"instance_id": instance_id, "assigned": assigned}


@router.get("/servers/{handle}", response_model=ServerDTO)
async def get_server(handle: str, db: AsyncSession = Depends(get_async_session)) -> Server:
    server = await db.get(Server, handle)
    if not server:
        raise NotFoundError("server", handle)
    return server


@router.get("/servers/{handle}/reserved-ports", response_model=ReservedPorts)
async def get_reserved_ports(
    handle: str,
    exclude_deployment_id: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> ReservedPorts:
    """Ports recorded against the server, including stopped instances with no listener."""
    if not await db.get(Server, handle):
        raise NotFoundError("server", handle)
    ports = await capacity.reserved_ports(db, handle, exclude_deployment_id)
    return ReservedPorts(server_handle=handle, ports=sorted(ports))


@router.get("/organizations/{org_id}", response_model=OrganizationDTO)
async def get_organization(
    org_id: str, db: AsyncSession = Depends(get_async_session)
) -> Organization:
    org = await db.get(Organization, org_id)
    if not org:
        raise NotFoundError("organization", org_id)
    return org


@router.get("/skills/{skill_id}", response_model=SkillDTO)
async def get_skill(skill_id: str, db: AsyncSession = Depends(get_async_session)) -> Skill:
    skill = await db.get(Skill, skill_id)
    if not skill:
        raise NotFoundError("skill", skill_id)
    return skill


@router.get("/credentials", response_model=list[ProviderCredentialDTO])
async def list_credentials(
    org_id: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[ProviderCredential]:
    """System-wide credentials plus, when ``org_id`` is given, that org's own."""
    query = select(ProviderCredential).order_by(ProviderCredential.id)
    if org_id is not None:
        query = query.where(
            or_(ProviderCredential.org_id.is_(None), ProviderCredential.org_id == org_id)
        )
    else:
        query = query.where(ProviderCredential.org_id.is_(None))
    result = await db.execute(query)
    return result.scalars().all()
