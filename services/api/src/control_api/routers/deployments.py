"""Deployments router: admission, reads, cancellation, re-dispatch."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.deployment import DeploymentCreate, DeploymentDTO
from shared.models import Deployment
from shared.models.deployment import IN_FLIGHT_STATUSES, DeploymentStatus
from shared.redis.client import RedisStreamClient

from ..database import get_async_session
from ..dependencies import get_redis
from ..errors import DeploymentStateError, NotFoundError
from ..services import deployment_state
from ..services.admission import admit_deployment
from ..services.dispatch import dispatch_deployment

router = APIRouter(prefix="/deployments", tags=["deployments"])


async def _get_deployment(db: AsyncSession, deployment_id: str) -> Deployment:
    deployment = await db.get(Deployment, deployment_id)
    if not deployment:
        raise NotFoundError("deployment", deployment_id)
    return deployment


@router.post("/", response_model=DeploymentDTO, status_code=status.HTTP_201_CREATED)
async def create_deployment(
    request: DeploymentCreate,
    db: AsyncSession = Depends(get_async_session),
    redis: RedisStreamClient = Depends(get_redis),
) -> DeploymentDTO:
    """Admit a deployment and hand it to the provisioner.

    Returns as soon as the record is queued; provisioning progress is read
    back through ``GET /deployments/{id}``.
    """
    deployment = await admit_deployment(db, request)
    await dispatch_deployment(redis, deployment.id)
    return DeploymentDTO.from_record(deployment)


@router.get("/", response_model=list[DeploymentDTO])
async def list_deployments(
    org_id: str | None = None,
    active: bool = False,
    db: AsyncSession = Depends(get_async_session),
) -> list[DeploymentDTO]:
    """List deployments, newest first. ``active`` keeps queued and provisioning ones."""
    query = select(Deployment).order_by(Deployment.started_at.desc())
    if org_id is not None:
        query = query.where(Deployment.org_id == org_id)
    if active:
        query = query.where(Deployment.status.in_(IN_FLIGHT_STATUSES))
    result = await db.execute(query)
    return [DeploymentDTO.from_record(d) for d in result.scalars().all()]


@router.get("/{deployment_id}", response_model=DeploymentDTO)
async def get_deployment(
    deployment_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    return DeploymentDTO.from_record(await _get_deployment(db, deployment_id))


@router.post("/{deployment_id}/cancel", response_model=DeploymentDTO)
async def cancel_deployment(
    deployment_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> DeploymentDTO:
    deployment = deployment_state.cancel(await _get_deployment(db, deployment_id))
    await db.commit()
    return DeploymentDTO.from_record(deployment)


@router.post("/{deployment_id}/dispatch")
async def redispatch_deployment(
    deployment_id: str,
    db: AsyncSession = Depends(get_async_session),
    redis: RedisStreamClient = Depends(get_redis),
) -> dict:
    """Publish the provisioning job again for a deployment still sitting in the queue."""
    deployment = await _get_deployment(db, deployment_id)
    if deployment.status != DeploymentStatus.QUEUED.value:
        raise DeploymentStateError(
            deployment_id, f"Only queued deployments can be dispatched (status: {deployment.status})"
        )
    request_id = await dispatch_deployment(redis, deployment_id)
    return {"deployment_id": deployment_id, "dispatched": request_id is not None, "request_id": request_id}
