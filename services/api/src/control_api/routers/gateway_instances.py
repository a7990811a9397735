"""Gateway instances router: reads and operator lifecycle actions."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.gateway_instance import GatewayInstanceDTO, LifecycleRequest, LifecycleResult
from shared.models import GatewayInstance, Server

from ..database import get_async_session
from ..dependencies import ShellFactory, get_shell_factory
from ..errors import NotFoundError
from ..services import lifecycle

router = APIRouter(prefix="/gateway-instances", tags=["gateway-instances"])


async def _get_instance(db: AsyncSession, instance_id: str) -> GatewayInstance:
    instance = await db.get(GatewayInstance, instance_id)
    if not instance:
        raise NotFoundError("gateway instance", instance_id)
    return instance


@router.get("/", response_model=list[GatewayInstanceDTO])
async def list_instances(
    org_id: str | None = None,
    server_handle: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[GatewayInstance]:
    query = select(GatewayInstance).order_by(GatewayInstance.server_handle, GatewayInstance.name)
    if org_id is not None:
        query = query.where(GatewayInstance.org_id == org_id)
    if server_handle is not None:
        query = query.where(GatewayInstance.server_handle == server_handle)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{instance_id}", response_model=GatewayInstanceDTO)
async def get_instance(
    instance_id: str, db: AsyncSession = Depends(get_async_session)
) -> GatewayInstance:
    return await _get_instance(db, instance_id)


@router.post("/{instance_id}/actions", response_model=LifecycleResult)
async def run_action(
    instance_id: str,
    request: LifecycleRequest,
    db: AsyncSession = Depends(get_async_session),
    shell_factory: ShellFactory = Depends(get_shell_factory),
) -> LifecycleResult:
    """Stop, start, restart, delete or tail logs of a gateway container."""
    instance = await _get_instance(db, instance_id)
    server = await db.get(Server, instance.server_handle)
    if not server:
        raise NotFoundError("server", instance.server_handle)
    return await lifecycle.perform(db, instance, request.action, shell_factory(server))
