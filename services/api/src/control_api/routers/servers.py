"""Servers router: host records and their derived capacity."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.server import ServerCapacityDTO, ServerCreate, ServerDTO, ServerUpdate
from shared.models import Deployment, GatewayInstance, Server
from shared.models.deployment import IN_FLIGHT_STATUSES

from ..database import get_async_session
from ..errors import ConflictError, NotFoundError
from ..services.capacity import HostCapacity, host_capacity, load_capacity_ledger

router = APIRouter(prefix="/servers", tags=["servers"])


def _capacity_dto(entry: HostCapacity) -> ServerCapacityDTO:
    return ServerCapacityDTO(
        **ServerDTO.model_validate(entry.server).model_dump(),
        instance_count=entry.instance_count,
        in_flight=entry.in_flight,
        remaining=entry.remaining,
    )


async def _get_server(db: AsyncSession, handle: str) -> Server:
    server = await db.get(Server, handle)
    if not server:
        raise NotFoundError("server", handle)
    return server


@router.post("/", response_model=ServerDTO, status_code=status.HTTP_201_CREATED)
async def create_server(
    server_in: ServerCreate,
    db: AsyncSession = Depends(get_async_session),
) -> Server:
    if await db.get(Server, server_in.handle):
        raise ConflictError(f"Server {server_in.handle} already exists")

    server = Server(**server_in.model_dump(mode="json"))
    db.add(server)
    await db.commit()
    return server


@router.get("/", response_model=list[ServerCapacityDTO])
async def list_servers(
    status: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[ServerCapacityDTO]:
    """List servers with instance count, in-flight deployments and remaining capacity."""
    ledger = await load_capacity_ledger(db)
    if status is not None:
        ledger = [entry for entry in ledger if entry.server.status == status]
    return [_capacity_dto(entry) for entry in ledger]


@router.get("/{handle}", response_model=ServerCapacityDTO)
async def get_server(
    handle: str,
    db: AsyncSession = Depends(get_async_session),
) -> ServerCapacityDTO:
    return _capacity_dto(await host_capacity(db, await _get_server(db, handle)))


@router.patch("/{handle}", response_model=ServerDTO)
async def update_server(
    handle: str,
    server_in: ServerUpdate,
    db: AsyncSession = Depends(get_async_session),
) -> Server:
    server = await _get_server(db, handle)
    for field, value in server_in.model_dump(mode="json", exclude_unset=True).items():
        setattr(server, field, value)
    await db.commit()
    await db.refresh(server)
    return server


@router.delete("/{handle}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    handle: str,
    db: AsyncSession = Depends(get_async_session),
) -> Response:
    """Delete a server. Refused while gateway instances or in-flight deployments use it."""
    server = await _get_server(db, handle)
    instances = await db.scalar(
        select(func.count()).select_from(GatewayInstance).where(GatewayInstance.server_handle == handle)
    )
    in_flight = await db.scalar(
        select(func.count())
        .select_from(Deployment)
        .where(Deployment.server_handle == handle, Deployment.status.in_(IN_FLIGHT_STATUSES))
    )
    if instances or in_flight:
        raise ConflictError(
            f"Server {handle} still has {instances} instance(s) and {in_flight} deployment(s) in flight",
            details={"instances": instances, "in_flight": in_flight},
        )
    await db.delete(server)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
