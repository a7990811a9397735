"""Capacity ledger and placement.

A server's remaining capacity is derived on every read, never stored:
declared ``max_instances`` minus bound gateway instances minus in-flight
(queued or provisioning) deployments.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models import Deployment, GatewayInstance, Server, ServerStatus
from shared.models.deployment import IN_FLIGHT_STATUSES


def remaining_capacity(max_instances: int | None, instance_count: int, in_flight: int) -> int | None:
    """Free slots on a server, or None when it declares no capacity."""
    if max_instances is None:
        return None
    return max_instances - instance_count - in_flight


@dataclass(frozen=True)
class HostCapacity:
    server: Server
    instance_count: int = 0
    in_flight: int = 0

    @property
    def remaining(self) -> int | None:
        return remaining_capacity(self.server.max_instances, self.instance_count, self.in_flight)

    @property
    def is_candidate(self) -> bool:
        return self.server.status == ServerStatus.RUNNING.value and self.server.max_instances is not None


def select_server(ledger: Iterable[HostCapacity]) -> HostCapacity | None:
    """Pick the running, capacity-managed server with the most free slots.

    Ties go to the first entry in ledger order. Returns None when no
    candidate has a free slot.
    """
    best: HostCapacity | None = None
    for entry in ledger:
        if not entry.is_candidate:
            continue
        if best is None or entry.remaining > best.remaining:
            best = entry
    if best is None or best.remaining <= 0:
        return None
    return best


async def count_instances(session: AsyncSession, handles: list[str] | None = None) -> dict[str, int]:
    query = select(GatewayInstance.server_handle, func.count()).group_by(GatewayInstance.server_handle)
    if handles is not None:
        query = query.where(GatewayInstance.server_handle.in_(handles))
    rows = await session.execute(query)
    return {handle: count for handle, count in rows.all()}


async def count_in_flight(session: AsyncSession, handles: list[str] | None = None) -> dict[str, int]:
    query = (
        select(Deployment.server_handle, func.count())
        .where(Deployment.status.in_(IN_FLIGHT_STATUSES))
        .group_by(Deployment.server_handle)
    )
    if handles is not None:
        query = query.where(Deployment.server_handle.in_(handles))
    rows = await session.execute(query)
    return {handle: count for handle, count in rows.all()}


async def load_capacity_ledger(session: AsyncSession) -> list[HostCapacity]:
    """Every server with its usage, ordered by handle."""
    servers = (await session.execute(select(Server).order_by(Server.handle))).scalars().all()
    instances = await count_instances(session)
    in_flight = await count_in_flight(session)
    return [
        HostCapacity(
            server=server,
            instance_count=instances.get(server.handle, 0),
            in_flight=in_flight.get(server.handle, 0),
        )
        for server in servers
    ]


async def host_capacity(session: AsyncSession, server: Server) -> HostCapacity:
    instances = await count_instances(session, [server.handle])
    in_flight = await count_in_flight(session, [server.handle])
    return HostCapacity(
        server=server,
        instance_count=instances.get(server.handle, 0),
        in_flight=in_flight.get(server.handle, 0),
    )


async def org_usage(session: AsyncSession, org_id: str, server_handle: str | None = None) -> int:
    """Bound instances plus in-flight deployments of an org, optionally on one server."""
    instances = select(func.count()).select_from(GatewayInstance).where(GatewayInstance.org_id == org_id)
    deployments = (
        select(func.count())
        .select_from(Deployment)
        .where(Deployment.org_id == org_id, Deployment.status.in_(IN_FLIGHT_STATUSES))
    )
    if server_handle is not None:
        instances = instances.where(GatewayInstance.server_handle == server_handle)
        deployments = deployments.where(Deployment.server_handle == server_handle)
    return (await session.scalar(instances)) + (await session.scalar(deployments))


async def reserved_ports(
    session: AsyncSession, server_handle: str, exclude_deployment_id: str | None = None
) -> set[int]:
    """Ports on a server held by a gateway instance record or an in-flight deployment.

    Stopped instances keep their port even though nothing listens on it, so a
    live scan of the host alone is not enough to pick a free one.
    """
    bound = await session.scalars(
        select(GatewayInstance.port).where(GatewayInstance.server_handle == server_handle)
    )
    pending = select(Deployment.port).where(
        Deployment.server_handle == server_handle,
        Deployment.status.in_(IN_FLIGHT_STATUSES),
        Deployment.port.is_not(None),
    )
    if exclude_deployment_id is not None:
        pending = pending.where(Deployment.id != exclude_deployment_id)
    return set(bound.all()) | set((await session.scalars(pending)).all())
