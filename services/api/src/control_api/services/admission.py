"""Deployment admission.

Admission runs in two phases. The first resolves the target server (explicit
override or placement) from plain reads. The second opens the write
transaction by bumping ``servers.admission_seq`` on that row, then re-checks
capacity, quotas and name uniqueness before inserting the record. The bump is
the first write of the transaction, so it takes the row lock in PostgreSQL and
the database write lock in SQLite: concurrent admissions against one server
run the second phase one at a time and see each other's inserts. The
organization row is locked next, so the org-wide quota holds across servers.
"""

from sqlalchemy import Select, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.contracts.dto.deployment import DeploymentCreate
from shared.models import Deployment, GatewayInstance, Organization, OrgServerAccess, Server
from shared.models.deployment import IN_FLIGHT_STATUSES, DeploymentStatus, initial_steps
from shared.naming import INSTANCE_NAME_ERROR, is_valid_instance_name

from ..errors import AdmissionError, AdmissionRejection, NotFoundError
from .capacity import host_capacity, load_capacity_ledger, org_usage, select_server

logger = structlog.get_logger(__name__)


async def _resolve_server(
    session: AsyncSession, request: DeploymentCreate
) -> tuple[str, int | None]:
    """Return the target server handle and, for explicit targets, the grant quota."""
    if request.server_handle:
        if await session.get(Server, request.server_handle) is None:
            raise NotFoundError("server", request.server_handle)
        grant = await session.scalar(
            select(OrgServerAccess).where(
                OrgServerAccess.org_id == request.org_id,
                OrgServerAccess.server_handle == request.server_handle,
            )
        )
        if grant is None:
            raise AdmissionError(
                AdmissionRejection.NO_ACCESS,
                f"Organization has no access to server {request.server_handle}",
            )
        return request.server_handle, grant.max_instances

    choice = select_server(await load_capacity_ledger(session))
    if choice is None:
        raise AdmissionError(AdmissionRejection.NO_CAPACITY, "No server has free capacity")
    return choice.server.handle, None


async def _lock_server(session: AsyncSession, handle: str) -> Server:
    await session.execute(
        update(Server)
        .where(Server.handle == handle)
        .values(admission_seq=Server.admission_seq + 1)
        .execution_options(synchronize_session=False)
    )
    server = await session.scalar(
        select(Server).where(Server.handle == handle).execution_options(populate_existing=True)
    )
    if server is None:
        raise NotFoundError("server", handle)
    return server


def organization_lock(org_id: str) -> Select:
    """Row lock on the organization, taken after the server lock.

    The org-wide quota spans every server, so admissions for one org on
    different servers also have to queue. SQLite has no FOR UPDATE and relies
    on its database-wide write lock instead.
    """
    return (
        select(Organization)
        .where(Organization.id == org_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def _name_taken(session: AsyncSession, handle: str, name: str) -> bool:
    instance_exists = exists().where(
        GatewayInstance.server_handle == handle, GatewayInstance.name == name
    )
    deployment_exists = exists().where(
        Deployment.server_handle == handle,
        Deployment.instance_name == name,
        Deployment.status.in_(IN_FLIGHT_STATUSES),
    )
    return bool(await session.scalar(select(instance_exists | deployment_exists)))


async def _admit(session: AsyncSession, request: DeploymentCreate) -> Deployment:
    if not is_valid_instance_name(request.instance_name):
        raise AdmissionError(AdmissionRejection.INVALID_NAME, INSTANCE_NAME_ERROR)

    if await session.get(Organization, request.org_id) is None:
        raise NotFoundError("organization", request.org_id)

    handle, grant_quota = await _resolve_server(session, request)
    # End the read phase; the next statement opens the write transaction.
    await session.rollback()

    server = await _lock_server(session, handle)

    org = await session.scalar(organization_lock(request.org_id))
    if org is None:
        raise NotFoundError("organization", request.org_id)
    org_quota = org.max_instances

    capacity = await host_capacity(session, server)
    if capacity.remaining is not None and capacity.remaining <= 0:
        raise AdmissionError(
            AdmissionRejection.NO_CAPACITY, f"Server {handle} has no free capacity"
        )

    if grant_quota is not None and await org_usage(session, request.org_id, handle) >= grant_quota:
        raise AdmissionError(
            AdmissionRejection.QUOTA_EXCEEDED,
            f"Organization quota on server {handle} reached ({grant_quota})",
        )

    if org_quota is not None and await org_usage(session, request.org_id) >= org_quota:
        raise AdmissionError(
            AdmissionRejection.QUOTA_EXCEEDED,
            f"Organization instance limit reached ({org_quota})",
        )

    if await _name_taken(session, handle, request.instance_name):
        raise AdmissionError(
            AdmissionRejection.NAME_CONFLICT,
            f"Instance name {request.instance_name!r} is already used on server {handle}",
        )

    deployment = Deployment(
        org_id=request.org_id,
        server_handle=handle,
        instance_name=request.instance_name,
        config=request.config.model_dump(mode="json"),
        status=DeploymentStatus.QUEUED.value,
        steps=initial_steps(),
    )
    session.add(deployment)
    await session.flush()
    return deployment


async def admit_deployment(session: AsyncSession, request: DeploymentCreate) -> Deployment:
    """Admit a deployment request and persist it as ``queued``.

    Raises:
        AdmissionError: request refused; nothing was written.
        NotFoundError: unknown organization or server.
    """
    try:
        deployment = await _admit(session, request)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "deployment_admitted",
        deployment_id=deployment.id,
        org_id=deployment.org_id,
        server_handle=deployment.server_handle,
        instance_name=deployment.instance_name,
        placed=request.server_handle is None,
    )
    return deployment
