"""Organizations router, including org-to-server access grants."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.organization import (
    OrganizationCreate,
    OrganizationDTO,
    OrgServerAccessCreate,
    OrgServerAccessDTO,
    OrgServerAccessUpdate,
)
from shared.models import GatewayInstance, GatewayInstanceStatus, Organization, OrgServerAccess, Server

from ..database import get_async_session
from ..errors import ConflictError, NotFoundError

router = APIRouter(prefix="/organizations", tags=["organizations"])


async def _get_org(db: AsyncSession, org_id: str) -> Organization:
    org = await db.get(Organization, org_id)
    if not org:
        raise NotFoundError("organization", org_id)
    return org


async def _get_grant(db: AsyncSession, org_id: str, server_handle: str) -> OrgServerAccess:
    grant = await db.scalar(
        select(OrgServerAccess).where(
            OrgServerAccess.org_id == org_id, OrgServerAccess.server_handle == server_handle
        )
    )
    if not grant:
        raise NotFoundError("server access", f"{org_id}/{server_handle}")
    return grant


@router.post("/", response_model=OrganizationDTO, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_in: OrganizationCreate,
    db: AsyncSession = Depends(get_async_session),
) -> Organization:
    if await db.scalar(select(Organization).where(Organization.slug == org_in.slug)):
        raise ConflictError(f"Organization slug {org_in.slug!r} is taken")
    org = Organization(**org_in.model_dump())
    db.add(org)
    await db.commit()
    return org


@router.get("/", response_model=list[OrganizationDTO])
async def list_organizations(db: AsyncSession = Depends(get_async_session)) -> list[Organization]:
    result = await db.execute(select(Organization).order_by(Organization.slug))
    return result.scalars().all()


@router.get("/{org_id}", response_model=OrganizationDTO)
async def get_organization(
    org_id: str, db: AsyncSession = Depends(get_async_session)
) -> Organization:
    return await _get_org(db, org_id)


@router.post(
    "/{org_id}/server-access",
    response_model=OrgServerAccessDTO,
    status_code=status.HTTP_201_CREATED,
)
async def grant_server_access(
    org_id: str,
    grant_in: OrgServerAccessCreate,
    db: AsyncSession = Depends(get_async_session),
) -> OrgServerAccess:
    """Grant an organization access to a server with a per-grant instance quota."""
    await _get_org(db, org_id)
    if not await db.get(Server, grant_in.server_handle):
        raise NotFoundError("server", grant_in.server_handle)
    existing = await db.scalar(
        select(OrgServerAccess).where(
            OrgServerAccess.org_id == org_id,
            OrgServerAccess.server_handle == grant_in.server_handle,
        )
    )
    if existing:
        raise ConflictError(f"Organization already has access to {grant_in.server_handle}")

    grant = OrgServerAccess(
        org_id=org_id,
        server_handle=grant_in.server_handle,
        max_instances=grant_in.max_instances,
    )
    db.add(grant)
    await db.commit()
    return grant


@router.get("/{org_id}/server-access", response_model=list[OrgServerAccessDTO])
async def list_server_access(
    org_id: str, db: AsyncSession = Depends(get_async_session)
) -> list[OrgServerAccess]:
    await _get_org(db, org_id)
    result = await db.execute(
        select(OrgServerAccess)
        .where(OrgServerAccess.org_id == org_id)
        .order_by(OrgServerAccess.server_handle)
    )
    return result.scalars().all()


@router.patch("/{org_id}/server-access/{server_handle}", response_model=OrgServerAccessDTO)
async def update_server_access(
    org_id: str,
    server_handle: str,
    update: OrgServerAccessUpdate,
    db: AsyncSession = Depends(get_async_session),
) -> OrgServerAccess:
    grant = await _get_grant(db, org_id, server_handle)
    grant.max_instances = update.max_instances
    await db.commit()
    return grant


@router.delete("/{org_id}/server-access/{server_handle}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_server_access(
    org_id: str,
    server_handle: str,
    db: AsyncSession = Depends(get_async_session),
) -> Response:
    """Revoke a grant. Refused while the org has running instances on that server."""
    grant = await _get_grant(db, org_id, server_handle)
    running = await db.scalar(
        select(func.count())
        .select_from(GatewayInstance)
        .where(
            GatewayInstance.org_id == org_id,
            GatewayInstance.server_handle == server_handle,
            GatewayInstance.status == GatewayInstanceStatus.RUNNING.value,
        )
    )
    if running:
        raise ConflictError(
            f"Cannot remove access: {running} running instance(s) on {server_handle}",
            details={"running_instances": running},
        )
    await db.delete(grant)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
