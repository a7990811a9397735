"""Provider credentials router. Values are write-only here."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.credential import ProviderCredentialCreate, ProviderCredentialSummary
from shared.models import ProviderCredential

from ..database import get_async_session

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.post("/", response_model=ProviderCredentialSummary, status_code=status.HTTP_201_CREATED)
async def create_credential(
    credential_in: ProviderCredentialCreate,
    db: AsyncSession = Depends(get_async_session),
) -> ProviderCredential:
    credential = ProviderCredential(**credential_in.model_dump())
    db.add(credential)
    await db.commit()
    return credential


@router.get("/", response_model=list[ProviderCredentialSummary])
async def list_credentials(
    org_id: str | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[ProviderCredential]:
    query = select(ProviderCredential).order_by(ProviderCredential.id)
    if org_id is not None:
        query = query.where(ProviderCredential.org_id == org_id)
    result = await db.execute(query)
    return result.scalars().all()
