"""Skills router."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.contracts.dto.skill import SkillCreate, SkillDTO
from shared.models import Skill

from ..database import get_async_session
from ..errors import ConflictError, NotFoundError

router = APIRouter(prefix="/skills", tags=["skills"])


@router.post("/", response_model=SkillDTO, status_code=status.HTTP_201_CREATED)
async def create_skill(
    skill_in: SkillCreate,
    db: AsyncSession = Depends(get_async_session),
) -> Skill:
    if await db.scalar(select(Skill).where(Skill.name == skill_in.name)):
        raise ConflictError(f"Skill {skill_in.name!r} already exists")
    skill = Skill(**skill_in.model_dump())
    db.add(skill)
    await db.commit()
    return skill


@router.get("/", response_model=list[SkillDTO])
async def list_skills(
    enabled: bool | None = None,
    db: AsyncSession = Depends(get_async_session),
) -> list[Skill]:
    query = select(Skill).order_by(Skill.name)
    if enabled is not None:
        query = query.where(Skill.is_enabled == enabled)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{skill_id}", response_model=SkillDTO)
async def get_skill(skill_id: str, db: AsyncSession = Depends(get_async_session)) -> Skill:
    skill = await db.get(Skill, skill_id)
    if not skill:
        raise NotFoundError("skill", skill_id)
    return skill
