"""Async engine and request-scoped sessions.

Settings are read at import time, so a missing DATABASE_URL stops the API
before it binds a port.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

engine = create_async_engine(get_settings().database_url, pool_pre_ping=True)

# Admission reads nothing back after commit; server-side timestamps stay unloaded.
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
