"""Pytest configuration for control API tests."""

from collections.abc import AsyncGenerator
import os
from pathlib import Path
import sys

# Add api src and project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./control-api-test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("PROVISIONER_SECRET", "test-provisioner-secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from control_api.database import get_async_session  # noqa: E402
from control_api.dependencies import get_redis, get_shell_factory  # noqa: E402
from control_api.main import app  # noqa: E402
from shared.clients.tests.fake import FakeRemoteShell  # noqa: E402
from shared.contracts.dto.deployment import DeploymentConfig  # noqa: E402
from shared.models import (  # noqa: E402
    Base,
    Deployment,
    DeploymentStatus,
    GatewayInstance,
    GatewayInstanceStatus,
    Organization,
    OrgServerAccess,
    ProviderCredential,
    Server,
    ServerStatus,
    Skill,
    initial_steps,
)
from shared.redis.tests.fake import FakeRedisStreamClient  # noqa: E402

SECRET_HEADERS = {"X-Provisioner-Secret": os.environ["PROVISIONER_SECRET"]}


def deployment_config(token: str = "gw-token-123", **overrides) -> dict:
    config = {
        "model": {"primary": "claude-sonnet-4", "fallbacks": ["gpt-4o"]},
        "skill_ids": [],
        "brain_files": [{"name": "SOUL.md", "content": "# Soul"}],
        "gateway_auth": {"mode": "token", "token": token},
    }
    config.update(overrides)
    return DeploymentConfig.model_validate(config).model_dump(mode="json")


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions really contend for the write lock
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'control.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedisStreamClient()


@pytest.fixture
def fake_shell():
    return FakeRemoteShell()


@pytest_asyncio.fixture
async def client(session_maker, fake_redis, fake_shell) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_shell_factory] = lambda: (lambda server: fake_shell)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class Seeder:
    """Inserts collaborator records directly, bypassing admission."""

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def _add(self, record):
        async with self.session_maker() as session:
            session.add(record)
            await session.commit()
        return record

    async def org(self, slug="acme", max_instances=None) -> Organization:
        return await self._add(Organization(name=slug.title(), slug=slug, max_instances=max_instances))

    async def server(
        self, handle="vps-1", max_instances=3, status=ServerStatus.RUNNING, public_ip="10.0.0.1"
    ) -> Server:
        return await self._add(
            Server(
                handle=handle,
                hostname=f"{handle}.example.net",
                public_ip=public_ip,
                status=status.value,
                max_instances=max_instances,
                labels={},
            )
        )

    async def grant(self, org, server, max_instances=1) -> OrgServerAccess:
        return await self._add(
            OrgServerAccess(org_id=org.id, server_handle=server.handle, max_instances=max_instances)
        )

    async def instance(
        self, org, server, name="existing", port=19500, status=GatewayInstanceStatus.RUNNING
    ) -> GatewayInstance:
        return await self._add(
            GatewayInstance(
                org_id=org.id,
                server_handle=server.handle,
                name=name,
                port=port,
                token="instance-token",
                url=f"ws://{server.public_ip}:{port}",
                state_dir=f"/opt/openclaw-instances/{org.slug}-{name}",
                status=status.value,
                agent_count=1,
            )
        )

    async def deployment(
        self, org, server, name="pending-one", status=DeploymentStatus.QUEUED
    ) -> Deployment:
        return await self._add(
            Deployment(
                org_id=org.id,
                server_handle=server.handle,
                instance_name=name,
                config=deployment_config(),
                status=status.value,
                steps=initial_steps(),
            )
        )

    async def skill(self, name="web-research", content="# Web research") -> Skill:
        return await self._add(Skill(name=name, content=content, is_enabled=True))

    async def credential(self, provider="anthropic", value="sk-ant-test", org_id=None):
        return await self._add(
            ProviderCredential(
                provider=provider, key=f"ai.{provider}_api_key", value=value, org_id=org_id
            )
        )


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)


@pytest.fixture
def make_config():
    return deployment_config
