"""FastAPI dependencies: provisioner authentication, queue client, remote shells."""

from collections.abc import Callable
import hmac

from fastapi import Depends, Header, HTTPException, Request, status

from shared.clients.ssh import RemoteShell, SSHRemoteShell
from shared.models import Server
from shared.redis.client import RedisStreamClient

from .config import Settings, get_settings

ShellFactory = Callable[[Server], RemoteShell]


async def require_provisioner_secret(
    x_provisioner_secret: str | None = Header(None, alias="X-Provisioner-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Gate the system surface behind the shared provisioner secret.

    Raises 500 if no secret is configured, 403 if the header is missing or wrong.
    """
    if not settings.provisioner_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Provisioner secret is not configured",
        )
    if not x_provisioner_secret or not hmac.compare_digest(
        x_provisioner_secret, settings.provisioner_secret
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid provisioner secret",
        )


def get_redis(request: Request) -> RedisStreamClient:
    """Stream client opened in the app lifespan."""
    return request.app.state.redis


def get_shell_factory(settings: Settings = Depends(get_settings)) -> ShellFactory:
    def factory(server: Server) -> RemoteShell:
        return SSHRemoteShell(
            host=server.public_ip,
            user=server.ssh_user,
            port=server.ssh_port,
            key_path=settings.ssh_key_path,
            connect_timeout=settings.ssh_connect_timeout,
        )

    return factory
