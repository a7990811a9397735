"""Operator actions on running gateway instances."""

import shlex

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.clients.ssh import RemoteShell
from shared.contracts.dto.gateway_instance import LifecycleAction, LifecycleResult
from shared.models import GatewayInstance, GatewayInstanceStatus, InstanceSkill, Organization
from shared.naming import container_name, instance_dir

from ..errors import NotFoundError, RemoteCommandError

logger = structlog.get_logger(__name__)

_CONTAINER_COMMANDS = {
    LifecycleAction.STOP: ("stop", GatewayInstanceStatus.STOPPED),
    LifecycleAction.START: ("start", GatewayInstanceStatus.RUNNING),
    LifecycleAction.RESTART: ("restart", GatewayInstanceStatus.RUNNING),
}
CONTAINER_TIMEOUT = 60
LOGS_TIMEOUT = 15
LOG_TAIL_LINES = 100


async def _delete(
    session: AsyncSession, instance: GatewayInstance, container: str, state_dir: str, shell: RemoteShell
) -> None:
    # Host cleanup is best-effort; the record goes regardless.
    for command in (f"docker rm -f {container}", f"rm -rf {shlex.quote(state_dir)}"):
        try:
            result = await shell.execute(command, timeout=CONTAINER_TIMEOUT)
        except Exception as e:
            logger.warning(
                "gateway_cleanup_failed", instance_id=instance.id, command=command, error=str(e)
            )
            continue
        if not result.ok:
            logger.warning(
                "gateway_cleanup_failed",
                instance_id=instance.id,
                command=command,
                exit_code=result.exit_code,
                error=result.output,
            )

    await session.execute(delete(InstanceSkill).where(InstanceSkill.instance_id == instance.id))
    await session.delete(instance)
    await session.commit()


async def perform(
    session: AsyncSession,
    instance: GatewayInstance,
    action: LifecycleAction,
    shell: RemoteShell,
) -> LifecycleResult:
    """Run ``action`` against the instance's container on its server."""
    org = await session.get(Organization, instance.org_id)
    if org is None:
        raise NotFoundError("organization", instance.org_id)
    container = shlex.quote(container_name(org.slug, instance.name))
    log = logger.bind(instance_id=instance.id, action=action.value)

    match action:
        case LifecycleAction.STOP | LifecycleAction.START | LifecycleAction.RESTART:
            verb, new_status = _CONTAINER_COMMANDS[action]
            command = f"docker {verb} {container}"
            result = await shell.execute(command, timeout=CONTAINER_TIMEOUT)
            if not result.ok:
                log.warning("gateway_action_failed", exit_code=result.exit_code, error=result.output)
                raise RemoteCommandError(f"docker {verb}", result.output)
            instance.status = new_status.value
            await session.commit()
            log.info("gateway_action_completed", status=new_status.value)
            return LifecycleResult(action=action, status=new_status)

        case LifecycleAction.DELETE:
            state_dir = instance.state_dir or instance_dir(org.slug, instance.name)
            await _delete(session, instance, container, state_dir, shell)
            log.info("gateway_instance_deleted")
            return LifecycleResult(action=action)

        case LifecycleAction.LOGS:
            result = await shell.execute(
                f"docker logs {container} --tail {LOG_TAIL_LINES} 2>&1", timeout=LOGS_TIMEOUT
            )
            if not result.ok:
                log.warning("gateway_logs_failed", exit_code=result.exit_code, error=result.output)
                raise RemoteCommandError("docker logs", result.output)
            return LifecycleResult(action=action, logs=result.stdout)
