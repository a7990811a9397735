"""The six-step gateway provisioning pipeline.

Steps run strictly in order and each one is reported to the control API as
running, then success. The first exception in steps 1-5 marks that step
failed, fails the deployment with the same message and stops; the control
API skips the remaining steps. The health probe never fails a deployment.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
import json
from typing import Literal

import structlog

from shared.clients.ssh import RemoteShell
from shared.contracts.dto.credential import ProviderCredentialDTO
from shared.contracts.dto.deployment import DeploymentConfig, DeploymentDTO
from shared.contracts.dto.gateway_instance import GatewayInstanceCreate
from shared.contracts.dto.organization import OrganizationDTO
from shared.contracts.dto.server import ServerDTO
from shared.contracts.dto.skill import SkillDTO
from shared.logging_config import bind_deployment_context
from shared.models import DEPLOYMENT_STEPS, DeploymentStatus, GatewayInstanceStatus, StepId, StepStatus
from shared.naming import DEFAULT_INSTANCES_ROOT, container_name, instance_dir

from ..clients.control_api import ControlAPIClient
from ..errors import StepFailedError
from . import commands
from .config_generator import build_auth_profiles_json, build_openclaw_json
from .port_allocator import allocate_port, parse_used_ports

logger = structlog.get_logger(__name__)

ShellFactory = Callable[[ServerDTO], RemoteShell]

DEFAULT_BRAIN_FILES = ("WORKING.md", "MEMORY.md")

SCAN_TIMEOUT = 15
MKDIR_TIMEOUT = 15
DOCKER_RUN_TIMEOUT = 60
PERMISSIONS_TIMEOUT = 15
DEPLOY_TIMEOUT = 30
HEALTH_TIMEOUT = 20


@dataclass
class PipelineOptions:
    image: str = "ghcr.io/openclaw/openclaw:latest"
    memory_limit: str = "2g"
    instances_root: str = DEFAULT_INSTANCES_ROOT
    agent_settings: dict[str, str] = field(default_factory=dict)


@dataclass
class PipelineOutcome:
    deployment_id: str
    status: Literal["success", "failed", "skipped"]
    gateway_instance_id: str | None = None
    port: int | None = None
    url: str | None = None
    failed_step: str | None = None
    error: str | None = None


@dataclass
class RemoteFile:
    path: str
    content: str


@dataclass
class _Run:
    """Working state of one pipeline run, filled in step by step."""

    deployment: DeploymentDTO
    config: DeploymentConfig
    server: ServerDTO | None = None
    org: OrganizationDTO | None = None
    shell: RemoteShell | None = None
    container: str = ""
    state_dir: str = ""
    port: int | None = None
    files: list[RemoteFile] = field(default_factory=list)
    skills: list[SkillDTO] = field(default_factory=list)


def _check(step: StepId, result, what: str) -> None:
    if not result.ok:
        raise StepFailedError(step.value, f"{what} failed: {result.output or f'exit code {result.exit_code}'}")


class DeploymentPipeline:
    """Drives one deployment from ``queued`` to ``running`` or ``failed``."""

    def __init__(
        self,
        api: ControlAPIClient,
        shell_factory: ShellFactory,
        options: PipelineOptions | None = None,
    ) -> None:
        self.api = api
        self.shell_factory = shell_factory
        self.options = options or PipelineOptions()

    async def run(self, deployment_id: str) -> PipelineOutcome:
        bind_deployment_context(deployment_id)
        deployment = await self.api.get_deployment(deployment_id)
        if deployment.status != DeploymentStatus.QUEUED:
            logger.warning("deployment_not_queued", status=deployment.status.value)
            return PipelineOutcome(
                deployment_id=deployment_id,
                status="skipped",
                error=f"Deployment is {deployment.status.value}, expected queued",
            )

        run = _Run(deployment=deployment, config=DeploymentConfig.model_validate(deployment.config))
        logger.info(
            "deployment_pipeline_started",
            server_handle=deployment.server_handle,
            instance_name=deployment.instance_name,
        )

        current: StepId | None = None
        try:
            for step_id, _name in DEPLOYMENT_STEPS:
                current = step_id
                await self.api.update_step(deployment_id, step_id, StepStatus.RUNNING)
                await self._run_step(step_id, run)
                await self.api.update_step(deployment_id, step_id, StepStatus.SUCCESS)
            current = None
            return await self._finalize(run)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(
                "deployment_step_failed",
                step=current.value if current else None,
                error=error,
                error_type=type(e).__name__,
            )
            await self._record_failure(deployment_id, current, error)
            return PipelineOutcome(
                deployment_id=deployment_id,
                status="failed",
                port=run.port,
                failed_step=current.value if current else None,
                error=error,
            )

    async def _run_step(self, step_id: StepId, run: _Run) -> None:
        match step_id:
            case StepId.PROVISION:
                await self._provision(run)
            case StepId.PUSH_CONFIG:
                await self._push_config(run)
            case StepId.START_CONTAINER:
                await self._start_container(run)
            case StepId.FIX_PERMISSIONS:
                await self._fix_permissions(run)
            case StepId.DEPLOY_WORKSPACE:
                await self._deploy_workspace(run)
            case StepId.HEALTH:
                await self._check_health(run)

    async def _provision(self, run: _Run) -> None:
        """Load collaborators, allocate a port and render every file in memory."""
        deployment = run.deployment
        run.server = await self.api.get_server(deployment.server_handle)
        run.org = await self.api.get_organization(deployment.org_id)
        run.shell = self.shell_factory(run.server)
        run.container = container_name(run.org.slug, deployment.instance_name)
        run.state_dir = instance_dir(run.org.slug, deployment.instance_name, self.options.instances_root)

        scan = await run.shell.execute(commands.PORT_SCAN_COMMAND, timeout=SCAN_TIMEOUT)
        if scan.exit_code is None:
            raise StepFailedError(StepId.PROVISION.value, f"Port scan failed: {scan.output}")
        used = parse_used_ports(scan.stdout) | await self.api.get_reserved_ports(
            deployment.server_handle, exclude_deployment_id=deployment.id
        )
        run.port = allocate_port(deployment.instance_name, used)
        await self.api.set_port(deployment.id, run.port)
        logger.info("gateway_port_allocated", port=run.port, used_ports=len(used))

        credentials = await self.api.list_credentials(deployment.org_id)
        run.files = self._render_files(run, credentials)

        for skill_id in run.config.skill_ids:
            skill = await self.api.get_skill(skill_id)
            if skill is None:
                logger.warning("skill_not_found", skill_id=skill_id)
                continue
            run.skills.append(skill)
            run.files.append(
                RemoteFile(f"{run.state_dir}/workspace/skills/{skill.name}/SKILL.md", skill.content)
            )

    def _render_files(self, run: _Run, credentials: list[ProviderCredentialDTO]) -> list[RemoteFile]:
        config = run.config
        openclaw = build_openclaw_json(
            instance_name=run.deployment.instance_name,
            port=run.port,
            model=config.model,
            auth_token=config.gateway_auth.token,
            credentials=credentials,
            settings=self.options.agent_settings,
        )
        auth_profiles = build_auth_profiles_json(credentials)

        files = [
            RemoteFile(f"{run.state_dir}/openclaw.json", json.dumps(openclaw, indent=2)),
            RemoteFile(
                f"{run.state_dir}/agents/main/agent/auth-profiles.json",
                json.dumps(auth_profiles, indent=2),
            ),
        ]
        files += [
            RemoteFile(f"{run.state_dir}/workspace/{bf.name}", bf.content) for bf in config.brain_files
        ]
        supplied = {bf.name for bf in config.brain_files}
        files += [
            RemoteFile(f"{run.state_dir}/workspace/{name}", "")
            for name in DEFAULT_BRAIN_FILES
            if name not in supplied
        ]
        return files

    async def _push_config(self, run: _Run) -> None:
        skill_dirs = [f"{run.state_dir}/workspace/skills/{skill.name}" for skill in run.skills]
        result = await run.shell.execute(
            commands.mkdir_command(run.state_dir, skill_dirs), timeout=MKDIR_TIMEOUT
        )
        _check(StepId.PUSH_CONFIG, result, "mkdir")

        for remote_file in run.files:
            written = await run.shell.write_file(remote_file.path, remote_file.content)
            if not written.ok:
                raise StepFailedError(
                    StepId.PUSH_CONFIG.value,
                    f"Failed to write {remote_file.path}: {written.error}",
                )
        logger.info("gateway_config_pushed", files=len(run.files))

    async def _start_container(self, run: _Run) -> None:
        await run.shell.execute(commands.remove_container_command(run.container))
        result = await run.shell.execute(
            commands.docker_run_command(
                run.container,
                run.state_dir,
                self.options.image,
                run.port,
                self.options.memory_limit,
            ),
            timeout=DOCKER_RUN_TIMEOUT,
        )
        _check(StepId.START_CONTAINER, result, "docker run")
        logger.info("gateway_container_started", container=run.container)

    async def _fix_permissions(self, run: _Run) -> None:
        result = await run.shell.execute(
            commands.fix_permissions_command(run.container), timeout=PERMISSIONS_TIMEOUT
        )
        _check(StepId.FIX_PERMISSIONS, result, "chown")

    async def _deploy_workspace(self, run: _Run) -> None:
        result = await run.shell.execute(
            commands.deploy_workspace_command(run.container, run.state_dir), timeout=DEPLOY_TIMEOUT
        )
        _check(StepId.DEPLOY_WORKSPACE, result, "deploy-workspace")

    async def _check_health(self, run: _Run) -> None:
        """Best-effort probe; the gateway may still be starting."""
        try:
            result = await run.shell.execute(
                commands.health_command(run.container, run.port), timeout=HEALTH_TIMEOUT
            )
        except Exception as e:
            logger.warning("gateway_health_check_error", error=str(e), error_type=type(e).__name__)
            return
        if not result.ok:
            logger.warning(
                "gateway_health_check_failed", exit_code=result.exit_code, output=result.output[-2000:]
            )
        else:
            logger.info("gateway_health_check_passed", port=run.port)

    async def _finalize(self, run: _Run) -> PipelineOutcome:
        deployment = run.deployment
        identity = run.config.agent_identity
        url = f"ws://{run.server.public_ip}:{run.port}"
        instance = await self.api.create_gateway_instance(
            GatewayInstanceCreate(
                server_handle=deployment.server_handle,
                org_id=deployment.org_id,
                name=deployment.instance_name,
                port=run.port,
                token=run.config.gateway_auth.token,
                url=url,
                state_dir=run.state_dir,
                status=GatewayInstanceStatus.RUNNING,
                agent_count=1,
                primary_agent_name=identity.name if identity else deployment.instance_name,
            )
        )
        if run.skills:
            await self.api.assign_skills(instance.id, [skill.id for skill in run.skills])
        await self.api.complete(deployment.id, instance.id)

        logger.info("deployment_pipeline_succeeded", gateway_instance_id=instance.id, url=url)
        return PipelineOutcome(
            deployment_id=deployment.id,
            status="success",
            gateway_instance_id=instance.id,
            port=run.port,
            url=url,
        )

    async def _record_failure(self, deployment_id: str, step: StepId | None, error: str) -> None:
        try:
            if step is not None:
                await self.api.update_step(deployment_id, step, StepStatus.FAILED, error)
            await self.api.fail(deployment_id, error)
        except Exception as e:
            logger.error("deployment_failure_not_recorded", error=str(e), original_error=error)
