"""Deployment state machine.

    queued -> provisioning -> running | failed
    queued -> cancelled

Step records are plain dicts inside ``Deployment.steps``; every transition
replaces the list so the JSON column is flagged dirty.
"""

from typing import Any

import structlog

from shared.models import Deployment, DeploymentStatus, GatewayInstance, StepId, StepStatus
from shared.models.base import utcnow

from ..errors import DeploymentStateError

logger = structlog.get_logger(__name__)

_STEP_IDS = {step.value for step in StepId}
_UPDATABLE = {StepStatus.RUNNING, StepStatus.SUCCESS, StepStatus.FAILED}


def _now() -> str:
    return utcnow().isoformat()


def _skip_pending(steps: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {**step, "status": StepStatus.SKIPPED.value}
        if step["status"] == StepStatus.PENDING.value
        else step
        for step in steps
    ]


def _require_not_terminal(deployment: Deployment, action: str) -> None:
    if deployment.is_terminal:
        raise DeploymentStateError(
            deployment.id, f"Cannot {action}: deployment is already {deployment.status}"
        )


def update_step(
    deployment: Deployment,
    step_id: str,
    status: StepStatus,
    error: str | None = None,
) -> Deployment:
    """Record a step transition reported by the executor.

    Steps advance strictly in order: a step may start only once every earlier
    step succeeded, and only a running step can succeed or fail. Marking a
    step running stamps ``started_at`` once and moves a queued deployment to
    provisioning. A failed step skips every pending step and fails the
    deployment in the same write.
    """
    _require_not_terminal(deployment, "update step")
    if step_id not in _STEP_IDS:
        raise DeploymentStateError(deployment.id, f"Unknown step: {step_id}")
    status = StepStatus(status)
    if status not in _UPDATABLE:
        raise DeploymentStateError(deployment.id, f"Step status {status.value} cannot be reported")

    steps = [dict(step) for step in deployment.steps]
    index = next(i for i, step in enumerate(steps) if step["id"] == step_id)
    step = steps[index]
    if status == StepStatus.RUNNING:
        blocking = [s["id"] for s in steps[:index] if s["status"] != StepStatus.SUCCESS.value]
        if blocking:
            raise DeploymentStateError(
                deployment.id,
                f"Cannot start {step_id}: earlier steps not successful: {', '.join(blocking)}",
            )
        if step["status"] not in (StepStatus.PENDING.value, StepStatus.RUNNING.value):
            raise DeploymentStateError(
                deployment.id, f"Cannot start {step_id}: step is already {step['status']}"
            )
    elif step["status"] != StepStatus.RUNNING.value:
        raise DeploymentStateError(
            deployment.id, f"Cannot mark {step_id} {status.value}: step is {step['status']}"
        )

    step["status"] = status.value
    if status == StepStatus.RUNNING:
        step.setdefault("started_at", _now())
    else:
        step["completed_at"] = _now()
    if error:
        step["error"] = error

    if status == StepStatus.FAILED:
        deployment.steps = _skip_pending(steps)
        _mark_failed(deployment, error or f"Step {step_id} failed")
    else:
        deployment.steps = steps
        if deployment.status == DeploymentStatus.QUEUED.value:
            deployment.status = DeploymentStatus.PROVISIONING.value

    logger.debug(
        "deployment_step_updated", deployment_id=deployment.id, step=step_id, status=status.value
    )
    return deployment


def set_port(deployment: Deployment, port: int) -> Deployment:
    _require_not_terminal(deployment, "set port")
    deployment.port = port
    return deployment


def complete(deployment: Deployment, instance: GatewayInstance) -> Deployment:
    """Bind the created gateway instance and mark the deployment running."""
    if deployment.status != DeploymentStatus.PROVISIONING.value:
        raise DeploymentStateError(
            deployment.id, f"Cannot complete a deployment in status {deployment.status}"
        )
    unfinished = [
        step["id"] for step in deployment.steps if step["status"] != StepStatus.SUCCESS.value
    ]
    if unfinished:
        raise DeploymentStateError(
            deployment.id, f"Cannot complete: steps not successful: {', '.join(unfinished)}"
        )
    if (
        instance.server_handle != deployment.server_handle
        or instance.org_id != deployment.org_id
        or instance.name != deployment.instance_name
    ):
        raise DeploymentStateError(
            deployment.id, f"Gateway instance {instance.id} does not belong to this deployment"
        )

    deployment.gateway_instance_id = instance.id
    if deployment.port is None:
        deployment.port = instance.port
    deployment.status = DeploymentStatus.RUNNING.value
    deployment.completed_at = utcnow()
    logger.info(
        "deployment_completed", deployment_id=deployment.id, gateway_instance_id=instance.id
    )
    return deployment


def _mark_failed(deployment: Deployment, error: str) -> None:
    deployment.error = error
    deployment.status = DeploymentStatus.FAILED.value
    deployment.completed_at = utcnow()
    logger.warning("deployment_failed", deployment_id=deployment.id, error=error)


def fail(deployment: Deployment, error: str) -> Deployment:
    """Fail a provisioning deployment.

    A deployment already failed by a step report is returned unchanged, so the
    executor can always follow a failed step with this call.
    """
    if deployment.status == DeploymentStatus.FAILED.value:
        return deployment
    if deployment.status != DeploymentStatus.PROVISIONING.value:
        raise DeploymentStateError(
            deployment.id, f"Cannot fail a deployment in status {deployment.status}"
        )
    deployment.steps = _skip_pending(deployment.steps)
    _mark_failed(deployment, error)
    return deployment


def cancel(deployment: Deployment) -> Deployment:
    if deployment.status != DeploymentStatus.QUEUED.value:
        raise DeploymentStateError(
            deployment.id, f"Only queued deployments can be cancelled (status: {deployment.status})"
        )
    deployment.steps = _skip_pending(deployment.steps)
    deployment.status = DeploymentStatus.CANCELLED.value
    deployment.completed_at = utcnow()
    logger.info("deployment_cancelled", deployment_id=deployment.id)
    return deployment
