"""Hand-off of admitted deployments to the provisioner worker."""

import structlog

from shared.contracts.queues.provisioning import PROVISIONING_QUEUE, ProvisionDeploymentMessage
from shared.redis.client import RedisStreamClient

logger = structlog.get_logger(__name__)


async def dispatch_deployment(redis: RedisStreamClient, deployment_id: str) -> str | None:
    """Publish a provisioning job. Fire-and-forget: failures are logged, not raised.

    Returns the published request id, or None if publishing failed. The
    deployment stays queued either way and can be dispatched again.
    """
    message = ProvisionDeploymentMessage(deployment_id=deployment_id)
    correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    if correlation_id:
        message.correlation_id = correlation_id
    try:
        await redis.publish_message(PROVISIONING_QUEUE, message)
    except Exception as e:
        logger.error(
            "deployment_dispatch_failed",
            deployment_id=deployment_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    logger.info(
        "deployment_dispatched", deployment_id=deployment_id, request_id=message.request_id
    )
    return message.request_id
