"""Provisioner worker - consumes provisioning:queue and runs deployment pipelines.

Run standalone: python -m provisioner_worker.main
"""

from __future__ import annotations

import asyncio
import os
import signal
import time

from pydantic import ValidationError
import structlog

from shared.clients.ssh import RemoteShell, SSHRemoteShell
from shared.contracts.dto.server import ServerDTO
from shared.contracts.queues.provisioning import (
    PROVISIONING_GROUP,
    PROVISIONING_QUEUE,
    PROVISIONING_RESULT_KEY,
    RESULT_TTL_SECONDS,
    ProvisionDeploymentMessage,
    ProvisioningResult,
)
from shared.logging_config import setup_logging
from shared.redis.client import RedisStreamClient, StreamMessage

from .clients.control_api import ControlAPIClient
from .config import Settings, get_settings
from .provisioning.pipeline import DeploymentPipeline, PipelineOptions, ShellFactory

logger = structlog.get_logger(__name__)

CONSUMER_NAME = f"provisioner-{os.getpid()}"

# Shutdown flag
_shutdown = False


def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    global _shutdown
    logger.info("shutdown_signal_received", signal=signum)
    _shutdown = True


def ssh_shell_factory(settings: Settings) -> ShellFactory:
    def factory(server: ServerDTO) -> RemoteShell:
        return SSHRemoteShell(
            host=server.public_ip,
            user=server.ssh_user,
            port=server.ssh_port,
            key_path=settings.ssh_key_path,
            connect_timeout=settings.ssh_connect_timeout,
        )

    return factory


def build_pipeline(settings: Settings, api: ControlAPIClient) -> DeploymentPipeline:
    return DeploymentPipeline(
        api,
        ssh_shell_factory(settings),
        PipelineOptions(
            image=settings.gateway_image,
            memory_limit=settings.gateway_memory_limit,
            instances_root=settings.instances_root,
            agent_settings=settings.agent_settings,
        ),
    )


async def process_provisioning_job(job_data: dict, pipeline: DeploymentPipeline) -> ProvisioningResult:
    """Run the pipeline for one queue message.

    Returns:
        Result with status success, failed, skipped or error
    """
    request_id = job_data.get("request_id", "unknown")
    start = time.time()
    try:
        message = ProvisionDeploymentMessage.model_validate(job_data)
    except ValidationError as e:
        logger.error("provisioning_job_invalid", request_id=request_id, error=str(e))
        return ProvisioningResult(
            request_id=request_id,
            status="error",
            deployment_id=job_data.get("deployment_id", ""),
            error=f"Invalid message: {e.error_count()} validation error(s)",
        )

    structlog.contextvars.bind_contextvars(correlation_id=message.correlation_id)
    logger.info(
        "provisioning_job_started",
        request_id=message.request_id,
        deployment_id=message.deployment_id,
    )
    try:
        outcome = await pipeline.run(message.deployment_id)
    except Exception as e:
        logger.error(
            "provisioning_job_exception",
            request_id=message.request_id,
            deployment_id=message.deployment_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return ProvisioningResult(
            request_id=message.request_id,
            status="error",
            deployment_id=message.deployment_id,
            error=str(e),
            duration_ms=int((time.time() - start) * 1000),
        )

    logger.info(
        "provisioning_job_finished",
        request_id=message.request_id,
        deployment_id=message.deployment_id,
        status=outcome.status,
    )
    return ProvisioningResult(
        request_id=message.request_id,
        status=outcome.status,
        deployment_id=outcome.deployment_id,
        gateway_instance_id=outcome.gateway_instance_id,
        port=outcome.port,
        url=outcome.url,
        failed_step=outcome.failed_step,
        error=outcome.error,
        duration_ms=int((time.time() - start) * 1000),
    )


async def handle_message(
    redis: RedisStreamClient, pipeline: DeploymentPipeline, message: StreamMessage
) -> None:
    """Process one stream entry, store its result and ACK it."""
    try:
        result = await process_provisioning_job(message.data, pipeline)
        await redis.set_result(
            PROVISIONING_RESULT_KEY.format(request_id=result.request_id),
            result,
            RESULT_TTL_SECONDS,
        )
        await redis.ack(PROVISIONING_QUEUE, PROVISIONING_GROUP, message.message_id)
    except Exception as e:
        logger.error(
            "provisioning_job_processing_error",
            entry_id=message.message_id,
            error=str(e),
        )
        # Don't ACK - the entry stays pending for this consumer group


async def run_worker():
    """Main worker loop."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )

    redis = RedisStreamClient(settings.redis_url)
    await redis.connect()
    await redis.ensure_consumer_group(PROVISIONING_QUEUE, PROVISIONING_GROUP)

    api = ControlAPIClient(settings.api_base_url, settings.provisioner_secret)
    pipeline = build_pipeline(settings, api)

    logger.info(
        "provisioner_worker_started",
        consumer=CONSUMER_NAME,
        max_concurrent_jobs=settings.max_concurrent_jobs,
    )

    try:
        while not _shutdown:
            try:
                messages = await redis.read_group(
                    PROVISIONING_QUEUE,
                    PROVISIONING_GROUP,
                    CONSUMER_NAME,
                    block_ms=5000,
                    count=settings.max_concurrent_jobs,
                )
                if not messages:
                    continue
                # Deployments on the same server may provision side by side
                await asyncio.gather(*(handle_message(redis, pipeline, m) for m in messages))

            except asyncio.CancelledError:
                logger.info("worker_cancelled")
                break
            except Exception as e:
                logger.error("worker_loop_error", error=str(e))
                await asyncio.sleep(1)

    finally:
        await api.close()
        await redis.close()
        logger.info("provisioner_worker_shutdown")


def main():
    """Entry point for running as module."""
    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
