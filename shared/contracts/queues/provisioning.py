from shared.contracts.base import BaseMessage, BaseResult

PROVISIONING_QUEUE = "provisioning:queue"
PROVISIONING_GROUP = "provisioning-workers"
PROVISIONING_RESULT_KEY = "provisioning:result:{request_id}"
RESULT_TTL_SECONDS = 3600


class ProvisionDeploymentMessage(BaseMessage):
    """Run the provisioning pipeline for a queued deployment.

    Stream: provisioning:queue
    Consumers: provisioner worker
    """

    deployment_id: str


class ProvisioningResult(BaseResult):
    """Terminal outcome of one pipeline run, stored under provisioning:result:<request_id>."""

    deployment_id: str
    gateway_instance_id: str | None = None
    port: int | None = None
    url: str | None = None
    failed_step: str | None = None
