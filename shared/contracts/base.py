"""Envelope shared by every message on the provisioning stream."""

from datetime import UTC, datetime
from typing import Literal
import uuid

from pydantic import BaseModel, Field


def _uuid() -> str:
    return str(uuid.uuid4())


class BaseMessage(BaseModel):
    """A job published to a Redis stream.

    ``correlation_id`` carries the HTTP request id across to the worker, so one
    id ties admission and provisioning log lines together.
    """

    version: Literal["1"] = "1"
    request_id: str = Field(default_factory=_uuid)
    correlation_id: str = Field(default_factory=_uuid)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BaseResult(BaseModel):
    """Outcome of a consumed job, stored under a short-lived result key."""

    request_id: str
    status: Literal["success", "failed", "error", "skipped"]
    error: str | None = None
    duration_ms: int | None = None
