"""Typed errors raised by the control API and their JSON rendering."""

from enum import Enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class ControlPlaneError(Exception):
    """Base exception for control plane errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class NotFoundError(ControlPlaneError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__(
            f"{kind} not found: {key}",
            status_code=404,
            details={"kind": kind, "key": key},
        )


class ConflictError(ControlPlaneError):
    """Raised when a collaborator record cannot change in its current state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, status_code=409, details=details)


class AdmissionRejection(str, Enum):
    INVALID_NAME = "invalid_name"
    NO_ACCESS = "no_access"
    NO_CAPACITY = "no_capacity"
    QUOTA_EXCEEDED = "quota_exceeded"
    NAME_CONFLICT = "name_conflict"


_REJECTION_STATUS = {
    AdmissionRejection.INVALID_NAME: 422,
    AdmissionRejection.NO_ACCESS: 403,
    AdmissionRejection.NO_CAPACITY: 409,
    AdmissionRejection.QUOTA_EXCEEDED: 409,
    AdmissionRejection.NAME_CONFLICT: 409,
}


class AdmissionError(ControlPlaneError):
    """Raised when a deployment request is refused. No state is created."""

    def __init__(self, reason: AdmissionRejection, message: str) -> None:
        super().__init__(
            message,
            status_code=_REJECTION_STATUS[reason],
            details={"reason": reason.value},
        )
        self.reason = reason


class DeploymentStateError(ControlPlaneError):
    """Raised on an illegal deployment transition."""

    def __init__(self, deployment_id: str, message: str) -> None:
        super().__init__(message, status_code=409, details={"deployment_id": deployment_id})


class RemoteCommandError(ControlPlaneError):
    """Raised when a lifecycle command fails on the host."""

    def __init__(self, command: str, output: str) -> None:
        super().__init__(
            f"{command} failed: {output}" if output else f"{command} failed",
            status_code=502,
            details={"command": command},
        )


async def control_plane_error_handler(request: Request, exc: ControlPlaneError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error  # noqa: PLR2004
    log(
        "control_plane_error",
        error_code=exc.error_code,
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"error_code": exc.error_code, "message": exc.message, **exc.details}},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ControlPlaneError, control_plane_error_handler)
