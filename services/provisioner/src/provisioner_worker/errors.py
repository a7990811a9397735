"""Errors raised while provisioning a deployment."""

from typing import Any


class ProvisioningError(Exception):
    """Base exception for provisioner errors."""

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


class StepFailedError(ProvisioningError):
    """A remote command exited non-zero or a file write failed."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(message, status_code=502, details={"step": step})
        self.step = step


class PortExhaustedError(ProvisioningError):
    def __init__(self, start: int, end: int) -> None:
        super().__init__(
            f"No free port in range {start}-{end}",
            status_code=409,
            details={"range": [start, end]},
        )


class MissingCredentialsError(ProvisioningError):
    def __init__(self) -> None:
        super().__init__(
            "No auth credentials available. Configure API keys in Settings.",
            status_code=412,
        )


class ControlAPIError(ProvisioningError):
    """The control API refused or could not be reached."""

    def __init__(self, method: str, path: str, status_code: int, detail: Any) -> None:
        super().__init__(
            f"{method} {path} failed ({status_code}): {detail}",
            status_code=status_code,
            details={"path": path, "detail": detail},
        )
