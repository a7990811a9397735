"""Shared clients for external services."""

from .ssh import CommandResult, RemoteShell, SSHRemoteShell, WriteResult

__all__ = [
    "CommandResult",
    "RemoteShell",
    "SSHRemoteShell",
    "WriteResult",
]
