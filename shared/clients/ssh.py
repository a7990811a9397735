"""SSH remote shell used to drive gateway hosts.

Commands run through ``bash -c`` on the remote side; files are written by
streaming their content into ``cat > path`` over stdin.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import os
import shlex
import time
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_KEY_PATH = "~/.ssh/openclaw_studio_ed25519"
DEFAULT_TIMEOUT = 30
WRITE_TIMEOUT = 15


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a remote command. ``exit_code`` is None when it never finished."""

    stdout: str
    stderr: str
    exit_code: int | None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stderr if present, else stdout - what to show when a command failed."""
        return self.stderr or self.stdout


@dataclass(frozen=True)
class WriteResult:
    ok: bool
    error: str | None = None


class RemoteShell(Protocol):
    """Remote-command capability against a single host."""

    async def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> CommandResult: ...

    async def write_file(
        self, path: str, content: str, timeout: int = WRITE_TIMEOUT
    ) -> WriteResult: ...


class SSHRemoteShell:
    """RemoteShell over the system ``ssh`` binary (BatchMode, key auth)."""

    def __init__(
        self,
        host: str,
        user: str = "root",
        port: int = 22,
        key_path: str | None = None,
        connect_timeout: int = 10,
    ):
        self.host = host
        self.user = user or "root"
        self.port = port or 22
        self.key_path = os.path.expanduser(key_path or DEFAULT_KEY_PATH)
        self.connect_timeout = connect_timeout

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def _ssh_args(self, remote_command: str) -> list[str]:
        args = [
            "ssh",
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
        ]
        if os.path.exists(self.key_path):
            args += ["-i", self.key_path]
        if self.port != 22:  # noqa: PLR2004
            args += ["-p", str(self.port)]
        args += [self.target, "bash", "-c", shlex.quote(remote_command)]
        return args

    async def _run(
        self, remote_command: str, timeout: int, stdin: str | None = None
    ) -> CommandResult:
        start = time.time()
        process = await asyncio.create_subprocess_exec(
            *self._ssh_args(remote_command),
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode() if stdin is not None else None),
                timeout=timeout,
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(
                "ssh_command_timeout",
                host=self.host,
                timeout=timeout,
                duration_ms=round((time.time() - start) * 1000, 2),
            )
            return CommandResult(stdout="", stderr=f"Command timed out after {timeout}s", exit_code=None)

        result = CommandResult(
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
            exit_code=process.returncode,
        )
        logger.debug(
            "ssh_command_finished",
            host=self.host,
            exit_code=result.exit_code,
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return result

    async def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> CommandResult:
        """Run ``command`` on the host.

        Transport failures (ssh missing, unreachable host) come back as a
        non-zero / None exit code rather than an exception.
        """
        try:
            return await self._run(command, timeout)
        except OSError as e:
            logger.error("ssh_command_error", host=self.host, error=str(e))
            return CommandResult(stdout="", stderr=str(e), exit_code=None)

    async def write_file(
        self, path: str, content: str, timeout: int = WRITE_TIMEOUT
    ) -> WriteResult:
        """Write ``content`` to ``path`` on the host, replacing any existing file."""
        try:
            result = await self._run(f"cat > {shlex.quote(path)}", timeout, stdin=content)
        except OSError as e:
            logger.error("ssh_write_error", host=self.host, path=path, error=str(e))
            return WriteResult(ok=False, error=str(e))

        if not result.ok:
            return WriteResult(ok=False, error=result.stderr or f"Exit code {result.exit_code}")
        return WriteResult(ok=True)
