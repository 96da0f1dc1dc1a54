"""Shell session that runs commands on the local host.

Used for local preamble steps, ``ssh`` validation steps on the runner host and
for driving ``radclient``. Remote hosts need a real SSH-backed
``ShellSession``; this one only accepts local host names.
"""

import asyncio
import logging
from typing import Optional

from ..errors import StepExecutionError, StepTimeoutError, TargetConnectionError
from .interfaces import CommandResult

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", ""}


class LocalShellSession:
    """ShellSession backed by ``asyncio.create_subprocess_shell``."""

    def __init__(self, allow_any_host: bool = False):
        """Initialize the session.

        Args:
            allow_any_host: Accept any host name and run locally anyway.
                Useful when the runner itself sits on the target host.
        """
        self.allow_any_host = allow_any_host
        self.host: Optional[str] = None
        self._connected = False

    async def connect(self, host: str, port: int, user: str, credential: Optional[str]) -> None:
        if not self.allow_any_host and host not in LOCAL_HOSTS:
            raise TargetConnectionError(
                f"Cannot open a local shell for remote host '{host}'"
            )
        self.host = host or "localhost"
        self._connected = True
        logger.debug("Local shell ready for %s", self.host)

    async def execute(self, command: str, timeout: float) -> CommandResult:
        """Run ``command`` through the system shell.

        Raises:
            StepExecutionError: If the session is not connected or the
                process cannot be started.
            StepTimeoutError: If the command exceeds ``timeout`` seconds.
        """
        if not self._connected:
            raise StepExecutionError("Shell session is not connected")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StepExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise StepTimeoutError(f"Command '{command}'", timeout) from e

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
            exit_code=process.returncode,
        )

    async def disconnect(self) -> None:
        self._connected = False
        self.host = None

    def is_connected(self) -> bool:
        return self._connected
