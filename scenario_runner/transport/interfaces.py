"""Capability interfaces consumed by the runner.

Sessions report failures by raising ``TargetConnectionError`` (connect) or
``StepExecutionError`` (execute/query/send/request). A non-zero exit code is
not an error at this level; it is returned in ``CommandResult``.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from ..scenario.schema import AttributePair, RadiusPacket


@dataclass
class CommandResult:
    """Output of one shell command."""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for substring checks and logging."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def contains(self, expected: Optional[str]) -> bool:
        if not expected:
            return True
        return expected in self.stdout or expected in self.stderr


@dataclass
class HttpResponse:
    """Response of one HTTP request."""
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""


@dataclass
class RadiusTarget:
    """Where RADIUS packets are sent."""
    host: str
    secret: str
    auth_port: int = 1812
    acct_port: int = 1813

    def port_for(self, code: str) -> int:
        if code.lower().startswith("accounting"):
            return self.acct_port
        return self.auth_port


@dataclass
class ReplyPacket:
    """A decoded RADIUS reply."""
    code: str
    attributes: list[AttributePair] = field(default_factory=list)

    def values(self, name: str) -> list[str]:
        return [pair.value for pair in self.attributes if pair.name == name]


@runtime_checkable
class ShellSession(Protocol):
    async def connect(self, host: str, port: int, user: str, credential: Optional[str]) -> None: ...

    async def execute(self, command: str, timeout: float) -> CommandResult: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...


@runtime_checkable
class SqlSession(Protocol):
    async def connect(
        self,
        driver_type: str,
        host: str,
        port: int,
        user: str,
        credential: Optional[str],
        database: str,
    ) -> None: ...

    async def query(self, sql: str) -> list[dict]: ...

    async def disconnect(self) -> None: ...


@runtime_checkable
class PacketTransport(Protocol):
    async def send(self, packet: RadiusPacket, target: RadiusTarget, timeout_ms: int) -> ReplyPacket: ...


@runtime_checkable
class HttpCaller(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[str],
        timeout_ms: int,
    ) -> HttpResponse: ...


class SessionFactory(Protocol):
    """Creates the per-run capability handles."""

    def shell(self) -> ShellSession: ...

    def sql(self, driver_type: str) -> SqlSession: ...

    def packets(self, shell: ShellSession) -> PacketTransport: ...

    def http(self) -> HttpCaller: ...
