"""Execution configuration and target definitions.

Targets are loaded from a YAML file::

    targets:
      - id: lab-1
        name: Lab RADIUS
        server:
          host: 10.0.0.5
          secret: testing123
          preamble:
            - name: Check daemon
              command: systemctl is-active freeradius
              expected_output_contains: active
        database:
          type: sqlite
          database: /var/lib/radius/radius.db
          validation_steps:
            - name: Users table present
              type: sql
              command: SELECT name FROM sqlite_master WHERE type='table'
              expected_output_contains: radcheck
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .errors import ScenarioParseError
from .scenario.parser import load_yaml_file, parse_shell_steps, parse_validation_steps
from .scenario.schema import ShellStep, ValidationStep

DEFAULT_SSH_PORT = 22
DEFAULT_AUTH_PORT = 1812
DEFAULT_ACCT_PORT = 1813

VALID_DATABASE_TYPES = {"mysql", "postgresql", "mssql", "sqlite"}
DEFAULT_DATABASE_PORTS = {
    "mysql": 3306,
    "postgresql": 5432,
    "mssql": 1433,
    "sqlite": 0,
}


@dataclass
class ExecutionConfig:
    """Configuration for scenario execution."""
    step_timeout: float = 30.0
    connect_timeout: float = 30.0
    shell_timeout: float = 30.0
    max_loop_iterations: int = 10
    save_report: bool = False
    report_dir: Optional[Path] = None
    pretty_output: bool = True


@dataclass
class HostCredentials:
    """A host reachable over a shell session."""
    host: str
    port: int = DEFAULT_SSH_PORT
    user: str = ""
    password: Optional[str] = None
    private_key: Optional[str] = None

    @property
    def credential(self) -> Optional[str]:
        return self.private_key or self.password

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.host, self.port, self.user)


@dataclass
class ServerTarget:
    """The RADIUS server under test."""
    host: str
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_user: str = ""
    password: Optional[str] = None
    private_key: Optional[str] = None
    radius_auth_port: int = DEFAULT_AUTH_PORT
    radius_acct_port: int = DEFAULT_ACCT_PORT
    secret: str = ""
    preamble: list[ShellStep] = field(default_factory=list)

    @property
    def shell_host(self) -> HostCredentials:
        return HostCredentials(
            host=self.host,
            port=self.ssh_port,
            user=self.ssh_user,
            password=self.password,
            private_key=self.private_key,
        )


@dataclass
class DatabaseTarget:
    """The database backing the RADIUS server."""
    type: str
    host: str = ""
    port: int = 0
    username: str = ""
    password: Optional[str] = None
    database: str = ""
    jump_server: Optional[HostCredentials] = None
    preamble: list[ShellStep] = field(default_factory=list)
    validation_steps: list[ValidationStep] = field(default_factory=list)

    @property
    def shell_host(self) -> HostCredentials:
        """Host that runs the database preamble and ``ssh`` validation steps."""
        if self.jump_server:
            return self.jump_server
        return HostCredentials(host=self.host or "localhost")


@dataclass
class ExecutionTarget:
    """A named target: server and/or database."""
    id: str
    name: str
    server: Optional[ServerTarget] = None
    database: Optional[DatabaseTarget] = None

    @property
    def label(self) -> str:
        if self.server:
            return f"{self.name} ({self.server.host})"
        return self.name


def load_targets(file_path: Union[str, Path]) -> dict[str, ExecutionTarget]:
    """Load targets from a YAML file.

    Returns:
        Mapping of target id to ExecutionTarget, in file order.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ScenarioParseError: If the file is malformed.
    """
    data = load_yaml_file(file_path)
    return parse_targets_data(data, source=str(file_path))


def parse_targets_data(data: Any, source: str = "<inline>") -> dict[str, ExecutionTarget]:
    if not isinstance(data, dict) or not isinstance(data.get("targets"), list):
        raise ScenarioParseError(f"Targets file must contain a 'targets' list ({source})")

    targets: dict[str, ExecutionTarget] = {}
    for i, item in enumerate(data["targets"]):
        context = f"targets[{i}]"
        if not isinstance(item, dict) or "id" not in item:
            raise ScenarioParseError(f"Missing required field 'id' in {context} ({source})")

        target = ExecutionTarget(
            id=str(item["id"]),
            name=str(item.get("name") or item["id"]),
            server=_parse_server(item.get("server"), f"{context}.server", source),
            database=_parse_database(item.get("database"), f"{context}.database", source),
        )
        if target.id in targets:
            raise ScenarioParseError(f"Duplicate target id '{target.id}' ({source})")
        targets[target.id] = target
    return targets


def _parse_server(data: Any, context: str, source: str) -> Optional[ServerTarget]:
    if data is None:
        return None
    if not isinstance(data, dict) or "host" not in data:
        raise ScenarioParseError(f"Missing required field 'host' in {context} ({source})")
    return ServerTarget(
        host=str(data["host"]),
        ssh_port=_port(data, "ssh_port", DEFAULT_SSH_PORT, context, source),
        ssh_user=str(data.get("ssh_user", "")),
        password=data.get("password"),
        private_key=data.get("private_key"),
        radius_auth_port=_port(data, "radius_auth_port", DEFAULT_AUTH_PORT, context, source),
        radius_acct_port=_port(data, "radius_acct_port", DEFAULT_ACCT_PORT, context, source),
        secret=str(data.get("secret", "")),
        preamble=parse_shell_steps(data.get("preamble"), f"{context}.preamble", source),
    )


def _parse_database(data: Any, context: str, source: str) -> Optional[DatabaseTarget]:
    if data is None:
        return None
    if not isinstance(data, dict) or "type" not in data:
        raise ScenarioParseError(f"Missing required field 'type' in {context} ({source})")

    db_type = str(data["type"]).lower()
    if db_type not in VALID_DATABASE_TYPES:
        raise ScenarioParseError(
            f"Invalid database type '{db_type}' in {context}. "
            f"Must be one of: {', '.join(sorted(VALID_DATABASE_TYPES))} ({source})"
        )

    jump = data.get("jump_server")
    jump_server = None
    if jump is not None:
        if not isinstance(jump, dict) or "host" not in jump:
            raise ScenarioParseError(
                f"Missing required field 'host' in {context}.jump_server ({source})"
            )
        jump_server = HostCredentials(
            host=str(jump["host"]),
            port=_port(jump, "port", DEFAULT_SSH_PORT, f"{context}.jump_server", source),
            user=str(jump.get("user", "")),
            password=jump.get("password"),
            private_key=jump.get("private_key"),
        )

    return DatabaseTarget(
        type=db_type,
        host=str(data.get("host", "")),
        port=_port(data, "port", DEFAULT_DATABASE_PORTS[db_type], context, source),
        username=str(data.get("username", "")),
        password=data.get("password"),
        database=str(data.get("database", "")),
        jump_server=jump_server,
        preamble=parse_shell_steps(data.get("preamble"), f"{context}.preamble", source),
        validation_steps=parse_validation_steps(
            data.get("validation_steps"), f"{context}.validation_steps", source
        ),
    )


def _port(data: dict, key: str, default: int, context: str, source: str) -> int:
    value = data.get(key, default)
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ScenarioParseError(f"Invalid port {value!r} for '{key}' in {context} ({source})") from e
    if isinstance(value, bool) or not 0 <= port <= 65535:
        raise ScenarioParseError(f"Invalid port {value!r} for '{key}' in {context} ({source})")
    return port
