"""Per-run ownership of the shell and SQL sessions.

A run holds at most one shell session and one SQL session. Moving the shell to
another host disconnects it first. ``close()`` disconnects whatever is still
connected, exactly once per successful connect.
"""

from typing import Optional

from ..config import DatabaseTarget, ExecutionConfig, HostCredentials
from ..errors import ScenarioRunnerError, TargetConnectionError
from ..transport.interfaces import PacketTransport, SessionFactory, ShellSession, SqlSession
from .logger import ExecutionLogger
from .step_executors import with_timeout


class RunSessions:
    """Connect/disconnect bookkeeping for one execution."""

    def __init__(self, factory: SessionFactory, log: ExecutionLogger, config: ExecutionConfig):
        self.factory = factory
        self.log = log
        self.config = config
        self.shell: ShellSession = factory.shell()
        self.shell_host: Optional[HostCredentials] = None
        self.sql: Optional[SqlSession] = None
        self._packets: Optional[PacketTransport] = None

    @property
    def packets(self) -> PacketTransport:
        if self._packets is None:
            self._packets = self.factory.packets(self.shell)
        return self._packets

    async def open_shell(self, host: HostCredentials) -> ShellSession:
        """Make sure the shell session is connected to ``host``.

        Raises:
            TargetConnectionError: If the host cannot be reached.
        """
        if self.shell_host is not None and self.shell_host.key == host.key and self.shell.is_connected():
            return self.shell

        if self.shell_host is not None:
            await self._disconnect_shell()

        self.log.info(f"Opening shell session to {host.user + '@' if host.user else ''}{host.host}:{host.port}")
        try:
            await with_timeout(
                self.shell.connect(host.host, host.port, host.user, host.credential),
                self.config.connect_timeout,
                f"Shell connection to {host.host}",
            )
        except TargetConnectionError:
            raise
        except ScenarioRunnerError as e:
            raise TargetConnectionError(str(e)) from e
        self.shell_host = host
        return self.shell

    async def open_sql(self, database: DatabaseTarget) -> SqlSession:
        """Connect the run's SQL session.

        Raises:
            TargetConnectionError: If the database cannot be reached.
        """
        session = self.factory.sql(database.type)
        target = database.database or database.host
        self.log.info(f"Connecting to {database.type} database {target}")
        try:
            await with_timeout(
                session.connect(
                    database.type,
                    database.host,
                    database.port,
                    database.username,
                    database.password,
                    database.database,
                ),
                self.config.connect_timeout,
                f"Database connection to {target}",
            )
        except TargetConnectionError:
            raise
        except ScenarioRunnerError as e:
            raise TargetConnectionError(str(e)) from e
        self.sql = session
        return session

    async def close(self) -> None:
        """Disconnect every connected session. Errors are logged, not raised."""
        if self.shell_host is not None:
            await self._disconnect_shell()
        if self.sql is not None:
            session, self.sql = self.sql, None
            try:
                await session.disconnect()
                self.log.info("Database session closed")
            except Exception as e:
                self.log.warn(f"Database disconnect failed: {e}")

    async def _disconnect_shell(self) -> None:
        host, self.shell_host = self.shell_host, None
        try:
            await self.shell.disconnect()
            self.log.info(f"Shell session to {host.host} closed")
        except Exception as e:
            self.log.warn(f"Shell disconnect from {host.host} failed: {e}")
