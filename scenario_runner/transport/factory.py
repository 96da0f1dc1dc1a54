"""Default capability factory for local runs."""

from typing import Optional

import requests

from .http_client import RequestsHttpCaller
from .interfaces import HttpCaller, PacketTransport, ShellSession, SqlSession
from .local_shell import LocalShellSession
from .radclient import RadclientTransport
from .sqlite_session import SqliteSession


class LocalSessionFactory:
    """Builds the local shell, sqlite, radclient and requests capabilities.

    A new set of handles is created for every run; nothing is shared between
    executions except the optional ``requests.Session``.
    """

    def __init__(
        self,
        allow_any_host: bool = False,
        http_session: Optional[requests.Session] = None,
    ):
        self.allow_any_host = allow_any_host
        self.http_session = http_session

    def shell(self) -> ShellSession:
        return LocalShellSession(allow_any_host=self.allow_any_host)

    def sql(self, driver_type: str) -> SqlSession:
        return SqliteSession()

    def packets(self, shell: ShellSession) -> PacketTransport:
        return RadclientTransport(shell)

    def http(self) -> HttpCaller:
        return RequestsHttpCaller(self.http_session)
