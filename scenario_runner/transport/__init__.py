"""Transport module - capability interfaces and their local implementations."""

from .factory import LocalSessionFactory
from .http_client import RequestsHttpCaller
from .interfaces import (
    CommandResult,
    HttpCaller,
    HttpResponse,
    PacketTransport,
    RadiusTarget,
    ReplyPacket,
    SessionFactory,
    ShellSession,
    SqlSession,
)
from .local_shell import LocalShellSession
from .radclient import RadclientTransport
from .retry_policy import (
    RetryPolicy,
    call_with_retry,
    no_retry_policy,
    step_retry_policy,
)
from .sqlite_session import SqliteSession

__all__ = [
    "CommandResult",
    "HttpCaller",
    "HttpResponse",
    "LocalSessionFactory",
    "LocalShellSession",
    "PacketTransport",
    "RadclientTransport",
    "RadiusTarget",
    "ReplyPacket",
    "RequestsHttpCaller",
    "RetryPolicy",
    "SessionFactory",
    "ShellSession",
    "SqlSession",
    "SqliteSession",
    "call_with_retry",
    "no_retry_policy",
    "step_retry_policy",
]
