"""In-memory fakes for the capability interfaces."""

from typing import Callable, Optional, Union

from scenario_runner.errors import StepExecutionError, TargetConnectionError
from scenario_runner.scenario.schema import AttributePair, RadiusPacket
from scenario_runner.transport.interfaces import (
    CommandResult,
    HttpResponse,
    RadiusTarget,
    ReplyPacket,
)


class FakeShell:
    """Shell whose ``echo`` commands print their argument; other commands
    answer from ``responses`` (exit 127 when unknown)."""

    def __init__(self, responses: Optional[dict[str, CommandResult]] = None, fail_hosts: tuple = ()):
        self.responses = dict(responses or {})
        self.fail_hosts = set(fail_hosts)
        self.connects: list[str] = []
        self.disconnects = 0
        self.executed: list[str] = []
        self.connected_host: Optional[str] = None

    async def connect(self, host, port, user, credential):
        self.connects.append(host)
        if host in self.fail_hosts:
            raise TargetConnectionError(f"Authentication failed for {host}")
        self.connected_host = host

    async def execute(self, command, timeout):
        if self.connected_host is None:
            raise StepExecutionError("not connected")
        self.executed.append(command)
        if command in self.responses:
            return self.responses[command]
        if command.startswith("echo "):
            return CommandResult(stdout=command[5:].strip("'\""), exit_code=0)
        return CommandResult(stderr=f"{command}: command not found", exit_code=127)

    async def disconnect(self):
        self.disconnects += 1
        self.connected_host = None

    def is_connected(self):
        return self.connected_host is not None


class FakeSql:
    def __init__(
        self,
        rows: Optional[dict[str, Union[list[dict], Exception]]] = None,
        fail_connect: bool = False,
    ):
        self.rows = dict(rows or {})
        self.fail_connect = fail_connect
        self.connects = 0
        self.disconnects = 0
        self.queries: list[str] = []

    async def connect(self, driver_type, host, port, user, credential, database):
        self.connects += 1
        if self.fail_connect:
            raise TargetConnectionError(f"Cannot reach {driver_type} database {database}")

    async def query(self, sql):
        self.queries.append(sql)
        result = self.rows.get(sql, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def disconnect(self):
        self.disconnects += 1


class FakePackets:
    """Answers every packet with Access-Accept echoing User-Name, unless a
    custom ``reply`` function is given."""

    def __init__(self, reply: Optional[Callable[[RadiusPacket], ReplyPacket]] = None):
        self.reply = reply
        self.sent: list[tuple[RadiusPacket, RadiusTarget]] = []

    async def send(self, packet, target, timeout_ms):
        self.sent.append((packet, target))
        if self.reply is not None:
            return self.reply(packet)
        user = [pair.value for pair in packet.attributes if pair.name == "User-Name"]
        attributes = [AttributePair("User-Name", user[0])] if user else []
        return ReplyPacket(code="Access-Accept", attributes=attributes)


class FakeHttp:
    def __init__(self, response: Optional[HttpResponse] = None, errors: int = 0):
        self.response = response or HttpResponse(status=200, body='{"ok": true}')
        self.errors = errors
        self.requests: list[tuple] = []

    async def request(self, method, url, headers, body, timeout_ms):
        self.requests.append((method, url, headers, body))
        if self.errors:
            self.errors -= 1
            raise StepExecutionError("connection reset")
        return self.response


class FakeFactory:
    """SessionFactory handing out the same fakes for every call."""

    def __init__(self, shell=None, sql=None, packets=None, http=None):
        self.shell_session = shell or FakeShell()
        self.sql_session = sql or FakeSql()
        self.packet_transport = packets or FakePackets()
        self.http_caller = http or FakeHttp()
        self.sql_types: list[str] = []

    def shell(self):
        return self.shell_session

    def sql(self, driver_type):
        self.sql_types.append(driver_type)
        return self.sql_session

    def packets(self, shell):
        return self.packet_transport

    def http(self):
        return self.http_caller
