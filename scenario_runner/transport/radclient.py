"""PacketTransport that drives the FreeRADIUS ``radclient`` tool.

Attributes are piped into ``radclient -x`` over a ShellSession, so packets go
out from whichever host the session is connected to. The verbose output is
parsed back into a ReplyPacket::

    Sent Access-Request Id 42 from 0.0.0.0:40321 to 127.0.0.1:1812 length 44
    \tUser-Name = "bob"
    Received Access-Accept Id 42 from 127.0.0.1:1812 to 0.0.0.0:40321 length 32
    \tReply-Message = "Hello, bob"
"""

import logging
import re
import shlex
from typing import Optional

from ..errors import StepExecutionError, StepTimeoutError
from ..scenario.schema import AttributePair, RadiusPacket
from .interfaces import ReplyPacket, RadiusTarget, ShellSession

logger = logging.getLogger(__name__)

# packet code -> radclient command
RADCLIENT_COMMANDS = {
    "access-request": "auth",
    "accounting-request": "acct",
    "status-server": "status",
    "coa-request": "coa",
    "disconnect-request": "disconnect",
}

RECEIVED_PATTERN = re.compile(r"^\s*(?:\(\d+\)\s*)?Received\s+(\S+)\s+Id\s+\d+")
ATTRIBUTE_PATTERN = re.compile(r"^\s+(?:\(\d+\)\s*)?([A-Za-z0-9][\w:.-]*)\s*=\s*(.*?)\s*$")
NO_REPLY_PATTERN = re.compile(r"No reply from server", re.IGNORECASE)


def format_attributes(attributes: list[AttributePair]) -> str:
    """Render attributes in radclient input syntax (``Name = "value", ...``)."""
    rendered = []
    for pair in attributes:
        value = pair.value
        if not re.fullmatch(r"-?\d+", value):
            value = '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        rendered.append(f"{pair.name} = {value}")
    return ", ".join(rendered)


def build_command(packet: RadiusPacket, target: RadiusTarget, timeout_ms: int) -> str:
    """Build the radclient shell pipeline for ``packet``.

    Raises:
        StepExecutionError: If the packet code has no radclient command.
    """
    command = RADCLIENT_COMMANDS.get(packet.code.lower())
    if command is None:
        raise StepExecutionError(f"Unsupported RADIUS packet code '{packet.code}'")

    timeout_s = max(1, round(timeout_ms / 1000))
    server = f"{target.host}:{target.port_for(packet.code)}"
    return (
        f"echo {shlex.quote(format_attributes(packet.attributes))} | "
        f"radclient -x -r 1 -t {timeout_s} {shlex.quote(server)} {command} "
        f"{shlex.quote(target.secret)}"
    )


def parse_reply(output: str) -> Optional[ReplyPacket]:
    """Parse the first received packet out of ``radclient -x`` output."""
    reply: Optional[ReplyPacket] = None
    for line in output.splitlines():
        match = RECEIVED_PATTERN.match(line)
        if match:
            if reply is not None:
                break
            reply = ReplyPacket(code=match.group(1))
            continue
        if reply is None:
            continue
        attribute = ATTRIBUTE_PATTERN.match(line)
        if attribute:
            value = attribute.group(2)
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            reply.attributes.append(AttributePair(name=attribute.group(1), value=value))
        elif line.strip():
            break
    return reply


class RadclientTransport:
    """PacketTransport that shells out to ``radclient``."""

    def __init__(self, shell: ShellSession):
        self.shell = shell

    async def send(self, packet: RadiusPacket, target: RadiusTarget, timeout_ms: int) -> ReplyPacket:
        """Send ``packet`` and wait for the reply.

        Raises:
            StepTimeoutError: If the server does not answer.
            StepExecutionError: If radclient fails or its output has no reply.
        """
        command = build_command(packet, target, timeout_ms)
        logger.debug("radclient: %s", command)
        # radclient enforces the packet timeout; give the shell some slack.
        result = await self.shell.execute(command, timeout_ms / 1000.0 + 5)

        reply = parse_reply(result.stdout)
        if reply is not None:
            return reply
        if NO_REPLY_PATTERN.search(result.output):
            raise StepTimeoutError(f"{packet.code} to {target.host}", timeout_ms / 1000.0)
        raise StepExecutionError(
            f"radclient exited with code {result.exit_code}: {result.output or 'no output'}"
        )
