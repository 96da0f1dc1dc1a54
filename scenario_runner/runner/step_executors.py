"""Step executors.

One async executor per step kind, each mapping a resolved step plus the run's
StepContext to a StepOutcome. Executors never decide halting; that belongs to
the phase that invoked them.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from ..config import ExecutionConfig
from ..errors import ScenarioRunnerError, StepExecutionError, StepTimeoutError, ValidationMismatchError
from ..scenario.schema import AttributePair, RadiusPacket, ShellStep, Step, StepType, ValidationStep
from ..scenario.variables import VariableResolver
from ..transport.interfaces import (
    CommandResult,
    HttpCaller,
    PacketTransport,
    RadiusTarget,
    ReplyPacket,
    ShellSession,
    SqlSession,
)
from ..transport.retry_policy import call_with_retry, step_retry_policy
from .logger import ExecutionLogger
from .outcomes import Phase, StepOutcome, StepStatus

logger = logging.getLogger(__name__)

MAX_OUTPUT_ROWS = 20


@dataclass
class StepContext:
    """Live handles and settings threaded through every executor call."""
    logger: ExecutionLogger
    config: ExecutionConfig = field(default_factory=ExecutionConfig)
    shell: Optional[ShellSession] = None
    sql: Optional[SqlSession] = None
    packets: Optional[PacketTransport] = None
    http: Optional[HttpCaller] = None
    radius_target: Optional[RadiusTarget] = None
    packet_catalogue: dict[str, RadiusPacket] = field(default_factory=dict)
    resolver: Optional[VariableResolver] = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    retry_delay: float = 1.0


async def with_timeout(awaitable: Awaitable, timeout: float, operation: str):
    """Await ``awaitable``, turning expiry into StepTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise StepTimeoutError(operation, timeout) from e


def describe_command(step: Step) -> Optional[str]:
    """Human-readable form of what a step sends."""
    if step.type == StepType.RADIUS.value:
        return f"RADIUS {step.packet_id or 'inline packet'}"
    if step.type == StepType.SQL.value:
        return step.query
    if step.type == StepType.API_CALL.value:
        return f"{step.method} {step.url}"
    if step.type == StepType.DELAY.value:
        return f"delay {step.duration_ms}ms"
    if step.type == StepType.LOG_MESSAGE.value:
        return step.message
    return None


def _outcome(step: Step, status: StepStatus, **kwargs) -> StepOutcome:
    return StepOutcome(
        name=step.name,
        status=status,
        kind=step.type,
        phase=Phase.SCENARIO,
        command=describe_command(step),
        **kwargs,
    )


def _render_rows(rows: list[dict]) -> str:
    return json.dumps(rows[:MAX_OUTPUT_ROWS], default=str, ensure_ascii=False)


def _render_attributes(attributes: list[AttributePair]) -> str:
    return ", ".join(f"{pair.name} = {pair.value}" for pair in attributes)


# ---------------------------------------------------------------------------
# Scenario step executors
# ---------------------------------------------------------------------------

def build_packet(step: Step, ctx: StepContext) -> RadiusPacket:
    """Merge the catalogue packet (if any) with the step's inline attributes.

    Inline attributes override catalogue attributes of the same name.

    Raises:
        StepExecutionError: If ``packet_id`` is not in the catalogue.
    """
    code = "Access-Request"
    attributes: list[AttributePair] = []

    if step.packet_id:
        template = ctx.packet_catalogue.get(step.packet_id)
        if template is None:
            raise StepExecutionError(f"Unknown packet '{step.packet_id}'")
        code = template.code
        for pair in template.attributes:
            value = pair.value
            if ctx.resolver is not None:
                value, missing = ctx.resolver.substitute(value)
                ctx.logger.unresolved(f"packet '{template.id}'", missing)
            attributes.append(AttributePair(name=pair.name, value=value))

    overrides = {pair.name for pair in step.attributes}
    attributes = [pair for pair in attributes if pair.name not in overrides]
    attributes.extend(step.attributes)
    return RadiusPacket(id=step.packet_id or step.name, name=step.name, code=code, attributes=attributes)


def match_reply(step: Step, reply: ReplyPacket) -> list[str]:
    """Return one message per unmet expectation (empty when the reply matches)."""
    mismatches = []
    if step.expected_code and reply.code != step.expected_code:
        mismatches.append(f"expected code {step.expected_code}, got {reply.code}")
    for expected in step.expected_attributes:
        actual = reply.values(expected.name)
        if expected.value not in actual:
            got = ", ".join(actual) if actual else "missing"
            mismatches.append(f"{expected.name}: expected '{expected.value}', got {got}")
    return mismatches


async def execute_radius(step: Step, ctx: StepContext) -> StepOutcome:
    if ctx.packets is None or ctx.radius_target is None:
        return _outcome(step, StepStatus.FAILURE, error="No RADIUS server configured for this target")

    packet = build_packet(step, ctx)
    timeout_ms = step.timeout or int(ctx.config.step_timeout * 1000)
    target = ctx.radius_target

    ctx.logger.sent(
        f"{packet.code} to {target.host}:{target.port_for(packet.code)}",
        {"code": packet.code, "attributes": [pair.__dict__ for pair in packet.attributes]},
    )
    reply = await call_with_retry(
        lambda: with_timeout(
            ctx.packets.send(packet, target, timeout_ms),
            timeout_ms / 1000.0 + ctx.config.shell_timeout,
            f"{packet.code} to {target.host}",
        ),
        step_retry_policy(step.retries, ctx.retry_delay),
        retry_on=(StepExecutionError,),
        description=f"RADIUS step {step.name}",
    )
    ctx.logger.recv(
        f"{reply.code} from {target.host}",
        {"code": reply.code, "attributes": [pair.__dict__ for pair in reply.attributes]},
    )

    output = f"{reply.code}: {_render_attributes(reply.attributes)}" if reply.attributes else reply.code
    mismatches = match_reply(step, reply)
    if mismatches:
        raise ValidationMismatchError("; ".join(mismatches), output=output)
    return _outcome(step, StepStatus.SUCCESS, output=output)


def match_row(step: Step, rows: list[dict]) -> Optional[str]:
    """Compare the first row's expected column as strings. None means match."""
    if step.expect_column is None or step.expect_value is None:
        return None
    if not rows:
        return f"query returned no rows; expected {step.expect_column} = '{step.expect_value}'"
    first = rows[0]
    if step.expect_column not in first:
        return f"column '{step.expect_column}' not in result"
    actual = first[step.expect_column]
    actual = "" if actual is None else str(actual)
    if actual != str(step.expect_value):
        return f"{step.expect_column}: expected '{step.expect_value}', got '{actual}'"
    return None


async def execute_sql(step: Step, ctx: StepContext) -> StepOutcome:
    if ctx.sql is None:
        return _outcome(step, StepStatus.FAILURE, error="No database connection for this target")

    timeout = (step.timeout / 1000.0) if step.timeout else ctx.config.step_timeout
    ctx.logger.sent(f"SQL: {step.query}")
    rows = await with_timeout(ctx.sql.query(step.query), timeout, "SQL query")
    output = _render_rows(rows)
    ctx.logger.recv(f"{len(rows)} row(s)", rows[:MAX_OUTPUT_ROWS])

    mismatch = match_row(step, rows)
    if mismatch:
        raise ValidationMismatchError(mismatch, output=output)
    return _outcome(step, StepStatus.SUCCESS, output=output)


async def execute_delay(step: Step, ctx: StepContext) -> StepOutcome:
    try:
        duration_ms = int(step.duration_ms)
    except (TypeError, ValueError):
        return _outcome(step, StepStatus.FAILURE, error=f"Invalid delay duration '{step.duration_ms}'")
    if duration_ms < 0:
        return _outcome(step, StepStatus.FAILURE, error=f"Invalid delay duration '{duration_ms}'")

    ctx.logger.info(f"Waiting {duration_ms}ms")
    await ctx.sleep(duration_ms / 1000.0)
    return _outcome(step, StepStatus.SUCCESS)


def status_matches(step: Step, status: int) -> bool:
    expected = step.expected_status
    if expected is None:
        return 200 <= status < 400
    if isinstance(expected, (list, tuple, set)):
        return status in {int(code) for code in expected}
    return status == int(expected)


async def execute_api_call(step: Step, ctx: StepContext) -> StepOutcome:
    if ctx.http is None:
        return _outcome(step, StepStatus.FAILURE, error="No HTTP caller available")

    timeout_ms = step.timeout or int(ctx.config.step_timeout * 1000)
    headers = {header.name: header.value for header in step.headers}

    ctx.logger.sent(f"{step.method} {step.url}", {"headers": headers, "body": step.request_body})
    response = await call_with_retry(
        lambda: with_timeout(
            ctx.http.request(step.method, step.url, headers, step.request_body, timeout_ms),
            timeout_ms / 1000.0 + 1,
            f"{step.method} {step.url}",
        ),
        step_retry_policy(step.retries, ctx.retry_delay),
        retry_on=(StepExecutionError,),
        description=f"API step {step.name}",
    )
    ctx.logger.recv(f"HTTP {response.status}", {"headers": response.headers, "body": response.body})

    errors = []
    if not status_matches(step, response.status):
        expected = step.expected_status if step.expected_status is not None else "2xx/3xx"
        errors.append(f"unexpected status {response.status} (expected {expected})")
    if step.expected_body_contains and step.expected_body_contains not in response.body:
        errors.append(f"response body does not contain '{step.expected_body_contains}'")

    output = f"HTTP {response.status}: {response.body}"
    if errors:
        raise ValidationMismatchError("; ".join(errors), output=output)
    return _outcome(step, StepStatus.SUCCESS, output=output)


async def execute_log_message(step: Step, ctx: StepContext) -> StepOutcome:
    ctx.logger.info(f"LOG: {step.message or ''}")
    return _outcome(step, StepStatus.SUCCESS)


STEP_EXECUTORS: dict[str, Callable[[Step, StepContext], Awaitable[StepOutcome]]] = {
    StepType.RADIUS.value: execute_radius,
    StepType.SQL.value: execute_sql,
    StepType.DELAY.value: execute_delay,
    StepType.API_CALL.value: execute_api_call,
    StepType.LOG_MESSAGE.value: execute_log_message,
}


async def execute_step(step: Step, ctx: StepContext) -> StepOutcome:
    """Dispatch a resolved, non-marker step to its executor.

    Any exception an executor raises becomes a failure outcome, so the
    caller's halting rules still apply.
    """
    executor = STEP_EXECUTORS.get(step.type)
    if executor is None:
        return _outcome(step, StepStatus.FAILURE, error=f"No executor for step type '{step.type}'")
    try:
        return await executor(step, ctx)
    except ValidationMismatchError as e:
        return _outcome(step, StepStatus.FAILURE, output=e.output, error=str(e))
    except ScenarioRunnerError as e:
        return _outcome(step, StepStatus.FAILURE, error=str(e))
    except Exception as e:
        logger.exception("Unexpected error in %s step %s", step.type, step.name)
        return _outcome(step, StepStatus.FAILURE, error=f"{type(e).__name__}: {e}")


# ---------------------------------------------------------------------------
# Preamble and validation-phase executors
# ---------------------------------------------------------------------------

async def run_shell_command(
    step: Union[ShellStep, ValidationStep],
    shell: ShellSession,
    ctx: StepContext,
    phase: Phase,
) -> StepOutcome:
    """Run a shell step. Success is exit 0 plus the expected substring."""
    ctx.logger.ssh_cmd(step.command)
    try:
        result: CommandResult = await with_timeout(
            shell.execute(step.command, ctx.config.shell_timeout),
            ctx.config.shell_timeout + 1,
            f"Command '{step.command}'",
        )
    except ScenarioRunnerError as e:
        ctx.logger.ssh_fail(str(e))
        return StepOutcome(
            name=step.name, status=StepStatus.FAILURE, kind="ssh", phase=phase,
            command=step.command, error=str(e),
        )

    if result.output:
        ctx.logger.ssh_out(result.output, {"exitCode": result.exit_code})

    error = None
    if result.exit_code != 0:
        error = f"exit code {result.exit_code}"
    elif not result.contains(step.expected_output_contains):
        error = f"output does not contain '{step.expected_output_contains}'"

    if error:
        ctx.logger.ssh_fail(f"{step.name}: {error}")
        return StepOutcome(
            name=step.name, status=StepStatus.FAILURE, kind="ssh", phase=phase,
            command=step.command, output=result.output, error=error,
        )
    return StepOutcome(
        name=step.name, status=StepStatus.SUCCESS, kind="ssh", phase=phase,
        command=step.command, output=result.output,
    )


async def run_sql_validation(step: ValidationStep, ctx: StepContext) -> StepOutcome:
    """Run a validation query. Success is no error plus the expected substring
    in the JSON rendering of the rows."""
    def failure(error: str, output: Optional[str] = None) -> StepOutcome:
        return StepOutcome(
            name=step.name, status=StepStatus.FAILURE, kind="sql", phase=Phase.VALIDATION,
            command=step.command, output=output, error=error,
        )

    if ctx.sql is None:
        return failure("No database connection for this target")

    ctx.logger.sent(f"SQL: {step.command}")
    try:
        rows = await with_timeout(ctx.sql.query(step.command), ctx.config.step_timeout, "SQL query")
    except ScenarioRunnerError as e:
        return failure(str(e))

    rendered = json.dumps(rows, default=str, ensure_ascii=False)
    ctx.logger.recv(f"{len(rows)} row(s)", rows[:MAX_OUTPUT_ROWS])
    if step.expected_output_contains and step.expected_output_contains not in rendered:
        return failure(f"result does not contain '{step.expected_output_contains}'", _render_rows(rows))

    return StepOutcome(
        name=step.name, status=StepStatus.SUCCESS, kind="sql", phase=Phase.VALIDATION,
        command=step.command, output=_render_rows(rows),
    )
