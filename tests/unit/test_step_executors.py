"""Tests for the per-kind step executors."""

import pytest

from fakes import FakeHttp, FakePackets, FakeShell, FakeSql
from scenario_runner.errors import StepExecutionError
from scenario_runner.runner.outcomes import Phase, StepStatus
from scenario_runner.runner.step_executors import (
    StepContext,
    build_packet,
    execute_step,
    match_row,
    run_shell_command,
    run_sql_validation,
    status_matches,
)
from scenario_runner.scenario.schema import AttributePair, RadiusPacket, ShellStep, Step, ValidationStep
from scenario_runner.scenario.variables import VariableResolver
from scenario_runner.transport.interfaces import CommandResult, HttpResponse, RadiusTarget, ReplyPacket

CATALOGUE = {
    "pap": RadiusPacket(
        id="pap",
        name="PAP login",
        attributes=[AttributePair("User-Name", "${user}"), AttributePair("NAS-Port", "1")],
    ),
}


@pytest.fixture
def ctx(exec_logger, config, sleep):
    resolver = VariableResolver([])
    resolver.set("user", "bob")
    return StepContext(
        logger=exec_logger,
        config=config,
        sql=FakeSql({"SELECT 1": [{"n": 1}], "SELECT user": [{"name": "bob", "age": None}]}),
        packets=FakePackets(),
        http=FakeHttp(),
        radius_target=RadiusTarget("10.0.0.1", "testing123"),
        packet_catalogue=CATALOGUE,
        resolver=resolver,
        sleep=sleep,
        retry_delay=0,
    )


def test_build_packet_merges_catalogue_and_inline(ctx):
    step = Step(type="radius", name="login", packet_id="pap", attributes=[AttributePair("NAS-Port", "9")])
    packet = build_packet(step, ctx)
    assert packet.code == "Access-Request"
    assert packet.attributes == [AttributePair("User-Name", "bob"), AttributePair("NAS-Port", "9")]


def test_build_packet_unknown_id(ctx):
    with pytest.raises(StepExecutionError, match="Unknown packet 'nope'"):
        build_packet(Step(type="radius", packet_id="nope"), ctx)


@pytest.mark.asyncio
async def test_radius_step_matches_expected_reply(ctx):
    step = Step(
        type="radius", name="login", packet_id="pap",
        expected_code="Access-Accept", expected_attributes=[AttributePair("User-Name", "bob")],
    )
    outcome = await execute_step(step, ctx)
    assert outcome.status == StepStatus.SUCCESS
    assert outcome.output == "Access-Accept: User-Name = bob"
    levels = [entry.level.value for entry in ctx.logger.entries]
    assert levels == ["SENT", "RECV"]


@pytest.mark.asyncio
async def test_radius_step_reports_every_mismatch(ctx):
    ctx.packets = FakePackets(lambda packet: ReplyPacket("Access-Reject"))
    step = Step(
        type="radius", name="login", packet_id="pap",
        expected_code="Access-Accept", expected_attributes=[AttributePair("Class", "gold")],
    )
    outcome = await execute_step(step, ctx)
    assert outcome.status == StepStatus.FAILURE
    assert outcome.error == "expected code Access-Accept, got Access-Reject; Class: expected 'gold', got missing"


@pytest.mark.asyncio
async def test_radius_step_without_server_fails(ctx):
    ctx.radius_target = None
    outcome = await execute_step(Step(type="radius", packet_id="pap"), ctx)
    assert outcome.status == StepStatus.FAILURE
    assert outcome.error == "No RADIUS server configured for this target"


@pytest.mark.asyncio
async def test_sql_step_compares_first_row_as_string(ctx):
    ok = await execute_step(Step(type="sql", query="SELECT 1", expect_column="n", expect_value="1"), ctx)
    assert ok.status == StepStatus.SUCCESS

    bad = await execute_step(Step(type="sql", query="SELECT 1", expect_column="n", expect_value="2"), ctx)
    assert bad.status == StepStatus.FAILURE
    assert bad.error == "n: expected '2', got '1'"
    assert bad.output == '[{"n": 1}]'


def test_match_row_edge_cases():
    step = Step(type="sql", query="q", expect_column="age", expect_value="")
    assert match_row(step, [{"age": None}]) is None
    assert "no rows" in match_row(step, [])
    assert match_row(step, [{"other": 1}]) == "column 'age' not in result"
    assert match_row(Step(type="sql", query="q"), []) is None


@pytest.mark.asyncio
async def test_sql_driver_error_becomes_failure(ctx):
    ctx.sql = FakeSql({"SELECT broken": StepExecutionError("syntax error")})
    outcome = await execute_step(Step(type="sql", query="SELECT broken"), ctx)
    assert outcome.status == StepStatus.FAILURE
    assert outcome.error == "syntax error"


@pytest.mark.asyncio
async def test_delay_uses_injected_sleep(ctx):
    slept = []

    async def record(seconds):
        slept.append(seconds)

    ctx.sleep = record
    outcome = await execute_step(Step(type="delay", duration_ms=250), ctx)
    assert outcome.status == StepStatus.SUCCESS
    assert slept == [0.25]


@pytest.mark.asyncio
async def test_delay_with_invalid_duration_fails(ctx):
    outcome = await execute_step(Step(type="delay", duration_ms="soon"), ctx)
    assert outcome.status == StepStatus.FAILURE


@pytest.mark.parametrize("expected,status,matches", [
    (None, 204, True),
    (None, 404, False),
    (201, 201, True),
    ([200, 202], 202, True),
    ([200, 202], 500, False),
])
def test_status_matches(expected, status, matches):
    assert status_matches(Step(type="api_call", url="u", expected_status=expected), status) is matches


@pytest.mark.asyncio
async def test_api_call_retries_then_checks_body(ctx):
    ctx.http = FakeHttp(HttpResponse(status=200, body='{"user": "bob"}'), errors=1)
    step = Step(type="api_call", url="http://api/users", retries=1, expected_body_contains="bob")
    outcome = await execute_step(step, ctx)
    assert outcome.status == StepStatus.SUCCESS
    assert len(ctx.http.requests) == 2


@pytest.mark.asyncio
async def test_api_call_without_retries_fails_on_error(ctx):
    ctx.http = FakeHttp(errors=1)
    outcome = await execute_step(Step(type="api_call", url="http://api"), ctx)
    assert outcome.status == StepStatus.FAILURE
    assert outcome.error == "connection reset"
    assert len(ctx.http.requests) == 1


@pytest.mark.asyncio
async def test_log_message_step(ctx):
    outcome = await execute_step(Step(type="log_message", message="hello"), ctx)
    assert outcome.status == StepStatus.SUCCESS
    assert ctx.logger.entries[-1].message == "LOG: hello"


@pytest.mark.asyncio
async def test_shell_command_requires_exit_zero_and_substring(ctx):
    shell = FakeShell({"systemctl is-active radiusd": CommandResult(stdout="inactive", exit_code=3)})
    await shell.connect("localhost", 22, "", None)

    ok = await run_shell_command(ShellStep("echo", "echo ready", expected_output_contains="ready"), shell, ctx, Phase.PREAMBLE)
    assert ok.status == StepStatus.SUCCESS
    assert ok.phase == Phase.PREAMBLE

    missing = await run_shell_command(ShellStep("echo", "echo ready", expected_output_contains="done"), shell, ctx, Phase.PREAMBLE)
    assert missing.error == "output does not contain 'done'"

    exit_code = await run_shell_command(ShellStep("svc", "systemctl is-active radiusd"), shell, ctx, Phase.PREAMBLE)
    assert exit_code.error == "exit code 3"


@pytest.mark.asyncio
async def test_sql_validation_searches_rendered_rows(ctx):
    found = await run_sql_validation(ValidationStep("user", "SELECT user", expected_output_contains='"bob"'), ctx)
    assert found.status == StepStatus.SUCCESS
    assert found.phase == Phase.VALIDATION

    absent = await run_sql_validation(ValidationStep("user", "SELECT user", expected_output_contains="alice"), ctx)
    assert absent.status == StepStatus.FAILURE


@pytest.mark.asyncio
async def test_unexpected_executor_error_becomes_failure(ctx):
    def broken_reply(packet):
        raise ValueError("garbled reply")

    ctx.packets = FakePackets(broken_reply)
    outcome = await execute_step(Step(type="radius", name="login", packet_id="pap"), ctx)
    assert outcome.status == StepStatus.FAILURE
    assert outcome.error == "ValueError: garbled reply"
