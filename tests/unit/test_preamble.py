"""Tests for the preamble runner."""

import asyncio

import pytest

from fakes import FakeFactory, FakeShell
from scenario_runner.config import HostCredentials
from scenario_runner.runner.outcomes import Phase, SkipReason, StepStatus
from scenario_runner.runner.preamble import PreambleRunner, PreambleState, PreambleTask
from scenario_runner.runner.sessions import RunSessions
from scenario_runner.runner.step_executors import StepContext
from scenario_runner.scenario.schema import ShellStep
from scenario_runner.scenario.variables import VariableResolver

SERVER = HostCredentials(host="radius.lab", user="root")


def make_runner(exec_logger, config, shell=None, cancel=None):
    factory = FakeFactory(shell=shell)
    sessions = RunSessions(factory, exec_logger, config)
    resolver = VariableResolver([])
    resolver.resolve_all()
    ctx = StepContext(logger=exec_logger, config=config)
    return PreambleRunner(ctx, sessions, resolver, cancel), factory


def task(name, command, expected=None, enabled=True, host=SERVER):
    return PreambleTask(ShellStep(name, command, enabled=enabled, expected_output_contains=expected), host)


@pytest.mark.asyncio
async def test_all_steps_succeed(exec_logger, config):
    runner, _ = make_runner(exec_logger, config)
    result = await runner.run([task("ok", "echo ok", "ok"), task("ready", "echo ready")])
    assert result.state == PreambleState.COMPLETED
    assert [o.status for o in result.outcomes] == [StepStatus.SUCCESS, StepStatus.SUCCESS]
    assert all(o.phase == Phase.PREAMBLE for o in result.outcomes)


@pytest.mark.asyncio
async def test_first_failure_skips_every_later_step(exec_logger, config):
    runner, factory = make_runner(exec_logger, config)
    result = await runner.run([
        task("first", "echo ok"),
        task("broken", "false-command"),
        task("after", "echo after"),
        task("disabled", "echo off", enabled=False),
    ])

    assert result.state == PreambleState.FAILED
    assert not result.connection_failed
    statuses = [o.status for o in result.outcomes]
    assert statuses == [StepStatus.SUCCESS, StepStatus.FAILURE, StepStatus.SKIPPED, StepStatus.SKIPPED]
    assert all(o.error == SkipReason.PREAMBLE_FAILURE for o in result.outcomes[2:])
    assert "echo after" not in factory.shell_session.executed


@pytest.mark.asyncio
async def test_disabled_step_is_skipped_before_failure(exec_logger, config):
    runner, _ = make_runner(exec_logger, config)
    result = await runner.run([task("off", "echo off", enabled=False), task("ok", "echo ok")])
    assert result.state == PreambleState.COMPLETED
    assert result.outcomes[0].error == SkipReason.DISABLED


@pytest.mark.asyncio
async def test_unreachable_host_sets_connection_failure(exec_logger, config):
    runner, _ = make_runner(exec_logger, config, shell=FakeShell(fail_hosts=("radius.lab",)))
    result = await runner.run([task("ok", "echo ok"), task("next", "echo next")])

    assert result.state == PreambleState.FAILED
    assert result.connection_failed
    assert [o.error for o in result.outcomes] == [SkipReason.CONNECTION_FAILURE] * 2


@pytest.mark.asyncio
async def test_cancel_aborts_before_next_step(exec_logger, config):
    cancel = asyncio.Event()
    cancel.set()
    runner, factory = make_runner(exec_logger, config, cancel=cancel)
    result = await runner.run([task("ok", "echo ok")])
    assert result.state == PreambleState.ABORTED
    assert factory.shell_session.executed == []
