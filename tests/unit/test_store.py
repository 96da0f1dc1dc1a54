"""Tests for the in-memory execution store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from scenario_runner.errors import ScenarioRunnerError
from scenario_runner.runner.logger import ExecutionLogger
from scenario_runner.runner.outcomes import ExecutionRecord, ExecutionStatus, ResultStatus, TestResult
from scenario_runner.storage.memory import ExecutionStore, ResultAlreadyWrittenError

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_record(execution_id="exec-1", start=START):
    return ExecutionRecord(
        id=execution_id,
        scenario_id="sc-1",
        scenario_name="Auth",
        target_id="lab",
        target_name="Lab",
        start_time=start,
    )


def make_result(result_id="res-1", execution_id="exec-1"):
    return TestResult(
        id=result_id,
        scenario_name="Auth",
        status=ResultStatus.PASS,
        timestamp=START,
        latency_ms=12,
        target="Lab",
        details={"executionId": execution_id},
    )


def test_result_is_written_once_per_execution():
    store = ExecutionStore()
    store.write_result(make_result())
    with pytest.raises(ResultAlreadyWrittenError):
        store.write_result(make_result(result_id="res-2"))
    assert store.result_for_execution("exec-1").id == "res-1"
    assert store.get_result("res-2") is None


def test_finish_execution_is_terminal():
    store = ExecutionStore()
    store.create_execution(make_record())
    record = store.finish_execution("exec-1", ExecutionStatus.COMPLETED, START, "res-1")
    assert record.is_terminal
    assert record.result_id == "res-1"
    with pytest.raises(ScenarioRunnerError):
        store.finish_execution("exec-1", ExecutionStatus.FAILED, START)


def test_duplicate_execution_is_rejected():
    store = ExecutionStore()
    store.create_execution(make_record())
    with pytest.raises(ScenarioRunnerError):
        store.create_execution(make_record())


def test_list_executions_newest_first():
    store = ExecutionStore()
    store.create_execution(make_record("old", START))
    store.create_execution(make_record("new", START + timedelta(minutes=5)))
    assert [r.id for r in store.list_executions()] == ["new", "old"]


@pytest.mark.asyncio
async def test_stream_logs_follows_until_terminal():
    store = ExecutionStore()
    store.create_execution(make_record())
    log = ExecutionLogger("exec-1", sink=store)
    log.info("before")

    received = []

    async def consume():
        async for entry in store.stream_logs("exec-1"):
            received.append(entry.message)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    log.info("during")
    await asyncio.sleep(0)
    log.info("last")
    store.finish_execution("exec-1", ExecutionStatus.COMPLETED, START)
    await asyncio.wait_for(consumer, 1)

    assert received == ["before", "during", "last"]


@pytest.mark.asyncio
async def test_stream_logs_of_unknown_execution_ends_immediately():
    store = ExecutionStore()
    entries = [entry async for entry in store.stream_logs("missing")]
    assert entries == []
