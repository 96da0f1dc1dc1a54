"""In-memory execution store.

Holds the append-only log stream, the execution records and the single
result of every execution. Must be used from the event loop thread.
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Optional

from ..errors import ScenarioRunnerError
from ..runner.outcomes import ExecutionRecord, ExecutionStatus, LogEntry, TestResult


class ResultAlreadyWrittenError(ScenarioRunnerError):
    """Raised when a second result is written for the same execution."""


class ExecutionStore:
    """Log sink, result sink and execution record store."""

    def __init__(self):
        self._logs: dict[str, list[LogEntry]] = defaultdict(list)
        self._records: dict[str, ExecutionRecord] = {}
        self._results: dict[str, TestResult] = {}
        self._result_by_execution: dict[str, str] = {}
        self._waiters: dict[str, set[asyncio.Event]] = defaultdict(set)

    # -- logs ---------------------------------------------------------------

    def append_log(self, entry: LogEntry) -> None:
        self._logs[entry.execution_id].append(entry)
        self._wake(entry.execution_id)

    def get_logs(self, execution_id: str) -> list[LogEntry]:
        """Entries of ``execution_id`` in append (timestamp) order."""
        return list(self._logs.get(execution_id, []))

    async def stream_logs(self, execution_id: str) -> AsyncIterator[LogEntry]:
        """Yield entries as they are appended until the execution ends."""
        index = 0
        while True:
            entries = self._logs.get(execution_id, [])
            while index < len(entries):
                yield entries[index]
                index += 1

            record = self._records.get(execution_id)
            if record is None or record.is_terminal:
                return

            event = asyncio.Event()
            self._waiters[execution_id].add(event)
            try:
                await event.wait()
            finally:
                self._waiters[execution_id].discard(event)

    # -- execution records --------------------------------------------------

    def create_execution(self, record: ExecutionRecord) -> None:
        if record.id in self._records:
            raise ScenarioRunnerError(f"Execution '{record.id}' already exists")
        self._records[record.id] = record

    def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    def list_executions(self) -> list[ExecutionRecord]:
        return sorted(self._records.values(), key=lambda r: r.start_time, reverse=True)

    def finish_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        end_time: datetime,
        result_id: Optional[str] = None,
    ) -> ExecutionRecord:
        """Move a record to its terminal state.

        Raises:
            KeyError: If the execution is unknown.
            ScenarioRunnerError: If the record is already terminal.
        """
        record = self._records[execution_id]
        if record.is_terminal:
            raise ScenarioRunnerError(f"Execution '{execution_id}' has already finished")
        record.status = status
        record.end_time = end_time
        record.result_id = result_id
        self._wake(execution_id)
        return record

    # -- results ------------------------------------------------------------

    def write_result(self, result: TestResult) -> None:
        """Store the result of an execution. Each execution gets exactly one.

        Raises:
            ResultAlreadyWrittenError: If a result exists for the execution.
        """
        execution_id = result.execution_id
        if execution_id in self._result_by_execution:
            raise ResultAlreadyWrittenError(
                f"Result for execution '{execution_id}' was already written"
            )
        self._results[result.id] = result
        self._result_by_execution[execution_id] = result.id

    def get_result(self, result_id: str) -> Optional[TestResult]:
        return self._results.get(result_id)

    def result_for_execution(self, execution_id: str) -> Optional[TestResult]:
        result_id = self._result_by_execution.get(execution_id)
        return self._results.get(result_id) if result_id else None

    def _wake(self, execution_id: str) -> None:
        for event in self._waiters.get(execution_id, ()):
            event.set()
