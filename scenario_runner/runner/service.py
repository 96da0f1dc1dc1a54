"""Execution service - the entry point collaborators use to start runs.

``start_execution`` returns an execution id immediately; the run proceeds as
an asyncio task. Logs are read back from the store while it runs, and the
single result is written when it ends.
"""

import asyncio
import logging
import random
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ..config import ExecutionConfig, ExecutionTarget
from ..errors import ScenarioRunnerError
from ..scenario.schema import RadiusPacket
from ..scenario.validator import CompiledScenario
from ..storage.memory import ExecutionStore
from ..transport.interfaces import SessionFactory
from .logger import ExecutionLogger, utc_now
from .orchestrator import RunReport, ScenarioOrchestrator
from .outcomes import ExecutionRecord, ExecutionStatus, OverallStatus, ResultStatus, TestResult

logger = logging.getLogger(__name__)


class ExecutionService:
    """Starts, tracks and aborts scenario executions."""

    def __init__(
        self,
        factory: SessionFactory,
        scenarios: Optional[dict[str, CompiledScenario]] = None,
        targets: Optional[dict[str, ExecutionTarget]] = None,
        store: Optional[ExecutionStore] = None,
        config: Optional[ExecutionConfig] = None,
        packets: Optional[dict[str, RadiusPacket]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        keep_reports: int = 64,
    ):
        """Initialize the service.

        Args:
            keep_reports: How many finished reports ``wait`` can still return.
                Older executions are only available through the store.
        """
        self.factory = factory
        self.scenarios = dict(scenarios or {})
        self.targets = dict(targets or {})
        self.store = store or ExecutionStore()
        self.config = config or ExecutionConfig()
        self.packets = packets or {}
        self.rng = rng
        self.sleep = sleep
        self.clock = clock
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancels: dict[str, asyncio.Event] = {}
        self._reports: OrderedDict[str, RunReport] = OrderedDict()
        self.keep_reports = keep_reports

    def register_scenario(self, compiled: CompiledScenario) -> None:
        self.scenarios[compiled.scenario.id] = compiled

    def register_target(self, target: ExecutionTarget) -> None:
        self.targets[target.id] = target

    def start_execution(self, scenario_id: str, target_id: str) -> str:
        """Start a run in the background. Must be called from a running loop.

        Returns:
            The new execution id.

        Raises:
            ScenarioRunnerError: If the scenario or target is unknown.
        """
        compiled = self.scenarios.get(scenario_id)
        if compiled is None:
            raise ScenarioRunnerError(f"Unknown scenario '{scenario_id}'")
        target = self.targets.get(target_id)
        if target is None:
            raise ScenarioRunnerError(f"Unknown target '{target_id}'")

        execution_id = str(uuid.uuid4())
        record = ExecutionRecord(
            id=execution_id,
            scenario_id=compiled.scenario.id,
            scenario_name=compiled.scenario.name,
            target_id=target.id,
            target_name=target.name,
            start_time=self.clock(),
        )
        self.store.create_execution(record)

        cancel = asyncio.Event()
        self._cancels[execution_id] = cancel
        self._tasks[execution_id] = asyncio.create_task(
            self._run(compiled, target, execution_id, cancel),
            name=f"execution-{execution_id}",
        )
        logger.info("Started execution %s (%s on %s)", execution_id, compiled.name, target.id)
        return execution_id

    def abort(self, execution_id: str) -> bool:
        """Request cancellation; observed at the next step boundary.

        Returns:
            True if the execution was still running.
        """
        task = self._tasks.get(execution_id)
        if task is None or task.done():
            return False
        self._cancels[execution_id].set()
        logger.info("Abort requested for execution %s", execution_id)
        return True

    def running(self) -> list[str]:
        """Ids of the executions that have not finished yet."""
        return list(self._tasks)

    async def wait(self, execution_id: str) -> RunReport:
        """Wait for an execution to finish and return its report.

        Raises:
            KeyError: If the execution is unknown or its report was evicted.
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            return await task
        return self._reports[execution_id]

    async def _run(
        self,
        compiled: CompiledScenario,
        target: ExecutionTarget,
        execution_id: str,
        cancel: asyncio.Event,
    ) -> RunReport:
        try:
            report = await self._execute(compiled, target, execution_id, cancel)
        finally:
            self._tasks.pop(execution_id, None)
            self._cancels.pop(execution_id, None)

        self._reports[execution_id] = report
        while len(self._reports) > self.keep_reports:
            self._reports.popitem(last=False)
        return report

    async def _execute(
        self,
        compiled: CompiledScenario,
        target: ExecutionTarget,
        execution_id: str,
        cancel: asyncio.Event,
    ) -> RunReport:
        log = ExecutionLogger(execution_id, sink=self.store, clock=self.clock)
        try:
            report = await ScenarioOrchestrator(
                compiled,
                target,
                self.factory,
                log,
                config=self.config,
                packets=self.packets,
                cancel=cancel,
                rng=self.rng,
                sleep=self.sleep,
            ).run()
        except Exception as e:
            logger.exception("Execution %s crashed", execution_id)
            log.error(f"Unexpected error: {type(e).__name__}: {e}")
            report = RunReport(
                execution_id=execution_id,
                scenario_name=compiled.name,
                target_label=target.label,
                overall_status=OverallStatus.EXECUTION_ERROR,
                execution_status=ExecutionStatus.FAILED,
                result_status=ResultStatus.FAIL,
                logs=list(log.entries),
                error=f"{type(e).__name__}: {e}",
            )

        result = TestResult(
            id=str(uuid.uuid4()),
            scenario_name=compiled.name,
            status=report.result_status,
            timestamp=self.clock(),
            latency_ms=report.duration_ms,
            target=target.label,
            details={
                "executionId": execution_id,
                "scenarioId": compiled.scenario.id,
                "targetId": target.id,
                "overallStatus": report.overall_status.value,
                "summary": report.summary(),
                "error": report.error,
            },
        )
        self.store.write_result(result)
        self.store.finish_execution(execution_id, report.execution_status, self.clock(), result.id)
        return report
