"""Scenario orchestrator - drives one execution.

Coordinates the full run:
1. Preamble (server, then database/jump host)
2. Database connection
3. Database validation steps
4. Scenario steps (loops, conditionals, executors)
5. Teardown
6. Status aggregation
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..config import ExecutionConfig, ExecutionTarget
from ..errors import ConditionError, TargetConnectionError
from ..scenario.blocks import CompiledStep
from ..scenario.conditions import evaluate_condition
from ..scenario.schema import RadiusPacket, StepType
from ..scenario.validator import CompiledScenario
from ..scenario.variables import VariableResolver
from ..transport.interfaces import RadiusTarget, SessionFactory
from .logger import ExecutionLogger
from .outcomes import (
    ExecutionStatus,
    LogEntry,
    OverallStatus,
    Phase,
    ResultStatus,
    SkipReason,
    StepOutcome,
    StepStatus,
)
from .preamble import PreambleRunner, PreambleState, PreambleTask
from .sessions import RunSessions
from .status import PhaseFlags, aggregate_outcomes, verdict_for
from .step_executors import StepContext, execute_step
from .validation import HaltPolicy, ValidationSequencer

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Complete result of one execution."""
    execution_id: str
    scenario_name: str
    target_label: str
    overall_status: OverallStatus = OverallStatus.NO_STEPS_EXECUTED
    execution_status: ExecutionStatus = ExecutionStatus.RUNNING
    result_status: ResultStatus = ResultStatus.WARNING
    flags: PhaseFlags = field(default_factory=PhaseFlags)
    outcomes: list[StepOutcome] = field(default_factory=list)
    logs: list[LogEntry] = field(default_factory=list)
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def counted_outcomes(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.counted]

    def summary(self) -> dict[str, Any]:
        counted = self.counted_outcomes
        return {
            "total": len(counted),
            "passed": sum(1 for o in counted if o.succeeded),
            "failed": sum(1 for o in counted if o.failed),
            "skipped": sum(1 for o in counted if o.skipped),
            "duration_ms": self.duration_ms,
        }


@dataclass
class _LoopState:
    limit: int
    condition: Optional[str]
    iteration: int = 0
    # values of the enclosing pass, put back when this loop ends
    outer_values: dict[str, str] = field(default_factory=dict)


def build_preamble_tasks(target: ExecutionTarget) -> list[PreambleTask]:
    """Server preamble first, then the database preamble on its shell host."""
    tasks = []
    if target.server:
        host = target.server.shell_host
        tasks.extend(PreambleTask(step=step, host=host, source="server") for step in target.server.preamble)
    if target.database:
        host = target.database.shell_host
        tasks.extend(PreambleTask(step=step, host=host, source="database") for step in target.database.preamble)
    return tasks


class ScenarioOrchestrator:
    """Runs a compiled scenario against one target.

    Owns the run's sessions exclusively; nothing is shared with other
    executions.
    """

    def __init__(
        self,
        compiled: CompiledScenario,
        target: ExecutionTarget,
        factory: SessionFactory,
        log: ExecutionLogger,
        config: Optional[ExecutionConfig] = None,
        packets: Optional[dict[str, RadiusPacket]] = None,
        cancel: Optional[asyncio.Event] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            compiled: Scenario compiled by ``compile_scenario``.
            target: Target to run against.
            factory: Creates the shell/SQL/packet/HTTP handles for this run.
            log: Execution logger for this run's execution id.
            config: Execution configuration.
            packets: Packet catalogue for ``packet_id`` lookups.
            cancel: Set to abort the run at the next step boundary.
            rng: Random source for random variables.
            sleep: Sleep function used by delay steps.
        """
        self.compiled = compiled
        self.target = target
        self.factory = factory
        self.log = log
        self.config = config or ExecutionConfig()
        self.packets = packets or {}
        self.cancel = cancel or asyncio.Event()
        self.rng = rng
        self.sleep = sleep
        self.outcomes: list[StepOutcome] = []
        self._last_status: Optional[StepStatus] = None

    async def run(self) -> RunReport:
        """Execute the full run. Never raises for run-level failures.

        Returns:
            RunReport with the verdict, outcomes and log trail.
        """
        start_time = time.monotonic()
        scenario = self.compiled.scenario
        report = RunReport(
            execution_id=self.log.execution_id,
            scenario_name=scenario.name,
            target_label=self.target.label,
        )
        flags: dict[str, bool] = {}

        resolver = VariableResolver(scenario.variables, rng=self.rng)
        resolver.resolve_all(0)
        sessions = RunSessions(self.factory, self.log, self.config)
        ctx = StepContext(
            logger=self.log,
            config=self.config,
            http=self.factory.http(),
            packet_catalogue=self.packets,
            resolver=resolver,
            sleep=self.sleep,
        )
        if self.target.server:
            server = self.target.server
            ctx.packets = sessions.packets
            ctx.radius_target = RadiusTarget(
                host=server.host,
                secret=server.secret,
                auth_port=server.radius_auth_port,
                acct_port=server.radius_acct_port,
            )
        policy = HaltPolicy()

        self.log.info(f'Starting scenario "{scenario.name}" against {self.target.label}')

        try:
            # Step 1: Preamble
            preamble = await PreambleRunner(ctx, sessions, resolver, self.cancel).run(
                build_preamble_tasks(self.target)
            )
            self.outcomes.extend(preamble.outcomes)

            if preamble.state == PreambleState.ABORTED:
                flags["aborted"] = True
            elif preamble.connection_failed:
                flags["jump_server_failed"] = True
                self._skip_downstream(SkipReason.CONNECTION_FAILURE)
            elif preamble.state == PreambleState.FAILED:
                flags["preamble_failed"] = True
                self.log.error(preamble.error or "Preamble failed")
                self._skip_downstream(SkipReason.PREAMBLE_FAILURE)

            # Step 2: Connect to the database
            elif self.cancel.is_set():
                flags["aborted"] = True
            elif not await self._connect(sessions, ctx):
                flags["connection_failed"] = True
                self._skip_downstream(SkipReason.CONNECTION_FAILURE)

            else:
                # Step 3: Database validation
                if self.target.database:
                    validation = await ValidationSequencer(ctx, sessions, resolver, policy, self.cancel).run(
                        self.target.database.validation_steps, self.target.database
                    )
                    self.outcomes.extend(validation.outcomes)
                    if validation.aborted:
                        flags["aborted"] = True

                # Step 4: Scenario steps
                if not flags.get("aborted"):
                    if not await self._run_steps(ctx, sessions, resolver, policy):
                        flags["aborted"] = True

        except Exception as e:
            report.error = f"Unexpected error: {type(e).__name__}: {e}"
            logger.exception("Execution %s failed", self.log.execution_id)
            self.log.error(report.error)

        finally:
            # Step 5: Teardown
            await sessions.close()

        # Step 6: Aggregate
        report.flags = PhaseFlags(**flags)
        report.outcomes = list(self.outcomes)
        if report.error:
            report.overall_status = OverallStatus.EXECUTION_ERROR
        else:
            report.overall_status = aggregate_outcomes(report.flags, self.outcomes)
        report.execution_status, report.result_status = verdict_for(report.overall_status)
        report.duration_ms = int((time.monotonic() - start_time) * 1000)

        if report.flags.aborted:
            self.log.warn("Execution aborted by user")
        self.log.info(
            f"Execution finished: {report.overall_status.value} "
            f"({report.execution_status.value}, {report.duration_ms}ms)",
            report.summary(),
        )
        report.logs = list(self.log.entries)
        return report

    async def _connect(self, sessions: RunSessions, ctx: StepContext) -> bool:
        database = self.target.database
        if database is None:
            self.log.info("No database configured; skipping connection phase")
            return True
        try:
            ctx.sql = await sessions.open_sql(database)
        except TargetConnectionError as e:
            self.log.error(f"Connection failed: {e}")
            return False
        self.log.info("Database connection established")
        return True

    def _skip_downstream(self, reason: str) -> None:
        """Record every validation and scenario step as skipped."""
        if self.target.database:
            for step in self.target.database.validation_steps:
                self._record(StepOutcome.skip(step.name, step.type, reason, Phase.VALIDATION, command=step.command))
        for node in self.compiled.steps:
            self._record(StepOutcome.skip(node.step.name, node.step.type, reason, index=node.index))

    def _record(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)
        self.log.outcome(outcome)

    async def _run_steps(
        self,
        ctx: StepContext,
        sessions: RunSessions,
        resolver: VariableResolver,
        policy: HaltPolicy,
    ) -> bool:
        """Run the compiled scenario steps.

        Returns:
            False if the run was aborted, True otherwise.
        """
        steps = self.compiled.steps
        loops: dict[int, _LoopState] = {}
        pc = 0

        while pc < len(steps):
            if self.cancel.is_set():
                self.log.warn(f"Abort requested; stopping before step {pc + 1}/{len(steps)}")
                return False

            node = steps[pc]
            step = node.step

            if policy.halted:
                self._record(self._node_outcome(node, StepStatus.SKIPPED, loops, error=SkipReason.VALIDATION_FAILURE))
                pc += 1
                continue

            if step.type == StepType.LOOP_START.value:
                pc = self._enter_loop(node, loops, resolver)
            elif step.type == StepType.LOOP_END.value:
                pc = self._end_of_loop(node, loops, resolver)
            elif step.type == StepType.CONDITIONAL_START.value:
                pc = self._enter_conditional(node, loops, resolver)
            elif step.type == StepType.CONDITIONAL_END.value:
                self._record(self._node_outcome(node, StepStatus.SUCCESS, loops))
                pc += 1
            else:
                await self._execute(node, ctx, sessions, resolver, policy, loops)
                pc += 1

        return True

    async def _execute(
        self,
        node: CompiledStep,
        ctx: StepContext,
        sessions: RunSessions,
        resolver: VariableResolver,
        policy: HaltPolicy,
        loops: dict[int, _LoopState],
    ) -> None:
        step = node.step
        if not step.enabled:
            self._record(self._node_outcome(node, StepStatus.SKIPPED, loops, error=SkipReason.DISABLED))
            return

        resolved, missing = resolver.resolve_step(step)
        self.log.unresolved(f"step {step.label}", missing)
        self.log.info(f"Executing step {node.index + 1}/{len(self.compiled.steps)}: {step.label}")

        outcome = None
        # radclient runs on whatever host the shell is connected to
        if step.type == StepType.RADIUS.value and ctx.packets is not None:
            try:
                await sessions.open_shell(self.target.server.shell_host)
            except TargetConnectionError as e:
                outcome = self._node_outcome(node, StepStatus.FAILURE, loops, error=str(e))

        if outcome is None:
            outcome = await execute_step(resolved, ctx)
            outcome.index = node.index
            outcome.iteration = self._current_iteration(loops)

        self._record(outcome)
        self._last_status = outcome.status
        if policy.observe(outcome, step.mandatory):
            self.log.error(f"Mandatory step {step.label} failed; skipping remaining steps")

    def _enter_loop(self, node: CompiledStep, loops: dict[int, _LoopState], resolver: VariableResolver) -> int:
        step = node.step
        limit = step.iterations if step.iterations is not None else self.config.max_loop_iterations
        state = _LoopState(limit=limit, condition=step.condition, outer_values=resolver.snapshot())

        try:
            allowed = state.limit > 0 and self._loop_condition(state, resolver)
        except ConditionError as e:
            self._record(self._node_outcome(node, StepStatus.FAILURE, loops, error=str(e)))
            return self._skip_block(node, loops)

        self._record(self._node_outcome(node, StepStatus.SUCCESS, loops))
        if not allowed:
            self.log.info(f'Loop "{step.name}" runs zero iterations')
            return self._skip_block(node, loops)

        loops[node.index] = state
        resolver.refresh(0)
        resolver.set("iteration", "0")
        self.log.info(f'Loop "{step.name}": iteration 1/{state.limit}')
        return node.index + 1

    def _end_of_loop(self, node: CompiledStep, loops: dict[int, _LoopState], resolver: VariableResolver) -> int:
        start = node.partner
        state = loops[start]
        state.iteration += 1
        name = self.compiled.steps[start].step.name

        try:
            again = state.iteration < state.limit and self._loop_condition(state, resolver)
        except ConditionError as e:
            self._leave_loop(start, loops, resolver)
            self._record(self._node_outcome(node, StepStatus.FAILURE, loops, error=str(e)))
            return node.index + 1

        if again:
            resolver.refresh(state.iteration)
            resolver.set("iteration", str(state.iteration))
            self.log.info(f'Loop "{name}": iteration {state.iteration + 1}/{state.limit}')
            return start + 1

        if state.iteration >= state.limit and state.condition and self.compiled.steps[start].step.iterations is None:
            self.log.warn(f'Loop "{name}" stopped at the limit of {state.limit} iterations')
        self._leave_loop(start, loops, resolver)
        self._record(self._node_outcome(node, StepStatus.SUCCESS, loops))
        self.log.info(f'Loop "{name}" finished after {state.iteration} iteration(s)')
        return node.index + 1

    def _leave_loop(self, start: int, loops: dict[int, _LoopState], resolver: VariableResolver) -> None:
        state = loops.pop(start)
        if loops:
            resolver.restore(state.outer_values)

    def _enter_conditional(self, node: CompiledStep, loops: dict[int, _LoopState], resolver: VariableResolver) -> int:
        step = node.step
        try:
            met = self._evaluate(step.condition, resolver, self._current_iteration(loops) or 0)
        except ConditionError as e:
            self._record(self._node_outcome(node, StepStatus.FAILURE, loops, error=str(e)))
            return self._skip_block(node, loops)

        self._record(self._node_outcome(node, StepStatus.SUCCESS, loops, output=str(met).lower()))
        if not met:
            self.log.info(f'Condition of "{step.name}" not met; skipping block')
            return self._skip_block(node, loops)
        return node.index + 1

    def _skip_block(self, node: CompiledStep, loops: dict[int, _LoopState]) -> int:
        """Skip every step after ``node`` up to and including its end marker."""
        for inner in self.compiled.steps[node.index + 1:node.partner + 1]:
            self._record(self._node_outcome(inner, StepStatus.SKIPPED, loops, error=SkipReason.CONDITION_NOT_MET))
        return node.partner + 1

    def _loop_condition(self, state: _LoopState, resolver: VariableResolver) -> bool:
        if not state.condition:
            return True
        return self._evaluate(state.condition, resolver, state.iteration)

    def _evaluate(self, condition: Optional[str], resolver: VariableResolver, iteration: int) -> bool:
        text, missing = resolver.substitute(condition or "")
        self.log.unresolved(f"condition '{condition}'", missing)
        names: dict[str, Any] = dict(resolver.values)
        names["iteration"] = iteration
        names["last_status"] = self._last_status.value if self._last_status else ""
        return evaluate_condition(text, names)

    def _node_outcome(
        self,
        node: CompiledStep,
        status: StepStatus,
        loops: dict[int, _LoopState],
        **kwargs,
    ) -> StepOutcome:
        return StepOutcome(
            name=node.step.name,
            status=status,
            kind=node.step.type,
            phase=Phase.SCENARIO,
            index=node.index,
            iteration=self._current_iteration(loops),
            **kwargs,
        )

    @staticmethod
    def _current_iteration(loops: dict[int, _LoopState]) -> Optional[int]:
        if not loops:
            return None
        return next(reversed(loops.values())).iteration
