"""Preamble runner.

Runs the shell steps configured for the target before any database
connection is attempted. The first failure is always fatal: every later step
is skipped and the run ends without reaching the connection phase.

State machine::

    Idle -> Running -> Completed | Failed | Aborted
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import HostCredentials
from ..errors import TargetConnectionError
from ..scenario.schema import ShellStep
from ..scenario.variables import VariableResolver
from .outcomes import Phase, SkipReason, StepOutcome
from .sessions import RunSessions
from .step_executors import StepContext, run_shell_command


class PreambleState(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    ABORTED = "Aborted"


@dataclass
class PreambleTask:
    """A preamble shell step bound to the host it runs on."""
    step: ShellStep
    host: HostCredentials
    source: str = "server"


@dataclass
class PreambleResult:
    state: PreambleState
    outcomes: list[StepOutcome] = field(default_factory=list)
    connection_failed: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == PreambleState.COMPLETED


class PreambleRunner:
    """Runs preamble tasks with halt-on-first-failure semantics."""

    def __init__(
        self,
        ctx: StepContext,
        sessions: RunSessions,
        resolver: VariableResolver,
        cancel: Optional[asyncio.Event] = None,
    ):
        self.ctx = ctx
        self.sessions = sessions
        self.resolver = resolver
        self.cancel = cancel or asyncio.Event()
        self.state = PreambleState.IDLE

    async def run(self, tasks: list[PreambleTask]) -> PreambleResult:
        """Run ``tasks`` in order.

        Returns:
            PreambleResult. ``connection_failed`` is set when a preamble host
            could not be reached.
        """
        log = self.ctx.logger
        self.state = PreambleState.RUNNING
        result = PreambleResult(state=self.state)
        if tasks:
            log.info(f"Running {len(tasks)} preamble step(s)")

        for position, task in enumerate(tasks):
            if self.cancel.is_set():
                self.state = PreambleState.ABORTED
                log.warn("Execution aborted during preamble")
                break

            step = task.step
            if not step.enabled:
                result.outcomes.append(self._skip(step, SkipReason.DISABLED))
                continue

            try:
                shell = await self.sessions.open_shell(task.host)
            except TargetConnectionError as e:
                message = f"Could not connect to preamble host {task.host.host}: {e}"
                log.ssh_fail(message)
                log.error(message)
                result.connection_failed = True
                result.error = message
                self._skip_rest(result, tasks[position:], SkipReason.CONNECTION_FAILURE)
                self.state = PreambleState.FAILED
                break

            resolved, missing = self.resolver.resolve_command_step(step)
            log.unresolved(f'preamble step "{step.name}"', missing)

            outcome = await run_shell_command(resolved, shell, self.ctx, Phase.PREAMBLE)
            result.outcomes.append(outcome)
            log.outcome(outcome)

            if outcome.failed:
                result.error = f'Preamble step "{step.name}" failed: {outcome.error}'
                self._skip_rest(result, tasks[position + 1:], SkipReason.PREAMBLE_FAILURE)
                self.state = PreambleState.FAILED
                break
        else:
            self.state = PreambleState.COMPLETED

        result.state = self.state
        return result

    def _skip(self, step: ShellStep, reason: str) -> StepOutcome:
        outcome = StepOutcome.skip(step.name, "ssh", reason, Phase.PREAMBLE, command=step.command)
        self.ctx.logger.outcome(outcome)
        return outcome

    def _skip_rest(self, result: PreambleResult, tasks: list[PreambleTask], reason: str) -> None:
        for task in tasks:
            result.outcomes.append(self._skip(task.step, reason))
