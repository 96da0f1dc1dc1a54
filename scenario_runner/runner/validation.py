"""Validation sequencer and the mandatory-step halting policy.

The same ``HaltPolicy`` instance is shared by the database validation phase
and the scenario step loop, so a mandatory failure in validation also skips
the scenario steps.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from ..config import DatabaseTarget
from ..errors import TargetConnectionError
from ..scenario.schema import ValidationStep
from ..scenario.variables import VariableResolver
from .outcomes import Phase, SkipReason, StepOutcome, StepStatus
from .sessions import RunSessions
from .step_executors import StepContext, run_shell_command, run_sql_validation


class HaltPolicy:
    """Tracks whether a mandatory failure has been observed."""

    def __init__(self):
        self.halted = False
        self.halted_by: Optional[str] = None

    def observe(self, outcome: StepOutcome, mandatory: bool) -> bool:
        """Record ``outcome``; return True when it starts halting."""
        if self.halted or not mandatory or outcome.status != StepStatus.FAILURE:
            return False
        self.halted = True
        self.halted_by = outcome.name
        return True


@dataclass
class SequenceResult:
    outcomes: list[StepOutcome] = field(default_factory=list)
    aborted: bool = False


class ValidationSequencer:
    """Runs database validation steps after a successful connection."""

    def __init__(
        self,
        ctx: StepContext,
        sessions: RunSessions,
        resolver: VariableResolver,
        policy: HaltPolicy,
        cancel: Optional[asyncio.Event] = None,
    ):
        self.ctx = ctx
        self.sessions = sessions
        self.resolver = resolver
        self.policy = policy
        self.cancel = cancel or asyncio.Event()

    async def run(self, steps: list[ValidationStep], database: DatabaseTarget) -> SequenceResult:
        log = self.ctx.logger
        result = SequenceResult()
        if steps:
            log.info(f"Running {len(steps)} validation step(s)")

        for step in steps:
            if self.cancel.is_set():
                log.warn("Execution aborted during validation")
                result.aborted = True
                break

            if self.policy.halted:
                result.outcomes.append(self._skip(step, SkipReason.VALIDATION_FAILURE))
                continue
            if not step.enabled:
                result.outcomes.append(self._skip(step, SkipReason.DISABLED))
                continue

            resolved, missing = self.resolver.resolve_command_step(step)
            log.unresolved(f'validation step "{step.name}"', missing)

            outcome = await self._execute(resolved, database)
            result.outcomes.append(outcome)
            log.outcome(outcome)

            if self.policy.observe(outcome, step.mandatory):
                log.error(f'Mandatory validation step "{step.name}" failed; halting remaining steps')

        return result

    async def _execute(self, step: ValidationStep, database: DatabaseTarget) -> StepOutcome:
        if step.type == "sql":
            return await run_sql_validation(step, self.ctx)

        try:
            shell = await self.sessions.open_shell(database.shell_host)
        except TargetConnectionError as e:
            self.ctx.logger.ssh_fail(str(e))
            return StepOutcome(
                name=step.name, status=StepStatus.FAILURE, kind="ssh", phase=Phase.VALIDATION,
                command=step.command, error=str(e),
            )
        return await run_shell_command(step, shell, self.ctx, Phase.VALIDATION)

    def _skip(self, step: ValidationStep, reason: str) -> StepOutcome:
        outcome = StepOutcome.skip(step.name, step.type, reason, Phase.VALIDATION, command=step.command)
        self.ctx.logger.outcome(outcome)
        return outcome
