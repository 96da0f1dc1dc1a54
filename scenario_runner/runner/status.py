"""Overall status aggregation.

Precedence, highest first:

    preamble_failure
    jump_server_connection_failure / connection_failure
    aborted
    validation_failure   every attempted step failed
    partial_success      at least one success and one failure
    success              no failures, at least one success
    no_steps_executed
"""

from collections.abc import Iterable
from dataclasses import dataclass

from .outcomes import ExecutionStatus, OverallStatus, ResultStatus, StepOutcome, StepStatus


@dataclass(frozen=True)
class PhaseFlags:
    """Fatal phase events observed during a run."""
    preamble_failed: bool = False
    jump_server_failed: bool = False
    connection_failed: bool = False
    aborted: bool = False


def aggregate_status(flags: PhaseFlags, statuses: Iterable[StepStatus]) -> OverallStatus:
    """Derive the overall status from phase flags and counted step statuses.

    Args:
        flags: Fatal phase events.
        statuses: Statuses of counted steps (no preamble steps, no markers).
            Only the multiset matters, order is ignored.
    """
    if flags.preamble_failed:
        return OverallStatus.PREAMBLE_FAILURE
    if flags.jump_server_failed:
        return OverallStatus.JUMP_SERVER_CONNECTION_FAILURE
    if flags.connection_failed:
        return OverallStatus.CONNECTION_FAILURE
    if flags.aborted:
        return OverallStatus.ABORTED

    statuses = list(statuses)
    successes = statuses.count(StepStatus.SUCCESS)
    failures = statuses.count(StepStatus.FAILURE)

    if failures and not successes:
        return OverallStatus.VALIDATION_FAILURE
    if failures:
        return OverallStatus.PARTIAL_SUCCESS
    if successes:
        return OverallStatus.SUCCESS
    return OverallStatus.NO_STEPS_EXECUTED


def aggregate_outcomes(flags: PhaseFlags, outcomes: Iterable[StepOutcome]) -> OverallStatus:
    return aggregate_status(flags, (o.status for o in outcomes if o.counted))


# overall status -> (execution status, result status)
VERDICTS = {
    OverallStatus.SUCCESS: (ExecutionStatus.COMPLETED, ResultStatus.PASS),
    OverallStatus.PARTIAL_SUCCESS: (ExecutionStatus.COMPLETED, ResultStatus.WARNING),
    OverallStatus.NO_STEPS_EXECUTED: (ExecutionStatus.COMPLETED, ResultStatus.WARNING),
    OverallStatus.VALIDATION_FAILURE: (ExecutionStatus.FAILED, ResultStatus.FAIL),
    OverallStatus.PREAMBLE_FAILURE: (ExecutionStatus.FAILED, ResultStatus.FAIL),
    OverallStatus.JUMP_SERVER_CONNECTION_FAILURE: (ExecutionStatus.FAILED, ResultStatus.FAIL),
    OverallStatus.CONNECTION_FAILURE: (ExecutionStatus.FAILED, ResultStatus.FAIL),
    OverallStatus.EXECUTION_ERROR: (ExecutionStatus.FAILED, ResultStatus.FAIL),
    OverallStatus.ABORTED: (ExecutionStatus.ABORTED, ResultStatus.WARNING),
}


def verdict_for(status: OverallStatus) -> tuple[ExecutionStatus, ResultStatus]:
    return VERDICTS[status]
