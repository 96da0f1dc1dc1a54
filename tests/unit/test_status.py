"""Tests for overall status aggregation."""

import itertools
import random

import pytest

from scenario_runner.runner.outcomes import (
    ExecutionStatus,
    OverallStatus,
    Phase,
    ResultStatus,
    StepOutcome,
    StepStatus,
)
from scenario_runner.runner.status import (
    VERDICTS,
    PhaseFlags,
    aggregate_outcomes,
    aggregate_status,
    verdict_for,
)

ALL_FLAGS = [PhaseFlags(*bits) for bits in itertools.product([False, True], repeat=4)]
STATUS_MULTISETS = [
    combo
    for size in range(4)
    for combo in itertools.combinations_with_replacement(list(StepStatus), size)
]


def expected_status(flags, statuses):
    if flags.preamble_failed:
        return OverallStatus.PREAMBLE_FAILURE
    if flags.jump_server_failed:
        return OverallStatus.JUMP_SERVER_CONNECTION_FAILURE
    if flags.connection_failed:
        return OverallStatus.CONNECTION_FAILURE
    if flags.aborted:
        return OverallStatus.ABORTED
    has_success = StepStatus.SUCCESS in statuses
    has_failure = StepStatus.FAILURE in statuses
    if has_failure and has_success:
        return OverallStatus.PARTIAL_SUCCESS
    if has_failure:
        return OverallStatus.VALIDATION_FAILURE
    if has_success:
        return OverallStatus.SUCCESS
    return OverallStatus.NO_STEPS_EXECUTED


@pytest.mark.parametrize("flags", ALL_FLAGS)
def test_aggregate_status_over_every_combination(flags):
    for statuses in STATUS_MULTISETS:
        assert aggregate_status(flags, statuses) == expected_status(flags, statuses)


def test_aggregate_status_ignores_order():
    statuses = [StepStatus.SUCCESS] * 3 + [StepStatus.FAILURE, StepStatus.SKIPPED]
    shuffled = statuses[:]
    random.Random(5).shuffle(shuffled)
    assert aggregate_status(PhaseFlags(), statuses) == aggregate_status(PhaseFlags(), shuffled)


def test_only_skipped_steps_means_nothing_executed():
    assert aggregate_status(PhaseFlags(), [StepStatus.SKIPPED] * 4) == OverallStatus.NO_STEPS_EXECUTED


def test_preamble_and_marker_outcomes_are_not_counted():
    outcomes = [
        StepOutcome("setup", StepStatus.FAILURE, "ssh", phase=Phase.PREAMBLE),
        StepOutcome("loop", StepStatus.FAILURE, "loop_start"),
        StepOutcome("auth", StepStatus.SUCCESS, "radius"),
    ]
    assert aggregate_outcomes(PhaseFlags(), outcomes) == OverallStatus.SUCCESS


def test_every_overall_status_has_a_verdict():
    assert set(VERDICTS) == set(OverallStatus)


@pytest.mark.parametrize("status,execution,result", [
    (OverallStatus.SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.PASS),
    (OverallStatus.PARTIAL_SUCCESS, ExecutionStatus.COMPLETED, ResultStatus.WARNING),
    (OverallStatus.VALIDATION_FAILURE, ExecutionStatus.FAILED, ResultStatus.FAIL),
    (OverallStatus.ABORTED, ExecutionStatus.ABORTED, ResultStatus.WARNING),
])
def test_verdict_for(status, execution, result):
    assert verdict_for(status) == (execution, result)
