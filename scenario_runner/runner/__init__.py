"""Runner module - scenario orchestration.

``ExecutionService`` lives in ``runner.service`` and is not re-exported here
because it depends on the storage package, which depends on this one.
"""

from .logger import ExecutionLogger
from .orchestrator import RunReport, ScenarioOrchestrator
from .outcomes import (
    ExecutionRecord,
    ExecutionStatus,
    LogEntry,
    LogLevel,
    OverallStatus,
    Phase,
    ResultStatus,
    SkipReason,
    StepOutcome,
    StepStatus,
    TestResult,
)
from .preamble import PreambleRunner, PreambleState, PreambleTask
from .status import PhaseFlags, aggregate_outcomes, aggregate_status
from .step_executors import StepContext, execute_step
from .validation import HaltPolicy, ValidationSequencer

__all__ = [
    "ExecutionLogger",
    "ExecutionRecord",
    "ExecutionStatus",
    "HaltPolicy",
    "LogEntry",
    "LogLevel",
    "OverallStatus",
    "Phase",
    "PhaseFlags",
    "PreambleRunner",
    "PreambleState",
    "PreambleTask",
    "ResultStatus",
    "RunReport",
    "ScenarioOrchestrator",
    "SkipReason",
    "StepContext",
    "StepOutcome",
    "StepStatus",
    "TestResult",
    "ValidationSequencer",
    "aggregate_outcomes",
    "aggregate_status",
    "execute_step",
]
