"""Outcome and record types produced by a run."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..scenario.schema import CONTROL_STEP_TYPES


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class Phase(str, Enum):
    """Run phase a step outcome belongs to."""
    PREAMBLE = "preamble"
    VALIDATION = "validation"
    SCENARIO = "scenario"


class ExecutionStatus(str, Enum):
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    ABORTED = "Aborted"


class ResultStatus(str, Enum):
    PASS = "Pass"
    FAIL = "Fail"
    WARNING = "Warning"


class OverallStatus(str, Enum):
    """Aggregated verdict of one run."""
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    PREAMBLE_FAILURE = "preamble_failure"
    JUMP_SERVER_CONNECTION_FAILURE = "jump_server_connection_failure"
    CONNECTION_FAILURE = "connection_failure"
    VALIDATION_FAILURE = "validation_failure"
    NO_STEPS_EXECUTED = "no_steps_executed"
    ABORTED = "aborted"
    EXECUTION_ERROR = "execution_error"


class LogLevel(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    DEBUG = "DEBUG"
    SENT = "SENT"
    RECV = "RECV"
    SSH_CMD = "SSH_CMD"
    SSH_OUT = "SSH_OUT"
    SSH_FAIL = "SSH_FAIL"


class SkipReason:
    DISABLED = "disabled by user"
    PREAMBLE_FAILURE = "skipped due to previous preamble failure"
    CONNECTION_FAILURE = "skipped due to connection failure"
    VALIDATION_FAILURE = "skipped due to previous validation failure"
    CONDITION_NOT_MET = "condition not met"


@dataclass
class StepOutcome:
    """Result of one step (executed or skipped)."""
    name: str
    status: StepStatus
    kind: str
    phase: Phase = Phase.SCENARIO
    command: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
    index: Optional[int] = None
    iteration: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILURE

    @property
    def skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED

    @property
    def counted(self) -> bool:
        """Whether this outcome feeds the overall verdict.

        Preamble steps and loop/conditional markers are excluded.
        """
        return self.phase != Phase.PREAMBLE and self.kind not in CONTROL_STEP_TYPES

    @classmethod
    def skip(cls, name: str, kind: str, reason: str, phase: Phase = Phase.SCENARIO, **extra) -> "StepOutcome":
        return cls(name=name, status=StepStatus.SKIPPED, kind=kind, phase=phase, error=reason, **extra)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind,
            "phase": self.phase.value,
            "status": self.status.value,
        }
        for key in ("command", "output", "error", "index", "iteration"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class LogEntry:
    """One append-only log row of an execution."""
    id: str
    execution_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    raw_details: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "executionId": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
        }
        if self.raw_details is not None:
            data["rawDetails"] = self.raw_details
        return data


@dataclass
class ExecutionRecord:
    """Lifecycle record of one execution. Terminal once ``end_time`` is set."""
    id: str
    scenario_id: str
    scenario_name: str
    target_id: str
    target_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    result_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.end_time is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scenarioId": self.scenario_id,
            "scenarioName": self.scenario_name,
            "targetId": self.target_id,
            "targetName": self.target_name,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value,
            "resultId": self.result_id,
        }


@dataclass
class TestResult:
    """Final verdict row, written once per execution."""
    __test__ = False

    id: str
    scenario_name: str
    status: ResultStatus
    timestamp: datetime
    latency_ms: int
    target: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def execution_id(self) -> Optional[str]:
        return self.details.get("executionId")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scenarioName": self.scenario_name,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "latencyMs": self.latency_ms,
            "target": self.target,
            "details": dict(self.details),
        }
