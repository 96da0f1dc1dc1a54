"""Scenario data models for RADIUS test scenarios.

Defines dataclasses for parsing and representing YAML test scenarios.
Loop and conditional steps are flat markers; pairing them is the job of
``scenario.blocks``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class StepType(str, Enum):
    """Supported scenario step types."""
    RADIUS = "radius"
    SQL = "sql"
    DELAY = "delay"
    LOOP_START = "loop_start"
    LOOP_END = "loop_end"
    CONDITIONAL_START = "conditional_start"
    CONDITIONAL_END = "conditional_end"
    API_CALL = "api_call"
    LOG_MESSAGE = "log_message"


class VariableType(str, Enum):
    """Supported scenario variable kinds."""
    STATIC = "static"
    RANDOM_STRING = "random_string"
    RANDOM_NUMBER = "random_number"
    LIST = "list"


VALID_STEP_TYPES = {e.value for e in StepType}
VALID_VARIABLE_TYPES = {e.value for e in VariableType}
VALID_HTTP_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH"}

BLOCK_START_TYPES = {StepType.LOOP_START.value, StepType.CONDITIONAL_START.value}
BLOCK_END_TYPES = {StepType.LOOP_END.value, StepType.CONDITIONAL_END.value}
CONTROL_STEP_TYPES = BLOCK_START_TYPES | BLOCK_END_TYPES

# start marker -> matching end marker
BLOCK_PAIRS = {
    StepType.LOOP_START.value: StepType.LOOP_END.value,
    StepType.CONDITIONAL_START.value: StepType.CONDITIONAL_END.value,
}


@dataclass
class Variable:
    """A scenario-scoped variable definition."""
    name: str
    type: str = VariableType.STATIC.value
    value: str = ""

    def __post_init__(self):
        self.type = self.type.lower()
        self.value = "" if self.value is None else str(self.value)


@dataclass
class AttributePair:
    """A RADIUS attribute name/value pair (sent or expected)."""
    name: str
    value: str

    def __post_init__(self):
        self.value = "" if self.value is None else str(self.value)


@dataclass
class Header:
    """An HTTP header used by ``api_call`` steps."""
    name: str
    value: str


@dataclass
class Step:
    """A single scenario step.

    Only the fields relevant to ``type`` are populated; the rest stay None.
    """
    type: str
    name: str = ""
    id: Optional[str] = None
    enabled: bool = True
    mandatory: bool = True
    # radius
    packet_id: Optional[str] = None
    attributes: list[AttributePair] = field(default_factory=list)
    expected_attributes: list[AttributePair] = field(default_factory=list)
    expected_code: Optional[str] = None
    timeout: Optional[int] = None  # ms
    retries: int = 0
    # sql
    query: Optional[str] = None
    connection_id: Optional[str] = None
    expect_column: Optional[str] = None
    expect_value: Optional[str] = None
    # delay
    duration_ms: Optional[Union[int, str]] = None
    # loop / conditional
    iterations: Optional[int] = None
    condition: Optional[str] = None
    # api_call
    url: Optional[str] = None
    method: str = "GET"
    headers: list[Header] = field(default_factory=list)
    request_body: Optional[str] = None
    expected_status: Optional[Union[int, list[int]]] = None
    expected_body_contains: Optional[str] = None
    # log_message
    message: Optional[str] = None

    def __post_init__(self):
        self.type = self.type.lower()
        self.method = (self.method or "GET").upper()
        if not self.name:
            self.name = self.type

    @property
    def is_control(self) -> bool:
        """Whether this step is a loop/conditional marker."""
        return self.type in CONTROL_STEP_TYPES

    @property
    def label(self) -> str:
        return f'"{self.name}" ({self.type.upper()})'


@dataclass
class ShellStep:
    """A shell command run before the target connection (preamble)."""
    name: str
    command: str
    enabled: bool = True
    expected_output_contains: Optional[str] = None
    id: Optional[str] = None


@dataclass
class ValidationStep:
    """A database validation step run after the target connection."""
    name: str
    command: str
    type: str = "sql"  # "sql" or "ssh"
    enabled: bool = True
    mandatory: bool = True
    expected_output_contains: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        self.type = self.type.lower()


@dataclass
class RadiusPacket:
    """A reusable RADIUS request template referenced by ``packet_id``."""
    id: str
    name: str = ""
    code: str = "Access-Request"
    attributes: list[AttributePair] = field(default_factory=list)


@dataclass
class Scenario:
    """A complete test scenario."""
    id: str
    name: str
    description: str = ""
    variables: list[Variable] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        """Total number of steps."""
        return len(self.steps)

    def uses_sql(self) -> bool:
        return any(step.type == StepType.SQL.value for step in self.steps)

    def to_dict(self) -> dict[str, Any]:
        """Convert scenario to dictionary for serialization."""
        return {
            "scenario": {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "tags": list(self.tags),
            },
            "variables": [
                {"name": v.name, "type": v.type, "value": v.value}
                for v in self.variables
            ],
            "steps": [_step_to_dict(step) for step in self.steps],
        }


def _step_to_dict(step: Step) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in step.__dict__.items():
        if value is None or value == []:
            continue
        if key in ("attributes", "expected_attributes", "headers"):
            value = [{"name": item.name, "value": item.value} for item in value]
        data[key] = value
    return data


@dataclass
class ValidationError:
    """A single validation error."""
    path: str
    message: str
    severity: str = "error"  # "error" or "warning"


@dataclass
class ValidationResult:
    """Result of scenario validation."""
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def __str__(self) -> str:
        if self.valid:
            msg = "Valid"
            if self.warnings:
                msg += f" ({self.warning_count} warnings)"
            return msg
        return f"Invalid: {self.error_count} errors, {self.warning_count} warnings"
