"""Scenario validator for the RADIUS scenario runner.

Validates parsed Scenario objects against business rules and compiles them
into an executable plan.
"""

from dataclasses import dataclass
from typing import Optional

from ..errors import CompileError
from .blocks import CompiledStep, compile_steps, find_block_errors
from .schema import (
    CONTROL_STEP_TYPES,
    RadiusPacket,
    Scenario,
    StepType,
    ValidationError,
    ValidationResult,
    VALID_HTTP_METHODS,
    VALID_STEP_TYPES,
    VALID_VARIABLE_TYPES,
)


@dataclass(frozen=True)
class CompiledScenario:
    """A validated scenario with its block structure resolved."""
    scenario: Scenario
    steps: tuple[CompiledStep, ...]

    @property
    def name(self) -> str:
        return self.scenario.name

    def __len__(self) -> int:
        return len(self.steps)


def validate_scenario(
    scenario: Scenario,
    packets: Optional[dict[str, RadiusPacket]] = None,
) -> ValidationResult:
    """Validate a parsed Scenario object.

    Checks:
    - Variable names and kinds
    - Step types and required fields per type
    - Loop/conditional marker nesting

    Args:
        scenario: Parsed Scenario to validate.
        packets: Packet catalogue. When given, ``packet_id`` references
            are checked against it.

    Returns:
        ValidationResult with errors and warnings.
    """
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    _validate_variables(scenario, errors, warnings)
    _validate_steps(scenario, packets, errors, warnings)
    errors.extend(find_block_errors(scenario.steps))

    if not scenario.steps:
        warnings.append(ValidationError(
            path="steps",
            message="No steps defined.",
            severity="warning",
        ))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def compile_scenario(
    scenario: Scenario,
    packets: Optional[dict[str, RadiusPacket]] = None,
) -> CompiledScenario:
    """Validate ``scenario`` and compile its steps once.

    Raises:
        CompileError: If validation reports any error.
    """
    result = validate_scenario(scenario, packets)
    if not result.valid:
        raise CompileError(f"Scenario '{scenario.name}' is invalid", result.errors)
    return CompiledScenario(scenario=scenario, steps=compile_steps(scenario.steps))


def _validate_variables(
    scenario: Scenario,
    errors: list[ValidationError],
    warnings: list[ValidationError],
) -> None:
    seen: set[str] = set()
    for i, variable in enumerate(scenario.variables):
        path = f"variables[{i}]"
        if not variable.name:
            errors.append(ValidationError(
                path=f"{path}.name",
                message="Variable 'name' is required and must not be empty.",
            ))
        elif variable.name in seen:
            warnings.append(ValidationError(
                path=f"{path}.name",
                message=f"Variable '{variable.name}' is defined more than once; the last definition wins.",
                severity="warning",
            ))
        seen.add(variable.name)

        if variable.type not in VALID_VARIABLE_TYPES:
            errors.append(ValidationError(
                path=f"{path}.type",
                message=f"Invalid variable type '{variable.type}'. Must be one of: {', '.join(sorted(VALID_VARIABLE_TYPES))}",
            ))


def _validate_steps(
    scenario: Scenario,
    packets: Optional[dict[str, RadiusPacket]],
    errors: list[ValidationError],
    warnings: list[ValidationError],
) -> None:
    """Validate scenario steps."""
    for i, step in enumerate(scenario.steps):
        path = f"steps[{i}]"

        # Check step type
        if step.type not in VALID_STEP_TYPES:
            errors.append(ValidationError(
                path=f"{path}.type",
                message=f"Invalid step type '{step.type}'. Must be one of: {', '.join(sorted(VALID_STEP_TYPES))}",
            ))
            continue

        if step.type in CONTROL_STEP_TYPES and not step.enabled:
            errors.append(ValidationError(
                path=f"{path}.enabled",
                message=f"'{step.type}' markers cannot be disabled; disable the steps inside the block instead.",
            ))

        if step.timeout is not None and (not isinstance(step.timeout, int) or step.timeout <= 0):
            errors.append(ValidationError(
                path=f"{path}.timeout",
                message=f"'timeout' must be a positive number of milliseconds, got {step.timeout!r}.",
            ))
        if not isinstance(step.retries, int) or step.retries < 0:
            errors.append(ValidationError(
                path=f"{path}.retries",
                message=f"'retries' must be a non-negative integer, got {step.retries!r}.",
            ))

        # Type-specific validation
        if step.type == StepType.RADIUS.value:
            if not step.packet_id and not step.attributes:
                errors.append(ValidationError(
                    path=path,
                    message="'radius' step requires 'packet_id' or 'attributes'.",
                ))
            elif step.packet_id and packets is not None and step.packet_id not in packets:
                errors.append(ValidationError(
                    path=f"{path}.packet_id",
                    message=f"Unknown packet '{step.packet_id}'.",
                ))
            if not step.expected_attributes and not step.expected_code:
                warnings.append(ValidationError(
                    path=path,
                    message="'radius' step has no expectations; any reply passes.",
                    severity="warning",
                ))

        elif step.type == StepType.SQL.value:
            if not step.query:
                errors.append(ValidationError(
                    path=f"{path}.query",
                    message="'sql' step requires 'query'.",
                ))
            if (step.expect_column is None) != (step.expect_value is None):
                errors.append(ValidationError(
                    path=path,
                    message="'expect_column' and 'expect_value' must be given together.",
                ))

        elif step.type == StepType.DELAY.value:
            if step.duration_ms is None:
                errors.append(ValidationError(
                    path=f"{path}.duration_ms",
                    message="'delay' step requires 'duration_ms'.",
                ))
            elif isinstance(step.duration_ms, int) and step.duration_ms < 0:
                errors.append(ValidationError(
                    path=f"{path}.duration_ms",
                    message=f"'delay' duration_ms must not be negative, got {step.duration_ms}.",
                ))

        elif step.type == StepType.LOOP_START.value:
            if step.iterations is None and not step.condition:
                errors.append(ValidationError(
                    path=path,
                    message="'loop_start' requires 'iterations' or 'condition'.",
                ))
            elif step.iterations is not None and (
                not isinstance(step.iterations, int) or isinstance(step.iterations, bool)
            ):
                errors.append(ValidationError(
                    path=f"{path}.iterations",
                    message=f"'iterations' must be an integer, got {step.iterations!r}.",
                ))
            elif step.iterations is not None and step.iterations < 0:
                errors.append(ValidationError(
                    path=f"{path}.iterations",
                    message=f"'iterations' must not be negative, got {step.iterations}.",
                ))

        elif step.type == StepType.CONDITIONAL_START.value:
            if not step.condition:
                errors.append(ValidationError(
                    path=f"{path}.condition",
                    message="'conditional_start' requires 'condition'.",
                ))

        elif step.type == StepType.API_CALL.value:
            if not step.url:
                errors.append(ValidationError(
                    path=f"{path}.url",
                    message="'api_call' step requires 'url'.",
                ))
            if step.method not in VALID_HTTP_METHODS:
                errors.append(ValidationError(
                    path=f"{path}.method",
                    message=f"Invalid method '{step.method}'. Must be one of: {', '.join(sorted(VALID_HTTP_METHODS))}",
                ))
            if step.expected_status is not None and not _valid_expected_status(step.expected_status):
                errors.append(ValidationError(
                    path=f"{path}.expected_status",
                    message=f"'expected_status' must be an HTTP status code or a list of them, got {step.expected_status!r}.",
                ))

        elif step.type == StepType.LOG_MESSAGE.value:
            if step.message is None:
                warnings.append(ValidationError(
                    path=f"{path}.message",
                    message="'log_message' step has no message.",
                    severity="warning",
                ))


def _is_status_code(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599


def _valid_expected_status(expected: object) -> bool:
    if isinstance(expected, list):
        return bool(expected) and all(_is_status_code(code) for code in expected)
    return _is_status_code(expected)
