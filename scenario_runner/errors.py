"""Error taxonomy for scenario execution.

Connection errors are fatal to their phase. Step execution errors and
validation mismatches become ``failure`` outcomes that feed the halting
policy of the phase they occur in. Compile errors are raised before an
execution starts and never mid-run.
"""

from typing import Optional


class ScenarioRunnerError(Exception):
    """Base class for all scenario runner errors."""


class ScenarioParseError(ScenarioRunnerError, ValueError):
    """Raised when a scenario, target or packet file is malformed."""


class CompileError(ScenarioRunnerError):
    """Raised when a scenario cannot be compiled into an executable plan.

    Attributes:
        errors: The individual validation errors that caused the rejection.
    """

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def __str__(self) -> str:
        if not self.errors:
            return super().__str__()
        details = "; ".join(f"{e.path}: {e.message}" for e in self.errors)
        return f"{super().__str__()}: {details}"


class TargetConnectionError(ScenarioRunnerError):
    """Raised when a preamble host or the target cannot be reached."""


class StepExecutionError(ScenarioRunnerError):
    """Raised when a step's external call fails (exit code, driver, network)."""


class StepTimeoutError(StepExecutionError):
    """Raised when an external call exceeds its configured timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class ValidationMismatchError(ScenarioRunnerError):
    """Raised when output does not match the configured expectation.

    Attributes:
        output: The output that was checked, kept for the step outcome.
    """

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


class ConditionError(ScenarioRunnerError):
    """Raised when a loop or conditional expression cannot be evaluated."""
