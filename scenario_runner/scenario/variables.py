"""Scenario variable resolution.

Variables are resolved once per execution into a ``name -> value`` mapping.
Random and list kinds are re-drawn for every loop iteration. Substitution of
``${name}`` tokens happens right before a step is dispatched, never at load
time, so that each iteration sees fresh values.
"""

import random
import re
import string
from dataclasses import fields, replace
from typing import Optional

from .schema import AttributePair, Header, Step, Variable, VariableType

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_RANDOM_STRING_LENGTH = 8
DEFAULT_RANDOM_NUMBER_RANGE = (0, 9999)

RANDOM_STRING_ALPHABET = string.ascii_lowercase + string.digits

# Fields treated as command-like for each model; only these are substituted.
STEP_TEXT_FIELDS = (
    "query",
    "expect_column",
    "expect_value",
    "url",
    "request_body",
    "expected_body_contains",
    "message",
    "condition",
    "expected_code",
)
PER_ITERATION_TYPES = {
    VariableType.RANDOM_STRING.value,
    VariableType.RANDOM_NUMBER.value,
    VariableType.LIST.value,
}


def substitute(text: str, values: dict[str, str]) -> tuple[str, list[str]]:
    """Replace every ``${name}`` token in ``text`` with its value.

    Args:
        text: Raw string that may contain ``${name}`` tokens.
        values: Resolved variable mapping.

    Returns:
        Tuple of (substituted text, names of tokens left unresolved).
        Unresolved tokens are kept verbatim.
    """
    if not text or "${" not in text:
        return text, []

    unresolved: list[str] = []

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return str(values[name])
        if name not in unresolved:
            unresolved.append(name)
        return match.group(0)

    return VARIABLE_PATTERN.sub(_replace, text), unresolved


class VariableResolver:
    """Resolves scenario variables and substitutes them into steps."""

    def __init__(
        self,
        variables: list[Variable],
        rng: Optional[random.Random] = None,
    ):
        """Initialize the resolver.

        Args:
            variables: Variable definitions from the scenario.
            rng: Random source. Inject a seeded instance for reproducible runs.
        """
        self.variables = list(variables)
        self.rng = rng or random.Random()
        self.values: dict[str, str] = {}

    def resolve_all(self, iteration: int = 0) -> dict[str, str]:
        """Resolve every variable for the given loop iteration."""
        self.values = {
            variable.name: self._draw(variable, iteration)
            for variable in self.variables
        }
        return dict(self.values)

    def refresh(self, iteration: int) -> dict[str, str]:
        """Re-draw random and list variables for a new loop iteration.

        Static variables keep the value resolved at the start of the run.
        """
        for variable in self.variables:
            if variable.type in PER_ITERATION_TYPES:
                self.values[variable.name] = self._draw(variable, iteration)
        return dict(self.values)

    def set(self, name: str, value: str) -> None:
        """Bind a runtime value (e.g. the current loop iteration)."""
        self.values[name] = str(value)

    def snapshot(self) -> dict[str, str]:
        return dict(self.values)

    def restore(self, values: dict[str, str]) -> None:
        """Put back values taken with ``snapshot`` (when an inner loop ends)."""
        self.values = dict(values)

    def substitute(self, text: Optional[str]) -> tuple[Optional[str], list[str]]:
        if text is None:
            return None, []
        return substitute(text, self.values)

    def resolve_step(self, step: Step) -> tuple[Step, list[str]]:
        """Return a copy of ``step`` with every command-like field substituted.

        Returns:
            Tuple of (resolved step, unresolved variable names).
        """
        unresolved: list[str] = []
        changes: dict = {}

        for name in STEP_TEXT_FIELDS:
            value = getattr(step, name)
            if isinstance(value, str):
                changes[name], missing = substitute(value, self.values)
                _merge(unresolved, missing)

        if isinstance(step.duration_ms, str):
            changes["duration_ms"], missing = substitute(step.duration_ms, self.values)
            _merge(unresolved, missing)

        for name in ("attributes", "expected_attributes"):
            pairs = []
            for pair in getattr(step, name):
                value, missing = substitute(pair.value, self.values)
                _merge(unresolved, missing)
                pairs.append(AttributePair(name=pair.name, value=value))
            changes[name] = pairs

        headers = []
        for header in step.headers:
            header_name, missing_name = substitute(header.name, self.values)
            header_value, missing_value = substitute(header.value, self.values)
            _merge(unresolved, missing_name + missing_value)
            headers.append(Header(name=header_name, value=header_value))
        changes["headers"] = headers

        return replace(step, **changes), unresolved

    def resolve_command_step(self, step):
        """Substitute the command and expected output of a shell/validation step."""
        unresolved: list[str] = []
        changes: dict = {}
        for item in fields(step):
            if item.name not in ("command", "expected_output_contains"):
                continue
            value = getattr(step, item.name)
            if isinstance(value, str):
                changes[item.name], missing = substitute(value, self.values)
                _merge(unresolved, missing)
        return replace(step, **changes), unresolved

    def _draw(self, variable: Variable, iteration: int) -> str:
        kind = variable.type
        raw = variable.value.strip()

        if kind == VariableType.RANDOM_STRING.value:
            length = int(raw) if raw.isdigit() and int(raw) > 0 else DEFAULT_RANDOM_STRING_LENGTH
            return "".join(self.rng.choice(RANDOM_STRING_ALPHABET) for _ in range(length))

        if kind == VariableType.RANDOM_NUMBER.value:
            low, high = _parse_range(raw)
            return str(self.rng.randint(low, high))

        if kind == VariableType.LIST.value:
            items = [item.strip() for item in raw.split(",") if item.strip()]
            if not items:
                return ""
            return items[iteration % len(items)]

        return variable.value


def _parse_range(raw: str) -> tuple[int, int]:
    if not raw:
        return DEFAULT_RANDOM_NUMBER_RANGE
    try:
        if "-" in raw.lstrip("-"):
            low_text, high_text = raw.rsplit("-", 1)
            low, high = int(low_text), int(high_text)
        else:
            low, high = 0, int(raw)
    except ValueError:
        return DEFAULT_RANDOM_NUMBER_RANGE
    if low > high:
        low, high = high, low
    return low, high


def _merge(target: list[str], names: list[str]) -> None:
    for name in names:
        if name not in target:
            target.append(name)
