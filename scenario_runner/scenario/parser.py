"""YAML scenario parser.

Parses YAML scenario and packet catalogue files into dataclass objects.
"""

from pathlib import Path
from typing import Any, Union

import yaml

from ..errors import ScenarioParseError
from .schema import (
    AttributePair,
    Header,
    RadiusPacket,
    Scenario,
    ShellStep,
    Step,
    ValidationStep,
    Variable,
)


def load_yaml_file(file_path: Union[str, Path]) -> Any:
    """Load a YAML file, raising ScenarioParseError on malformed content.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ScenarioParseError: If the YAML is malformed or empty.
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if file_path.suffix not in (".yaml", ".yml"):
        raise ScenarioParseError(f"Expected .yaml or .yml file, got: {file_path.suffix}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ScenarioParseError(f"Failed to parse {file_path}: {e}") from e

    if data is None:
        raise ScenarioParseError(f"Empty file: {file_path}")

    return data


def parse_scenario(file_path: Union[str, Path]) -> Scenario:
    """Parse a YAML scenario file into a Scenario object.

    Args:
        file_path: Path to the YAML scenario file.

    Returns:
        Parsed Scenario object.

    Raises:
        FileNotFoundError: If the scenario file doesn't exist.
        ScenarioParseError: If the YAML is malformed or missing required fields.
    """
    data = load_yaml_file(file_path)
    return parse_scenario_data(data, source=str(file_path))


def parse_scenario_data(data: dict, source: str = "<inline>") -> Scenario:
    """Parse a scenario from a dictionary (already loaded YAML).

    Args:
        data: Dictionary with scenario data.
        source: Source identifier for error messages.

    Returns:
        Parsed Scenario object.

    Raises:
        ScenarioParseError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ScenarioParseError(
            f"Scenario must be a YAML mapping, got {type(data).__name__}"
        )

    # Parse metadata
    if "scenario" not in data:
        raise ScenarioParseError(f"Missing required field 'scenario' in {source}")

    meta = data["scenario"]
    if not isinstance(meta, dict):
        raise ScenarioParseError(f"'scenario' must be a mapping in {source}")
    _require_fields(meta, ["name"], "scenario", source)

    # Parse variables
    variables_data = _require_list(data.get("variables", []), "variables", source)
    variables = []
    for i, var_data in enumerate(variables_data):
        _require_mapping(var_data, f"variables[{i}]", source)
        _require_fields(var_data, ["name"], f"variables[{i}]", source)
        variables.append(_build(Variable, var_data))

    # Parse steps
    steps_data = _require_list(data.get("steps", []), "steps", source)
    steps = []
    for i, step_data in enumerate(steps_data):
        _require_mapping(step_data, f"steps[{i}]", source)
        _require_fields(step_data, ["type"], f"steps[{i}]", source)
        steps.append(parse_step(step_data, context=f"steps[{i}]", source=source))

    tags = meta.get("tags") or []
    if not isinstance(tags, list):
        raise ScenarioParseError(f"'scenario.tags' must be a list in {source}")

    return Scenario(
        id=str(meta.get("id") or meta["name"]),
        name=str(meta["name"]),
        description=str(meta.get("description") or ""),
        variables=variables,
        steps=steps,
        tags=[str(tag) for tag in tags],
    )


def parse_step(data: dict, context: str = "step", source: str = "<inline>") -> Step:
    """Parse one scenario step mapping."""
    values = dict(data)
    for key in ("attributes", "expected_attributes"):
        if key in values:
            values[key] = [
                AttributePair(name=name, value=value)
                for name, value in _pairs(values[key], f"{context}.{key}", source)
            ]
    if "headers" in values:
        values["headers"] = [
            Header(name=name, value=str(value))
            for name, value in _pairs(values["headers"], f"{context}.headers", source)
        ]
    if "request_body" in values and isinstance(values["request_body"], (dict, list)):
        values["request_body"] = yaml.safe_dump(values["request_body"], default_flow_style=True).strip()
    return _build(Step, values)


def parse_shell_steps(items: Any, context: str, source: str = "<inline>") -> list[ShellStep]:
    """Parse preamble shell steps (``name``, ``command``, ``enabled``...)."""
    steps = []
    for i, item in enumerate(_require_list(items or [], context, source)):
        _require_mapping(item, f"{context}[{i}]", source)
        _require_fields(item, ["name", "command"], f"{context}[{i}]", source)
        steps.append(_build(ShellStep, item))
    return steps


def parse_validation_steps(items: Any, context: str, source: str = "<inline>") -> list[ValidationStep]:
    """Parse database validation steps (``type`` is ``sql`` or ``ssh``)."""
    steps = []
    for i, item in enumerate(_require_list(items or [], context, source)):
        _require_mapping(item, f"{context}[{i}]", source)
        _require_fields(item, ["name", "command"], f"{context}[{i}]", source)
        step = _build(ValidationStep, item)
        if step.type not in ("sql", "ssh"):
            raise ScenarioParseError(
                f"Invalid validation step type '{step.type}' in {context}[{i}] ({source})"
            )
        steps.append(step)
    return steps


def parse_packets(file_path: Union[str, Path]) -> dict[str, RadiusPacket]:
    """Parse a packet catalogue file into ``packet_id -> RadiusPacket``."""
    data = load_yaml_file(file_path)
    return parse_packets_data(data, source=str(file_path))


def parse_packets_data(data: dict, source: str = "<inline>") -> dict[str, RadiusPacket]:
    if not isinstance(data, dict):
        raise ScenarioParseError(f"Packet file must be a YAML mapping in {source}")

    packets: dict[str, RadiusPacket] = {}
    for i, item in enumerate(_require_list(data.get("packets", []), "packets", source)):
        _require_mapping(item, f"packets[{i}]", source)
        _require_fields(item, ["id"], f"packets[{i}]", source)
        packet = RadiusPacket(
            id=str(item["id"]),
            name=str(item.get("name") or item["id"]),
            code=str(item.get("code") or "Access-Request"),
            attributes=[
                AttributePair(name=name, value=value)
                for name, value in _pairs(item.get("attributes", []), f"packets[{i}].attributes", source)
            ],
        )
        packets[packet.id] = packet
    return packets


def _build(cls, data: dict):
    """Instantiate a dataclass from the keys it knows about."""
    return cls(**{
        k: v for k, v in data.items()
        if k in cls.__dataclass_fields__
    })


def _pairs(value: Any, context: str, source: str) -> list[tuple[str, Any]]:
    """Accept either ``{name: value}`` or ``[{name, value}]`` forms."""
    if isinstance(value, dict):
        return [(str(k), v) for k, v in value.items()]
    if isinstance(value, list):
        pairs = []
        for i, item in enumerate(value):
            if not isinstance(item, dict) or "name" not in item:
                raise ScenarioParseError(
                    f"{context}[{i}] must be a mapping with 'name' and 'value' ({source})"
                )
            pairs.append((str(item["name"]), item.get("value", "")))
        return pairs
    raise ScenarioParseError(f"'{context}' must be a mapping or a list ({source})")


def _require_list(value: Any, context: str, source: str) -> list:
    if not isinstance(value, list):
        raise ScenarioParseError(f"'{context}' must be a list in {source}")
    return value


def _require_mapping(value: Any, context: str, source: str) -> None:
    if not isinstance(value, dict):
        raise ScenarioParseError(f"{context} must be a mapping in {source}")


def _require_fields(
    data: dict, fields: list[str], context: str, source: str
) -> None:
    """Check that required fields exist in a dictionary."""
    for field_name in fields:
        if field_name not in data:
            raise ScenarioParseError(
                f"Missing required field '{field_name}' in {context} ({source})"
            )
