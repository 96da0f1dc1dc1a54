"""Scenario module - YAML scenario parsing, validation and compilation."""

from .schema import (
    AttributePair,
    Header,
    RadiusPacket,
    Scenario,
    ShellStep,
    Step,
    StepType,
    ValidationError,
    ValidationResult,
    ValidationStep,
    Variable,
    VariableType,
)
from .blocks import BlockMap, CompiledStep, compile_steps, resolve_blocks
from .parser import parse_packets, parse_scenario, parse_scenario_data
from .validator import CompiledScenario, compile_scenario, validate_scenario
from .variables import VariableResolver, substitute

__all__ = [
    "AttributePair",
    "BlockMap",
    "CompiledScenario",
    "CompiledStep",
    "Header",
    "RadiusPacket",
    "Scenario",
    "ShellStep",
    "Step",
    "StepType",
    "ValidationError",
    "ValidationResult",
    "ValidationStep",
    "Variable",
    "VariableResolver",
    "VariableType",
    "compile_scenario",
    "compile_steps",
    "parse_packets",
    "parse_scenario",
    "parse_scenario_data",
    "resolve_blocks",
    "substitute",
    "validate_scenario",
]
