"""RADIUS scenario runner.

Runs scenario steps (RADIUS exchanges, SQL checks, HTTP calls, delays, loops
and conditionals) against configured targets and reports one verdict per run.
"""

from .config import ExecutionConfig, ExecutionTarget, load_targets
from .runner.service import ExecutionService
from .scenario import compile_scenario, parse_packets, parse_scenario

__version__ = "0.1.0"

__all__ = [
    "ExecutionConfig",
    "ExecutionService",
    "ExecutionTarget",
    "compile_scenario",
    "load_targets",
    "parse_packets",
    "parse_scenario",
]
