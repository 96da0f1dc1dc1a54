"""Pytest configuration for the scenario runner tests."""

import random

import pytest

from fakes import FakeFactory
from scenario_runner.config import ExecutionConfig, parse_targets_data
from scenario_runner.runner.logger import ExecutionLogger
from scenario_runner.scenario.parser import parse_scenario_data
from scenario_runner.scenario.validator import compile_scenario


async def no_sleep(seconds):
    return None


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def config():
    return ExecutionConfig(step_timeout=5, connect_timeout=5, shell_timeout=5)


@pytest.fixture
def exec_logger():
    return ExecutionLogger("exec-test")


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def build_scenario():
    """Compile a scenario from a list of step mappings."""
    def _build(steps, variables=None, name="Test scenario"):
        data = {
            "scenario": {"id": "sc-1", "name": name},
            "variables": variables or [],
            "steps": steps,
        }
        return compile_scenario(parse_scenario_data(data))
    return _build


@pytest.fixture
def build_target():
    """Build an ExecutionTarget from server/database mappings."""
    def _build(server=None, database=None, target_id="lab"):
        item = {"id": target_id, "name": "Lab"}
        if server is not None:
            item["server"] = server
        if database is not None:
            item["database"] = database
        return parse_targets_data({"targets": [item]})[target_id]
    return _build


@pytest.fixture
def sleep():
    return no_sleep
