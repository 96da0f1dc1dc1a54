"""Tests for the loop/conditional expression evaluator."""

import pytest

from scenario_runner.errors import ConditionError
from scenario_runner.scenario.conditions import evaluate_condition


@pytest.mark.parametrize("expression,expected", [
    ("true", True),
    ("False", False),
    ("", False),
    ("1", True),
    ("iteration < 3", True),
    ("iteration >= 3", False),
    ("last_status == 'success'", True),
    ("last_status in ('failure', 'skipped')", False),
    ("realm == 'lab' and not iteration > 5", True),
    ("count + 1 == 11", True),
    ("1 < iteration < 5", True),
])
def test_evaluate_condition(expression, expected):
    names = {"iteration": 2, "last_status": "success", "realm": "lab", "count": "10"}
    assert evaluate_condition(expression, names) is expected


def test_numeric_strings_are_coerced():
    assert evaluate_condition("retries > 2", {"retries": "10"}) is True


@pytest.mark.parametrize("expression", [
    "__import__('os').system('id')",
    "iteration * 2",
    "x.attr",
    "lambda: 1",
])
def test_disallowed_syntax_raises(expression):
    with pytest.raises(ConditionError):
        evaluate_condition(expression, {"iteration": 1, "x": 1})


def test_unknown_name_raises():
    with pytest.raises(ConditionError, match="Unknown name 'missing'"):
        evaluate_condition("missing == 1", {})


def test_malformed_expression_raises():
    with pytest.raises(ConditionError, match="Invalid condition"):
        evaluate_condition("iteration <", {"iteration": 1})


def test_incomparable_values_raise():
    with pytest.raises(ConditionError, match="Cannot compare"):
        evaluate_condition("name < 3", {"name": "bob"})


def test_negating_a_string_raises():
    with pytest.raises(ConditionError):
        evaluate_condition("-user == 1", {"user": "bob"})


def test_null_byte_in_expression_raises():
    with pytest.raises(ConditionError):
        evaluate_condition("user == 'a\x00'", {"user": "bob"})
