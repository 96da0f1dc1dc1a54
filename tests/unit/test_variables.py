"""Tests for variable resolution and substitution."""

import random

import pytest

from scenario_runner.scenario.schema import AttributePair, Header, ShellStep, Step, Variable
from scenario_runner.scenario.variables import VariableResolver, substitute


@pytest.mark.parametrize("text", [
    "",
    "SELECT * FROM radcheck",
    "plain $name and {braces}",
    "$ {spaced} and ${",
])
def test_substitute_is_identity_without_tokens(text):
    result, unresolved = substitute(text, {"name": "bob"})
    assert result == text
    assert unresolved == []
    assert substitute(result, {"name": "bob"})[0] == result


def test_substitute_replaces_every_occurrence():
    result, unresolved = substitute("${user}:${user}@${realm}", {"user": "bob", "realm": "lab"})
    assert result == "bob:bob@lab"
    assert unresolved == []


def test_substitute_leaves_undefined_tokens_verbatim():
    result, unresolved = substitute("${user} ${missing} ${missing}", {"user": "bob"})
    assert result == "bob ${missing} ${missing}"
    assert unresolved == ["missing"]


def test_static_variable_resolves_verbatim():
    resolver = VariableResolver([Variable("user", "static", "alice")])
    assert resolver.resolve_all() == {"user": "alice"}


def test_random_string_uses_requested_length():
    resolver = VariableResolver([Variable("token", "random_string", "12")], rng=random.Random(7))
    value = resolver.resolve_all()["token"]
    assert len(value) == 12
    assert value.isalnum()


def test_random_string_default_length():
    resolver = VariableResolver([Variable("token", "random_string", "")], rng=random.Random(7))
    assert len(resolver.resolve_all()["token"]) == 8


@pytest.mark.parametrize("definition,low,high", [
    ("", 0, 9999),
    ("50", 0, 50),
    ("10-20", 10, 20),
    ("not-a-range", 0, 9999),
])
def test_random_number_range(definition, low, high):
    resolver = VariableResolver([Variable("n", "random_number", definition)], rng=random.Random(3))
    for _ in range(20):
        assert low <= int(resolver.resolve_all()["n"]) <= high


def test_list_variable_draws_by_iteration():
    resolver = VariableResolver([Variable("user", "list", "alice, bob, carol")])
    assert resolver.resolve_all(0)["user"] == "alice"
    assert resolver.refresh(1)["user"] == "bob"
    assert resolver.refresh(2)["user"] == "carol"
    assert resolver.refresh(3)["user"] == "alice"


def test_refresh_keeps_static_values():
    resolver = VariableResolver(
        [Variable("realm", "static", "lab"), Variable("user", "list", "a,b")]
    )
    resolver.resolve_all()
    resolver.set("realm", "changed")
    values = resolver.refresh(1)
    assert values == {"realm": "changed", "user": "b"}


def test_resolve_step_covers_command_like_fields():
    resolver = VariableResolver([Variable("v", "static", "X")])
    resolver.resolve_all()
    step = Step(
        type="api_call",
        name="call",
        url="http://host/${v}",
        headers=[Header("X-${v}", "${v}")],
        request_body='{"id": "${v}"}',
        expected_body_contains="${v}",
        message="${v}",
        condition="${v} == 'X'",
        query="SELECT '${v}'",
        expect_value="${v}",
        duration_ms="${v}",
        attributes=[AttributePair("User-Name", "${v}")],
        expected_attributes=[AttributePair("Reply-Message", "hi ${v}")],
    )

    resolved, unresolved = resolver.resolve_step(step)

    assert unresolved == []
    assert resolved.url == "http://host/X"
    assert resolved.headers == [Header("X-X", "X")]
    assert resolved.request_body == '{"id": "X"}'
    assert resolved.expected_body_contains == "X"
    assert resolved.message == "X"
    assert resolved.condition == "X == 'X'"
    assert resolved.query == "SELECT 'X'"
    assert resolved.expect_value == "X"
    assert resolved.duration_ms == "X"
    assert resolved.attributes == [AttributePair("User-Name", "X")]
    assert resolved.expected_attributes == [AttributePair("Reply-Message", "hi X")]
    # The original step is untouched.
    assert step.url == "http://host/${v}"


def test_resolve_step_reports_unresolved_names_once():
    resolver = VariableResolver([])
    resolver.resolve_all()
    step = Step(type="sql", query="SELECT ${a}, ${a}", expect_column="c", expect_value="${b}")
    _, unresolved = resolver.resolve_step(step)
    assert unresolved == ["a", "b"]


def test_resolve_command_step():
    resolver = VariableResolver([Variable("svc", "static", "radiusd")])
    resolver.resolve_all()
    step = ShellStep(name="check", command="pgrep ${svc}", expected_output_contains="${pid}")
    resolved, unresolved = resolver.resolve_command_step(step)
    assert resolved.command == "pgrep radiusd"
    assert resolved.expected_output_contains == "${pid}"
    assert unresolved == ["pid"]
