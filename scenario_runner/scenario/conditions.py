"""
Safe evaluator for loop and conditional expressions.

The expression language is deliberately tiny:
  - Boolean ops: and, or, not
  - Comparisons: == != < <= > >= in not in
  - Names: scenario variables plus the runtime names ``iteration`` and
    ``last_status``
  - Constants: strings, ints, floats, bools, None
  - Tuples/lists of constants (right-hand side of ``in``)
  - Numeric addition/subtraction

Everything else is rejected. ``${name}`` tokens are substituted before the
expression reaches this module.
"""

import ast
from typing import Any

from ..errors import ConditionError

ALLOWED_BOOL_OPS = (ast.And, ast.Or)
ALLOWED_UNARY_OPS = (ast.Not, ast.USub)
ALLOWED_CMP_OPS = (
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
)
ALLOWED_BIN_OPS = (ast.Add, ast.Sub)

TRUE_WORDS = {"true", "yes", "on", "1"}
FALSE_WORDS = {"false", "no", "off", "0", ""}


def coerce(value: Any) -> Any:
    """Turn numeric-looking variable strings into numbers."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


def evaluate_condition(expression: str, names: dict[str, Any]) -> bool:
    """Evaluate ``expression`` against ``names``.

    A bare word such as ``true``/``false`` is accepted as a literal so that a
    condition fed entirely from a variable (``${enabled}``) works.

    Raises:
        ConditionError: If the expression is malformed, uses disallowed
            syntax or refers to an unknown name.
    """
    text = (expression or "").strip()
    lowered = text.lower()
    if lowered in TRUE_WORDS:
        return True
    if lowered in FALSE_WORDS:
        return False

    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ConditionError(f"Invalid condition '{text}': {e.msg}") from e
    except ValueError as e:
        raise ConditionError(f"Invalid condition '{text}': {e}") from e

    scope = {key: coerce(value) for key, value in names.items()}
    return bool(_Evaluator(scope, text).visit(tree.body))


class _Evaluator(ast.NodeVisitor):
    def __init__(self, scope: dict[str, Any], source: str):
        self.scope = scope
        self.source = source

    def generic_visit(self, node: ast.AST) -> Any:
        raise ConditionError(
            f"Disallowed syntax in condition '{self.source}': {type(node).__name__}"
        )

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.scope:
            return self.scope[node.id]
        lowered = node.id.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        raise ConditionError(f"Unknown name '{node.id}' in condition '{self.source}'")

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(item) for item in node.elts)

    def visit_List(self, node: ast.List) -> Any:
        return tuple(self.visit(item) for item in node.elts)

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if not isinstance(node.op, ALLOWED_BOOL_OPS):
            raise ConditionError("Disallowed boolean operator")
        values = (self.visit(value) for value in node.values)
        if isinstance(node.op, ast.And):
            return all(values)
        return any(values)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        if not isinstance(node.op, ALLOWED_UNARY_OPS):
            raise ConditionError("Disallowed unary operator")
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        try:
            return -operand
        except TypeError as e:
            raise ConditionError(f"Invalid arithmetic in condition '{self.source}': {e}") from e

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        if not isinstance(node.op, ALLOWED_BIN_OPS):
            raise ConditionError("Disallowed arithmetic operator")
        left = self.visit(node.left)
        right = self.visit(node.right)
        try:
            if isinstance(node.op, ast.Add):
                return left + right
            return left - right
        except TypeError as e:
            raise ConditionError(f"Invalid arithmetic in condition '{self.source}': {e}") from e

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            if not isinstance(op, ALLOWED_CMP_OPS):
                raise ConditionError("Disallowed comparison operator")
            right = self.visit(comparator)
            try:
                if not _compare(op, left, right):
                    return False
            except TypeError as e:
                raise ConditionError(
                    f"Cannot compare {left!r} and {right!r} in condition '{self.source}'"
                ) from e
            left = right
        return True


def _compare(op: ast.cmpop, left: Any, right: Any) -> bool:
    if isinstance(op, ast.Eq):
        return left == right
    if isinstance(op, ast.NotEq):
        return left != right
    if isinstance(op, ast.Lt):
        return left < right
    if isinstance(op, ast.LtE):
        return left <= right
    if isinstance(op, ast.Gt):
        return left > right
    if isinstance(op, ast.GtE):
        return left >= right
    if isinstance(op, ast.In):
        return left in right
    return left not in right
