"""Arithmetic-only expression evaluator for the calc command.

Expressions are parsed with :mod:`ast` and only numeric literals, unary
plus/minus and the binary operators ``+ - * / // % **`` are evaluated. Names,
calls, attribute access and everything else are rejected.
"""

from __future__ import annotations

import ast
import math
import operator
from typing import Callable

_MAX_EXPONENT = 1000
_MAX_LENGTH = 200
# Below the 4300-digit limit on int-to-str conversion.
_MAX_RESULT_BITS = 14_000

_BINARY_OPS: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class EvaluationFailure(ValueError):
    """The expression is not valid arithmetic or cannot be evaluated."""


def evaluate(expression: str) -> int | float:
    """Evaluate an arithmetic expression and return its numeric value."""

    expression = expression.strip()
    if not expression:
        raise EvaluationFailure("empty expression")
    if len(expression) > _MAX_LENGTH:
        raise EvaluationFailure("expression too long")
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as exc:
        raise EvaluationFailure(f"syntax error: {exc.msg}") from exc

    try:
        result = _eval_node(tree.body)
    except (ZeroDivisionError, OverflowError) as exc:
        raise EvaluationFailure(str(exc)) from exc

    if isinstance(result, float) and not math.isfinite(result):
        raise EvaluationFailure("result is not finite")
    return result


def format_result(value: int | float) -> str:
    """Render a result, dropping the fraction of integral floats."""

    if isinstance(value, float) and value.is_integer():
        value = int(value)
    try:
        return str(value)
    except ValueError as exc:
        raise EvaluationFailure("result too large to display") from exc


def _eval_node(node: ast.AST) -> int | float:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise EvaluationFailure(f"unsupported literal {node.value!r}")
        return node.value
    if isinstance(node, ast.UnaryOp):
        unary = _UNARY_OPS.get(type(node.op))
        if unary is None:
            raise EvaluationFailure("unsupported unary operator")
        return unary(_eval_node(node.operand))
    if isinstance(node, ast.BinOp):
        binary = _BINARY_OPS.get(type(node.op))
        if binary is None:
            raise EvaluationFailure("unsupported operator")
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        result = binary(left, right)
        if isinstance(result, complex):
            raise EvaluationFailure("result is not a real number")
        if isinstance(result, int) and result.bit_length() > _MAX_RESULT_BITS:
            raise EvaluationFailure("result too large")
        return result
    raise EvaluationFailure(f"unsupported syntax: {type(node).__name__}")


def _check_power(base: int | float, exponent: int | float) -> None:
    if abs(exponent) > _MAX_EXPONENT:
        raise EvaluationFailure("exponent too large")
    # Bound integer results so nested powers cannot exhaust memory.
    if isinstance(base, int) and abs(base) > 1 and base.bit_length() * abs(exponent) > _MAX_RESULT_BITS:
        raise EvaluationFailure("result too large")
