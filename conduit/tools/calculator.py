"""Restricted arithmetic evaluator.

Parses with :mod:`ast` and walks only numeric literals, the binary
operators ``+ - * / // % **``, unary ``+``/``-`` and parentheses.  Names,
calls, attribute access, subscripts and everything else are rejected, so
caller-supplied text is never executed.
"""

from __future__ import annotations

import ast
import math
import operator

MAX_EXPRESSION_LENGTH = 500
MAX_EXPONENT = 1000
MAX_INT_BITS = 4096

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculationError(ValueError):
    """The expression is malformed, disallowed, or not computable."""


def evaluate(expression: str) -> int | float:
    """Evaluate an arithmetic *expression* and return its numeric value.

    Raises:
        CalculationError: on syntax errors, disallowed constructs, division
            by zero, or operands too large to compute safely.
    """
    text = expression.strip()
    if not text:
        raise CalculationError("Expression is empty")
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise CalculationError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters")

    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise CalculationError(f"Malformed expression: {exc.msg}") from exc

    result = _eval(tree.body)
    if isinstance(result, float) and not math.isfinite(result):
        raise CalculationError("Result is not a finite number")
    return result


def _eval(node: ast.AST) -> int | float:
    if isinstance(node, ast.Constant):
        # bool is an int subclass; True/False are not numbers here
        if isinstance(node.value, bool) or not isinstance(node.value, int | float):
            raise CalculationError(f"Unsupported literal: {node.value!r}")
        return node.value

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise CalculationError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_eval(node.operand))

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise CalculationError(f"Unsupported operator: {type(node.op).__name__}")
        left = _eval(node.left)
        right = _eval(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise CalculationError(f"Exponent larger than {MAX_EXPONENT}")
        try:
            result = op(left, right)
        except ZeroDivisionError as exc:
            raise CalculationError("Division by zero") from exc
        except OverflowError as exc:
            raise CalculationError("Result too large") from exc
        if isinstance(result, complex):
            raise CalculationError("Result is not a real number")
        if isinstance(result, int) and result.bit_length() > MAX_INT_BITS:
            raise CalculationError("Result too large")
        return result

    raise CalculationError(f"Unsupported expression element: {type(node).__name__}")
