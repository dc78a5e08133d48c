"""
Filter expression AST.

The tree is closed over four node kinds. Comparisons always have a variable
on the left and a constant on the right; compilers reject anything else.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import numpy as np


class ComparisonOp(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"

    @property
    def symbol(self) -> str:
        return _OP_SYMBOLS[self]


_OP_SYMBOLS = {
    ComparisonOp.EQ: "==",
    ComparisonOp.NEQ: "!=",
    ComparisonOp.GT: ">",
    ComparisonOp.GTE: ">=",
    ComparisonOp.LT: "<",
    ComparisonOp.LTE: "<=",
    ComparisonOp.IN: "IN",
    ComparisonOp.NIN: "NOT IN",
}

RANGE_OPS = frozenset({ComparisonOp.GT, ComparisonOp.GTE, ComparisonOp.LT, ComparisonOp.LTE})
MEMBERSHIP_OPS = frozenset({ComparisonOp.IN, ComparisonOp.NIN})


class LogicalOp(str, Enum):
    AND = "and"
    OR = "or"
    NOT = "not"


@dataclass(frozen=True)
class VariableNode:
    name: str


@dataclass(frozen=True)
class ConstantNode:
    value: Any

    def __post_init__(self) -> None:
        # lists are stored as tuples so the node stays hashable/immutable
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    @property
    def is_collection(self) -> bool:
        return isinstance(self.value, tuple)


@dataclass(frozen=True)
class ComparisonNode:
    op: ComparisonOp
    left: Expression
    right: Expression


@dataclass(frozen=True)
class LogicalNode:
    op: LogicalOp
    left: Expression
    right: Expression | None = None

    def __post_init__(self) -> None:
        if self.op is LogicalOp.NOT and self.right is not None:
            raise ValueError("NOT is unary; right operand must be None")
        if self.op is not LogicalOp.NOT and self.right is None:
            raise ValueError(f"{self.op.value.upper()} requires two operands")


Expression = Union[VariableNode, ConstantNode, ComparisonNode, LogicalNode]


# -------- constructors ------------------------------------------------


def var(name: str) -> VariableNode:
    return VariableNode(name)


def const(value: Any) -> ConstantNode:
    return ConstantNode(value)


def compare(field: str, op: ComparisonOp | str, value: Any) -> ComparisonNode:
    return ComparisonNode(ComparisonOp(op), VariableNode(field), ConstantNode(value))


def and_(left: Expression, right: Expression) -> LogicalNode:
    return LogicalNode(LogicalOp.AND, left, right)


def or_(left: Expression, right: Expression) -> LogicalNode:
    return LogicalNode(LogicalOp.OR, left, right)


def not_(operand: Expression) -> LogicalNode:
    return LogicalNode(LogicalOp.NOT, operand)


def walk(expr: Expression) -> Iterator[Expression]:
    """Pre-order traversal."""
    yield expr
    if isinstance(expr, ComparisonNode):
        yield from walk(expr.left)
        yield from walk(expr.right)
    elif isinstance(expr, LogicalNode):
        yield from walk(expr.left)
        if expr.right is not None:
            yield from walk(expr.right)


def referenced_fields(expr: Expression | None) -> list[str]:
    """Variable names in first-seen order, without duplicates."""
    if expr is None:
        return []
    seen: dict[str, None] = {}
    for node in walk(expr):
        if isinstance(node, VariableNode):
            seen.setdefault(node.name, None)
    return list(seen)


# -------- evaluation --------------------------------------------------


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)  # noqa: UP038


def _is_list_like(x: Any) -> bool:
    return isinstance(x, (list, tuple, set))  # noqa: UP038


def _is_missing(x: Any) -> bool:
    return x is None or (_is_list_like(x) and len(x) == 0)


def _equals(a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        return float(a) == float(b)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def _ordered(op: ComparisonOp, a: Any, b: Any) -> bool:
    if not ((_is_number(a) and _is_number(b)) or (isinstance(a, str) and isinstance(b, str))):
        return False
    if op is ComparisonOp.GT:
        return a > b
    if op is ComparisonOp.GTE:
        return a >= b
    if op is ComparisonOp.LT:
        return a < b
    return a <= b


def lookup(context: Mapping[str, Any], name: str) -> Any:
    """Resolve `name` against metadata; dotted names fall back to nested lookup."""
    if name in context:
        return context[name]
    if "." not in name:
        return None
    cur: Any = context
    for part in name.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _eval_comparison(node: ComparisonNode, context: Mapping[str, Any]) -> bool:
    if not isinstance(node.left, VariableNode) or not isinstance(node.right, ConstantNode):
        raise TypeError(f"Comparison must be <variable> <op> <constant>: {to_text(node)}")

    actual = lookup(context, node.left.name)
    if _is_missing(actual):
        return False

    expected = node.right.value
    values = list(actual) if _is_list_like(actual) else [actual]
    op = node.op

    if op is ComparisonOp.EQ:
        return any(_equals(v, expected) for v in values)
    if op is ComparisonOp.NEQ:
        return not any(_equals(v, expected) for v in values)
    if op in RANGE_OPS:
        return any(_ordered(op, v, expected) for v in values)

    candidates = expected if _is_list_like(expected) else (expected,)
    hit = any(_equals(v, c) for v in values for c in candidates)
    return hit if op is ComparisonOp.IN else not hit


def evaluate(expr: Expression | None, context: Mapping[str, Any] | None) -> bool:
    """
    Reference in-memory evaluation of a filter against document metadata.

    - None expression matches everything.
    - A comparison on a missing (None / empty list) field is false; NOT still negates.
    - List-valued metadata matches when any element satisfies the comparison
      (NEQ / NIN: when no element matches).
    """
    if expr is None:
        return True
    context = context or {}

    if isinstance(expr, LogicalNode):
        if expr.op is LogicalOp.AND:
            return evaluate(expr.left, context) and evaluate(expr.right, context)
        if expr.op is LogicalOp.OR:
            return evaluate(expr.left, context) or evaluate(expr.right, context)
        return not evaluate(expr.left, context)
    if isinstance(expr, ComparisonNode):
        return _eval_comparison(expr, context)
    if isinstance(expr, ConstantNode):
        return bool(expr.value)
    if isinstance(expr, VariableNode):
        return bool(lookup(context, expr.name))
    raise TypeError(f"Not an expression node: {expr!r}")


# -------- printing ----------------------------------------------------

_PRECEDENCE = {LogicalOp.OR: 1, LogicalOp.AND: 2, LogicalOp.NOT: 3}


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"
    if isinstance(value, tuple):
        return "[" + ", ".join(_literal(v) for v in value) + "]"
    if isinstance(value, float):
        # the lexer has no exponent form
        return np.format_float_positional(value, trim="0")
    return str(value)


def to_text(expr: Expression, _parent: int = 0) -> str:
    """Render an expression in the surface syntax accepted by `parse`."""
    if isinstance(expr, VariableNode):
        return expr.name
    if isinstance(expr, ConstantNode):
        return _literal(expr.value)
    if isinstance(expr, ComparisonNode):
        return f"{to_text(expr.left)} {expr.op.symbol} {to_text(expr.right)}"
    if isinstance(expr, LogicalNode):
        prec = _PRECEDENCE[expr.op]
        if expr.op is LogicalOp.NOT:
            inner = expr.left
            body = to_text(inner, prec)
            if isinstance(inner, LogicalNode) and inner.op is not LogicalOp.NOT:
                body = f"({to_text(inner)})"
            text = f"NOT {body}"
        else:
            keyword = expr.op.value.upper()
            # left-associative: the right child needs parens at equal precedence
            text = f"{to_text(expr.left, prec)} {keyword} {to_text(expr.right, prec + 1)}"
        return f"({text})" if prec < _parent else text
    raise TypeError(f"Not an expression node: {expr!r}")
