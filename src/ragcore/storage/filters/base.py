from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from ragcore.core.document import MetadataField
from ragcore.core.errors import (
    SchemaValidationError,
    UnsupportedExpressionError,
    UnsupportedOperandError,
)
from ragcore.core.expression import (
    ComparisonNode,
    ComparisonOp,
    ConstantNode,
    Expression,
    LogicalNode,
    LogicalOp,
    VariableNode,
    referenced_fields,
    to_text,
)

T = TypeVar("T")


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)  # noqa: UP038


def _fragment(expr: Expression) -> str:
    try:
        return to_text(expr)
    except TypeError:
        return repr(expr)


class FilterCompiler(ABC, Generic[T]):
    """
    Base for backend filter compilers.

    Dispatches over the AST node kinds and leaves the native rendering to four
    hooks. Compilers hold no per-call state, so one instance can be shared.
    """

    backend: str = "abstract"

    def compile(self, expr: Expression | None) -> T:
        if expr is None:
            return self._match_all()
        return self._visit(expr)

    def _visit(self, expr: Expression) -> T:
        if isinstance(expr, LogicalNode):
            if expr.op is LogicalOp.AND:
                return self._logical_and(self._visit(expr.left), self._visit(expr.right))
            if expr.op is LogicalOp.OR:
                return self._logical_or(self._visit(expr.left), self._visit(expr.right))
            return self._logical_not(self._visit(expr.left))
        if isinstance(expr, ComparisonNode):
            field, value = self._operands(expr)
            return self._comparison(expr.op, field, value, expr)
        raise UnsupportedExpressionError(
            f"bare {type(expr).__name__} is not a filter",
            backend=self.backend,
            fragment=_fragment(expr),
        )

    # -------- hooks ------------------------------------------------------
    def _match_all(self) -> T:
        raise UnsupportedExpressionError("empty filter", backend=self.backend)

    @abstractmethod
    def _logical_and(self, left: T, right: T) -> T: ...

    @abstractmethod
    def _logical_or(self, left: T, right: T) -> T: ...

    @abstractmethod
    def _logical_not(self, operand: T) -> T: ...

    @abstractmethod
    def _comparison(self, op: ComparisonOp, field: str, value: Any, node: ComparisonNode) -> T:
        """`value` is the raw constant: a scalar, or a tuple for IN / NOT IN."""

    # -------- operand helpers --------------------------------------------
    def _operands(self, node: ComparisonNode) -> tuple[str, Any]:
        if not isinstance(node.left, VariableNode) or not isinstance(node.right, ConstantNode):
            raise UnsupportedExpressionError(
                "comparison must be <field> <op> <constant>",
                backend=self.backend,
                fragment=_fragment(node),
            )
        return node.left.name, node.right.value

    def range_bound(self, node: ComparisonNode, value: Any) -> int | float:
        """Range comparisons only accept numeric bounds."""
        if not _is_number(value):
            raise UnsupportedOperandError(
                f"range bound must be numeric, got {type(value).__name__}",
                backend=self.backend,
                field=self._field_name(node),
                operator=node.op.symbol,
                fragment=_fragment(node),
            )
        return value

    def scalar(self, node: ComparisonNode, value: Any) -> Any:
        if isinstance(value, tuple):
            raise UnsupportedOperandError(
                "list operand requires IN / NOT IN",
                backend=self.backend,
                field=self._field_name(node),
                operator=node.op.symbol,
                fragment=_fragment(node),
            )
        return value

    def membership_list(self, node: ComparisonNode, value: Any) -> list[Any]:
        """
        Validate an IN / NOT IN operand: non-empty, homogeneous (strings,
        numbers or booleans). A single scalar is promoted to a one-item list.
        """
        values = list(value) if isinstance(value, (tuple, list)) else [value]  # noqa: UP038
        if not values:
            raise UnsupportedOperandError(
                "empty value list",
                backend=self.backend,
                field=self._field_name(node),
                operator=node.op.symbol,
                fragment=_fragment(node),
            )
        kinds = {_kind(v) for v in values}
        if len(kinds) != 1 or None in kinds:
            raise UnsupportedOperandError(
                "value list must be homogeneous strings, numbers or booleans",
                backend=self.backend,
                field=self._field_name(node),
                operator=node.op.symbol,
                fragment=_fragment(node),
            )
        return values

    @staticmethod
    def _field_name(node: ComparisonNode) -> str:
        return node.left.name if isinstance(node.left, VariableNode) else "?"


def _kind(v: Any) -> str | None:
    if isinstance(v, bool):
        return "bool"
    if _is_number(v):
        return "number"
    if isinstance(v, str):
        return "string"
    return None


class FilterCompilerRegistry:
    """
    Name -> compiler lookup. Built explicitly (see `default_registry()`) and
    passed to whoever needs it.
    """

    def __init__(self, compilers: Iterable[FilterCompiler[Any]] = ()):
        self._compilers: dict[str, FilterCompiler[Any]] = {}
        for c in compilers:
            self.register(c)

    def register(self, compiler: FilterCompiler[Any]) -> None:
        self._compilers[compiler.backend] = compiler

    def get(self, backend: str) -> FilterCompiler[Any]:
        try:
            return self._compilers[backend]
        except KeyError:
            raise KeyError(
                f"No filter compiler registered for {backend!r}; available: {self.names()}"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._compilers)

    def __contains__(self, backend: object) -> bool:
        return backend in self._compilers


def validate_fields(
    expr: Expression | None, fields: Sequence[MetadataField] | Sequence[str]
) -> None:
    """Raise SchemaValidationError when `expr` mentions a field not in `fields`."""
    declared = [f.name if isinstance(f, MetadataField) else str(f) for f in fields]
    unknown = [name for name in referenced_fields(expr) if name not in declared]
    if unknown:
        raise SchemaValidationError(unknown, declared)
