from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ragcore.core.expression import RANGE_OPS, ComparisonNode, ComparisonOp

from .base import FilterCompiler

_OPS_SQL = {
    ComparisonOp.GT: ">",
    ComparisonOp.GTE: ">=",
    ComparisonOp.LT: "<",
    ComparisonOp.LTE: "<=",
}
_NUMERIC_TYPES = "type IN ('integer', 'real')"


@dataclass(frozen=True)
class SqlFilter:
    """WHERE clause text plus positional parameters, in order."""

    where: str
    params: list[Any] = field(default_factory=list)


def json_path(name: str) -> str:
    return "$." + ".".join('"' + part + '"' for part in name.split("."))


class SqliteFilterCompiler(FilterCompiler[SqlFilter]):
    """
    Expression -> SQLite WHERE clause over a JSON metadata column.

    Every comparison walks `json_each(<column>, <path>)`, which yields one row
    for a scalar and one row per element for an array, so list-valued
    metadata matches when any element does. Values are always bound as
    parameters. Requires the JSON1 functions (built into current SQLite).
    """

    backend = "sqlite"

    def __init__(self, column: str = "meta_json"):
        self.column = column

    def _match_all(self) -> SqlFilter:
        return SqlFilter("1 = 1", [])

    def _logical_and(self, left: SqlFilter, right: SqlFilter) -> SqlFilter:
        return SqlFilter(f"({left.where} AND {right.where})", left.params + right.params)

    def _logical_or(self, left: SqlFilter, right: SqlFilter) -> SqlFilter:
        return SqlFilter(f"({left.where} OR {right.where})", left.params + right.params)

    def _logical_not(self, operand: SqlFilter) -> SqlFilter:
        return SqlFilter(f"NOT ({operand.where})", operand.params)

    def _comparison(
        self, op: ComparisonOp, field: str, value: Any, node: ComparisonNode
    ) -> SqlFilter:
        if op in (ComparisonOp.EQ, ComparisonOp.NEQ):
            cond, cparams = self._element_eq(self.scalar(node, value))
        elif op in RANGE_OPS:
            cond, cparams = f"{_NUMERIC_TYPES} AND value {_OPS_SQL[op]} ?", [
                self.range_bound(node, value)
            ]
        else:
            cond, cparams = self._element_in(self.membership_list(node, value))

        hit = self._exists(field, cond, cparams)
        if op in (ComparisonOp.NEQ, ComparisonOp.NIN):
            present = self._exists(field, "type != 'null'", [])
            return SqlFilter(
                f"({present.where} AND NOT {hit.where})", present.params + hit.params
            )
        return hit

    # -------- helpers ----------------------------------------------------
    def _source(self, field: str) -> tuple[str, list[Any]]:
        """json_each source; dotted names prefer a literal key, then the nested path."""
        flat = '$."' + field + '"'
        if "." not in field:
            return f"json_each({self.column}, ?)", [flat]
        expr = (
            f"CASE WHEN json_type({self.column}, ?) IS NOT NULL THEN ? ELSE ? END"
        )
        return f"json_each({self.column}, {expr})", [flat, flat, json_path(field)]

    def _exists(self, field: str, cond: str, params: list[Any]) -> SqlFilter:
        source, sparams = self._source(field)
        return SqlFilter(f"EXISTS (SELECT 1 FROM {source} WHERE {cond})", sparams + params)

    @staticmethod
    def _element_eq(value: Any) -> tuple[str, list[Any]]:
        if isinstance(value, bool):
            return "type = ?", ["true" if value else "false"]
        if isinstance(value, (int, float)):  # noqa: UP038
            return f"{_NUMERIC_TYPES} AND value = ?", [value]
        return "type = 'text' AND value = ?", [value]

    @staticmethod
    def _element_in(values: list[Any]) -> tuple[str, list[Any]]:
        marks = ", ".join("?" for _ in values)
        first = values[0]
        if isinstance(first, bool):
            return f"type IN ({marks})", ["true" if v else "false" for v in values]
        if isinstance(first, (int, float)):  # noqa: UP038
            return f"{_NUMERIC_TYPES} AND value IN ({marks})", list(values)
        return f"type = 'text' AND value IN ({marks})", list(values)
