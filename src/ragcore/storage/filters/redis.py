from __future__ import annotations

from typing import Any

from ragcore.core.expression import ComparisonNode, ComparisonOp

from .base import FilterCompiler

# characters RediSearch treats as syntax inside TAG values
_TAG_SPECIAL = set(",.<>{}[]\"':;!@#$%^&*()-+=~|/\\ ")


def escape_tag(value: str) -> str:
    return "".join("\\" + ch if ch in _TAG_SPECIAL else ch for ch in value)


def _num(v: int | float) -> str:
    return repr(v) if isinstance(v, float) else str(v)


class RedisFilterCompiler(FilterCompiler[str]):
    """
    Expression -> RediSearch query fragment.

    Strings and booleans are TAG fields, numbers are NUMERIC fields. Unlike
    the other compilers a negated clause also matches documents that lack the
    field; RediSearch has no cheap "field exists" predicate.
    """

    backend = "redis"

    def _match_all(self) -> str:
        return "*"

    def _logical_and(self, left: str, right: str) -> str:
        return f"({left} {right})"

    def _logical_or(self, left: str, right: str) -> str:
        return f"({left} | {right})"

    def _logical_not(self, operand: str) -> str:
        return f"-({operand})"

    def _comparison(self, op: ComparisonOp, field: str, value: Any, node: ComparisonNode) -> str:
        if op is ComparisonOp.EQ:
            return self._eq(field, self.scalar(node, value))
        if op is ComparisonOp.NEQ:
            return "-" + self._eq(field, self.scalar(node, value))
        if op is ComparisonOp.GT:
            return f"@{field}:[({_num(self.range_bound(node, value))} +inf]"
        if op is ComparisonOp.GTE:
            return f"@{field}:[{_num(self.range_bound(node, value))} +inf]"
        if op is ComparisonOp.LT:
            return f"@{field}:[-inf ({_num(self.range_bound(node, value))}]"
        if op is ComparisonOp.LTE:
            return f"@{field}:[-inf {_num(self.range_bound(node, value))}]"

        values = self.membership_list(node, value)
        if isinstance(values[0], (int, float)) and not isinstance(values[0], bool):  # noqa: UP038
            clause = "(" + " | ".join(f"@{field}:[{_num(v)} {_num(v)}]" for v in values) + ")"
        else:
            clause = f"@{field}:{{" + " | ".join(self._tag(v) for v in values) + "}"
        return clause if op is ComparisonOp.IN else "-" + clause

    def _eq(self, field: str, value: Any) -> str:
        if isinstance(value, (int, float)) and not isinstance(value, bool):  # noqa: UP038
            return f"@{field}:[{_num(value)} {_num(value)}]"
        return f"@{field}:{{{self._tag(value)}}}"

    @staticmethod
    def _tag(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return escape_tag(str(value))
