from __future__ import annotations

from typing import Any

from ragcore.core.expression import RANGE_OPS, ComparisonNode, ComparisonOp

from .base import FilterCompiler

JsonDict = dict[str, Any]


class QdrantFilterCompiler(FilterCompiler[JsonDict]):
    """
    Expression -> Qdrant REST `Filter` JSON.

    Points keep their metadata under one payload key, so field keys are
    prefixed (default "metadata."). Qdrant's integer `match` never fires on a
    float payload (`2020.0`), so every numeric equality compiles to a closed
    range and `match` is kept for keywords and booleans.
    """

    backend = "qdrant"

    def __init__(self, key_prefix: str = "metadata."):
        self.key_prefix = key_prefix

    def key(self, field: str) -> str:
        return f"{self.key_prefix}{field}"

    def _match_all(self) -> JsonDict:
        return {}

    def _logical_and(self, left: JsonDict, right: JsonDict) -> JsonDict:
        return {"must": [left, right]}

    def _logical_or(self, left: JsonDict, right: JsonDict) -> JsonDict:
        return {"should": [left, right]}

    def _logical_not(self, operand: JsonDict) -> JsonDict:
        return {"must_not": [operand]}

    def _comparison(
        self, op: ComparisonOp, field: str, value: Any, node: ComparisonNode
    ) -> JsonDict:
        key = self.key(field)
        if op is ComparisonOp.EQ:
            return self._eq(key, self.scalar(node, value))
        if op is ComparisonOp.NEQ:
            return self._present_and_not(key, self._eq(key, self.scalar(node, value)))
        if op in RANGE_OPS:
            return {"key": key, "range": {op.value: self.range_bound(node, value)}}

        values = self.membership_list(node, value)
        cond = self._any(key, values)
        if op is ComparisonOp.IN:
            return cond
        return self._present_and_not(key, cond)

    # -------- helpers ----------------------------------------------------
    def _eq(self, key: str, value: Any) -> JsonDict:
        if isinstance(value, (int, float)) and not isinstance(value, bool):  # noqa: UP038
            return {"key": key, "range": {"gte": value, "lte": value}}
        return {"key": key, "match": {"value": value}}

    def _any(self, key: str, values: list[Any]) -> JsonDict:
        if all(isinstance(v, str) for v in values):
            return {"key": key, "match": {"any": list(values)}}
        # numbers and booleans have no type-agnostic `any` form
        return {"should": [self._eq(key, v) for v in values]}

    @staticmethod
    def _present_and_not(key: str, cond: JsonDict) -> JsonDict:
        return {"must_not": [{"is_empty": {"key": key}}, cond]}
