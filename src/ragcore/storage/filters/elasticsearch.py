from __future__ import annotations

from typing import Any

from ragcore.core.expression import RANGE_OPS, ComparisonNode, ComparisonOp

from .base import FilterCompiler

JsonDict = dict[str, Any]


class ElasticsearchFilterCompiler(FilterCompiler[JsonDict]):
    """
    Expression -> Elasticsearch query DSL (a `bool`/`term`/`range` dict).

    Field names are used as-is; the repository flattens metadata onto the
    document root when indexing. Negations are guarded with `exists` so a
    missing field never satisfies `!=` or `NOT IN`.
    """

    backend = "elasticsearch"

    def _match_all(self) -> JsonDict:
        return {"match_all": {}}

    def _logical_and(self, left: JsonDict, right: JsonDict) -> JsonDict:
        return {"bool": {"must": [left, right]}}

    def _logical_or(self, left: JsonDict, right: JsonDict) -> JsonDict:
        return {"bool": {"should": [left, right], "minimum_should_match": 1}}

    def _logical_not(self, operand: JsonDict) -> JsonDict:
        return {"bool": {"must_not": [operand]}}

    def _comparison(
        self, op: ComparisonOp, field: str, value: Any, node: ComparisonNode
    ) -> JsonDict:
        if op is ComparisonOp.EQ:
            return {"term": {field: self.scalar(node, value)}}
        if op is ComparisonOp.NEQ:
            return self._present_and_not(field, {"term": {field: self.scalar(node, value)}})
        if op in RANGE_OPS:
            return {"range": {field: {op.value: self.range_bound(node, value)}}}

        terms = {"terms": {field: self.membership_list(node, value)}}
        if op is ComparisonOp.IN:
            return terms
        return self._present_and_not(field, terms)

    @staticmethod
    def _present_and_not(field: str, clause: JsonDict) -> JsonDict:
        return {"bool": {"filter": [{"exists": {"field": field}}], "must_not": [clause]}}
