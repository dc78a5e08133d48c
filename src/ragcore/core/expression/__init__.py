from .nodes import (
    MEMBERSHIP_OPS,
    RANGE_OPS,
    ComparisonNode,
    ComparisonOp,
    ConstantNode,
    Expression,
    LogicalNode,
    LogicalOp,
    VariableNode,
    and_,
    compare,
    const,
    evaluate,
    lookup,
    not_,
    or_,
    referenced_fields,
    to_text,
    var,
    walk,
)
from .parser import parse

__all__ = [
    # AST
    "Expression",
    "VariableNode",
    "ConstantNode",
    "ComparisonNode",
    "LogicalNode",
    "ComparisonOp",
    "LogicalOp",
    "RANGE_OPS",
    "MEMBERSHIP_OPS",
    # constructors
    "var",
    "const",
    "compare",
    "and_",
    "or_",
    "not_",
    # helpers
    "walk",
    "referenced_fields",
    "lookup",
    "evaluate",
    "to_text",
    "parse",
]
