from __future__ import annotations


class RagCoreError(Exception):
    """Base class for every error raised by ragcore."""


class ParseError(RagCoreError):
    """Malformed filter expression text."""

    def __init__(self, message: str, *, text: str, position: int):
        self.text = text
        self.position = position
        pointer = " " * position + "^"
        super().__init__(f"{message} at position {position}\n  {text}\n  {pointer}")


class FilterCompileError(RagCoreError):
    """
    A filter expression could not be translated for a backend.

    - backend: compiler name ("elasticsearch", "qdrant", ...)
    - fragment: printable form of the offending sub-expression
    """

    def __init__(self, message: str, *, backend: str, fragment: str | None = None):
        self.backend = backend
        self.fragment = fragment
        detail = f" [{fragment}]" if fragment else ""
        super().__init__(f"{backend}: {message}{detail}")


class UnsupportedExpressionError(FilterCompileError):
    """AST shape the compiler cannot represent (e.g. variable on both sides)."""


class UnsupportedOperandError(FilterCompileError):
    """Operand type the compiler cannot represent for the given operator."""

    def __init__(
        self,
        message: str,
        *,
        backend: str,
        field: str,
        operator: str,
        fragment: str | None = None,
    ):
        self.field = field
        self.operator = operator
        super().__init__(
            f"{message} (field={field!r}, op={operator})", backend=backend, fragment=fragment
        )


class SchemaValidationError(RagCoreError):
    """Filter references fields the repository has not declared."""

    def __init__(self, unknown: list[str], declared: list[str]):
        self.unknown = unknown
        self.declared = declared
        super().__init__(
            f"Filter references undeclared metadata fields {unknown}; declared: {declared}"
        )


class DimensionMismatchError(RagCoreError, ValueError):
    def __init__(self, expected: int, actual: int, *, context: str = "embedding"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{context} dimension mismatch: expected {expected}, got {actual}")


class ZeroNormError(RagCoreError, ValueError):
    def __init__(self, which: str = "embedding"):
        super().__init__(f"{which} has zero norm; cosine similarity is undefined")


class BackendIOError(RagCoreError):
    """Network, protocol or storage failure while talking to a backend."""

    def __init__(self, message: str, *, backend: str, operation: str):
        self.backend = backend
        self.operation = operation
        super().__init__(f"{backend} {operation} failed: {message}")
