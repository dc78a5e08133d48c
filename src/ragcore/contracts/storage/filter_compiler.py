from __future__ import annotations

from typing import Protocol, TypeVar

from ragcore.core.expression import Expression

T_co = TypeVar("T_co", covariant=True)


class FilterCompiler(Protocol[T_co]):
    """Translate a filter Expression into a backend's native filter value."""

    backend: str

    def compile(self, expr: Expression | None) -> T_co: ...
