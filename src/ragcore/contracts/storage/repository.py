from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from ragcore.core.document import Document
from ragcore.core.query import QueryCondition

# (batch_index, total_batches); batch_index is 1-based, empty input reports (0, 0)
ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class Repository(Protocol):
    async def search(self, condition: QueryCondition) -> list[Document]:
        """
        Return at most `condition.limit` documents ordered by score desc.

        Unless `condition.disable_refilter` is set, every result satisfies the
        filter expression and scores >= `condition.similarity_threshold`.
        """
        ...


@runtime_checkable
class RepositoryStorable(Repository, Protocol):
    async def save(
        self,
        documents: Sequence[Document],
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """
        Upsert documents in batches.

        - ids are assigned to documents that have none (visible to the caller)
        - documents without embeddings are embedded first
        - a failing batch raises; earlier batches stay committed
        """
        ...

    async def insert(
        self,
        documents: Sequence[Document],
        progress_callback: ProgressCallback | None = None,
    ) -> None: ...

    async def delete_by_id(self, *ids: str) -> None:
        """Idempotent; unknown ids are ignored."""
        ...

    async def delete(self, *ids: str) -> None: ...

    async def exists_by_id(self, id: str) -> bool: ...

    async def exists(self, id: str) -> bool: ...


@runtime_checkable
class RepositoryLifecycle(Protocol):
    async def init_repository(self) -> None:
        """Create collection/index/table if missing. Safe to call twice."""
        ...

    async def drop_repository(self) -> None: ...
