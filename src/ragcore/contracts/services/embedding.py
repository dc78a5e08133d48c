from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol


class EmbeddingClientProtocol(Protocol):
    """
    Text embedding collaborator.

    Implementations own provider/HTTP details; repositories only need vectors
    of a fixed length. `batch_size` is the preferred number of texts per call.
    """

    dimensions: int
    batch_size: int

    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...

    async def embed_one(self, text: str) -> list[float]: ...
