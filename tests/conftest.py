from __future__ import annotations

from collections.abc import Sequence
import logging
import re

import pytest

from ragcore.core.document import Document

VOCAB = (
    "solon",
    "java",
    "python",
    "rust",
    "framework",
    "tutorial",
    "web",
    "database",
    "vector",
    "search",
)


class KeywordEmbedder:
    """
    Deterministic bag-of-words embedder over a fixed vocabulary.

    Each known token adds 1.0 to its own axis; a constant 0.1 bias axis keeps
    every vector away from zero norm.
    """

    def __init__(self, vocab: Sequence[str] = VOCAB, batch_size: int = 8):
        self.vocab = {w: i for i, w in enumerate(vocab)}
        self.dimensions = len(vocab) + 1
        self.batch_size = batch_size
        self.calls: list[list[str]] = []

    def vector(self, text: str) -> list[float]:
        v = [0.0] * self.dimensions
        for tok in re.findall(r"\w+", text.lower()):
            i = self.vocab.get(tok)
            if i is not None:
                v[i] += 1.0
        v[-1] = 0.1
        return v

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]

    async def embed_one(self, text: str) -> list[float]:
        return self.vector(text)


class FailingEmbedder(KeywordEmbedder):
    """Raises on the `fail_on`-th call to `embed` (1-based)."""

    def __init__(self, fail_on: int, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = fail_on

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if len(self.calls) + 1 == self.fail_on:
            self.calls.append(list(texts))
            raise RuntimeError("embedding provider unavailable")
        return await super().embed(texts)


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def solon_corpus() -> list[Document]:
    """Two documents mention solon; `solon web` is the closer match."""
    return [
        Document(content="Solon is a Java framework", metadata={"category": "framework"}, id="d1"),
        Document(content="Solon web", metadata={"category": "framework"}, id="d2"),
        Document(content="Python tutorial", metadata={"category": "tutorial"}, id="d3"),
        Document(content="Rust database", metadata={"category": "news"}, id="d4"),
    ]


@pytest.fixture
def category_docs() -> list[Document]:
    return [
        Document(content="Solon web framework", metadata={"category": "framework"}, id="c1"),
        Document(content="Java framework", metadata={"category": "framework"}, id="c2"),
        Document(content="Python tutorial", metadata={"category": "tutorial"}, id="c3"),
    ]


@pytest.fixture(autouse=True)
def _reset_ragcore_logger():
    # StdLoggerService.build() detaches the "ragcore" tree from the root logger
    yield
    root = logging.getLogger("ragcore")
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    """Succeeds on the first `embed` call, fails on the second."""
    return FailingEmbedder(fail_on=2)
