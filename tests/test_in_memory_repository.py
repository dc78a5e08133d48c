import logging
import time

import numpy as np
import pytest

from ragcore.contracts.storage import Repository, RepositoryLifecycle, RepositoryStorable
from ragcore.core.document import Document, MetadataField
from ragcore.core.errors import DimensionMismatchError, SchemaValidationError
from ragcore.core.query import Freshness, HybridSearchParams, QueryCondition, SearchType
from ragcore.storage.repository import InMemoryRepository


def test_satisfies_repository_protocols(embedder):
    repo = InMemoryRepository(embedder=embedder)
    assert isinstance(repo, Repository)
    assert isinstance(repo, RepositoryStorable)
    assert isinstance(repo, RepositoryLifecycle)


def test_batch_size_resolution(embedder):
    assert InMemoryRepository(embedder=embedder, batch_size=3).batch_size == 3
    assert InMemoryRepository(embedder=embedder).batch_size == embedder.batch_size
    assert InMemoryRepository().batch_size == 10
    with pytest.raises(ValueError):
        InMemoryRepository(batch_size=0)


@pytest.mark.asyncio
async def test_save_assigns_ids_embeds_and_reports_progress(embedder):
    repo = InMemoryRepository(embedder=embedder, batch_size=2)
    docs = [Document(content=f"doc {i} solon") for i in range(5)]
    progress = []

    await repo.save(docs, progress_callback=lambda i, n: progress.append((i, n)))

    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert [len(c) for c in embedder.calls] == [2, 2, 1]
    assert all(d.id for d in docs)
    assert all(d.embedding is not None for d in docs)
    assert len(repo) == 5
    for d in docs:
        assert await repo.exists_by_id(d.id)


@pytest.mark.asyncio
async def test_save_empty_reports_zero_progress(embedder):
    repo = InMemoryRepository(embedder=embedder)
    progress = []
    await repo.save([], progress_callback=lambda i, n: progress.append((i, n)))
    assert progress == [(0, 0)]
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_save_skips_embedding_for_embedded_docs(embedder):
    repo = InMemoryRepository(embedder=embedder)
    doc = Document(content="solon", id="x", embedding=embedder.vector("java"))
    await repo.save([doc])
    assert embedder.calls == []
    assert doc.embedding.tolist() == pytest.approx(embedder.vector("java"))


@pytest.mark.asyncio
async def test_failed_batch_keeps_earlier_batches(failing_embedder, caplog):
    repo = InMemoryRepository(embedder=failing_embedder, batch_size=2)
    docs = [Document(content=f"doc {i}", id=f"id{i}") for i in range(4)]
    progress = []

    with caplog.at_level(logging.ERROR):
        with pytest.raises(RuntimeError, match="unavailable"):
            await repo.save(docs, progress_callback=lambda i, n: progress.append((i, n)))

    assert progress == [(1, 2)]
    assert len(repo) == 2
    assert await repo.exists("id0")
    assert not await repo.exists("id2")

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert errors
    assert errors[0].repository == "memory"
    assert "batch 2/2" in errors[0].getMessage()


@pytest.mark.asyncio
async def test_save_is_an_upsert(embedder):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save([Document(content="Solon web", id="a")])
    await repo.save([Document(content="Python tutorial", id="a")])
    assert len(repo) == 1
    results = await repo.search(QueryCondition(query="python", similarity_threshold=0.0))
    assert results[0].content == "Python tutorial"


@pytest.mark.asyncio
async def test_dimension_mismatch_is_rejected(embedder):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save([Document(content="solon", id="a")])
    with pytest.raises(DimensionMismatchError):
        await repo.save([Document(content="short", id="b", embedding=[1.0, 2.0])])
    with pytest.raises(DimensionMismatchError):
        await repo.save(
            [
                Document(content="x", id="c", embedding=[1.0, 2.0]),
                Document(content="y", id="d", embedding=[1.0, 2.0, 3.0]),
            ]
        )


@pytest.mark.asyncio
async def test_delete_is_idempotent(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)

    await repo.delete_by_id("d1", "unknown")
    await repo.delete_by_id("d1")
    await repo.delete()
    assert not await repo.exists_by_id("d1")
    assert await repo.exists_by_id("d2")
    assert not await repo.exists_by_id("")
    assert len(repo) == 3


@pytest.mark.asyncio
async def test_vector_search_threshold_and_limit(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)

    results = await repo.search(QueryCondition(query="solon", limit=2, similarity_threshold=0.4))

    assert [d.id for d in results] == ["d2", "d1"]
    assert all(d.score >= 0.4 for d in results)
    assert results[0].score > results[1].score


@pytest.mark.asyncio
async def test_search_accepts_plain_text(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)
    results = await repo.search("solon")
    assert {d.id for d in results} == {"d1", "d2"}


@pytest.mark.asyncio
async def test_filter_only_lookup(embedder, category_docs):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(category_docs)

    results = await repo.search(QueryCondition(filter_expression="category == 'framework'"))

    assert {d.id for d in results} == {"c1", "c2"}
    assert all(d.score == 1.0 for d in results)


@pytest.mark.asyncio
async def test_empty_query_without_filter_returns_nothing(embedder, category_docs):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(category_docs)
    assert await repo.search(QueryCondition(query="  ")) == []


@pytest.mark.asyncio
async def test_filtered_vector_search(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)
    results = await repo.search(
        QueryCondition(
            query="solon java",
            limit=4,
            similarity_threshold=0.0,
            filter_expression="category == 'framework'",
        )
    )
    assert [d.id for d in results] == ["d1", "d2"]


@pytest.mark.asyncio
async def test_full_text_search(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)

    results = await repo.search(
        QueryCondition(query="python tutorial", search_type=SearchType.FULL_TEXT, similarity_threshold=0.5)
    )
    assert [d.id for d in results] == ["d3"]
    assert results[0].score == pytest.approx(1.0)

    partial = await repo.search(
        QueryCondition(query="rust java", search_type="full_text", similarity_threshold=0.5, limit=4)
    )
    assert {d.id for d in partial} == {"d1", "d4"}
    assert all(d.score == pytest.approx(0.5) for d in partial)


@pytest.mark.asyncio
async def test_full_text_search_needs_no_embedder(embedder, solon_corpus):
    for doc in solon_corpus:
        doc.embedding = np.asarray(embedder.vector(doc.content), dtype=np.float32)
    repo = InMemoryRepository()
    await repo.save(solon_corpus)

    results = await repo.search(QueryCondition(query="web", search_type=SearchType.FULL_TEXT))
    assert [d.id for d in results] == ["d2"]

    with pytest.raises(RuntimeError):
        await repo.search(QueryCondition(query="web"))


@pytest.mark.asyncio
async def test_hybrid_search_blends_scores(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)

    vector_only = await repo.search(QueryCondition(query="solon java", similarity_threshold=0.0))
    hybrid = await repo.search(
        QueryCondition(
            query="solon java",
            similarity_threshold=0.0,
            search_type=SearchType.HYBRID,
            hybrid_search_params=HybridSearchParams.of(0.5),
        )
    )

    by_id = {d.id: d.score for d in vector_only}
    for doc in hybrid:
        lexical = {"d1": 1.0, "d2": 0.5, "d3": 0.0, "d4": 0.0}[doc.id]
        assert doc.score == pytest.approx(0.5 * by_id[doc.id] + 0.5 * lexical, abs=1e-6)
    assert hybrid[0].id == "d1"


@pytest.mark.asyncio
async def test_disable_refilter_keeps_low_scores(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(solon_corpus)
    results = await repo.search(
        QueryCondition(query="solon", limit=4, similarity_threshold=0.99, disable_refilter=True)
    )
    assert len(results) == 4


@pytest.mark.asyncio
async def test_disable_refilter_still_returns_best_first(embedder):
    repo = InMemoryRepository(embedder=embedder)
    await repo.save(
        [
            Document(content="Python tutorial", id="low"),
            Document(content="Solon web", id="high"),
        ]
    )
    results = await repo.search(QueryCondition(query="solon web", limit=1, disable_refilter=True))
    assert [d.id for d in results] == ["high"]


@pytest.mark.asyncio
async def test_freshness_uses_created_at_ts(embedder):
    repo = InMemoryRepository(embedder=embedder)
    old = time.time() - 10 * 86400
    await repo.save(
        [
            Document(content="solon old", id="old", metadata={"created_at_ts": old}),
            Document(content="solon new", id="new"),
        ]
    )

    fresh = await repo.search(QueryCondition(query="solon", freshness=Freshness.DAY))
    assert [d.id for d in fresh] == ["new"]

    month = await repo.search(QueryCondition(query="solon", freshness=Freshness.MONTH))
    assert {d.id for d in month} == {"old", "new"}


@pytest.mark.asyncio
async def test_strict_fields_rejects_undeclared_filters(embedder, category_docs):
    repo = InMemoryRepository(
        embedder=embedder, fields=[MetadataField.keyword("category")], strict_fields=True
    )
    await repo.save(category_docs)

    ok = await repo.search(QueryCondition(filter_expression="category == 'tutorial'"))
    assert [d.id for d in ok] == ["c3"]

    with pytest.raises(SchemaValidationError):
        await repo.search(QueryCondition(query="x", filter_expression="colour == 'red'"))


@pytest.mark.asyncio
async def test_stored_documents_are_isolated_from_callers(embedder):
    repo = InMemoryRepository(embedder=embedder)
    doc = Document(content="solon", id="a", metadata={"category": "framework"})
    await repo.save([doc])
    doc.metadata["category"] = "changed"

    results = await repo.search(QueryCondition(filter_expression="category == 'framework'"))
    assert [d.id for d in results] == ["a"]
    results[0].metadata["category"] = "again"
    again = await repo.search(QueryCondition(filter_expression="category == 'framework'"))
    assert [d.id for d in again] == ["a"]


@pytest.mark.asyncio
async def test_drop_repository_clears_everything(embedder, solon_corpus):
    repo = InMemoryRepository(embedder=embedder)
    await repo.init_repository()
    await repo.save(solon_corpus)
    await repo.drop_repository()
    assert len(repo) == 0
    assert await repo.search("solon") == []


def test_logger_carries_repository_context():
    repo = InMemoryRepository(collection="docs")
    assert repo.logger.extra == {"repository": "memory", "collection": "docs"}
    assert repo.logger.logger.name == "ragcore.storage.repository.in_memory"
