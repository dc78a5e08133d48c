import sqlite3
import time

import pytest

from ragcore.core.document import Document
from ragcore.core.errors import BackendIOError
from ragcore.core.query import Freshness, QueryCondition, SearchType
from ragcore.storage.repository import SqliteRepository
from ragcore.storage.repository.sqlite_repository import table_name


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "store" / "documents.sqlite")


def test_table_name_is_sanitised():
    assert table_name("my-docs v2") == "documents_my_docs_v2"


@pytest.mark.asyncio
async def test_init_is_idempotent(db_path, embedder):
    repo = SqliteRepository(db_path, embedder=embedder, collection="docs")
    await repo.init_repository()
    await repo.init_repository()

    conn = sqlite3.connect(db_path)
    try:
        names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert "documents_docs" in names


@pytest.mark.asyncio
async def test_solon_search(db_path, embedder, solon_corpus):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(solon_corpus)

    results = await repo.search(QueryCondition(query="solon", limit=2, similarity_threshold=0.4))

    assert [d.id for d in results] == ["d2", "d1"]
    assert all(d.score >= 0.4 for d in results)
    assert results[0].metadata == {"category": "framework"}


@pytest.mark.asyncio
async def test_filter_is_pushed_down(db_path, embedder, category_docs):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(category_docs)

    lookup = await repo.search(QueryCondition(filter_expression="category == 'framework'"))
    assert {d.id for d in lookup} == {"c1", "c2"}

    ranked = await repo.search(
        QueryCondition(
            query="solon framework",
            similarity_threshold=0.0,
            filter_expression="category == 'framework'",
        )
    )
    assert [d.id for d in ranked] == ["c1", "c2"]


@pytest.mark.asyncio
async def test_select_candidates_by_ids(db_path, embedder, category_docs):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(category_docs)
    cond = QueryCondition(query="x", filter_expression="category == 'framework'")

    docs = await repo.select_candidates(cond, ids=["c2", "c3"])
    assert [d.id for d in docs] == ["c2"]
    assert docs[0].embedding.shape == (embedder.dimensions,)
    assert await repo.select_candidates(cond, ids=[]) == []


@pytest.mark.asyncio
async def test_candidate_limit_prefers_recent(db_path, embedder):
    repo = SqliteRepository(db_path, embedder=embedder, candidate_limit=2)
    now = time.time()
    await repo.save(
        [
            Document(content="solon", id=f"d{i}", metadata={"created_at_ts": now - i * 60})
            for i in range(4)
        ]
    )
    docs = await repo.select_candidates(QueryCondition(query="solon"))
    assert [d.id for d in docs] == ["d0", "d1"]


@pytest.mark.asyncio
async def test_freshness_window(db_path, embedder):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(
        [
            Document(content="solon old", id="old", metadata={"created_at_ts": time.time() - 3 * 86400}),
            Document(content="solon new", id="new"),
        ]
    )
    day = await repo.search(QueryCondition(query="solon", freshness=Freshness.DAY))
    assert [d.id for d in day] == ["new"]
    week = await repo.search(QueryCondition(query="solon", freshness="week"))
    assert {d.id for d in week} == {"old", "new"}


@pytest.mark.asyncio
async def test_full_text_search(db_path, embedder, solon_corpus):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(solon_corpus)
    results = await repo.search(
        QueryCondition(query="java framework", search_type=SearchType.FULL_TEXT)
    )
    assert [d.id for d in results] == ["d1"]


@pytest.mark.asyncio
async def test_upsert_delete_and_exists(db_path, embedder, solon_corpus):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(solon_corpus)
    await repo.save([Document(content="Solon renamed", id="d1", metadata={"category": "news"})])

    assert await repo.exists_by_id("d1")
    hits = await repo.search(QueryCondition(filter_expression="category == 'news'", limit=10))
    assert {d.id for d in hits} == {"d1", "d4"}

    await repo.delete_by_id("d1", "missing")
    await repo.delete_by_id("d1")
    assert not await repo.exists_by_id("d1")
    assert await repo.exists("d2")


@pytest.mark.asyncio
async def test_data_survives_a_new_instance(db_path, embedder, solon_corpus):
    await SqliteRepository(db_path, embedder=embedder).save(solon_corpus)
    reopened = SqliteRepository(db_path, embedder=embedder)
    assert await reopened.exists("d3")
    results = await reopened.search(QueryCondition(query="solon", limit=2))
    assert [d.id for d in results] == ["d2", "d1"]


@pytest.mark.asyncio
async def test_collections_are_separate_tables(db_path, embedder, solon_corpus):
    a = SqliteRepository(db_path, embedder=embedder, collection="a")
    b = SqliteRepository(db_path, embedder=embedder, collection="b")
    await a.save(solon_corpus)
    assert await a.exists("d1")
    assert not await b.exists("d1")


@pytest.mark.asyncio
async def test_drop_repository(db_path, embedder, solon_corpus):
    repo = SqliteRepository(db_path, embedder=embedder)
    await repo.save(solon_corpus)
    await repo.drop_repository()
    assert not await repo.exists("d1")
    assert await repo.search("solon") == []


@pytest.mark.asyncio
async def test_storage_errors_become_backend_errors(tmp_path, embedder):
    # a directory where the database file should be
    bad = tmp_path / "not_a_file"
    bad.mkdir()
    repo = SqliteRepository(str(bad), embedder=embedder)
    with pytest.raises(BackendIOError) as ei:
        await repo.save([Document(content="solon", id="x")])
    assert ei.value.backend == "sqlite"
    assert ei.value.operation == "save"
    # exists() swallows backend errors
    assert await repo.exists("x") is False


@pytest.mark.asyncio
async def test_disable_refilter_ranks_candidates_before_limit(db_path, embedder):
    repo = SqliteRepository(db_path, embedder=embedder)
    # same save time, so candidates come back ordered by id
    await repo.save(
        [
            Document(content="Python tutorial", id="a_low"),
            Document(content="Solon web", id="b_high"),
        ]
    )
    results = await repo.search(QueryCondition(query="solon web", limit=1, disable_refilter=True))
    assert [d.id for d in results] == ["b_high"]
