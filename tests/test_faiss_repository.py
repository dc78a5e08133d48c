import pytest

pytest.importorskip("faiss")

from ragcore.core.document import Document  # noqa: E402
from ragcore.core.errors import DimensionMismatchError, ZeroNormError  # noqa: E402
from ragcore.core.query import QueryCondition, SearchType  # noqa: E402
from ragcore.storage.repository import FaissRepository  # noqa: E402
from ragcore.storage.repository.faiss_repository import faiss_id  # noqa: E402


def test_faiss_id_is_stable_and_non_negative():
    assert faiss_id("d1") == faiss_id("d1")
    assert faiss_id("d1") != faiss_id("d2")
    assert 0 <= faiss_id("anything") < 2**63


@pytest.mark.asyncio
async def test_solon_search(tmp_path, embedder, solon_corpus):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    await repo.init_repository()
    await repo.save(solon_corpus)

    results = await repo.search(QueryCondition(query="solon", limit=2, similarity_threshold=0.4))
    assert [d.id for d in results] == ["d2", "d1"]
    assert results[0].score == pytest.approx(1.01 / (1.01**0.5 * 2.01**0.5), abs=1e-4)
    assert repo.index_path.exists()


@pytest.mark.asyncio
async def test_filtered_search_probes_until_enough_hits(tmp_path, embedder, category_docs):
    repo = FaissRepository(str(tmp_path), embedder=embedder, probe_min=1, probe_factor=1)
    await repo.save(category_docs)

    results = await repo.search(
        QueryCondition(
            query="python",
            limit=2,
            similarity_threshold=0.0,
            filter_expression="category == 'framework'",
        )
    )
    assert {d.id for d in results} == {"c1", "c2"}


@pytest.mark.asyncio
async def test_filter_only_and_full_text(tmp_path, embedder, category_docs):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    await repo.save(category_docs)

    lookup = await repo.search(QueryCondition(filter_expression="category == 'framework'"))
    assert {d.id for d in lookup} == {"c1", "c2"}

    ft = await repo.search(QueryCondition(query="tutorial", search_type=SearchType.FULL_TEXT))
    assert [d.id for d in ft] == ["c3"]


@pytest.mark.asyncio
async def test_hybrid_search(tmp_path, embedder, solon_corpus):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    await repo.save(solon_corpus)
    results = await repo.search(
        QueryCondition(query="solon java", search_type="hybrid", similarity_threshold=0.0)
    )
    assert results[0].id == "d1"
    assert results[0].score > results[1].score


@pytest.mark.asyncio
async def test_upsert_delete_and_reload(tmp_path, embedder, solon_corpus):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    await repo.save(solon_corpus)
    await repo.save([Document(content="Python tutorial", id="d2")])
    await repo.delete_by_id("d1", "missing")

    assert not await repo.exists("d1")
    assert await repo.exists("d2")

    reopened = FaissRepository(str(tmp_path), embedder=embedder)
    results = await reopened.search(QueryCondition(query="solon", similarity_threshold=0.4))
    assert results == []
    python = await reopened.search(QueryCondition(query="python", limit=2))
    assert {d.id for d in python} == {"d2", "d3"}


@pytest.mark.asyncio
async def test_rejects_zero_and_mismatched_vectors(tmp_path, embedder, solon_corpus):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    with pytest.raises(ZeroNormError):
        await repo.save([Document(content="z", id="z", embedding=[0.0] * embedder.dimensions)])

    await repo.save(solon_corpus)
    with pytest.raises(DimensionMismatchError):
        await repo.save([Document(content="x", id="x", embedding=[1.0, 0.0])])


@pytest.mark.asyncio
async def test_drop_repository(tmp_path, embedder, solon_corpus):
    repo = FaissRepository(str(tmp_path), embedder=embedder)
    await repo.save(solon_corpus)
    await repo.drop_repository()
    assert not repo.index_path.exists()
    assert await repo.search("solon") == []
