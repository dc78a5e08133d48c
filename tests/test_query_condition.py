import pytest

from ragcore.core.errors import ParseError
from ragcore.core.expression import compare
from ragcore.core.query import (
    DEFAULT_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    Freshness,
    HybridSearchParams,
    QueryCondition,
    SearchType,
    combine,
    normalize_scores,
)


def test_defaults():
    cond = QueryCondition(query="hello")
    assert cond.limit == DEFAULT_LIMIT == 4
    assert cond.similarity_threshold == DEFAULT_SIMILARITY_THRESHOLD == 0.4
    assert cond.search_type is SearchType.VECTOR
    assert cond.filter_expression is None
    assert cond.hybrid_search_params is None
    assert cond.needs_embedding


@pytest.mark.parametrize("limit", [0, -1])
def test_limit_must_be_positive(limit):
    with pytest.raises(ValueError):
        QueryCondition(query="x", limit=limit)


def test_filter_text_is_parsed():
    cond = QueryCondition(query="x", filter_expression="year > 2000")
    assert cond.filter_expression == compare("year", "gt", 2000)
    assert QueryCondition(query="x", filter_expression="   ").filter_expression is None
    with pytest.raises(ParseError):
        QueryCondition(query="x", filter_expression="year >")


def test_enum_values_are_coerced():
    cond = QueryCondition(query="x", search_type="full_text", freshness="week")
    assert cond.search_type is SearchType.FULL_TEXT
    assert cond.freshness is Freshness.WEEK
    assert not cond.needs_embedding


def test_hybrid_defaults_to_even_weights():
    cond = QueryCondition(query="x", search_type=SearchType.HYBRID)
    assert cond.hybrid_search_params == HybridSearchParams(0.5, 0.5)
    assert QueryCondition(query="x").hybrid == HybridSearchParams.default_params()


def test_with_returns_a_modified_copy():
    cond = QueryCondition(query="x", limit=3)
    other = cond.with_(limit=7)
    assert cond.limit == 3
    assert other.limit == 7
    assert other.query == "x"


def test_freshness_windows():
    assert Freshness.DAY.window_seconds() == 86400.0
    assert Freshness.WEEK.window_seconds() == 7 * 86400.0
    assert Freshness.UNLIMITED.window_seconds() is None


@pytest.mark.parametrize(
    "given, vector, full_text",
    [
        (0.3, 0.3, 0.7),
        (-1.0, 0.0, 1.0),
        (5.0, 1.0, 0.0),
        (0.5, 0.5, 0.5),
    ],
)
def test_hybrid_params_are_clamped_and_sum_to_one(given, vector, full_text):
    params = HybridSearchParams.of(given)
    assert params.vector_weight == pytest.approx(vector)
    assert params.full_text_weight == pytest.approx(full_text)
    assert params.vector_weight + params.full_text_weight == pytest.approx(1.0)


def test_full_text_weight_is_derived():
    params = HybridSearchParams(vector_weight=0.2, full_text_weight=0.9)
    assert params.full_text_weight == pytest.approx(0.8)


def test_combine():
    assert combine(0.8, 0.2, HybridSearchParams.of(0.75)) == pytest.approx(0.65)
    assert combine(0.8, 0.2, HybridSearchParams.of(1.0)) == pytest.approx(0.8)


def test_normalize_scores():
    assert normalize_scores([]) == []
    assert normalize_scores([2.0, 2.0]) == [1.0, 1.0]
    assert normalize_scores([1.0, 3.0, 2.0]) == pytest.approx([0.0, 1.0, 0.5])
