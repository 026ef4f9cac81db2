"""
Vector Index（コサイン類似度検索）のテスト
"""
import itertools
import math
import threading

import pytest

from app.core.exceptions import DegenerateVectorError, InvalidArgumentError
from app.docs.models import DocumentChunk
from app.rag.vectorstore import IndexFrozenError, VectorIndex, cosine_similarity, rank_scored


def _chunk(doc_id: str, index: int) -> DocumentChunk:
    return DocumentChunk(doc_id=doc_id, chunk_index=index, start=0, end=1, text=f"{doc_id}-{index}")


def test_cosine_similarity_values():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([3, 4], [6, 8]) == pytest.approx(1.0)


def test_cosine_similarity_is_symmetric():
    a, b = [0.2, 0.5, -0.1], [0.9, -0.3, 0.4]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_similarity_zero_vector():
    with pytest.raises(DegenerateVectorError):
        cosine_similarity([0, 0], [1, 0])


def test_cosine_similarity_dimension_mismatch():
    with pytest.raises(InvalidArgumentError):
        cosine_similarity([1, 0, 0], [1, 0])


def test_search_orders_by_score_descending():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [0.0, 1.0])
    index.insert(_chunk("b", 0), [1.0, 0.0])
    index.insert(_chunk("c", 0), [1.0, 1.0])

    results = index.search([1.0, 0.1], k=3)

    assert [c.doc_id for c, _ in results] == ["b", "c", "a"]
    scores = [s for _, s in results]
    assert scores == sorted(scores, reverse=True)


def test_search_limits_to_k_and_returns_all_when_k_is_large():
    index = VectorIndex(dimension=2)
    for i in range(5):
        index.insert(_chunk("doc", i), [1.0, float(i)])

    assert len(index.search([1.0, 0.0], k=3)) == 3
    assert len(index.search([1.0, 0.0], k=100)) == 5


def test_ties_break_by_doc_id_then_chunk_index():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("b", 1), [1.0, 0.0])
    index.insert(_chunk("a", 2), [2.0, 0.0])
    index.insert(_chunk("b", 0), [1.0, 0.0])
    index.insert(_chunk("a", 0), [5.0, 0.0])

    results = index.search([1.0, 0.0], k=4)

    assert [c.key for c, _ in results] == [("a", 0), ("a", 2), ("b", 0), ("b", 1)]


def test_search_is_deterministic():
    index = VectorIndex(dimension=3)
    for i, vec in enumerate([[1, 2, 3], [3, 2, 1], [1, 1, 1], [0, 1, 0]]):
        index.insert(_chunk(f"d{i % 2}", i), vec)

    first = [(c.key, s) for c, s in index.search([1, 1, 0], k=4)]
    second = [(c.key, s) for c, s in index.search([1, 1, 0], k=4)]
    assert first == second


def test_empty_index_returns_empty():
    index = VectorIndex(dimension=4)
    assert index.search([1, 0, 0, 0], k=5) == []


@pytest.mark.parametrize("k", [0, -1])
def test_search_rejects_non_positive_k(k):
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [1.0, 0.0])
    with pytest.raises(InvalidArgumentError):
        index.search([1.0, 0.0], k=k)


def test_search_rejects_zero_query():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [1.0, 0.0])
    with pytest.raises(DegenerateVectorError):
        index.search([0.0, 0.0], k=1)


def test_search_rejects_wrong_query_dimension():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [1.0, 0.0])
    with pytest.raises(InvalidArgumentError):
        index.search([1.0, 0.0, 0.0], k=1)


def test_insert_rejects_zero_vector_and_wrong_dimension():
    index = VectorIndex(dimension=2)
    with pytest.raises(DegenerateVectorError):
        index.insert(_chunk("a", 0), [0.0, 0.0])
    with pytest.raises(InvalidArgumentError):
        index.insert(_chunk("a", 0), [1.0, 0.0, 0.0])
    assert len(index) == 0


def test_insert_rejects_duplicate_key():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [1.0, 0.0])
    with pytest.raises(InvalidArgumentError):
        index.insert(_chunk("a", 0), [0.0, 1.0])


def test_insert_after_freeze_fails():
    index = VectorIndex(dimension=2)
    index.insert(_chunk("a", 0), [1.0, 0.0])
    index.freeze()

    assert index.frozen
    with pytest.raises(IndexFrozenError):
        index.insert(_chunk("a", 1), [0.0, 1.0])
    assert [c.key for c in index.chunks()] == [("a", 0)]


def test_insert_stores_embedding_on_chunk():
    index = VectorIndex(dimension=2)
    chunk = _chunk("a", 0)
    index.insert(chunk, [3, 4])
    assert chunk.embedding == [3.0, 4.0]


def test_concurrent_searches_on_frozen_index():
    index = VectorIndex(dimension=2)
    for i in range(20):
        index.insert(_chunk("doc", i), [1.0, float(i)])
    index.freeze()
    expected = [c.key for c, _ in index.search([1.0, 3.0], k=5)]

    results = []

    def worker():
        results.append([c.key for c, _ in index.search([1.0, 3.0], k=5)])

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [expected] * 8


def _unit(cos_value: float) -> list:
    return [cos_value, math.sqrt(1.0 - cos_value * cos_value)]


def test_near_ties_rank_the_same_for_every_insertion_order():
    vectors = {
        "a": _unit(0.5),
        "b": _unit(0.5 + 6e-10),
        "c": _unit(0.5 + 1.2e-9),
    }

    rankings = set()
    for order in itertools.permutations(vectors):
        index = VectorIndex(dimension=2)
        for doc_id in order:
            index.insert(_chunk(doc_id, 0), vectors[doc_id])
        rankings.add(tuple(c.doc_id for c, _ in index.search([1.0, 0.0], k=3)))

    # c と b は差がSCORE_EPSILON以内（同点扱い）、a は c より明確に低い
    assert rankings == {("b", "c", "a")}


def test_rank_scored_groups_from_leading_score():
    scored = [
        (_chunk("a", 0), 0.5),
        (_chunk("b", 0), 0.5 + 6e-10),
        (_chunk("c", 0), 0.5 + 1.2e-9),
        (_chunk("d", 0), 0.9),
    ]

    for order in itertools.permutations(scored):
        ranked = rank_scored(list(order))
        assert [c.doc_id for c, _ in ranked] == ["d", "b", "c", "a"]
