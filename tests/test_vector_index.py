from __future__ import annotations

import math

import numpy as np
import pytest

from hybrid_search.errors import DimensionMismatch, PersistenceError
from hybrid_search.vector_index import VectorEntry, VectorIndex, VectorResult


@pytest.fixture
def index() -> VectorIndex:
    vectors = VectorIndex(model="test-model")
    vectors.add(1, [1.0, 0.0], {"title": "east", "text": "points east"})
    vectors.add(2, [0.0, 1.0], {"title": "north", "text": "points north"})
    vectors.add(3, [1.0, 1.0], {"title": "diagonal", "text": "points north east"})
    return vectors


def test_query_orders_by_cosine_similarity(index):
    results = index.query([2.0, 0.0], limit=10)

    assert [r.id for r in results] == [1, 3, 2]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(1 / math.sqrt(2), rel=1e-6)
    assert results[2].similarity == pytest.approx(0.0, abs=1e-7)
    assert (results[0].title, results[0].text) == ("east", "points east")


def test_query_respects_limit(index):
    assert len(index.query([1.0, 0.2], limit=2)) == 2
    assert index.query([1.0, 0.2], limit=0) == []


def test_empty_index_returns_empty_list():
    assert VectorIndex().query([1.0, 2.0, 3.0], limit=5) == []


def test_zero_query_vector_returns_empty_list(index):
    assert index.query([0.0, 0.0]) == []


def test_reinserting_an_id_overwrites(index):
    index.add(1, [0.0, 1.0], {"title": "moved", "text": "now north"})

    assert len(index) == 3
    top = index.query([0.0, 1.0], limit=1)[0]
    assert top.id in (1, 2)
    assert index.get(1).metadata == {"title": "moved", "text": "now north"}
    np.testing.assert_array_equal(index.get(1).embedding, np.array([0.0, 1.0], dtype="float32"))


def test_dimension_mismatch_on_add(index):
    with pytest.raises(DimensionMismatch) as excinfo:
        index.add(4, [1.0, 2.0, 3.0])

    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 3
    assert 4 not in index


def test_dimension_mismatch_on_query(index):
    with pytest.raises(DimensionMismatch):
        index.query([1.0, 2.0, 3.0])


def test_rejects_non_finite_embeddings():
    with pytest.raises(ValueError):
        VectorIndex().add(1, [float("nan"), 1.0])


def test_add_entry_and_ids():
    vectors = VectorIndex()
    vectors.add_entry(VectorEntry(id=5, embedding=np.array([0.5, 0.5]), metadata={"title": "t", "text": "x"}))

    assert vectors.ids == [5]
    assert 5 in vectors
    assert vectors.dimension == 2


def test_embedding_range(index):
    assert index.embedding_range() == {"min": 0.0, "max": 1.0}
    assert VectorIndex().embedding_range() is None


def test_from_provider_shape():
    result = VectorResult.from_provider(
        {"id": "7", "similarity": 0.25, "document": {"id": "7", "metadata": {"title": "T", "text": "body"}}}
    )

    assert result == VectorResult(id=7, similarity=0.25, text="body", title="T")


def test_save_and_load_round_trip(index, tmp_path):
    index.save(tmp_path)
    restored = VectorIndex.load(tmp_path)

    assert restored.model == "test-model"
    assert restored.dimension == 2
    assert restored.ids == index.ids
    for query in ([1.0, 0.0], [0.3, 0.9], [-1.0, 0.5]):
        assert restored.query(query) == index.query(query)


def test_save_and_load_empty_index(tmp_path):
    VectorIndex(model="m").save(tmp_path)

    restored = VectorIndex.load(tmp_path)

    assert len(restored) == 0
    assert restored.query([1.0]) == []


def test_load_missing_directory(tmp_path):
    with pytest.raises(PersistenceError):
        VectorIndex.load(tmp_path / "nowhere")
