from __future__ import annotations

import json

import pytest

from hybrid_search.errors import NotBuilt, PersistenceError
from hybrid_search.keyword_index import (
    KeywordIndex,
    edit_distance,
    max_edit_distance,
    tokenize,
)
from hybrid_search.utils import Chunk


def make_index(*texts: str, title: str = "story", **options) -> KeywordIndex:
    chunks = [Chunk(id=i, title=title, text=text) for i, text in enumerate(texts, 1)]
    return KeywordIndex.from_chunks(chunks, **options)


def test_tokenize_lowercases_and_drops_punctuation():
    assert tokenize("Baker-Street, 221B!") == ["baker", "street", "221b"]


@pytest.mark.parametrize(
    "term, fuzzy, expected",
    [("holmes", 0.1, 1), ("abcd", 0.1, 0), ("x" * 15, 0.1, 2), ("abc", 2, 2), ("abc", 0, 0), ("x" * 100, 0.5, 6)],
)
def test_max_edit_distance(term, fuzzy, expected):
    assert max_edit_distance(term, fuzzy) == expected


def test_edit_distance_with_limit():
    assert edit_distance("kitten", "sitting", 3) == 3
    assert edit_distance("kitten", "sitting", 1) == 2
    assert edit_distance("holmes", "holms", 1) == 1
    assert edit_distance("a", "abcdef", 2) == 3


def test_search_before_build_raises():
    with pytest.raises(NotBuilt):
        KeywordIndex().search("holmes")


def test_empty_query_returns_nothing():
    index = make_index("holmes smoked a pipe")

    assert index.search("") == []
    assert index.search("  ... ") == []


def test_exact_match_beats_fuzzy_match():
    index = make_index("holmes smoked a pipe", "holms smoked a pipe", "watson wrote notes")

    results = index.search("holmes")

    assert [r.id for r in results] == [1, 2]
    assert results[0].score > results[1].score > 0


def test_exact_match_beats_rarer_fuzzy_match():
    texts = [f"holmes case {i}" for i in range(21)] + ["holmas case"]
    index = make_index(*texts)

    results = index.search("holmes")

    assert len(results) == 22
    assert results[-1].id == 22
    assert min(r.score for r in results[:-1]) > results[-1].score


def test_exact_match_in_long_chunk_beats_repeated_fuzzy_match():
    index = make_index("holmes " + "filler " * 60, "holmas holmas holmas")

    results = index.search("holmes")

    assert [r.id for r in results] == [1, 2]
    assert results[0].score > results[1].score


def test_exact_match_beats_rarer_prefix_match():
    texts = [f"detect signal {i}" for i in range(15)] + ["detective"]
    index = make_index(*texts)

    results = index.search("detect")

    assert results[-1].id == 16
    assert min(r.score for r in results[:-1]) > results[-1].score


def test_more_terms_beat_a_rarer_single_term():
    texts = ["moriarty escaped"] + [f"the detective {i}" for i in range(20)]
    index = make_index(*texts)

    results = index.search("moriarty the detective")

    assert len(results) == 21
    assert results[-1].id == 1
    assert min(r.score for r in results[:-1]) > results[-1].score


def test_score_counts_matched_terms():
    index = make_index("holmes lit his pipe", "holmes wore his hat")

    scores = {r.id: r.score for r in index.search("holmes pipe")}

    assert 2 <= scores[1] < 3
    assert 1 <= scores[2] < 2


def test_fuzzy_can_be_disabled_per_call():
    index = make_index("holmes smoked a pipe", "holms smoked a pipe")

    assert [r.id for r in index.search("holmes", fuzzy=0)] == [1]


def test_more_matched_terms_score_higher():
    index = make_index("holmes lit his pipe", "holmes wore his hat", "watson lit the fire")

    results = index.search("holmes pipe")

    assert results[0].id == 1
    assert results[0].score > results[1].score


def test_prefix_match():
    index = make_index("the detective investigated", "tea and toast")

    results = index.search("detect")

    assert [r.id for r in results] == [1]


def test_prefix_can_be_disabled():
    index = make_index("the detective investigated", prefix=False)

    assert index.search("detect") == []


def test_title_field_is_searched():
    chunks = [
        Chunk(id=1, title="Moriarty", text="the professor"),
        Chunk(id=2, title="Hudson", text="the landlady"),
    ]
    index = KeywordIndex.from_chunks(chunks)

    results = index.search("moriarty")

    assert [r.id for r in results] == [1]
    assert results[0].title == "Moriarty"
    assert results[0].text == "the professor"


def test_limit_and_ordering():
    index = make_index("pipe", "pipe pipe tobacco", "pipe smoke", "nothing here")

    results = index.search("pipe", limit=2)

    assert len(results) == 2
    assert all(a.score >= b.score for a, b in zip(results, results[1:]))


def test_build_replaces_previous_contents():
    index = make_index("holmes smoked a pipe")
    index.build([Chunk(id=7, title="other", text="watson")])

    assert index.search("holmes") == []
    assert [r.id for r in index.search("watson")] == [7]


def test_empty_build_is_searchable():
    index = KeywordIndex.from_chunks([])

    assert index.is_built
    assert index.search("anything") == []


def test_save_and_load_reproduce_scores(tmp_path):
    index = make_index(
        "Sherlock Holmes lived at Baker Street",
        "Holms played the violin",
        "Moriarty was the enemy",
        fuzzy=0.2,
    )
    path = tmp_path / "keyword.json"

    index.save(path)
    restored = KeywordIndex.load(path)

    assert restored.fuzzy == 0.2
    for query in ("holmes", "violin baker", "enem"):
        assert restored.search(query) == index.search(query)


def test_load_missing_file(tmp_path):
    with pytest.raises(PersistenceError):
        KeywordIndex.load(tmp_path / "missing.json")


def test_load_malformed_payload(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"chunks": []}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        KeywordIndex.load(path)


def test_save_unbuilt_raises(tmp_path):
    with pytest.raises(NotBuilt):
        KeywordIndex().save(tmp_path / "keyword.json")
