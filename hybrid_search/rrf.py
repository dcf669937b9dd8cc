"""
rrf.py
------

Weighted reciprocal rank fusion of keyword and vector results.

Unlike the textbook algorithm, which discounts by rank position, the
rule here is applied to the raw score each retriever reports::

    contribution(score, weight) = weight / (K + score)   if score > 0 else 0
    rank = 1 - (contribution(keyword_score, Wk) + contribution(semantic_score, Ws))

Results are returned in descending order of ``rank``.  ``rank`` is a
comparator output, not a probability, and is not bounded to [0, 1].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_RANK_OPTIONS, RankOptions
from .keyword_index import KeywordResult
from .vector_index import VectorResult

ROUND_DIGITS = 4


@dataclass(frozen=True)
class CombinedResult:
    """A chunk after fusion, with both constituent scores."""

    id: int
    title: str
    text: str
    keyword_score: float
    semantic_score: float
    rank: float


@dataclass(frozen=True)
class ScoredResult:
    """A chunk ranked by a single retrieval strategy."""

    id: int
    rank: float
    text: str
    title: str


@dataclass
class _Merged:
    title: str
    text: str
    keyword_score: float = 0.0
    semantic_score: float = 0.0


def contribution(score: float, weight: float, rrf_k: float) -> float:
    return weight / (rrf_k + score) if score > 0 else 0.0


def rank(
    keyword_score: float,
    semantic_score: float,
    options: RankOptions = DEFAULT_RANK_OPTIONS,
) -> float:
    """Fused score of one chunk, at full precision."""
    ks = contribution(keyword_score, options.keyword_weight, options.rrf_k)
    ss = contribution(semantic_score, options.semantic_weight, options.rrf_k)
    return 1 - (ks + ss)


def fuse(
    keyword_results: Iterable[KeywordResult],
    vector_results: Iterable[VectorResult],
    limit: Optional[int] = None,
    options: Optional[RankOptions] = None,
) -> List[CombinedResult]:
    """Merge keyword and vector results into one ranked list.

    Every id from either input appears exactly once.  The score of the
    strategy that did not return an id defaults to 0.  Ordering is by
    fused rank descending, computed at full precision; equal ranks are
    ordered by id.  The surfaced scores are rounded to four decimals.

    Parameters
    ----------
    keyword_results : iterable of KeywordResult
        Output of the keyword index.
    vector_results : iterable of VectorResult
        Output of the vector index.
    limit : int, optional
        Maximum number of results.  ``None`` or a non-positive value
        returns everything.
    options : RankOptions, optional
        Weights and damping constant; defaults to
        :data:`~hybrid_search.config.DEFAULT_RANK_OPTIONS`.
    """
    opts = options or DEFAULT_RANK_OPTIONS
    merged: Dict[int, _Merged] = {}
    for hit in keyword_results:
        entry = merged.setdefault(hit.id, _Merged(hit.title, hit.text))
        entry.keyword_score = max(entry.keyword_score, hit.score)
    for hit in vector_results:
        entry = merged.get(hit.id)
        if entry is None:
            merged[hit.id] = _Merged(hit.title, hit.text, semantic_score=hit.similarity)
        elif entry.semantic_score:
            entry.semantic_score = max(entry.semantic_score, hit.similarity)
        else:
            entry.semantic_score = hit.similarity

    scored: List[Tuple[float, int, _Merged]] = [
        (rank(entry.keyword_score, entry.semantic_score, opts), chunk_id, entry)
        for chunk_id, entry in merged.items()
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))
    if limit is not None and limit > 0:
        scored = scored[:limit]

    return [
        CombinedResult(
            id=chunk_id,
            title=entry.title,
            text=entry.text,
            keyword_score=round(entry.keyword_score, ROUND_DIGITS),
            semantic_score=round(entry.semantic_score, ROUND_DIGITS),
            rank=round(fused, ROUND_DIGITS),
        )
        for fused, chunk_id, entry in scored
    ]


def to_scored(results: Iterable, score_attr: str, limit: Optional[int] = None) -> List[ScoredResult]:
    """Project single-strategy results onto :class:`ScoredResult`.

    Input order is kept; ``score_attr`` names the score field
    (``"score"`` for keyword hits, ``"similarity"`` for vector hits).
    """
    scored = [
        ScoredResult(
            id=hit.id,
            rank=round(getattr(hit, score_attr), ROUND_DIGITS),
            text=hit.text,
            title=hit.title,
        )
        for hit in results
    ]
    if limit is not None and limit > 0:
        return scored[:limit]
    return scored
