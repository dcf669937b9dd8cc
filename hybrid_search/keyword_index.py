"""
keyword_index.py
----------------

Fuzzy keyword search over chunk titles and texts.

Each field keeps its own BM25 statistics, built with ``rank_bm25``.
At query time every query term is expanded against the field
vocabularies into exact, prefix and fuzzy (edit distance) matches, each
with a match weight:

- exact matches have weight 1,
- prefix matches are discounted by how much longer the indexed term is
  and never exceed 0.375,
- fuzzy matches are discounted by their edit distance and never exceed
  0.45.

A query term scores a chunk with its best match over both fields::

    term_score = idf(term) * weight * (1 + saturation) / 2

``saturation`` is the BM25 term frequency factor of the matched form,
scaled into (0, 1).  ``idf(term)`` is shared by every form of the term
and computed from the number of chunks the term matches in any form, so
an exact match (at least half the idf) always outscores a fuzzy or
prefix match of the same term.

The chunk score is the number of distinct query terms matched plus the
summed term scores divided by the summed idfs of the matched terms.
That fraction stays below 1, so a chunk matching more distinct terms
always ranks above one matching fewer.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from rank_bm25 import BM25Okapi

from .config import DEFAULT_FUZZY
from .errors import NotBuilt, PersistenceError
from .utils import Chunk

logger = logging.getLogger(__name__)

FIELDS = ("title", "text")
PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45
MAX_FUZZY_DISTANCE = 6

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Lower-case ``text`` and split it into word tokens."""
    return _TOKEN.findall(text.lower())


def max_edit_distance(term: str, fuzzy: float) -> int:
    """Edit distance tolerated for ``term``.

    A ``fuzzy`` factor below 1 is relative to the term length and
    rounded half up; a factor of 1 or more is an absolute distance.
    """
    if fuzzy <= 0:
        return 0
    if fuzzy < 1:
        distance = int(math.floor(len(term) * fuzzy + 0.5))
    else:
        distance = int(fuzzy)
    return min(distance, MAX_FUZZY_DISTANCE)


def edit_distance(a: str, b: str, limit: int) -> int:
    """Levenshtein distance between ``a`` and ``b``.

    Returns ``limit + 1`` as soon as the distance is known to exceed
    ``limit``.
    """
    if abs(len(a) - len(b)) > limit:
        return limit + 1
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        if min(current) > limit:
            return limit + 1
        previous = current
    return previous[-1]


@dataclass(frozen=True)
class KeywordResult:
    """A chunk matched by the keyword index."""

    id: int
    score: float
    text: str
    title: str


def idf(matching: int, total: int) -> float:
    """BM25 idf that stays positive even for very common terms."""
    return math.log((total - matching + 0.5) / (matching + 0.5) + 1)


class _FieldScorer(BM25Okapi):
    """BM25 statistics over one field."""

    @property
    def vocabulary(self) -> Iterable[str]:
        return self.idf.keys()

    def saturation(self, term: str) -> np.ndarray:
        """BM25 term frequency factor of ``term`` per document, in [0, 1).

        This is Okapi's ``tf * (k1 + 1) / (tf + k1 * norm)`` divided by
        ``k1 + 1``; it is 0 where the term is absent.
        """
        freqs = np.array([doc.get(term, 0) for doc in self.doc_freqs], dtype=float)
        lengths = np.array(self.doc_len, dtype=float)
        norm = self.k1 * (1 - self.b + self.b * lengths / self.avgdl)
        return freqs / (freqs + norm)


class KeywordIndex:
    """Inverted index over the ``title`` and ``text`` of chunks.

    Create it empty and call :meth:`build`, or use
    :meth:`from_chunks`.  Searching an index that was never built raises
    :class:`~hybrid_search.errors.NotBuilt`.  Building again replaces the
    whole index.

    Parameters
    ----------
    fuzzy : float, optional
        Fuzziness factor: the tolerated edit distance as a fraction of
        the query term length (or an absolute distance when >= 1).
    prefix : bool, optional
        Whether a query term also matches indexed terms it is a prefix of.
    """

    def __init__(self, *, fuzzy: float = DEFAULT_FUZZY, prefix: bool = True) -> None:
        if fuzzy < 0:
            raise ValueError("fuzzy must not be negative")
        self.fuzzy = fuzzy
        self.prefix = prefix
        self._built = False
        self._chunks: Tuple[Chunk, ...] = ()
        self._scorers: Dict[str, _FieldScorer] = {}

    @classmethod
    def from_chunks(cls, chunks: Sequence[Chunk], **options) -> "KeywordIndex":
        index = cls(**options)
        index.build(chunks)
        return index

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        return self._chunks

    def __len__(self) -> int:
        return len(self._chunks)

    def build(self, chunks: Sequence[Chunk]) -> "KeywordIndex":
        """Index ``chunks``, replacing anything indexed before."""
        logger.info("Creating Keyword Database")
        ordered = tuple(chunks)
        scorers: Dict[str, _FieldScorer] = {}
        if ordered:
            for field in FIELDS:
                corpus = [tokenize(getattr(chunk, field)) for chunk in ordered]
                # BM25 needs at least one token to compute average lengths
                if any(corpus):
                    scorers[field] = _FieldScorer(corpus)
        self._chunks = ordered
        self._scorers = scorers
        self._built = True
        logger.info("Created Keyword Database with %d chunks", len(ordered))
        return self

    def _expand(self, scorer: _FieldScorer, term: str, fuzzy: float) -> Dict[str, float]:
        """Map indexed terms matching ``term`` to their match weight."""
        matches: Dict[str, float] = {}
        distance_limit = max_edit_distance(term, fuzzy)
        for candidate in scorer.vocabulary:
            if candidate == term:
                matches[candidate] = 1.0
                continue
            weight = 0.0
            if self.prefix and candidate.startswith(term):
                extra = len(candidate) - len(term)
                weight = PREFIX_WEIGHT * len(term) / (len(term) + 0.3 * extra)
            if distance_limit:
                distance = edit_distance(term, candidate, distance_limit)
                if distance <= distance_limit:
                    weight = max(weight, FUZZY_WEIGHT * len(term) / (len(term) + distance))
            if weight > 0:
                matches[candidate] = weight
        return matches

    def scores(self, query: str, *, fuzzy: Optional[float] = None) -> np.ndarray:
        """Score every indexed chunk against ``query``.

        The returned array is aligned with the build order of the chunks.
        """
        if not self._built:
            raise NotBuilt("Keyword index has not been built")
        totals = np.zeros(len(self._chunks))
        terms = list(dict.fromkeys(tokenize(query)))
        if not terms or not self._chunks:
            return totals
        fuzziness = self.fuzzy if fuzzy is None else fuzzy
        relevance = np.zeros(len(self._chunks))
        idf_total = 0.0
        for term in terms:
            best = np.zeros(len(self._chunks))
            for scorer in self._scorers.values():
                for candidate, weight in self._expand(scorer, term, fuzziness).items():
                    saturation = scorer.saturation(candidate)
                    quality = np.where(saturation > 0, weight * (1 + saturation) / 2, 0.0)
                    best = np.maximum(best, quality)
            present = best > 0
            matching = int(np.count_nonzero(present))
            if not matching:
                continue
            term_idf = idf(matching, len(self._chunks))
            relevance += term_idf * best
            idf_total += term_idf
            totals += present
        if idf_total > 0:
            totals += relevance / idf_total
        return totals

    def search(
        self, query: str, limit: Optional[int] = None, *, fuzzy: Optional[float] = None
    ) -> List[KeywordResult]:
        """Return matching chunks, best first.

        Chunks with equal score are ordered by id.  An empty query (or
        one without word characters) returns an empty list.
        """
        totals = self.scores(query, fuzzy=fuzzy)
        hits = [
            KeywordResult(id=chunk.id, score=float(score), text=chunk.text, title=chunk.title)
            for chunk, score in zip(self._chunks, totals)
            if score > 0
        ]
        hits.sort(key=lambda hit: (-hit.score, hit.id))
        if limit is not None and limit > 0:
            return hits[:limit]
        return hits

    def to_dict(self) -> Dict[str, object]:
        if not self._built:
            raise NotBuilt("Keyword index has not been built")
        return {
            "fuzzy": self.fuzzy,
            "prefix": self.prefix,
            "fields": list(FIELDS),
            "chunks": [asdict(chunk) for chunk in self._chunks],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "KeywordIndex":
        try:
            index = cls(fuzzy=float(payload["fuzzy"]), prefix=bool(payload["prefix"]))
            chunks = [
                Chunk(id=int(item["id"]), title=str(item["title"]), text=str(item["text"]))
                for item in payload["chunks"]
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Malformed keyword index payload: {exc}") from exc
        return index.build(chunks)

    def save(self, path: Union[str, Path]) -> None:
        """Write the index to ``path`` as JSON.

        The statistics are rebuilt on load, which reproduces the scores
        exactly.
        """
        payload = self.to_dict()
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh)
        except OSError as exc:
            raise PersistenceError(f"Unable to save keyword database to {target}") from exc

    @classmethod
    def load(cls, path: Union[str, Path]) -> "KeywordIndex":
        source = Path(path)
        try:
            with source.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Unable to load keyword database from {source}") from exc
        return cls.from_dict(payload)
