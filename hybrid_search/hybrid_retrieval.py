"""
hybrid_retrieval.py
-------------------

The retrieval façade.  :class:`HybridRetriever` builds a keyword index
and a vector index from the same chunks, answers queries against both
and fuses the results with :func:`~hybrid_search.rrf.fuse`.

Concurrency model:

- Building runs the keyword build and the vector build side by side.
  Embeddings are computed in batches of concurrent provider calls.
  When both indexes are ready they are published together by a single
  reference assignment, so queries never see a half-built pair.
- A hybrid query embeds the query on a worker thread while the keyword
  search runs in the caller's thread, then waits for both.  The wait
  for the embedding is bounded by ``Settings.embedding_timeout``.  On
  timeout the query fails with ``EmbeddingError``, but a provider call
  that has already started is not interrupted: its worker thread keeps
  running until the call returns or the provider client's own timeout
  fires, and its result is discarded.
- Built indexes are only read by queries and need no caller locking.

Embedding failures while building skip the affected chunk (it stays
keyword searchable) and are reported in the :class:`BuildReport`.  At
query time an embedding failure fails :meth:`HybridRetriever.search`
and :meth:`HybridRetriever.semantic_search`; :meth:`keyword_search`
never touches the provider.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from itertools import groupby
from operator import attrgetter
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .config import RankOptions, Settings
from .embedding import Embedder
from .errors import EmbeddingError, NotBuilt, PersistenceError
from .keyword_index import KeywordIndex, KeywordResult
from .rrf import CombinedResult, ScoredResult, fuse, to_scored
from .utils import Chunk
from .vector_index import VectorIndex, VectorResult

logger = logging.getLogger(__name__)

KEYWORD_INDEX_FILE = "keyword_index.json"


@dataclass(frozen=True)
class BuildReport:
    """Outcome of :meth:`HybridRetriever.build_indexes`."""

    keyword_count: int
    vector_count: int
    skipped_ids: Tuple[int, ...] = ()

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)


@dataclass(frozen=True)
class _Indexes:
    keyword: KeywordIndex
    vector: VectorIndex


class HybridRetriever:
    """Coordinate keyword and vector retrieval and fuse the results.

    Parameters
    ----------
    embedder : Embedder
        Provider used to embed chunks at build time and queries at
        search time.
    settings : Settings, optional
        Batch size, timeout, fuzziness and fusion defaults.
    """

    def __init__(self, embedder: Embedder, settings: Optional[Settings] = None) -> None:
        self.embedder = embedder
        self.settings = settings or Settings()
        self._indexes: Optional[_Indexes] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def __enter__(self) -> "HybridRetriever":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Shut the query worker pool down without waiting for it."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(thread_name_prefix="hybrid-query")
            return self._executor

    @property
    def is_built(self) -> bool:
        return self._indexes is not None

    def _require(self) -> _Indexes:
        indexes = self._indexes
        if indexes is None:
            raise NotBuilt("Indexes have not been built or loaded")
        return indexes

    @property
    def keyword_index(self) -> KeywordIndex:
        return self._require().keyword

    @property
    def vector_index(self) -> VectorIndex:
        return self._require().vector

    def build_indexes(
        self, chunks: Iterable[Chunk], *, batch_size: Optional[int] = None
    ) -> BuildReport:
        """Build both indexes from ``chunks`` and swap them in.

        Parameters
        ----------
        chunks : iterable of Chunk
            Usually a :class:`~hybrid_search.utils.ChunkStore`.
        batch_size : int, optional
            Number of concurrent embedding calls; defaults to
            ``Settings.batch_size``.

        Returns
        -------
        BuildReport
            Counts per index and the ids of chunks that could not be
            embedded.
        """
        ordered = tuple(chunks)
        size = batch_size or self.settings.batch_size
        if size <= 0:
            raise ValueError("batch_size must be positive")
        keyword = KeywordIndex(fuzzy=self.settings.fuzzy)
        vector = VectorIndex(model=getattr(self.embedder, "model_name", ""))
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="index-build") as pool:
            keyword_future = pool.submit(keyword.build, ordered)
            vector_future = pool.submit(self._build_vector_index, vector, ordered, size)
            keyword_future.result()
            skipped = vector_future.result()
        self._indexes = _Indexes(keyword=keyword, vector=vector)
        report = BuildReport(
            keyword_count=len(keyword), vector_count=len(vector), skipped_ids=tuple(skipped)
        )
        if report.skipped:
            logger.warning(
                "Built indexes with %d of %d chunks embedded; %d skipped",
                report.vector_count,
                len(ordered),
                report.skipped,
            )
        else:
            logger.info("Built indexes over %d chunks", len(ordered))
        return report

    def _build_vector_index(
        self, index: VectorIndex, chunks: Tuple[Chunk, ...], batch_size: int
    ) -> List[int]:
        logger.info("Creating Semantic Vector Database")
        skipped: List[int] = []
        with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="embed") as pool:
            for title, group in groupby(chunks, key=attrgetter("title")):
                members = list(group)
                for start in range(0, len(members), batch_size):
                    batch = members[start:start + batch_size]
                    logger.debug(
                        "Embedding chunks %d-%d of %d for %s",
                        start + 1,
                        start + len(batch),
                        len(members),
                        title,
                    )
                    futures = [pool.submit(self.embedder.embed, chunk.text) for chunk in batch]
                    for chunk, future in zip(batch, futures):
                        try:
                            embedding = future.result()
                        except EmbeddingError as exc:
                            logger.warning("Skipping chunk %d of %s: %s", chunk.id, title, exc)
                            skipped.append(chunk.id)
                            continue
                        index.add(chunk.id, embedding, {"text": chunk.text, "title": chunk.title})
                logger.info("Created Semantic Embeddings for %s", title)
        logger.info("Created Semantic Vector Database with %d entries", len(index))
        return skipped

    def _query_vector(self, index: VectorIndex, query: str, limit: int) -> List[VectorResult]:
        embedding = self.embedder.embed(query)
        return index.query(embedding, limit)

    def _await_semantic(self, future: "Future[List[VectorResult]]") -> List[VectorResult]:
        timeout = self.settings.embedding_timeout
        try:
            return future.result(timeout=timeout)
        except FutureTimeout as exc:
            # only a call still queued is dropped; a running one finishes
            future.cancel()
            raise EmbeddingError(f"Query embedding timed out after {timeout:g}s") from exc

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        options: Optional[RankOptions] = None,
    ) -> List[CombinedResult]:
        """Hybrid search: keyword and semantic results fused into one list."""
        indexes = self._require()
        if not query.strip():
            return []
        future = self._pool().submit(
            self._query_vector, indexes.vector, query, self.settings.semantic_limit
        )
        try:
            keyword_hits: List[KeywordResult] = indexes.keyword.search(query)
        except Exception:
            future.cancel()
            raise
        vector_hits = self._await_semantic(future)
        logger.debug(
            "Query %r: %d keyword hits, %d semantic hits",
            query,
            len(keyword_hits),
            len(vector_hits),
        )
        return fuse(keyword_hits, vector_hits, limit, options or self.settings.rank_options)

    def keyword_search(self, query: str, limit: Optional[int] = None) -> List[ScoredResult]:
        """Keyword-only search; works without the embedding provider."""
        indexes = self._require()
        return to_scored(indexes.keyword.search(query), "score", limit)

    def semantic_search(self, query: str, limit: Optional[int] = None) -> List[ScoredResult]:
        """Vector-only search."""
        indexes = self._require()
        if not query.strip():
            return []
        fetch = limit if limit is not None and limit > 0 else self.settings.semantic_limit
        future = self._pool().submit(self._query_vector, indexes.vector, query, fetch)
        return to_scored(self._await_semantic(future), "similarity", limit)

    def save(self, directory: Union[str, Path]) -> None:
        """Write both indexes under ``directory``.

        A failure is logged and raised as
        :class:`~hybrid_search.errors.PersistenceError`; the in-memory
        indexes stay usable either way.
        """
        indexes = self._require()
        target = Path(directory)
        try:
            indexes.keyword.save(target / KEYWORD_INDEX_FILE)
            indexes.vector.save(target)
        except PersistenceError as exc:
            logger.error("%s: %s", exc, exc.__cause__ or "")
            raise
        logger.info("Saved indexes to %s", target)

    @classmethod
    def load(
        cls,
        directory: Union[str, Path],
        embedder: Embedder,
        settings: Optional[Settings] = None,
    ) -> "HybridRetriever":
        """Restore a retriever saved with :meth:`save`."""
        source = Path(directory)
        keyword = KeywordIndex.load(source / KEYWORD_INDEX_FILE)
        vector = VectorIndex.load(source)
        model_name = getattr(embedder, "model_name", "")
        if vector.model and model_name and vector.model != model_name:
            logger.warning(
                "Index at %s was embedded with %s but %s is configured",
                source,
                vector.model,
                model_name,
            )
        retriever = cls(embedder, settings)
        retriever._indexes = _Indexes(keyword=keyword, vector=vector)
        logger.info(
            "Loaded indexes from %s (%d keyword, %d vector entries)",
            source,
            len(keyword),
            len(vector),
        )
        return retriever
