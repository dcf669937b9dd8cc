"""
Hybrid Keyword and Semantic Retrieval
=====================================

This package retrieves the passages of a document corpus most relevant
to a natural-language query.  It indexes chunked text two ways, with a
fuzzy keyword index and a dense vector index, and fuses the two result
lists into one ranking with a weighted reciprocal rank rule applied to
the raw scores.

Modules
-------

- :mod:`utils`: The chunk store, text splitting and corpus loading.
- :mod:`keyword_index`: Fuzzy BM25 search over chunk titles and texts.
- :mod:`vector_index`: Cosine similarity search over chunk embeddings.
- :mod:`rrf`: The fusion rule that merges both result lists.
- :mod:`embedding`: Embedding providers (OpenAI compatible API, TF-IDF).
- :mod:`hybrid_retrieval`: The façade that builds, queries, saves and
  loads both indexes.
- :mod:`main`: Answer generation and chat sessions over retrieved
  context.
- :mod:`config`, :mod:`env`, :mod:`errors`: Settings, ``.env`` loading
  and the exception hierarchy.

Example
-------

>>> from hybrid_search import ChunkStore, EmbeddingModel, HybridRetriever, Settings
>>> settings = Settings.from_env()
>>> store = ChunkStore.from_corpus({"notes.txt": "How do I install Python?"})
>>> retriever = HybridRetriever(EmbeddingModel.from_settings(settings), settings)
>>> report = retriever.build_indexes(store)
>>> for result in retriever.search("install python", limit=5):
...     print(result.rank, result.title, result.text[:60])
"""

from .config import DEFAULT_RANK_OPTIONS, RankOptions, Settings, configure_logging
from .embedding import EmbeddingModel, TfidfEmbeddingModel
from .errors import (
    DimensionMismatch,
    EmbeddingError,
    GenerationError,
    NotBuilt,
    PersistenceError,
    RetrievalError,
    UnsupportedInput,
)
from .hybrid_retrieval import BuildReport, HybridRetriever
from .keyword_index import KeywordIndex, KeywordResult
from .rrf import CombinedResult, ScoredResult, fuse, rank
from .utils import Chunk, ChunkStore, load_corpus, split_text
from .vector_index import VectorEntry, VectorIndex, VectorResult

__all__ = [
    "BuildReport",
    "Chunk",
    "ChunkStore",
    "CombinedResult",
    "DEFAULT_RANK_OPTIONS",
    "DimensionMismatch",
    "EmbeddingError",
    "EmbeddingModel",
    "GenerationError",
    "HybridRetriever",
    "KeywordIndex",
    "KeywordResult",
    "NotBuilt",
    "PersistenceError",
    "RankOptions",
    "RetrievalError",
    "ScoredResult",
    "Settings",
    "TfidfEmbeddingModel",
    "UnsupportedInput",
    "VectorEntry",
    "VectorIndex",
    "VectorResult",
    "configure_logging",
    "fuse",
    "load_corpus",
    "rank",
    "split_text",
]
