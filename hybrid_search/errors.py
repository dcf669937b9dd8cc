"""
errors.py
---------

Exceptions raised by the retrieval engine.  Every error derives from
:class:`RetrievalError` so callers (the scripts in particular) can
catch one type at the top level.

Ordinary empty conditions, such as an empty query or an empty vector
index, are never errors; they produce empty result lists.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for all errors raised by :mod:`hybrid_search`."""


class NotBuilt(RetrievalError):
    """An index (or the retriever) was queried before it was built."""


class DimensionMismatch(RetrievalError):
    """An embedding does not match the dimensionality of its index."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension {actual} does not match index dimension {expected}"
        )
        self.expected = expected
        self.actual = actual


class EmbeddingError(RetrievalError):
    """The embedding provider failed (network, timeout, quota...)."""


class PersistenceError(RetrievalError):
    """An index could not be written to or read from storage."""


class UnsupportedInput(RetrievalError):
    """A source document has a format the loader cannot read."""


class GenerationError(RetrievalError):
    """The chat provider failed to produce an answer."""
