"""
embedding.py
------------

Embedding providers.  The retriever only needs an object with an
``embed(text)`` method returning a fixed-length vector and an
``embed_texts(texts)`` batch variant; two are provided here:

- :class:`EmbeddingModel` calls an OpenAI compatible embeddings API.
  Pointing ``base_url`` at a local Ollama server
  (``http://localhost:11434/v1``) works as well.
- :class:`TfidfEmbeddingModel` is an offline model fitted on the corpus
  with scikit-learn, useful without network access.

Provider failures are raised as
:class:`~hybrid_search.errors.EmbeddingError`.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from openai import OpenAI, OpenAIError
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.preprocessing import normalize

from .config import DEFAULT_BASE_URL, DEFAULT_EMBEDDING_MODEL, Settings
from .errors import EmbeddingError

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into vectors."""

    model_name: str

    def embed(self, text: str) -> List[float]:
        ...

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class EmbeddingModel:
    """Compute embeddings through an OpenAI compatible API.

    Parameters
    ----------
    model_name : str, optional
        The embedding model.  Defaults to ``text-embedding-3-small``.
    api_key : str, optional
        API key.  Local servers such as Ollama ignore it, so a
        placeholder is sent when none is given.
    base_url : str, optional
        Base URL of the API.
    timeout : float, optional
        Per request timeout in seconds.
    client : OpenAI, optional
        A preconfigured client, mainly for tests.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model_name = model_name
        if client is None:
            if not api_key:
                logger.warning("OPENAI_API_KEY not set; sending a placeholder key to %s", base_url)
            client = OpenAI(api_key=api_key or "unused", base_url=base_url, timeout=timeout)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingModel":
        return cls(
            settings.embedding_model,
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.embedding_timeout,
        )

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts with a single API call.

        Returns
        -------
        list of list of float
            One vector per input text, in input order.
        """
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model_name, input=list(texts))
        except OpenAIError as exc:
            raise EmbeddingError(f"Embedding request to {self.model_name} failed: {exc}") from exc
        # The API returns a list of items with index and embedding
        ordered = sorted(response.data, key=lambda item: item.index)
        if len(ordered) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings from {self.model_name}, got {len(ordered)}"
            )
        return [list(item.embedding) for item in ordered]

    def embed(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]


class TfidfEmbeddingModel:
    """TF-IDF vectors from scikit-learn, L2 normalised.

    The vectoriser must be fitted on the corpus (see :meth:`fit`) before
    texts can be embedded; the vocabulary size fixes the dimensionality.
    """

    model_name = "tfidf"

    def __init__(self, corpus: Optional[Iterable[str]] = None) -> None:
        self._vectoriser: Optional[TfidfVectorizer] = None
        if corpus is not None:
            self.fit(corpus)

    @property
    def dimension(self) -> int:
        if self._vectoriser is None:
            return 0
        return len(self._vectoriser.vocabulary_)

    def fit(self, corpus: Iterable[str]) -> "TfidfEmbeddingModel":
        texts = list(corpus)
        vectoriser = TfidfVectorizer(lowercase=True)
        logger.info("Fitting TF-IDF vectoriser on %d texts", len(texts))
        try:
            vectoriser.fit(texts)
        except ValueError as exc:
            raise EmbeddingError(f"Cannot fit TF-IDF vectoriser: {exc}") from exc
        self._vectoriser = vectoriser
        return self

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if self._vectoriser is None:
            raise EmbeddingError("TF-IDF model has not been fitted")
        if not texts:
            return []
        vectors = normalize(self._vectoriser.transform(list(texts)), norm="l2")
        return vectors.toarray().tolist()

    def embed(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]
