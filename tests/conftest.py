from __future__ import annotations

import re
import threading
import zlib
from typing import Iterable, List, Sequence

import pytest

from hybrid_search.config import Settings
from hybrid_search.errors import EmbeddingError
from hybrid_search.utils import Chunk, ChunkStore

DIMENSION = 32


class HashingEmbedder:
    """Deterministic bag-of-words embedder for tests."""

    model_name = "hashing-test"

    def __init__(self, dimension: int = DIMENSION) -> None:
        self.dimension = dimension
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls.append(text)
        vector = [0.0] * self.dimension
        for token in re.findall(r"\w+", text.lower()):
            vector[zlib.crc32(token.encode("utf-8")) % self.dimension] += 1.0
        return vector

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]


class FlakyEmbedder(HashingEmbedder):
    """Fails for every text containing one of ``poison`` words."""

    def __init__(self, poison: Iterable[str]) -> None:
        super().__init__()
        self.poison = set(poison)

    def embed(self, text: str) -> List[float]:
        if any(word in text for word in self.poison):
            raise EmbeddingError(f"provider rejected {text!r}")
        return super().embed(text)


class DownEmbedder(HashingEmbedder):
    def embed(self, text: str) -> List[float]:
        raise EmbeddingError("provider unavailable")


class BlockingEmbedder(HashingEmbedder):
    """Blocks every call until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def embed(self, text: str) -> List[float]:
        self.release.wait(5)
        return super().embed(text)


CORPUS = {
    "baker-street.txt": "Sherlock Holmes lived at Baker Street with Doctor Watson.",
    "violin.txt": "Holmes played the violin late into the night.",
    "moriarty.txt": "Professor Moriarty was the arch enemy of the detective.",
    "tea.txt": "Mrs Hudson brought tea and toast every morning.",
}


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def settings() -> Settings:
    return Settings(batch_size=2, embedding_timeout=5.0)


@pytest.fixture
def store() -> ChunkStore:
    return ChunkStore.from_corpus(CORPUS, chunk_size=200, overlap=10)


@pytest.fixture
def chunks(store: ChunkStore) -> List[Chunk]:
    return list(store)
