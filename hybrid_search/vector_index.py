"""
vector_index.py
---------------

Dense vector store with exhaustive cosine similarity search.

Entries are keyed by chunk id and carry the chunk title and text as
metadata so that results can be shown without the chunk store.  The
scan is brute force over a normalised float32 matrix, which is plenty
for a corpus of a few thousand chunks; :meth:`VectorIndex.query` only
promises a ranked list, so a different nearest neighbour structure can
be slotted in behind the same interface.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np  # type: ignore

from .errors import DimensionMismatch, PersistenceError

logger = logging.getLogger(__name__)

METADATA_FILE = "vector_index.json"
EMBEDDINGS_FILE = "vector_embeddings.npy"


@dataclass(frozen=True)
class VectorEntry:
    """One stored embedding."""

    id: int
    embedding: np.ndarray
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorResult:
    """A chunk returned by a similarity query."""

    id: int
    similarity: float
    text: str
    title: str

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any]) -> "VectorResult":
        """Convert a vector database hit into a :class:`VectorResult`.

        The expected shape is ``{"id", "similarity", "document": {"id",
        "metadata": {"title", "text"}}}``; the document id wins when both
        ids are present.
        """
        document = payload.get("document") or {}
        metadata = document.get("metadata") or payload.get("metadata") or {}
        raw_id = document.get("id", payload.get("id"))
        if raw_id is None:
            raise ValueError("Vector hit has no id")
        return cls(
            id=int(raw_id),
            similarity=float(payload["similarity"]),
            text=str(metadata.get("text", "")),
            title=str(metadata.get("title", "")),
        )


def _as_vector(embedding: Sequence[float]) -> np.ndarray:
    vector = np.asarray(embedding, dtype="float32")
    if vector.ndim != 1 or vector.size == 0:
        raise ValueError("Embeddings must be non-empty one dimensional vectors")
    if not np.all(np.isfinite(vector)):
        raise ValueError("Embeddings must contain only finite values")
    return vector


class VectorIndex:
    """In-memory embedding store queried by cosine similarity.

    The first embedding added fixes the dimensionality; adding a vector
    of another length raises
    :class:`~hybrid_search.errors.DimensionMismatch`.  Adding an id that
    is already present overwrites that entry, so rebuilding from the
    same chunks is idempotent.

    Parameters
    ----------
    model : str, optional
        Name of the embedding model the vectors came from.  It is stored
        with the index so a reloaded index can be matched to its model.
    """

    def __init__(self, model: str = "") -> None:
        self.model = model
        self.dimension: Optional[int] = None
        self._ids: List[int] = []
        self._rows: Dict[int, int] = {}
        self._vectors: List[np.ndarray] = []
        self._metadata: List[Dict[str, str]] = []
        self._normalised: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._rows

    @property
    def ids(self) -> List[int]:
        return list(self._ids)

    def add(
        self,
        chunk_id: int,
        embedding: Sequence[float],
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Insert or overwrite the entry for ``chunk_id``."""
        vector = _as_vector(embedding)
        with self._lock:
            if self.dimension is None:
                self.dimension = int(vector.shape[0])
            elif vector.shape[0] != self.dimension:
                raise DimensionMismatch(self.dimension, int(vector.shape[0]))
            meta = dict(metadata or {})
            row = self._rows.get(chunk_id)
            if row is None:
                self._rows[chunk_id] = len(self._ids)
                self._ids.append(chunk_id)
                self._vectors.append(vector)
                self._metadata.append(meta)
            else:
                logger.debug("Overwriting embedding for chunk %s", chunk_id)
                self._vectors[row] = vector
                self._metadata[row] = meta
            self._normalised = None

    def add_entry(self, entry: VectorEntry) -> None:
        self.add(entry.id, entry.embedding, entry.metadata)

    def get(self, chunk_id: int) -> Optional[VectorEntry]:
        row = self._rows.get(chunk_id)
        if row is None:
            return None
        return VectorEntry(
            id=chunk_id,
            embedding=self._vectors[row].copy(),
            metadata=dict(self._metadata[row]),
        )

    def _matrix(self) -> np.ndarray:
        with self._lock:
            if self._normalised is None:
                embeddings = np.vstack(self._vectors)
                norm = np.linalg.norm(embeddings, axis=1, keepdims=True)
                norm[norm == 0] = 1
                self._normalised = embeddings / norm
            return self._normalised

    def query(self, embedding: Sequence[float], limit: int = 10) -> List[VectorResult]:
        """Return up to ``limit`` entries ordered by descending similarity.

        Querying an empty index returns an empty list, as does a zero
        query vector.
        """
        if not self._ids or limit <= 0:
            return []
        q = _as_vector(embedding)
        if q.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, int(q.shape[0]))
        norm = np.linalg.norm(q)
        if norm == 0:
            return []
        sims = self._matrix() @ (q / norm)
        ranked = np.argsort(-sims, kind="stable")[:limit]
        results: List[VectorResult] = []
        for row in ranked:
            meta = self._metadata[row]
            results.append(
                VectorResult(
                    id=self._ids[row],
                    similarity=float(sims[row]),
                    text=meta.get("text", ""),
                    title=meta.get("title", ""),
                )
            )
        return results

    def embedding_range(self) -> Optional[Dict[str, float]]:
        """Smallest and largest component over all stored embeddings."""
        if not self._vectors:
            return None
        stacked = np.vstack(self._vectors)
        return {"min": float(stacked.min()), "max": float(stacked.max())}

    def save(self, directory: Union[str, Path]) -> None:
        """Persist ids and metadata as JSON and embeddings as ``.npy``."""
        target = Path(directory)
        payload = {
            "model": self.model,
            "dimension": self.dimension,
            "ids": self._ids,
            "metadata": self._metadata,
        }
        try:
            target.mkdir(parents=True, exist_ok=True)
            with (target / METADATA_FILE).open("w", encoding="utf-8") as fh:
                json.dump(payload, fh)
            if self._vectors:
                embeddings = np.vstack(self._vectors)
            else:
                embeddings = np.zeros((0, self.dimension or 0), dtype="float32")
            np.save(target / EMBEDDINGS_FILE, embeddings)
        except OSError as exc:
            raise PersistenceError(
                f"Unable to save semantic vector database to {target}"
            ) from exc

    @classmethod
    def load(cls, directory: Union[str, Path]) -> "VectorIndex":
        source = Path(directory)
        metadata_path = source / METADATA_FILE
        embeddings_path = source / EMBEDDINGS_FILE
        try:
            with metadata_path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
            embeddings = np.load(embeddings_path)
        except (OSError, ValueError) as exc:
            raise PersistenceError(
                f"Unable to load semantic vector database from {source}"
            ) from exc
        ids = payload.get("ids", [])
        metadata = payload.get("metadata", [])
        if len(ids) != len(metadata) or len(ids) != embeddings.shape[0]:
            raise PersistenceError(
                f"Semantic vector database at {source} is inconsistent: "
                f"{len(ids)} ids, {len(metadata)} metadata, {embeddings.shape[0]} embeddings"
            )
        index = cls(model=payload.get("model", ""))
        for chunk_id, vector, meta in zip(ids, embeddings, metadata):
            index.add(int(chunk_id), vector, meta)
        if index.dimension is None and payload.get("dimension") is not None:
            index.dimension = int(payload["dimension"])
        return index
