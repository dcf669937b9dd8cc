"""
utils.py
--------

The chunk store and the helpers that feed it: loading a corpus from
disk and splitting documents into overlapping chunks.  Both indexes
are built from one :class:`ChunkStore` snapshot, which is why chunk
ids are assigned here and nowhere else.
"""

from __future__ import annotations

import logging
import pathlib
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .config import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP_SIZE
from .errors import UnsupportedInput

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".md", ".pdf")

_PUNCTUATION = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()?]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Chunk:
    """One slice of a source document.

    Attributes
    ----------
    id : int
        Corpus-wide identifier, 1-based and increasing in corpus order.
        It is the join key between the keyword and the vector index.
    title : str
        Identifier of the source document.
    text : str
        The chunk content.
    """

    id: int
    title: str
    text: str


def split_text(
    text: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP_SIZE
) -> List[str]:
    """Split text into windows of ``chunk_size`` characters.

    Consecutive windows share ``overlap`` characters so that a sentence
    cut at a boundary is still seen whole by one of the two chunks.

    Parameters
    ----------
    text : str
        The input text to split.
    chunk_size : int, optional
        Number of characters per chunk.
    overlap : int, optional
        Number of characters shared by adjacent chunks.  Must be smaller
        than ``chunk_size``.

    Returns
    -------
    list of str
        The list of text chunks, empty for empty input.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")
    if not text:
        return []
    chunks = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + chunk_size, length)
        chunks.append(text[start:end])
        if end == length:
            break
        start = end - overlap
    return chunks


class ChunkStore:
    """Ordered chunks of every document in a corpus.

    The store is immutable once built.  Iterating yields chunks in id
    order; :meth:`chunks_for` returns the chunks of one document in the
    order they appear in the source.
    """

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        self._chunks: Tuple[Chunk, ...] = tuple(chunks)
        self._by_id: Dict[int, Chunk] = {}
        self._by_title: Dict[str, List[Chunk]] = {}
        for chunk in self._chunks:
            if chunk.id in self._by_id:
                raise ValueError(f"Duplicate chunk id {chunk.id}")
            self._by_id[chunk.id] = chunk
            self._by_title.setdefault(chunk.title, []).append(chunk)

    @classmethod
    def from_corpus(
        cls,
        corpus: Mapping[str, str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP_SIZE,
    ) -> "ChunkStore":
        """Chunk every document of ``corpus`` and number the chunks.

        ``corpus`` maps a document title to its full text.  Ids start at
        1 and increase across the whole corpus in mapping order.
        """
        chunks: List[Chunk] = []
        next_id = 1
        for title, text in corpus.items():
            for piece in split_text(text, chunk_size=chunk_size, overlap=overlap):
                chunks.append(Chunk(id=next_id, title=title, text=piece))
                next_id += 1
        logger.info("Chunked %d documents into %d chunks", len(corpus), len(chunks))
        return cls(chunks)

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        return self._chunks

    @property
    def titles(self) -> List[str]:
        return list(self._by_title)

    def chunks_for(self, title: str) -> List[Chunk]:
        return list(self._by_title.get(title, []))

    def get(self, chunk_id: int) -> Optional[Chunk]:
        return self._by_id.get(chunk_id)

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self._chunks)


def read_pdf(path: Union[str, pathlib.Path]) -> str:
    """Extract the text of every page, pages separated by a blank line."""
    try:
        reader = PdfReader(path)
        pages = [page.extract_text() for page in reader.pages]
    except PdfReadError as exc:
        raise UnsupportedInput(f"Cannot read PDF {path}: {exc}") from exc
    return "\n\n".join(text.strip() for text in pages if text)


def read_document(path: Union[str, pathlib.Path]) -> str:
    """Return the text of a single ``.txt``, ``.md`` or ``.pdf`` document."""
    file_path = pathlib.Path(path)
    suffix = file_path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedInput(
            f"Unsupported file type {file_path.suffix or '(none)'} - "
            f"only {', '.join(SUPPORTED_SUFFIXES)} files are supported"
        )
    if suffix == ".pdf":
        return read_pdf(file_path)
    return file_path.read_text(encoding="utf-8", errors="ignore")


def load_corpus(path: Union[str, pathlib.Path]) -> Dict[str, str]:
    """Load a document or a directory of documents.

    Directories are read non-recursively in sorted filename order and
    files with unsupported suffixes are skipped with a warning.  A single
    file path with an unsupported suffix raises
    :class:`~hybrid_search.errors.UnsupportedInput`.

    Returns
    -------
    dict
        Mapping of file name (the document title) to its text.
    """
    base_path = pathlib.Path(path)
    if not base_path.exists():
        raise FileNotFoundError(f"Document path not found: {path}")
    if base_path.is_file():
        return {base_path.name: read_document(base_path)}
    corpus: Dict[str, str] = {}
    for file_path in sorted(p for p in base_path.iterdir() if p.is_file()):
        try:
            corpus[file_path.name] = read_document(file_path)
        except UnsupportedInput as exc:
            logger.warning("Skipping %s: %s", file_path.name, exc)
    return corpus


def get_filename(s: str) -> str:
    """Turn an arbitrary string into a file name stem.

    Punctuation is removed and runs of whitespace become ``_``.
    """
    stripped = _PUNCTUATION.sub("", s.strip().lower())
    return _WHITESPACE.sub("_", stripped)
