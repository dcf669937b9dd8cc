"""CLI entry point to build and save keyword and vector indexes for a corpus."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from hybrid_search.config import Settings, configure_logging
from hybrid_search.embedding import EmbeddingModel, TfidfEmbeddingModel
from hybrid_search.errors import RetrievalError
from hybrid_search.hybrid_retrieval import HybridRetriever
from hybrid_search.utils import ChunkStore, load_corpus

logger = logging.getLogger("create_corpus")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate keyword and semantic indexes for hybrid search queries."
    )
    parser.add_argument("document_path", help="Path to a document or directory of documents.")
    parser.add_argument(
        "name",
        nargs="?",
        help="Name of the saved index (default: derived from the document path).",
    )
    parser.add_argument(
        "--index-dir",
        default=None,
        help="Directory holding saved indexes (default: INDEX_DIR or 'index').",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Concurrent embedding calls per batch (default: EMBEDDING_BATCH_SIZE or 50).",
    )
    parser.add_argument(
        "--embedder",
        choices=("openai", "tfidf"),
        default="openai",
        help="Embedding provider (default: %(default)s).",
    )
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    try:
        corpus = load_corpus(args.document_path)
        store = ChunkStore.from_corpus(
            corpus, chunk_size=settings.chunk_size, overlap=settings.overlap_size
        )
        if args.embedder == "tfidf":
            embedder = TfidfEmbeddingModel([chunk.text for chunk in store])
        else:
            embedder = EmbeddingModel.from_settings(settings)
        start = time.perf_counter()
        with HybridRetriever(embedder, settings) as retriever:
            report = retriever.build_indexes(store, batch_size=args.batch_size)
            logger.info("Created indexes in %.2f seconds", time.perf_counter() - start)
            name = args.name or Path(args.document_path).stem
            target = settings.index_path(
                name, model=embedder.model_name, index_dir=args.index_dir
            )
            retriever.save(target)
    except (RetrievalError, OSError) as exc:
        logger.error("%s", exc)
        return 1

    print(f"{target}: {report.keyword_count} keyword entries, "
          f"{report.vector_count} vector entries, {report.skipped} skipped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
