"""CLI entry point to answer questions from a saved hybrid search index."""

from __future__ import annotations

import argparse
import logging
import sys

from hybrid_search.config import Settings, configure_logging
from hybrid_search.embedding import EmbeddingModel, TfidfEmbeddingModel
from hybrid_search.errors import RetrievalError
from hybrid_search.hybrid_retrieval import HybridRetriever
from hybrid_search.main import ChatSession, RAGClient, is_exit

logger = logging.getLogger("answer")

GREETING = "Hello, what would you like to know?\n> "
FOLLOW_UP = "What else would you like to know?\n> "


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Answer questions using a saved index.")
    parser.add_argument("question", nargs="?", help="Question to answer.")
    parser.add_argument("--chat", action="store_true", help="Start an interactive chat.")
    parser.add_argument("--index", required=True, help="Name the index was saved under.")
    parser.add_argument(
        "--index-dir",
        default=None,
        help="Directory holding saved indexes (default: INDEX_DIR or 'index').",
    )
    parser.add_argument(
        "--embedder",
        choices=("openai", "tfidf"),
        default="openai",
        help="Embedding provider the index was built with (default: %(default)s).",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=5,
        help="Number of context chunks to retrieve before answering (default: %(default)s).",
    )
    parser.add_argument(
        "--hybrid",
        action="store_true",
        help="Use fused keyword and semantic results as context.",
    )
    return parser


def load_client(args: argparse.Namespace, settings: Settings) -> RAGClient:
    if args.embedder == "tfidf":
        embedder = TfidfEmbeddingModel()
    else:
        embedder = EmbeddingModel.from_settings(settings)
    directory = settings.index_path(
        args.index, model=embedder.model_name, index_dir=args.index_dir
    )
    retriever = HybridRetriever.load(directory, embedder, settings)
    if isinstance(embedder, TfidfEmbeddingModel):
        embedder.fit(chunk.text for chunk in retriever.keyword_index.chunks)
    return RAGClient(retriever, settings)


def chat(session: ChatSession) -> None:
    prompt = GREETING
    while True:
        try:
            question = input(prompt)
        except EOFError:
            break
        if is_exit(question):
            break
        if not question.strip():
            continue
        print(session.ask(question))
        prompt = FOLLOW_UP
    print("Bye!")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    if not args.question and not args.chat:
        parser.error("provide a question or use --chat")
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    try:
        client = load_client(args, settings)
        with client.retriever:
            if args.chat:
                chat(ChatSession(client, top_k=args.top_k, hybrid=args.hybrid))
            else:
                print(client.generate_answer(args.question, top_k=args.top_k, hybrid=args.hybrid))
    except RetrievalError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
