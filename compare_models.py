"""CLI entry point to compare chat models on a fixed set of questions."""

from __future__ import annotations

import argparse
import logging
import sys

from hybrid_search.config import Settings, configure_logging
from hybrid_search.errors import RetrievalError
from hybrid_search.main import COMPARE_QUESTIONS, compare_models

from answer import load_client

logger = logging.getLogger("compare_models")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Answer the same questions with every model in COMPARE_MODELS."
    )
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
        "--models",
        default=None,
        help="Comma separated chat models (default: COMPARE_MODELS).",
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


def main() -> int:
    args = _build_parser().parse_args()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    models = [m.strip() for m in args.models.split(",") if m.strip()] if args.models else None

    try:
        client = load_client(args, settings)
        with client.retriever:
            current = None
            for model, question, answer in compare_models(
                client.retriever,
                settings,
                models=models,
                questions=COMPARE_QUESTIONS,
                top_k=args.top_k,
                hybrid=args.hybrid,
            ):
                if model != current:
                    print(f"\n### Comparing Model {model} ###")
                    current = model
                print(f"\n{question}\n\n{answer}")
    except RetrievalError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
