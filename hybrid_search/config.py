"""
config.py
---------

Explicit configuration values for the retrieval engine.

Nothing in the package reads the environment on its own: scripts call
:meth:`Settings.from_env` once and hand the resulting value to the
objects that need it.  Fusion parameters live in :class:`RankOptions`
and can be overridden per call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from .env import load_env

DEFAULT_LLM = "gpt-4o"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_BASE_URL = "https://api.openai.com/v1/"
DEFAULT_CHUNK_SIZE = 512
DEFAULT_OVERLAP_SIZE = 20
DEFAULT_BATCH_SIZE = 50
DEFAULT_EMBEDDING_TIMEOUT = 30.0
DEFAULT_FUZZY = 0.1
DEFAULT_SEMANTIC_LIMIT = 10
DEFAULT_INDEX_DIR = "index"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_COMPARE_MODELS = ("qwen2.5:0.5b", "qwen2.5:1.5b", "qwen2.5:7b")

DEFAULT_KEYWORD_WEIGHT = 1.0
DEFAULT_SEMANTIC_WEIGHT = 2.0
DEFAULT_RRF_K = 10.0

# level names accepted by LOG_LEVEL; "silent" turns logging off
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "log": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "silent": logging.CRITICAL + 1,
}


@dataclass(frozen=True)
class RankOptions:
    """Weights and damping constant of the fusion rule."""

    keyword_weight: float = DEFAULT_KEYWORD_WEIGHT
    semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT
    rrf_k: float = DEFAULT_RRF_K

    def with_overrides(self, **overrides: Optional[float]) -> "RankOptions":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self


DEFAULT_RANK_OPTIONS = RankOptions()


def _split_models(value: Optional[str]) -> Tuple[str, ...]:
    """Parse a comma separated model list."""
    models = tuple(name.strip() for name in (value or "").split(",") if name.strip())
    return models or DEFAULT_COMPARE_MODELS


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the retriever, the answer client and the scripts."""

    llm: str = DEFAULT_LLM
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap_size: int = DEFAULT_OVERLAP_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    embedding_timeout: float = DEFAULT_EMBEDDING_TIMEOUT
    fuzzy: float = DEFAULT_FUZZY
    semantic_limit: int = DEFAULT_SEMANTIC_LIMIT
    index_dir: str = DEFAULT_INDEX_DIR
    log_level: str = DEFAULT_LOG_LEVEL
    rank_options: RankOptions = DEFAULT_RANK_OPTIONS
    compare_models: Tuple[str, ...] = DEFAULT_COMPARE_MODELS

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.overlap_size < self.chunk_size:
            raise ValueError("overlap_size must be in [0, chunk_size)")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.embedding_timeout <= 0:
            raise ValueError("embedding_timeout must be positive")
        if self.fuzzy < 0:
            raise ValueError("fuzzy must not be negative")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        env_file: Optional[Union[str, Path]] = None,
    ) -> "Settings":
        """Build settings from ``environ`` (``os.environ`` by default).

        When reading ``os.environ`` the ``.env`` file is loaded first so
        that its values are visible.
        """
        if environ is None:
            load_env(env_file)
            environ = os.environ

        def _get(name: str, default: str) -> str:
            value = environ.get(name)
            return value if value not in (None, "") else default

        return cls(
            llm=_get("LLM", DEFAULT_LLM),
            embedding_model=_get("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            api_key=environ.get("OPENAI_API_KEY") or None,
            base_url=_get("OPENAI_BASE_URL", DEFAULT_BASE_URL),
            chunk_size=int(_get("EMBEDDING_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))),
            overlap_size=int(_get("EMBEDDING_OVERLAP_SIZE", str(DEFAULT_OVERLAP_SIZE))),
            batch_size=int(_get("EMBEDDING_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
            embedding_timeout=float(_get("EMBEDDING_TIMEOUT", str(DEFAULT_EMBEDDING_TIMEOUT))),
            fuzzy=float(_get("KEYWORD_FUZZY", str(DEFAULT_FUZZY))),
            semantic_limit=int(_get("SEMANTIC_LIMIT", str(DEFAULT_SEMANTIC_LIMIT))),
            index_dir=_get("INDEX_DIR", DEFAULT_INDEX_DIR),
            log_level=_get("LOG_LEVEL", DEFAULT_LOG_LEVEL).lower(),
            compare_models=_split_models(environ.get("COMPARE_MODELS")),
        )

    def index_path(
        self, name: str, *, model: Optional[str] = None, index_dir: Optional[str] = None
    ) -> Path:
        """Directory of a saved index: ``<index_dir>/<model>-<name>``."""
        # local import: utils imports the defaults defined in this module
        from .utils import get_filename

        base = Path(index_dir or self.index_dir)
        return base / f"{get_filename(model or self.embedding_model)}-{get_filename(name)}"


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for the command line scripts."""
    numeric = LOG_LEVELS.get(level.lower())
    if numeric is None:
        raise ValueError(f"Unknown log level {level!r}")
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(numeric)
    # the HTTP client is chatty at INFO
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
