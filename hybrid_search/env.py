"""Read ``.env`` files into the process environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

_LOADED_PATHS: set = set()


def parse_env_file(path: Union[str, Path]) -> Dict[str, str]:
    """Return the KEY=VALUE pairs of ``path`` as a dictionary.

    Blank lines, comments and lines without ``=`` are ignored.  A value
    wrapped in matching single or double quotes is unquoted.
    """
    values: Dict[str, str] = {}
    with Path(path).open("r", encoding="utf-8") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()
            if not key:
                continue
            if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
                value = value[1:-1]
            values[key] = value
    return values


def load_env(path: Optional[Union[str, Path]] = None) -> None:
    """Load a ``.env`` file into ``os.environ`` once.

    Variables already present in the environment win over the file.
    Without ``path`` the ``.env`` in the current working directory is
    used.  A missing file is not an error.
    """
    candidate = Path(path) if path is not None else Path.cwd() / ".env"
    key = str(candidate.resolve())
    if key in _LOADED_PATHS:
        return
    _LOADED_PATHS.add(key)
    try:
        values = parse_env_file(candidate)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Could not read %s: %s", candidate, exc)
        return
    for name, value in values.items():
        os.environ.setdefault(name, value)
    logger.debug("Loaded %d variables from %s", len(values), candidate)
