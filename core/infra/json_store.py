"""
JSON document persistence helpers.

Documents are read leniently (missing or corrupt files give back the
default) and written atomically through a temp file in the same directory.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Union

from core.errors import PersistenceError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_json(path: PathLike, default: Callable[[], Any]) -> Any:
    """Load a JSON document, returning ``default()`` if absent or unreadable."""
    path = Path(path)
    if not path.exists():
        logger.info(f"No existing file at {path}, starting fresh")
        return default()
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read {path} ({e}), starting fresh")
        return default()


def write_json(path: PathLike, data: Any) -> None:
    """Atomically replace ``path`` with ``data`` serialized as JSON.

    Raises:
        PersistenceError: if the document could not be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e
