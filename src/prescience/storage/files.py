"""Single-value JSON documents on disk.

Each persisted file has exactly one writer role. Writes go to a temp file in
the same directory and are swapped in with ``os.replace`` so readers see
either the old or the new document, never a partial one. A missing or
unreadable file reads as the caller's default.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import orjson

from prescience.core.exceptions import StorageWriteError
from prescience.core.logging import get_logger

logger = get_logger(__name__)


def load_json(path: Path, default: Any) -> Any:
    """Read a JSON document; ``default`` when missing or unparseable."""
    try:
        return orjson.loads(path.read_bytes())
    except FileNotFoundError:
        return default
    except (OSError, orjson.JSONDecodeError) as e:
        logger.warning("Failed to read JSON file, treating as empty", path=str(path), error=str(e))
        return default


def save_json(path: Path, value: Any) -> None:
    """Atomically replace ``path`` with ``value`` serialised as indented JSON.

    Raises:
        StorageWriteError: the document could not be written
    """
    try:
        payload = orjson.dumps(value, option=orjson.OPT_INDENT_2)
    except TypeError as e:
        raise StorageWriteError(f"Cannot serialise document for {path}: {e}") from e

    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.write(b"\n")
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise StorageWriteError(f"Failed to write {path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
    logger.debug("Wrote JSON file", path=str(path), bytes=len(payload))


def count_entries(path: Path) -> int:
    """Number of records in a list (or ``{key: [...]}``) document; 0 when unreadable."""
    data = load_json(path, [])
    if isinstance(data, list):
        return len(data)
    if isinstance(data, dict):
        for value in data.values():
            if isinstance(value, list):
                return len(value)
        return len(data)
    return 0
