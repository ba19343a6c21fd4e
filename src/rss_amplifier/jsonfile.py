"""JSON document helpers shared by the file-backed stores."""

from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
from typing import Any

from .errors import PersistenceError


def read_json_document(path: Path) -> dict[str, Any] | None:
    """Return the parsed document, ``None`` when missing, or raise PersistenceError."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PersistenceError(f"Could not read '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceError(f"'{path}' must contain a JSON object, got {type(data).__name__}.")
    return data


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write ``payload`` through a temp file so readers never see a partial document."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as stream:
                json.dump(payload, stream, indent=2, sort_keys=True)
                stream.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except (OSError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Could not write '{path}': {exc}") from exc
