"""Atomic JSON file helpers shared by the local stores.

Every store keeps its data in a small JSON document with a ``version``
field.  Writes go to a temporary file in the same directory followed by
``os.replace()`` so a crash never leaves a half-written document behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ..errors import StoreCorruptionError

SCHEMA_VERSION = 1


def read_json(path: Path, default: dict[str, Any]) -> dict[str, Any]:
    """Load the JSON document at *path*.

    Args:
        path: File to read.
        default: Returned (as a fresh copy) when the file does not exist.

    Raises:
        StoreCorruptionError: If the file is not valid JSON, is not an
            object, or carries a different schema version.
    """
    if not path.exists():
        return json.loads(json.dumps(default))
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise StoreCorruptionError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise StoreCorruptionError(f"{path} does not contain a JSON object")
    version = data.get("version")
    if version != SCHEMA_VERSION:
        raise StoreCorruptionError(
            f"{path} has schema version {version!r}, expected {SCHEMA_VERSION}"
        )
    return data


def write_json(path: Path, data: dict[str, Any], mode: int | None = None) -> None:
    """Persist *data* to *path* atomically.

    Creates the parent directory if needed.  When *mode* is given the file
    permissions are set before the rename, so the final file never exists
    with looser permissions.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
