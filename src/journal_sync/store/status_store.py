"""Persistence of the last terminal sync status per config."""

from __future__ import annotations

import threading
from pathlib import Path

from pydantic import ValidationError

from ..errors import StoreCorruptionError
from ..sync.models import SyncStatus
from .base import SCHEMA_VERSION, read_json, write_json


class StatusStore:
    """Keep the most recent completed/failed/cancelled status of each config.

    Args:
        path: Location of the status file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    def get(self, config_id: str) -> SyncStatus | None:
        with self._lock:
            raw = self._read()["statuses"].get(config_id)
        if raw is None:
            return None
        try:
            return SyncStatus.model_validate(raw)
        except ValidationError as exc:
            raise StoreCorruptionError(
                f"Invalid status record for config {config_id}: {exc}"
            ) from exc

    def save(self, status: SyncStatus) -> None:
        with self._lock:
            data = self._read()
            data["statuses"][status.config_id] = status.model_dump(mode="json")
            write_json(self._path, data)

    def delete(self, config_id: str) -> None:
        with self._lock:
            data = self._read()
            if data["statuses"].pop(config_id, None) is not None:
                write_json(self._path, data)

    def _read(self) -> dict:
        data = read_json(self._path, {"version": SCHEMA_VERSION, "statuses": {}})
        data.setdefault("statuses", {})
        return data
