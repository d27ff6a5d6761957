"""Per-config sync manifest persistence.

Each ``SyncConfig`` owns one manifest file,
``{data_dir}/manifests/{config_id}.json``.  Entries are replaced whole and
the file is rewritten atomically on every save, so a crash mid-run leaves
exactly the entries that were confirmed before it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from ..errors import StoreCorruptionError
from ..sync.models import ManifestEntry, SyncManifest
from .base import SCHEMA_VERSION, read_json, write_json

logger = logging.getLogger(__name__)


class ManifestStore:
    """Load, save, and clear sync manifests.

    Args:
        manifest_dir: Directory holding one JSON file per config.
    """

    def __init__(self, manifest_dir: Path) -> None:
        self._manifest_dir = manifest_dir
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_manifest(self, config_id: str) -> SyncManifest:
        """Return the manifest for *config_id*; empty when never synced.

        Raises:
            StoreCorruptionError: If the manifest file cannot be parsed.
        """
        with self._lock:
            data = self._read(config_id)
        try:
            return SyncManifest(
                config_id=config_id,
                entries={
                    key: ManifestEntry.model_validate(raw)
                    for key, raw in data.get("entries", {}).items()
                },
            )
        except ValidationError as exc:
            raise StoreCorruptionError(
                f"Invalid manifest for config {config_id}: {exc}"
            ) from exc

    def save_manifest_entry(
        self, config_id: str, entity_key: str, entry: ManifestEntry
    ) -> None:
        """Replace the entry for *entity_key* and persist atomically."""
        with self._lock:
            data = self._read(config_id)
            data.setdefault("entries", {})[entity_key] = entry.model_dump(
                mode="json"
            )
            write_json(self._manifest_path(config_id), data)

    def clear_manifest(self, config_id: str) -> None:
        """Drop every entry, forcing the next run to treat all entities as new."""
        with self._lock:
            write_json(
                self._manifest_path(config_id),
                {"version": SCHEMA_VERSION, "config_id": config_id, "entries": {}},
            )
        logger.info("Cleared manifest for config %s", config_id)

    def delete_manifest(self, config_id: str) -> None:
        """Remove the manifest file.  No-op if it does not exist."""
        with self._lock:
            self._manifest_path(config_id).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self, config_id: str) -> dict:
        return read_json(
            self._manifest_path(config_id),
            {"version": SCHEMA_VERSION, "config_id": config_id, "entries": {}},
        )

    def _manifest_path(self, config_id: str) -> Path:
        return self._manifest_dir / f"{config_id}.json"
