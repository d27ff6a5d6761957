"""Sync config persistence.

Configs live in ``{data_dir}/sync_configs.json``.  Deleting a config is the
only way a manifest is destroyed: ``delete()`` cascades to the manifest, the
stored credential and the last persisted status.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from ..errors import StoreCorruptionError
from ..sync.models import SyncConfig, utcnow
from .base import SCHEMA_VERSION, read_json, write_json
from .credentials import CredentialStore
from .manifest import ManifestStore
from .status_store import StatusStore

logger = logging.getLogger(__name__)


class SyncConfigStore:
    """CRUD access to ``SyncConfig`` records.

    Args:
        path: Location of the config file.
        manifest_store: Manifests deleted alongside their config.
        credential_store: Credentials deleted alongside their config.
        status_store: Persisted statuses deleted alongside their config.
    """

    def __init__(
        self,
        path: Path,
        manifest_store: ManifestStore,
        credential_store: CredentialStore,
        status_store: StatusStore | None = None,
    ) -> None:
        self._path = path
        self._manifests = manifest_store
        self._credentials = credential_store
        self._statuses = status_store
        self._lock = threading.Lock()

    def create(self, config: SyncConfig) -> SyncConfig:
        """Persist a new config.

        Raises:
            ValueError: If a config with the same id already exists.
        """
        with self._lock:
            data = self._read()
            if config.id in data["configs"]:
                raise ValueError(f"Sync config {config.id} already exists")
            data["configs"][config.id] = config.model_dump(mode="json")
            write_json(self._path, data)
        logger.info("Created sync config %s (%s)", config.id, config.server_url)
        return config

    def update(self, config: SyncConfig) -> SyncConfig:
        """Replace an existing config, bumping ``updated_at``.

        Raises:
            KeyError: If the config does not exist.
        """
        updated = config.model_copy(update={"updated_at": utcnow()})
        with self._lock:
            data = self._read()
            if config.id not in data["configs"]:
                raise KeyError(f"Sync config {config.id} not found")
            data["configs"][config.id] = updated.model_dump(mode="json")
            write_json(self._path, data)
        return updated

    def delete(self, config_id: str) -> bool:
        """Remove a config with its manifest, credential and status.

        Returns:
            ``True`` if the config existed.
        """
        with self._lock:
            data = self._read()
            existed = data["configs"].pop(config_id, None) is not None
            if existed:
                write_json(self._path, data)
        if existed:
            self._manifests.delete_manifest(config_id)
            self._credentials.delete(config_id)
            if self._statuses is not None:
                self._statuses.delete(config_id)
            logger.info("Deleted sync config %s", config_id)
        return existed

    def get(self, config_id: str) -> SyncConfig | None:
        with self._lock:
            raw = self._read()["configs"].get(config_id)
        if raw is None:
            return None
        return self._parse(config_id, raw)

    def list_all(self) -> list[SyncConfig]:
        with self._lock:
            configs = self._read()["configs"]
        return [self._parse(key, raw) for key, raw in configs.items()]

    def list_enabled(self) -> list[SyncConfig]:
        return [c for c in self.list_all() if c.enabled]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> dict:
        data = read_json(self._path, {"version": SCHEMA_VERSION, "configs": {}})
        data.setdefault("configs", {})
        return data

    def _parse(self, config_id: str, raw: dict) -> SyncConfig:
        try:
            return SyncConfig.model_validate(raw)
        except ValidationError as exc:
            raise StoreCorruptionError(
                f"Invalid sync config {config_id} in {self._path}: {exc}"
            ) from exc
