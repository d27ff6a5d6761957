"""Caller-facing facade over the sync and migration engines.

``JournalSyncService`` wires the stores, media root and transport factory
from one runtime ``Config`` and exposes the operations the CLI and the MCP
tools call.  Both engines share one per-attachment lock table so a sync
and a migration never touch the same attachment at once.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable

from .config import Config
from .core.async_utils import KeyedLock
from .core.transport import Transport, create_transport
from .file_handler import MediaStorage
from .migration.engine import FileMigrationEngine, ProgressCallback
from .migration.models import MigrationResult, MigrationStats, ValidationReport
from .store.config_store import SyncConfigStore
from .store.credentials import CredentialStore
from .store.local import JsonLocalStore, LocalStore
from .store.manifest import ManifestStore
from .store.status_store import StatusStore
from .sync.engine import ReconciliationEngine, TransportFactory
from .sync.models import SyncConfig, SyncReport, SyncStatus
from .sync.resolver import create_resolver
from .sync.status import StatusBoard, StatusCallback

logger = logging.getLogger(__name__)


class JournalSyncService:
    """Sync configs, runs, status and attachment migration in one place.

    Args:
        config: Resolved runtime settings.
        local_store: Journal data source; a ``JsonLocalStore`` under
            ``config.data_dir`` when omitted.
        transport_factory: Builds a transport for a sync config and its
            password; WebDAV over ``requests`` when omitted.
    """

    def __init__(
        self,
        config: Config,
        local_store: LocalStore | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config
        data_dir = config.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)

        self.local_store = local_store or JsonLocalStore(data_dir)
        self.media = MediaStorage(config.media_dir)
        self.manifest_store = ManifestStore(data_dir / "manifests")
        self.credential_store = CredentialStore(data_dir / "credentials.json")
        self.status_store = StatusStore(data_dir / "sync_status.json")
        self.config_store = SyncConfigStore(
            data_dir / "sync_configs.json",
            self.manifest_store,
            self.credential_store,
            self.status_store,
        )
        self.status_board = StatusBoard(self.status_store)
        self.attachment_locks = KeyedLock()

        self.sync_engine = ReconciliationEngine(
            config_store=self.config_store,
            manifest_store=self.manifest_store,
            credential_store=self.credential_store,
            local_store=self.local_store,
            media=self.media,
            transport_factory=transport_factory or self._webdav_transport,
            resolver=create_resolver(config.conflict_strategy),
            attachment_locks=self.attachment_locks,
            status_board=self.status_board,
        )
        self.migration_engine = FileMigrationEngine(
            self.local_store, self.media, self.attachment_locks
        )
        self._tasks: dict[str, asyncio.Task[SyncStatus]] = {}

    def _webdav_transport(self, sync_config: SyncConfig, password: str) -> Transport:
        return create_transport(
            sync_config.server_url,
            sync_config.username,
            password,
            timeout=self.config.timeout,
            insecure=self.config.insecure,
        )

    # ------------------------------------------------------------------
    # Sync configs
    # ------------------------------------------------------------------

    def create_config(
        self,
        server_url: str,
        username: str,
        password: str,
        **fields: Any,
    ) -> SyncConfig:
        """Create a sync config and store its password.

        Args:
            server_url: WebDAV base URL.
            username: Account name.
            password: Stored in the credential store, never in the config.
            **fields: Any other ``SyncConfig`` field.

        Raises:
            ValueError: If the URL is not http(s), the password is empty or
                the id is taken.
        """
        if not server_url.startswith(("http://", "https://")):
            raise ValueError(f"Server URL must start with http:// or https://: {server_url}")
        if not password:
            raise ValueError("Password must not be empty")
        fields.setdefault("id", uuid.uuid4().hex)
        fields.setdefault("root_path", self.config.root_path)
        sync_config = SyncConfig(
            server_url=server_url.rstrip("/"), username=username, **fields
        )
        self.config_store.create(sync_config)
        self.credential_store.set(sync_config.id, password)
        return sync_config

    def update_config(self, config_id: str, **changes: Any) -> SyncConfig:
        """Apply *changes* to an existing config.

        Raises:
            KeyError: If the config does not exist.
        """
        current = self.config_store.get(config_id)
        if current is None:
            raise KeyError(f"Sync config {config_id} not found")
        password = changes.pop("password", None)
        updated = self.config_store.update(
            SyncConfig.model_validate({**current.model_dump(), **changes})
        )
        if password:
            self.credential_store.set(config_id, password)
        return updated

    def delete_config(self, config_id: str) -> bool:
        """Delete a config with its manifest, credential and status."""
        if self.sync_engine.is_running(config_id):
            raise RuntimeError(f"Sync for config {config_id} is running")
        self.status_board.forget(config_id)
        return self.config_store.delete(config_id)

    def get_config(self, config_id: str) -> SyncConfig | None:
        return self.config_store.get(config_id)

    def list_configs(self) -> list[SyncConfig]:
        return self.config_store.list_all()

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    async def perform_sync(
        self,
        config_id: str,
        on_status_update: StatusCallback | None = None,
    ) -> SyncStatus:
        return await self.sync_engine.perform_sync(config_id, on_status_update)

    def start_sync(
        self,
        config_id: str,
        on_status_update: StatusCallback | None = None,
    ) -> asyncio.Task[SyncStatus]:
        """Schedule a sync in the background and return its task.

        Must be called from a running event loop.  Starting a config that
        already has a pending task returns that task.
        """
        task = self._tasks.get(config_id)
        if task is not None and not task.done():
            return task
        task = asyncio.ensure_future(self.perform_sync(config_id, on_status_update))
        self._tasks[config_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(config_id, None))
        return task

    def cancel_sync(self, config_id: str) -> bool:
        return self.sync_engine.cancel(config_id)

    def is_syncing(self, config_id: str) -> bool:
        return self.sync_engine.is_running(config_id)

    def subscribe(
        self, config_id: str, callback: StatusCallback
    ) -> Callable[[], None]:
        """Receive every status change for *config_id*.

        Returns:
            A function that removes the subscription.
        """
        return self.status_board.reporter(config_id).subscribe(callback)

    def get_status(self, config_id: str) -> SyncStatus:
        return self.status_board.status(config_id)

    def get_last_report(self, config_id: str) -> SyncReport | None:
        return self.sync_engine.last_report(config_id)

    async def test_connection(self, sync_config: SyncConfig, password: str) -> bool:
        return await self.sync_engine.test_connection(sync_config, password)

    async def test_saved_connection(self, config_id: str) -> bool:
        """Run the connection round trip with a saved config and password."""
        sync_config = self.config_store.get(config_id)
        if sync_config is None:
            raise KeyError(f"Sync config {config_id} not found")
        password = self.credential_store.get(config_id) or ""
        return await self.test_connection(sync_config, password)

    def clear_local_manifest(self, config_id: str) -> None:
        """Forget what was synced so the next run compares everything again.

        Raises:
            RuntimeError: If a sync for the config is running.
        """
        if self.sync_engine.is_running(config_id):
            raise RuntimeError(f"Sync for config {config_id} is running")
        self.manifest_store.clear_manifest(config_id)

    # ------------------------------------------------------------------
    # Attachment migration
    # ------------------------------------------------------------------

    async def is_migration_needed(self) -> bool:
        return await self.migration_engine.is_migration_needed()

    async def get_migration_count(self) -> int:
        return await self.migration_engine.get_migration_count()

    async def get_migration_stats(self) -> MigrationStats:
        return await self.migration_engine.get_migration_stats()

    async def migrate_all_files(
        self,
        on_progress: ProgressCallback | None = None,
        dry_run: bool = False,
    ) -> MigrationResult:
        return await self.migration_engine.migrate_all_files(on_progress, dry_run)

    async def validate_migration(self) -> ValidationReport:
        return await self.migration_engine.validate_migration()

    async def cleanup_legacy_files(
        self,
        dry_run: bool = True,
        specific_paths: list[str] | None = None,
    ) -> int:
        return await self.migration_engine.cleanup_legacy_files(
            dry_run, specific_paths
        )

    def cancel_migration(self) -> bool:
        return self.migration_engine.cancel()
