"""Reconciliation engine: one two-way sync run per config.

The ``ReconciliationEngine`` compares the local store with the remote through
the config's manifest.  A run:

1. Loads the config, its credential and its manifest.
2. Checks the remote (ping, root collection, remote index, journals
   metadata).  Any failure here is fatal.
3. Takes a snapshot of local journals, entry bundles and attachments,
   scoped by ``synced_journal_ids`` and ``sync_attachments``.
4. Classifies every entity against its manifest entry.
5. Applies the actions one entity at a time, saving the manifest entry as
   soon as the entity's remote and local writes are confirmed.
6. Ends ``completed``, ``failed`` or ``cancelled``.

Error handling is per entity: a ``RecoverableSyncError`` (or a local I/O
error) is recorded and the run moves on.  A ``FatalSyncError`` ends the run.
``perform_sync()`` never raises; the outcome is the returned ``SyncStatus``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from ..core.async_utils import KeyedLock, gather_limited, run_sync_limited
from ..core.transport import Transport
from ..errors import (
    ConfigurationError,
    EntityError,
    FatalSyncError,
    NotFoundError,
    RecoverableSyncError,
    ServerUnreachableError,
    classify_error,
)
from ..file_handler import MediaStorage
from ..storage_paths import (
    disambiguate,
    is_legacy_path,
    is_path_safe,
    storage_path_for,
)
from ..store.config_store import SyncConfigStore
from ..store.credentials import CredentialStore
from ..store.local import LocalStore
from ..store.manifest import ManifestStore
from ..store.models import Attachment, Entry, Journal
from . import documents as docs
from .models import (
    ManifestEntry,
    SyncAction,
    SyncConfig,
    SyncErrorRecord,
    SyncReport,
    SyncResult,
    SyncState,
    SyncStatus,
    utcnow,
)
from .resolver import ConflictResolver, Winner, create_resolver, merge_records
from .status import StatusBoard, StatusCallback, SyncStatusReporter

logger = logging.getLogger(__name__)

TransportFactory = Callable[[SyncConfig, str], Transport]

CONNECTION_TEST_FILENAME = "connection_test.txt"
DELETE_DISABLED = "delete propagation disabled"

_KIND_ORDER = {
    docs.JOURNAL_PREFIX: 0,
    docs.BUNDLE_PREFIX: 1,
    docs.ATTACHMENT_PREFIX: 2,
}


def classify(
    local_fp: str | None,
    remote_fp: str | None,
    entry: ManifestEntry | None,
) -> tuple[SyncAction, str | None]:
    """Decide what to do with one entity.

    Each side is compared with the fingerprint recorded at the last sync:
    ``entry.fingerprint`` for local, ``entry.remote_version`` for remote.

    Args:
        local_fp: Current local fingerprint, ``None`` if absent locally.
        remote_fp: Fingerprint in the remote index, ``None`` if absent.
        entry: Manifest entry, ``None`` if never synced.

    Returns:
        The action and an optional note explaining a skip.
    """
    if local_fp is None and remote_fp is None:
        return SyncAction.SKIP, None

    # Never synced
    if entry is None:
        if remote_fp is None:
            return SyncAction.CREATE_REMOTE, None
        if local_fp is None:
            return SyncAction.CREATE_LOCAL, None
        if local_fp == remote_fp:
            return SyncAction.ADOPT, None
        return SyncAction.CONFLICT, None

    # Deletions are not propagated in either direction
    if local_fp is None or remote_fp is None:
        return SyncAction.SKIP, DELETE_DISABLED

    local_changed = local_fp != entry.fingerprint
    remote_changed = remote_fp != entry.remote_version
    if local_changed and remote_changed:
        return SyncAction.CONFLICT, None
    if local_changed:
        return SyncAction.PUSH, None
    if remote_changed:
        return SyncAction.PULL, None
    return SyncAction.SKIP, None


# ---------------------------------------------------------------------------
# Per-run context
# ---------------------------------------------------------------------------


@dataclass
class _Snapshot:
    journals: dict[str, Journal] = field(default_factory=dict)
    bundles: dict[str, dict[str, Entry]] = field(default_factory=dict)
    attachments: dict[str, Attachment] = field(default_factory=dict)
    attachment_journals: dict[str, str] = field(default_factory=dict)
    fingerprints: dict[str, str] = field(default_factory=dict)
    unreadable: dict[str, str] = field(default_factory=dict)


@dataclass
class _RunContext:
    config: SyncConfig
    transport: Transport
    manifest: dict[str, ManifestEntry]
    index: docs.RemoteIndex
    remote_journals: dict[str, Journal]
    local: _Snapshot

    @property
    def root(self) -> str:
        return self.config.root_path


@dataclass
class _Plan:
    key: str
    action: SyncAction
    local_fp: str | None
    remote: docs.IndexItem | None
    detail: str | None = None


class ReconciliationEngine:
    """Run two-way syncs between the local store and WebDAV remotes.

    Args:
        config_store: Source of ``SyncConfig`` records; ``last_sync_at`` is
            written back on completion.
        manifest_store: Per-config manifests.
        credential_store: Passwords keyed by config id.
        local_store: Journals, entries and attachment records.
        media: Attachment files on disk.
        transport_factory: Builds a ``Transport`` for a config and password.
        resolver: Conflict strategy; last-write-wins by default.
        attachment_locks: Per-attachment locks shared with the migration
            engine.
        status_board: Status reporters per config.
    """

    def __init__(
        self,
        config_store: SyncConfigStore,
        manifest_store: ManifestStore,
        credential_store: CredentialStore,
        local_store: LocalStore,
        media: MediaStorage,
        transport_factory: TransportFactory,
        resolver: ConflictResolver | None = None,
        attachment_locks: KeyedLock | None = None,
        status_board: StatusBoard | None = None,
    ) -> None:
        self.config_store = config_store
        self.manifest_store = manifest_store
        self.credential_store = credential_store
        self.local_store = local_store
        self.media = media
        self.transport_factory = transport_factory
        self.resolver = resolver or create_resolver()
        self.attachment_locks = attachment_locks or KeyedLock()
        self.status_board = status_board or StatusBoard()

        self._run_locks = KeyedLock()
        self._cancel_requested: set[str] = set()
        self._reports: dict[str, SyncReport] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def perform_sync(
        self,
        config_id: str,
        on_status_update: StatusCallback | None = None,
    ) -> SyncStatus:
        """Run one sync for *config_id* and return its terminal status.

        A second call for the same config waits for the first to finish.
        Calls for different configs run concurrently.
        """
        async with self._run_locks.hold(config_id):
            reporter = self.status_board.reporter(config_id)
            unsubscribe = (
                reporter.subscribe(on_status_update)
                if on_status_update
                else None
            )
            try:
                return await self._run(config_id, reporter)
            finally:
                if unsubscribe is not None:
                    unsubscribe()
                self._cancel_requested.discard(config_id)

    def cancel(self, config_id: str) -> bool:
        """Ask the active run for *config_id* to stop after its current entity.

        Returns:
            ``True`` if a run was active.
        """
        if not self.is_running(config_id):
            return False
        self._cancel_requested.add(config_id)
        logger.info("Cancellation requested for config %s", config_id)
        return True

    def is_running(self, config_id: str) -> bool:
        return self._run_locks.locked(config_id)

    def last_report(self, config_id: str) -> SyncReport | None:
        return self._reports.get(config_id)

    async def test_connection(self, config: SyncConfig, password: str) -> bool:
        """Check that the remote accepts a write/read/delete round trip.

        Returns:
            ``True`` on success; failures are logged and yield ``False``.
        """
        try:
            await self.check_connection(config, password)
        except Exception as exc:
            logger.error("Connection test for %s failed: %s", config.server_url, exc)
            return False
        return True

    async def check_connection(self, config: SyncConfig, password: str) -> None:
        """Like ``test_connection()`` but raises the underlying error.

        Raises:
            JournalSyncError: If any step of the round trip fails.
        """
        transport = self.transport_factory(config, password)
        probe_path = f"{config.root_path.rstrip('/')}/{CONNECTION_TEST_FILENAME}"
        payload = f"journal-sync connection test {utcnow().isoformat()}".encode()

        await run_sync_limited(transport.ping)
        await run_sync_limited(transport.mkdir, config.root_path)
        await run_sync_limited(transport.write, probe_path, payload)
        echoed = await run_sync_limited(transport.read, probe_path)
        await run_sync_limited(transport.remove, probe_path)
        if echoed != payload:
            raise EntityError(f"Read back of {probe_path} did not match")

    # ------------------------------------------------------------------
    # Run orchestration
    # ------------------------------------------------------------------

    async def _run(
        self, config_id: str, reporter: SyncStatusReporter
    ) -> SyncStatus:
        started_at = utcnow()
        results: list[SyncResult] = []
        reporter.begin()
        try:
            ctx = await self._prepare(config_id)
            plans = self._plan(ctx)
            reporter.set_total(len(plans) + len(ctx.local.unreadable))

            for key, reason in ctx.local.unreadable.items():
                results.append(
                    self._record_failure(
                        reporter, key, SyncAction.CREATE_REMOTE, EntityError(reason)
                    )
                )

            for plan in plans:
                if config_id in self._cancel_requested:
                    status = reporter.finish(
                        SyncState.CANCELLED, "Sync cancelled"
                    )
                    break
                results.append(await self._apply(ctx, plan, reporter))
            else:
                status = await self._complete(ctx, reporter)
        except FatalSyncError as exc:
            logger.error("Sync for config %s failed: %s", config_id, exc)
            status = reporter.finish(
                SyncState.FAILED, "Sync failed", error_message=str(exc)
            )
        except asyncio.CancelledError:
            reporter.finish(SyncState.CANCELLED, "Sync task cancelled")
            raise
        except Exception as exc:
            logger.exception("Unexpected error syncing config %s", config_id)
            status = reporter.finish(
                SyncState.FAILED, "Sync failed", error_message=str(exc)
            )
        finally:
            self._reports[config_id] = SyncReport(
                config_id=config_id,
                state=reporter.current.state,
                results=results,
                started_at=started_at,
                completed_at=utcnow(),
            )
        return status

    async def _complete(
        self, ctx: _RunContext, reporter: SyncStatusReporter
    ) -> SyncStatus:
        finished_at = utcnow()
        await run_sync_limited(
            self.config_store.update,
            ctx.config.model_copy(update={"last_sync_at": finished_at}),
        )
        current = reporter.current
        if current.failed_items:
            return reporter.finish(
                SyncState.COMPLETED,
                "Sync completed with errors",
                error_message=(
                    f"{current.failed_items} of {current.total_items} items failed"
                ),
            )
        return reporter.finish(SyncState.COMPLETED, "Sync completed")

    async def _prepare(self, config_id: str) -> _RunContext:
        config = await run_sync_limited(self.config_store.get, config_id)
        if config is None:
            raise ConfigurationError(f"Sync config {config_id} not found")
        if not config.enabled:
            raise ConfigurationError(f"Sync config {config_id} is disabled")
        password = await run_sync_limited(self.credential_store.get, config_id)
        if not password:
            raise ConfigurationError(
                f"No stored credential for sync config {config_id}"
            )
        manifest = await run_sync_limited(
            self.manifest_store.load_manifest, config_id
        )

        transport = self.transport_factory(config, password)
        try:
            await run_sync_limited(transport.ping)
            await run_sync_limited(transport.mkdir, config.root_path)
        except RecoverableSyncError as exc:
            raise ServerUnreachableError(
                f"Remote check failed for {config.server_url}: {exc}"
            ) from exc

        index_bytes = await self._read_optional(
            transport, docs.index_path(config.root_path)
        )
        index = (
            docs.parse_index(index_bytes) if index_bytes else docs.RemoteIndex()
        )
        journals_bytes = await self._read_optional(
            transport, docs.journals_path(config.root_path)
        )
        remote_journals = (
            docs.parse_journals(journals_bytes) if journals_bytes else {}
        )

        snapshot = await self._snapshot(config)
        logger.info(
            "Config %s: %d local journals, %d bundles, %d attachments, "
            "%d remote items",
            config_id,
            len(snapshot.journals),
            len(snapshot.bundles),
            len(snapshot.attachments),
            len(index.items),
        )
        return _RunContext(
            config=config,
            transport=transport,
            manifest=dict(manifest.entries),
            index=index,
            remote_journals=remote_journals,
            local=snapshot,
        )

    @staticmethod
    async def _read_optional(transport: Transport, path: str) -> bytes | None:
        """Read a shared document; missing means empty, other errors are fatal."""
        try:
            return await run_sync_limited(transport.read, path)
        except NotFoundError:
            return None
        except RecoverableSyncError as exc:
            raise ServerUnreachableError(f"Cannot read {path}: {exc}") from exc

    async def _snapshot(self, config: SyncConfig) -> _Snapshot:
        snap = _Snapshot()
        journals = await run_sync_limited(self.local_store.list_journals)
        for journal in journals:
            if config.includes_journal(journal.id):
                key = docs.journal_key(journal.id)
                snap.journals[key] = journal
                snap.fingerprints[key] = docs.journal_fingerprint(journal)

        entries = await run_sync_limited(self.local_store.list_entries)
        entry_journals: dict[str, str] = {}
        for entry in entries:
            entry_journals[entry.id] = entry.journal_id
            if not config.includes_journal(entry.journal_id):
                continue
            key = docs.bundle_key(entry.journal_id, docs.entry_month(entry))
            snap.bundles.setdefault(key, {})[entry.id] = entry
        for key, bundle in snap.bundles.items():
            snap.fingerprints[key] = docs.bundle_fingerprint(bundle.values())

        if not config.sync_attachments:
            return snap

        attachments = await run_sync_limited(
            self.local_store.list_attachments, entry_journals.keys()
        )
        in_scope = [
            a
            for a in attachments
            if config.includes_journal(entry_journals[a.entry_id])
        ]
        readable = await gather_limited(
            [run_sync_limited(self.media.is_readable, a.path) for a in in_scope]
        )
        hashable: list[Attachment] = []
        for attachment, ok in zip(in_scope, readable):
            key = docs.attachment_key(attachment.id)
            if not ok:
                snap.unreadable[key] = (
                    f"Attachment file not readable: {attachment.path}"
                )
                continue
            snap.attachments[key] = attachment
            snap.attachment_journals[key] = entry_journals[attachment.entry_id]
            hashable.append(attachment)
        digests = await gather_limited(
            [run_sync_limited(self.media.fingerprint, a.path) for a in hashable]
        )
        for attachment, digest in zip(hashable, digests):
            snap.fingerprints[docs.attachment_key(attachment.id)] = digest
        return snap

    def _plan(self, ctx: _RunContext) -> list[_Plan]:
        remote_items = {
            key: item
            for key, item in ctx.index.items.items()
            if self._remote_in_scope(ctx.config, item)
        }
        local_keys = (
            set(ctx.local.journals)
            | set(ctx.local.bundles)
            | set(ctx.local.attachments)
        )
        keys = (local_keys | set(remote_items)) - set(ctx.local.unreadable)
        plans = []
        ordered = sorted(
            keys, key=lambda k: (_KIND_ORDER.get(docs.entity_kind(k), 9), k)
        )
        for key in ordered:
            remote = remote_items.get(key)
            local_fp = ctx.local.fingerprints.get(key)
            action, detail = classify(
                local_fp,
                remote.fingerprint if remote else None,
                ctx.manifest.get(key),
            )
            plans.append(_Plan(key, action, local_fp, remote, detail))
        return plans

    @staticmethod
    def _remote_in_scope(config: SyncConfig, item: docs.IndexItem) -> bool:
        if item.kind == docs.ATTACHMENT_PREFIX and not config.sync_attachments:
            return False
        if item.journal_id is None:
            return not config.synced_journal_ids
        return config.includes_journal(item.journal_id)

    # ------------------------------------------------------------------
    # Per-entity application
    # ------------------------------------------------------------------

    async def _apply(
        self, ctx: _RunContext, plan: _Plan, reporter: SyncStatusReporter
    ) -> SyncResult:
        if plan.action in (
            SyncAction.PUSH,
            SyncAction.CREATE_REMOTE,
        ):
            reporter.transition(SyncState.UPLOADING, "Uploading changes")
        elif plan.action in (
            SyncAction.PULL,
            SyncAction.CREATE_LOCAL,
            SyncAction.CONFLICT,
        ):
            reporter.transition(SyncState.DOWNLOADING, "Downloading changes")

        try:
            if plan.action == SyncAction.SKIP:
                if plan.detail:
                    logger.info("%s: %s", plan.key, plan.detail)
                result = SyncResult(
                    entity_key=plan.key,
                    action=plan.action,
                    success=True,
                    detail=plan.detail,
                )
            elif plan.action == SyncAction.ADOPT:
                await self._save_entry(
                    ctx, plan.key, plan.remote.path, plan.local_fp, plan.remote.fingerprint
                )
                result = SyncResult(
                    entity_key=plan.key,
                    action=plan.action,
                    success=True,
                    detail="identical on both sides",
                )
            else:
                kind = docs.entity_kind(plan.key)
                if kind == docs.JOURNAL_PREFIX:
                    winner = await self._apply_journal(ctx, plan)
                elif kind == docs.BUNDLE_PREFIX:
                    winner = await self._apply_bundle(ctx, plan)
                elif kind == docs.ATTACHMENT_PREFIX:
                    winner = await self._apply_attachment(ctx, plan)
                else:
                    raise EntityError(f"Unknown entity kind in key {plan.key}")
                result = SyncResult(
                    entity_key=plan.key,
                    action=plan.action,
                    success=True,
                    winner=winner,
                )
        except (RecoverableSyncError, OSError, ValueError, KeyError) as exc:
            return self._record_failure(reporter, plan.key, plan.action, exc)

        reporter.item_done(f"{plan.action.value}: {plan.key}")
        return result

    def _record_failure(
        self,
        reporter: SyncStatusReporter,
        key: str,
        action: SyncAction,
        exc: BaseException,
    ) -> SyncResult:
        logger.error("Error syncing %s (%s): %s", key, action.value, exc)
        reporter.record_error(
            SyncErrorRecord(
                entity_key=key, kind=classify_error(exc), message=str(exc)
            )
        )
        return SyncResult(
            entity_key=key, action=action, success=False, error=str(exc)
        )

    # -- journals -------------------------------------------------------

    async def _apply_journal(self, ctx: _RunContext, plan: _Plan) -> str | None:
        key = plan.key
        local = ctx.local.journals.get(key)
        journal_id = key.split(":", 1)[1]
        remote = ctx.remote_journals.get(journal_id)

        if plan.action == SyncAction.CONFLICT:
            if remote is None:
                raise EntityError(f"{key} missing from remote journals metadata")
            winner = self.resolver.choose(local.updated_at, remote.updated_at)
            if winner == Winner.LOCAL:
                await self._push_journal(ctx, key, local)
            else:
                await self._pull_journal(ctx, key, remote, plan.remote)
            return winner.value

        if plan.action in (SyncAction.PUSH, SyncAction.CREATE_REMOTE):
            await self._push_journal(ctx, key, local)
        else:
            if remote is None:
                raise EntityError(f"{key} missing from remote journals metadata")
            await self._pull_journal(ctx, key, remote, plan.remote)
        return None

    async def _push_journal(
        self, ctx: _RunContext, key: str, journal: Journal
    ) -> None:
        path = docs.journals_path(ctx.root)
        journals = {**ctx.remote_journals, journal.id: journal}
        await run_sync_limited(
            ctx.transport.write, path, docs.serialize_journals(journals)
        )
        ctx.remote_journals = journals
        fp = docs.journal_fingerprint(journal)
        await self._publish_index(
            ctx,
            key,
            docs.IndexItem(
                kind=docs.JOURNAL_PREFIX,
                path=path,
                fingerprint=fp,
                updated_at=journal.updated_at,
                journal_id=journal.id,
            ),
        )
        await self._save_entry(ctx, key, path, fp, fp)

    async def _pull_journal(
        self,
        ctx: _RunContext,
        key: str,
        journal: Journal,
        item: docs.IndexItem,
    ) -> None:
        await run_sync_limited(self.local_store.upsert_journal, journal)
        await self._save_entry(
            ctx, key, item.path, docs.journal_fingerprint(journal), item.fingerprint
        )

    # -- entry bundles --------------------------------------------------

    async def _apply_bundle(self, ctx: _RunContext, plan: _Plan) -> str | None:
        key = plan.key
        _, journal_id, month = key.split(":", 2)
        path = (
            plan.remote.path
            if plan.remote
            else docs.bundle_path(ctx.root, journal_id, month)
        )
        local = ctx.local.bundles.get(key, {})

        if plan.action in (SyncAction.PUSH, SyncAction.CREATE_REMOTE):
            remote = await self._read_bundle(ctx, path)
            await self._push_bundle(ctx, key, path, journal_id, month, {**remote, **local})
            await self._save_entry(
                ctx, key, path, plan.local_fp, ctx.index.items[key].fingerprint
            )
            return None

        remote = await self._read_bundle(ctx, path)
        if plan.action in (SyncAction.PULL, SyncAction.CREATE_LOCAL):
            await self._store_entries(local, remote)
            local_fp = await self._local_bundle_fingerprint(journal_id, month)
            await self._save_entry(ctx, key, path, local_fp, plan.remote.fingerprint)
            return None

        # Conflict: keep the newest version of every entry
        merged = merge_records(self.resolver, local, remote, lambda e: e.updated_at)
        merged_fp = docs.bundle_fingerprint(merged.values())
        if merged_fp != docs.bundle_fingerprint(remote.values()):
            await self._push_bundle(ctx, key, path, journal_id, month, merged)
        if merged_fp != plan.local_fp:
            await self._store_entries(local, merged)
        await self._save_entry(
            ctx, key, path, merged_fp, ctx.index.items[key].fingerprint
        )
        if merged == local:
            return Winner.LOCAL.value
        if merged == remote:
            return Winner.REMOTE.value
        return "merged"

    async def _read_bundle(self, ctx: _RunContext, path: str) -> dict[str, Entry]:
        try:
            data = await run_sync_limited(ctx.transport.read, path)
        except NotFoundError:
            return {}
        return docs.parse_bundle(data)

    async def _push_bundle(
        self,
        ctx: _RunContext,
        key: str,
        path: str,
        journal_id: str,
        month: str,
        entries: dict[str, Entry],
    ) -> None:
        await run_sync_limited(
            ctx.transport.write,
            path,
            docs.serialize_bundle(journal_id, month, entries.values()),
        )
        await self._publish_index(
            ctx,
            key,
            docs.IndexItem(
                kind=docs.BUNDLE_PREFIX,
                path=path,
                fingerprint=docs.bundle_fingerprint(entries.values()),
                updated_at=max(
                    (e.updated_at for e in entries.values()), default=utcnow()
                ),
                journal_id=journal_id,
            ),
        )

    async def _store_entries(
        self, local: dict[str, Entry], wanted: dict[str, Entry]
    ) -> None:
        for entry_id, entry in wanted.items():
            if local.get(entry_id) != entry:
                await run_sync_limited(self.local_store.upsert_entry, entry)

    async def _local_bundle_fingerprint(self, journal_id: str, month: str) -> str:
        entries = await run_sync_limited(self.local_store.list_entries, journal_id)
        return docs.bundle_fingerprint(
            e for e in entries if docs.entry_month(e) == month
        )

    # -- attachments ----------------------------------------------------

    async def _apply_attachment(self, ctx: _RunContext, plan: _Plan) -> str | None:
        attachment_id = plan.key.split(":", 1)[1]
        async with self.attachment_locks.hold(attachment_id):
            # Re-read under the lock: migration may have moved the file.
            local = await run_sync_limited(
                self.local_store.get_attachment, attachment_id
            )
            if plan.action == SyncAction.CONFLICT:
                if local is None:
                    raise EntityError(f"{plan.key} disappeared during sync")
                local_mtime: datetime = await run_sync_limited(
                    self.media.mtime, local.path
                )
                winner = self.resolver.choose(local_mtime, plan.remote.updated_at)
                if winner == Winner.LOCAL:
                    await self._push_attachment(ctx, plan, local)
                else:
                    await self._pull_attachment(ctx, plan)
                return winner.value

            if plan.action in (SyncAction.PUSH, SyncAction.CREATE_REMOTE):
                if local is None:
                    raise EntityError(f"{plan.key} disappeared during sync")
                await self._push_attachment(ctx, plan, local)
            else:
                await self._pull_attachment(ctx, plan)
            return None

    async def _push_attachment(
        self, ctx: _RunContext, plan: _Plan, attachment: Attachment
    ) -> None:
        storage_path = self._remote_storage_path(ctx, plan.key, attachment)
        remote_path = docs.attachment_remote_path(ctx.root, storage_path)
        data = await run_sync_limited(self.media.read_bytes, attachment.path)
        fp = docs.fingerprint_bytes(data)
        mtime = await run_sync_limited(self.media.mtime, attachment.path)

        await run_sync_limited(ctx.transport.write, remote_path, data)
        record = attachment.model_copy(update={"path": storage_path})
        await self._publish_index(
            ctx,
            plan.key,
            docs.IndexItem(
                kind=docs.ATTACHMENT_PREFIX,
                path=remote_path,
                fingerprint=fp,
                updated_at=mtime,
                journal_id=ctx.local.attachment_journals.get(plan.key),
                record=record.model_dump(mode="json"),
            ),
        )
        await self._save_entry(ctx, plan.key, remote_path, fp, fp)

    async def _pull_attachment(self, ctx: _RunContext, plan: _Plan) -> None:
        item = plan.remote
        record = ctx.index.attachment_record(plan.key)
        if record is None:
            raise EntityError(f"{plan.key} has no attachment record in the remote index")
        storage_path = await self._local_storage_path(record)

        data = await run_sync_limited(ctx.transport.read, item.path)
        # File first, then the record, so the record never dangles.
        await run_sync_limited(self.media.write_bytes, storage_path, data)
        await run_sync_limited(
            self.local_store.upsert_attachment,
            record.model_copy(update={"path": storage_path, "size": len(data)}),
        )
        await self._save_entry(
            ctx, plan.key, item.path, docs.fingerprint_bytes(data), item.fingerprint
        )

    def _remote_storage_path(
        self, ctx: _RunContext, key: str, attachment: Attachment
    ) -> str:
        """Pick the storage path *attachment* is uploaded to.

        A path already owned by another attachment in the remote index gets
        the attachment id appended, as migration does on disk.
        """
        prefix = ctx.root.rstrip("/") + "/"
        current = ctx.index.items.get(key)
        if current is not None and current.path.startswith(prefix):
            return current.path[len(prefix) :]

        candidate = (
            storage_path_for(attachment)
            if is_legacy_path(attachment.path)
            else attachment.path
        )
        taken = {
            item.path
            for other, item in ctx.index.items.items()
            if other != key and item.kind == docs.ATTACHMENT_PREFIX
        }
        for option in (candidate, disambiguate(candidate, attachment.id)):
            if docs.attachment_remote_path(ctx.root, option) not in taken:
                return option
        raise EntityError(f"No free remote path for {key}")

    async def _local_storage_path(self, record: Attachment) -> str:
        """Pick the local storage path a downloaded *record* is written to."""
        candidate = (
            storage_path_for(record) if is_legacy_path(record.path) else record.path
        )
        attachments = await run_sync_limited(self.local_store.list_attachments)
        owned = {a.path for a in attachments if a.id != record.id}
        mine = next((a.path for a in attachments if a.id == record.id), None)
        for option in (candidate, disambiguate(candidate, record.id)):
            if not is_path_safe(option):
                raise EntityError(f"Unsafe attachment path from remote: {option}")
            if option in owned:
                continue
            if option != mine and await run_sync_limited(self.media.exists, option):
                continue
            return option
        raise EntityError(f"No free local path for attachment {record.id}")

    # -- shared helpers -------------------------------------------------

    async def _publish_index(
        self, ctx: _RunContext, key: str, item: docs.IndexItem
    ) -> None:
        previous = ctx.index.items.get(key)
        ctx.index.put(key, item)
        try:
            await run_sync_limited(
                ctx.transport.write,
                docs.index_path(ctx.root),
                docs.serialize_index(ctx.index),
            )
        except BaseException:
            if previous is None:
                ctx.index.items.pop(key, None)
            else:
                ctx.index.items[key] = previous
            raise

    async def _save_entry(
        self,
        ctx: _RunContext,
        key: str,
        remote_path: str,
        fingerprint: str,
        remote_version: str,
    ) -> None:
        entry = ManifestEntry(
            remote_path=remote_path,
            fingerprint=fingerprint,
            remote_version=remote_version,
            last_synced_at=utcnow(),
        )
        await run_sync_limited(
            self.manifest_store.save_manifest_entry, ctx.config.id, key, entry
        )
        ctx.manifest[key] = entry
