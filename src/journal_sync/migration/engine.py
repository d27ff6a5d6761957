"""Attachment migration from legacy absolute paths to storage paths.

For every attachment still on a legacy path the engine copies the file into
the media root at ``{type_dir}/{yyyy}/{mm}/{dd}/{entry_id}/{filename}``,
verifies the copy, then points the record at the new path and records the
old one in ``metadata["original_path"]``.  Source files are never deleted by
migration; ``cleanup_legacy_files()`` removes them separately once the copy
is known to be good.

Runs are serialized process-wide, and each attachment is handled under the
per-attachment lock it shares with the reconciliation engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable

from ..core.async_utils import KeyedLock, run_sync_limited
from ..file_handler import MediaStorage
from ..storage_paths import disambiguate, is_legacy_path, storage_path_for
from ..store.local import LocalStore
from ..store.models import Attachment
from ..sync.models import utcnow
from .models import (
    InaccessibleFile,
    MigrationError,
    MigrationResult,
    MigrationStats,
    ValidationReport,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

ORIGINAL_PATH_KEY = "original_path"
MIGRATED_AT_KEY = "migrated_at"

_MIGRATED = "migrated"
_ALREADY = "already_migrated"
_FAILED = "failed"


class FileMigrationEngine:
    """Move attachment records off legacy paths.

    Args:
        store: Local store holding the attachment records.
        media: Media root the files are copied into.
        attachment_locks: Per-attachment locks shared with the sync engine.
    """

    def __init__(
        self,
        store: LocalStore,
        media: MediaStorage,
        attachment_locks: KeyedLock | None = None,
    ) -> None:
        self.store = store
        self.media = media
        self.attachment_locks = attachment_locks or KeyedLock()
        self._run_lock = asyncio.Lock()
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> bool:
        """Stop the active run before its next attachment.

        Returns:
            ``True`` if a run was active.
        """
        if not self.is_running:
            return False
        self._cancel_requested = True
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def is_migration_needed(self) -> bool:
        return await self.get_migration_count() > 0

    async def get_migration_count(self) -> int:
        """Number of attachments still on a legacy path."""
        attachments = await run_sync_limited(self.store.list_attachments)
        return sum(1 for a in attachments if is_legacy_path(a.path))

    async def get_migration_stats(self) -> MigrationStats:
        attachments = await run_sync_limited(self.store.list_attachments)
        legacy = sum(1 for a in attachments if is_legacy_path(a.path))
        breakdown: dict[str, int] = {}
        for attachment in attachments:
            breakdown[attachment.type.value] = (
                breakdown.get(attachment.type.value, 0) + 1
            )
        return MigrationStats(
            legacy_count=legacy,
            migrated_count=len(attachments) - legacy,
            total_count=len(attachments),
            type_breakdown=breakdown,
        )

    async def validate_migration(self) -> ValidationReport:
        """Check that every attachment record points at a readable file.

        Informational only: nothing is changed and nothing is raised for
        missing files.
        """
        attachments = await run_sync_limited(self.store.list_attachments)
        missing: list[InaccessibleFile] = []
        for attachment in attachments:
            readable = await run_sync_limited(
                self.media.is_readable, attachment.path
            )
            if not readable:
                missing.append(
                    InaccessibleFile(
                        attachment_id=attachment.id,
                        name=attachment.name,
                        path=attachment.path,
                    )
                )
        return ValidationReport(
            total=len(attachments),
            accessible=len(attachments) - len(missing),
            inaccessible=len(missing),
            inaccessible_files=missing,
        )

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def migrate_all_files(
        self,
        on_progress: ProgressCallback | None = None,
        dry_run: bool = False,
    ) -> MigrationResult:
        """Migrate every legacy attachment.

        Args:
            on_progress: Called as ``on_progress(current, total, status)``
                after each attachment.  ``current`` never decreases and
                ``total`` stays fixed for the run.
            dry_run: Only check that each source file is readable.

        Returns:
            The run's ``MigrationResult``.  Never raises for per-attachment
            failures.
        """
        async with self._run_lock:
            self._cancel_requested = False
            started = time.monotonic()
            try:
                attachments = await run_sync_limited(self.store.list_attachments)
            except Exception as exc:
                logger.error("Cannot list attachments for migration: %s", exc)
                return MigrationResult(
                    errors=[MigrationError(attachment_id="", reason=str(exc))],
                    dry_run=dry_run,
                    duration=timedelta(seconds=time.monotonic() - started),
                )

            total = len(attachments)
            counts = {_MIGRATED: 0, _ALREADY: 0, _FAILED: 0}
            errors: list[MigrationError] = []
            claimed: set[str] = set()
            cancelled = False
            logger.info(
                "Starting attachment migration: %d attachments%s",
                total,
                " (dry run)" if dry_run else "",
            )

            for current, attachment in enumerate(attachments, start=1):
                if self._cancel_requested:
                    cancelled = True
                    logger.info(
                        "Migration cancelled after %d of %d", current - 1, total
                    )
                    break
                async with self.attachment_locks.hold(attachment.id):
                    outcome, reason = await run_sync_limited(
                        self._migrate_one, attachment.id, dry_run, claimed
                    )
                counts[outcome] += 1
                if outcome == _FAILED:
                    errors.append(
                        MigrationError(attachment_id=attachment.id, reason=reason)
                    )
                if on_progress is not None:
                    try:
                        on_progress(current, total, f"{attachment.name}: {outcome}")
                    except Exception:
                        logger.exception("Migration progress callback failed")

            self._cancel_requested = False
            result = MigrationResult(
                total_attachments=total,
                migrated_successfully=counts[_MIGRATED],
                already_migrated=counts[_ALREADY],
                failed=counts[_FAILED],
                errors=errors,
                duration=timedelta(seconds=time.monotonic() - started),
                dry_run=dry_run,
                cancelled=cancelled,
            )
            logger.info(
                "Migration finished: %d migrated, %d already, %d failed",
                result.migrated_successfully,
                result.already_migrated,
                result.failed,
            )
            return result

    def _migrate_one(
        self, attachment_id: str, dry_run: bool, claimed: set[str]
    ) -> tuple[str, str]:
        """Migrate one attachment.  Runs in a worker thread under its lock.

        Returns:
            ``(outcome, reason)``; *reason* is empty unless the outcome is
            a failure.
        """
        try:
            attachment = self.store.get_attachment(attachment_id)
            if attachment is None:
                return _FAILED, "attachment no longer exists"
            if not is_legacy_path(attachment.path):
                return _ALREADY, ""
            if not self.media.is_readable(attachment.path):
                return _FAILED, f"source file not readable: {attachment.path}"

            destination = self._destination(attachment, claimed)
            if destination is None:
                return _FAILED, "no free destination path"
            if dry_run:
                claimed.add(destination)
                return _MIGRATED, ""

            self.media.copy_in(Path(attachment.path), destination)
            try:
                self.store.update_attachment_path(
                    attachment.id,
                    destination,
                    {
                        ORIGINAL_PATH_KEY: attachment.path,
                        MIGRATED_AT_KEY: utcnow().isoformat(),
                    },
                )
            except Exception:
                # Drop the now unreferenced copy.
                self.media.remove(destination)
                raise
            claimed.add(destination)
            logger.debug("Migrated %s -> %s", attachment.path, destination)
            return _MIGRATED, ""
        except Exception as exc:
            logger.error("Error migrating attachment %s: %s", attachment_id, exc)
            return _FAILED, str(exc)

    def _destination(self, attachment: Attachment, claimed: set[str]) -> str | None:
        candidate = storage_path_for(attachment)
        if candidate not in claimed and not self.media.exists(candidate):
            return candidate
        candidate = disambiguate(candidate, attachment.id)
        if candidate not in claimed and not self.media.exists(candidate):
            return candidate
        return None

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup_legacy_files(
        self,
        dry_run: bool = True,
        specific_paths: list[str] | None = None,
    ) -> int:
        """Delete original files of attachments that were migrated.

        An original is only removed when the attachment's current file
        exists and is non-empty, and no attachment still references it.

        Args:
            dry_run: Count what would be deleted without deleting.
            specific_paths: Restrict cleanup to these original paths.

        Returns:
            Number of files deleted (or that would be deleted).
        """
        async with self._run_lock:
            attachments = await run_sync_limited(self.store.list_attachments)
            referenced = {a.path for a in attachments}
            deleted = 0
            for attachment in attachments:
                original = attachment.metadata.get(ORIGINAL_PATH_KEY)
                if not original or original in referenced:
                    continue
                if specific_paths is not None and original not in specific_paths:
                    continue
                async with self.attachment_locks.hold(attachment.id):
                    if await run_sync_limited(
                        self._cleanup_one, attachment, original, dry_run
                    ):
                        deleted += 1
            return deleted

    def _cleanup_one(self, attachment: Attachment, original: str, dry_run: bool) -> bool:
        if is_legacy_path(attachment.path) or not self.media.is_readable(
            attachment.path
        ):
            return False
        if self.media.size(attachment.path) == 0:
            return False
        if not self.media.exists(original):
            return False
        if dry_run:
            logger.info("DRY RUN: would delete %s", original)
            return True
        try:
            self.media.remove(original)
        except OSError as exc:
            logger.error("Failed to delete %s: %s", original, exc)
            return False
        logger.info("Deleted legacy file: %s", original)
        return True
