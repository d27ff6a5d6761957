"""Pydantic models for the reconciliation engine.

Defines the data contracts shared by the sync modules and the stores:

- ``SyncFrequency`` / ``SyncConfig``: one configured remote destination.
- ``ManifestEntry`` / ``SyncManifest``: per-config record of what was last
  confirmed on the remote.
- ``SyncState`` / ``SyncStatus`` / ``SyncErrorRecord``: observable progress
  of a run.
- ``SyncAction`` / ``SyncResult`` / ``SyncReport``: per-entity outcomes.

All models are frozen (immutable); updates go through ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, Field

from ..errors import SyncErrorKind

DEFAULT_ROOT_PATH = "/journal_app"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class SyncFrequency(str, Enum):
    """How often an automatic sync should run."""

    MANUAL = "manual"
    ON_APP_START = "onAppStart"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def interval(self) -> timedelta | None:
        """Period between automatic runs, ``None`` when not time based."""
        return _FREQUENCY_INTERVALS.get(self)


_FREQUENCY_INTERVALS = {
    SyncFrequency.HOURLY: timedelta(hours=1),
    SyncFrequency.DAILY: timedelta(days=1),
    SyncFrequency.WEEKLY: timedelta(days=7),
}


class SyncConfig(BaseModel):
    """A configured WebDAV destination.

    The password is not part of the config; it lives in the credential
    store under the same ``id``.

    Attributes:
        synced_journal_ids: Journals to sync.  Empty means every journal.
        encrypt_data: Stored for the caller; has no effect on transfers.
        root_path: Remote collection that holds all synced documents.
    """

    id: str
    server_url: str
    username: str
    display_name: str = ""
    enabled: bool = True
    last_sync_at: datetime | None = None
    sync_frequency: SyncFrequency = SyncFrequency.MANUAL
    sync_on_wifi_only: bool = True
    sync_attachments: bool = True
    encrypt_data: bool = False
    synced_journal_ids: list[str] = Field(default_factory=list)
    root_path: str = DEFAULT_ROOT_PATH
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    def includes_journal(self, journal_id: str) -> bool:
        return not self.synced_journal_ids or journal_id in self.synced_journal_ids

    def is_due(self, now: datetime | None = None) -> bool:
        """Return ``True`` if a time-based automatic sync should run now."""
        interval = self.sync_frequency.interval
        if not self.enabled or interval is None:
            return False
        if self.last_sync_at is None:
            return True
        return (now or utcnow()) - self.last_sync_at >= interval


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class ManifestEntry(BaseModel):
    """Last confirmed remote state of one entity.

    Attributes:
        remote_path: Document or file the entity was written to or read from.
        fingerprint: Local content fingerprint at the last sync.
        remote_version: Fingerprint the remote index advertised at the last
            sync.
        last_synced_at: When the remote operation was confirmed.
    """

    remote_path: str
    fingerprint: str
    remote_version: str
    last_synced_at: datetime

    model_config = {"frozen": True}


class SyncManifest(BaseModel):
    config_id: str
    entries: dict[str, ManifestEntry] = Field(default_factory=dict)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class SyncState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.COMPLETED, SyncState.FAILED, SyncState.CANCELLED)


class SyncErrorRecord(BaseModel):
    """One failure recorded during a run."""

    entity_key: str | None = None
    kind: SyncErrorKind = SyncErrorKind.UNKNOWN
    message: str
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class SyncStatus(BaseModel):
    """Snapshot of a run's progress, published to subscribers."""

    config_id: str
    state: SyncState = SyncState.IDLE
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    message: str = ""
    error_message: str | None = None
    total_items: int = 0
    completed_items: int = 0
    failed_items: int = 0
    errors: list[SyncErrorRecord] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        return self.state != SyncState.IDLE and not self.state.is_terminal

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


# ---------------------------------------------------------------------------
# Per-entity results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """Operation chosen for one entity."""

    SKIP = "skip"
    ADOPT = "adopt"
    PUSH = "push"
    PULL = "pull"
    CONFLICT = "conflict"
    CREATE_REMOTE = "create_remote"
    CREATE_LOCAL = "create_local"


class SyncResult(BaseModel):
    """Outcome for one entity.

    Attributes:
        entity_key: Manifest key, e.g. ``journal:j1``.
        action: Action that was chosen.
        success: Whether the remote and local writes were confirmed.
        winner: For conflicts, ``"local"`` or ``"remote"``.
        detail: Free-form note (e.g. why an entity was skipped).
        error: Error message when ``success`` is False.
    """

    entity_key: str
    action: SyncAction
    success: bool
    winner: str | None = None
    detail: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one reconciliation run."""

    config_id: str
    state: SyncState = SyncState.IDLE
    results: list[SyncResult] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None

    model_config = {"frozen": True}

    @property
    def uploaded(self) -> list[SyncResult]:
        """Successful PUSH and CREATE_REMOTE results."""
        return [
            r
            for r in self.results
            if r.success
            and r.action in (SyncAction.PUSH, SyncAction.CREATE_REMOTE)
        ]

    @property
    def downloaded(self) -> list[SyncResult]:
        """Successful PULL and CREATE_LOCAL results."""
        return [
            r
            for r in self.results
            if r.success
            and r.action in (SyncAction.PULL, SyncAction.CREATE_LOCAL)
        ]

    @property
    def conflicts(self) -> list[SyncResult]:
        return [r for r in self.results if r.action == SyncAction.CONFLICT]

    @property
    def skipped(self) -> list[SyncResult]:
        return [
            r
            for r in self.results
            if r.action in (SyncAction.SKIP, SyncAction.ADOPT)
        ]

    @property
    def errors(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Format a human-readable summary of the run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Sync report for config '{self.config_id}' ({self.state.value})",
            f"  Uploaded:   {len(self.uploaded)}",
            f"  Downloaded: {len(self.downloaded)}",
            f"  Conflicts:  {len(self.conflicts)}",
            f"  Skipped:    {len(self.skipped)}",
            f"  Errors:     {len(self.errors)}",
            f"  Total:      {len(self.results)}",
        ]
        return "\n".join(lines)
