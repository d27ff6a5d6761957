"""Exception hierarchy for sync and migration.

Errors split into two branches:

* ``FatalSyncError`` -- aborts the whole run (bad credentials, unreachable
  server, unreadable local store, remote data that cannot be parsed).
* ``RecoverableSyncError`` -- scoped to a single entity or attachment; the
  run records it and moves on.

``classify_error()`` maps any exception to a ``SyncErrorKind`` so callers can
decide whether a retry makes sense.
"""

from __future__ import annotations

from enum import Enum


class SyncErrorKind(str, Enum):
    """Category of a recorded sync error."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    SERVER = "server"
    CONFLICT = "conflict"
    FILE = "file"
    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (
            SyncErrorKind.NETWORK,
            SyncErrorKind.SERVER,
            SyncErrorKind.FILE,
        )


class JournalSyncError(Exception):
    """Base class for every error raised by this package."""

    kind: SyncErrorKind = SyncErrorKind.UNKNOWN


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


class FatalSyncError(JournalSyncError):
    """Error that aborts the current run."""


class AuthenticationError(FatalSyncError):
    kind = SyncErrorKind.AUTHENTICATION


class ServerUnreachableError(FatalSyncError):
    kind = SyncErrorKind.NETWORK


class StoreCorruptionError(FatalSyncError):
    """A local JSON store is unreadable or has an unknown schema version."""

    kind = SyncErrorKind.FILE


class ConfigurationError(FatalSyncError):
    """Sync config is missing, disabled, or has no stored credential."""

    kind = SyncErrorKind.VALIDATION


class RemoteDataError(FatalSyncError):
    """A shared remote document could not be parsed."""

    kind = SyncErrorKind.SERVER


# ---------------------------------------------------------------------------
# Recoverable errors
# ---------------------------------------------------------------------------


class RecoverableSyncError(JournalSyncError):
    """Error scoped to one entity; the run continues."""


class TransportError(RecoverableSyncError):
    """A single remote operation failed.

    Attributes:
        path: Remote path the operation targeted.
        status_code: HTTP status, when the failure came from a response.
    """

    kind = SyncErrorKind.SERVER

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class NotFoundError(TransportError):
    kind = SyncErrorKind.FILE


class TransportTimeoutError(TransportError):
    kind = SyncErrorKind.NETWORK


class TransportConnectionError(TransportError):
    kind = SyncErrorKind.NETWORK


class RemotePermissionError(TransportError):
    """Server refused a single operation (403 on a path)."""

    kind = SyncErrorKind.AUTHENTICATION


class QuotaExceededError(TransportError):
    kind = SyncErrorKind.QUOTA_EXCEEDED


class EntityError(RecoverableSyncError):
    """A local entity could not be read, serialized, or applied."""

    kind = SyncErrorKind.VALIDATION


class MigrationFailure(RecoverableSyncError):
    """One attachment failed to migrate."""

    kind = SyncErrorKind.FILE


def classify_error(exc: BaseException) -> SyncErrorKind:
    """Return the ``SyncErrorKind`` that best describes *exc*."""
    if isinstance(exc, JournalSyncError):
        return exc.kind
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return SyncErrorKind.NETWORK
    if isinstance(exc, OSError):
        return SyncErrorKind.FILE
    if isinstance(exc, ValueError):
        return SyncErrorKind.VALIDATION
    return SyncErrorKind.UNKNOWN
