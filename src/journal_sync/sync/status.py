"""Observable sync status.

``SyncStatusReporter`` owns the ``SyncStatus`` of one config, validates state
transitions, and publishes every change to its subscribers.  Terminal states
are persisted through the ``StatusStore`` so the last outcome survives a
restart.  ``StatusBoard`` hands out one reporter per config id.

Allowed transitions::

    idle / completed / failed / cancelled -> checking
    checking -> uploading | downloading
    uploading <-> downloading
    any non-terminal -> completed | failed | cancelled
"""

from __future__ import annotations

import logging
from typing import Callable

from ..store.status_store import StatusStore
from .models import SyncErrorRecord, SyncState, SyncStatus, utcnow

logger = logging.getLogger(__name__)

StatusCallback = Callable[[SyncStatus], None]

_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    SyncState.IDLE: frozenset(
        {SyncState.CHECKING, SyncState.FAILED, SyncState.CANCELLED}
    ),
    SyncState.CHECKING: frozenset(
        {
            SyncState.UPLOADING,
            SyncState.DOWNLOADING,
            SyncState.COMPLETED,
            SyncState.FAILED,
            SyncState.CANCELLED,
        }
    ),
    SyncState.UPLOADING: frozenset(
        {
            SyncState.DOWNLOADING,
            SyncState.COMPLETED,
            SyncState.FAILED,
            SyncState.CANCELLED,
        }
    ),
    SyncState.DOWNLOADING: frozenset(
        {
            SyncState.UPLOADING,
            SyncState.COMPLETED,
            SyncState.FAILED,
            SyncState.CANCELLED,
        }
    ),
    SyncState.COMPLETED: frozenset({SyncState.CHECKING}),
    SyncState.FAILED: frozenset({SyncState.CHECKING}),
    SyncState.CANCELLED: frozenset({SyncState.CHECKING}),
}


class SyncStatusReporter:
    """Status state machine for one config.

    Args:
        config_id: Config whose runs this reporter describes.
        status_store: Where terminal statuses are persisted.
        initial: Starting status, typically the last persisted one.
    """

    def __init__(
        self,
        config_id: str,
        status_store: StatusStore | None = None,
        initial: SyncStatus | None = None,
    ) -> None:
        self._status = initial or SyncStatus(config_id=config_id)
        self._store = status_store
        self._subscribers: list[StatusCallback] = []

    @property
    def current(self) -> SyncStatus:
        return self._status

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register *callback* for every status change.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._status)
            except Exception:
                logger.exception(
                    "Status subscriber failed for config %s",
                    self._status.config_id,
                )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin(self) -> SyncStatus:
        """Enter ``checking`` for a new run, clearing per-run counters."""
        self._move(SyncState.CHECKING)
        self._status = self._status.model_copy(
            update={
                "last_attempt_at": utcnow(),
                "progress": 0.0,
                "message": "Checking remote",
                "error_message": None,
                "total_items": 0,
                "completed_items": 0,
                "failed_items": 0,
                "errors": [],
            }
        )
        self._publish()
        return self._status

    def transition(self, state: SyncState, message: str = "") -> SyncStatus:
        """Move to a non-terminal *state*.  No-op if already there."""
        if state == self._status.state:
            return self._status
        self._move(state)
        self._status = self._status.model_copy(update={"message": message})
        self._publish()
        return self._status

    def set_total(self, total_items: int) -> None:
        self._status = self._status.model_copy(
            update={"total_items": total_items}
        )
        self._publish()

    def item_done(self, message: str = "") -> None:
        """Count one processed entity and recompute progress."""
        self._advance(completed=1, message=message)

    def record_error(self, error: SyncErrorRecord) -> None:
        """Count one failed entity."""
        self._status = self._status.model_copy(
            update={"errors": [*self._status.errors, error]}
        )
        self._advance(failed=1, message=error.message)

    def finish(
        self,
        state: SyncState,
        message: str = "",
        error_message: str | None = None,
    ) -> SyncStatus:
        """Enter a terminal *state*, publish and persist it."""
        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        self._move(state)
        update: dict = {
            "message": message,
            "error_message": error_message,
        }
        if state == SyncState.COMPLETED:
            update["progress"] = 1.0
            update["last_success_at"] = utcnow()
        self._status = self._status.model_copy(update=update)
        self._publish()
        if self._store is not None:
            self._store.save(self._status)
        return self._status

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _move(self, state: SyncState) -> None:
        current = self._status.state
        if state not in _TRANSITIONS[current]:
            raise ValueError(
                f"Invalid sync state transition: {current.value} -> {state.value}"
            )
        self._status = self._status.model_copy(update={"state": state})

    def _advance(self, completed: int = 0, failed: int = 0, message: str = "") -> None:
        s = self._status
        done = s.completed_items + completed
        failed_items = s.failed_items + failed
        progress = (
            min(1.0, (done + failed_items) / s.total_items)
            if s.total_items
            else s.progress
        )
        self._status = s.model_copy(
            update={
                "completed_items": done,
                "failed_items": failed_items,
                "progress": progress,
                "message": message or s.message,
            }
        )
        self._publish()


class StatusBoard:
    """One ``SyncStatusReporter`` per config id, seeded from the store."""

    def __init__(self, status_store: StatusStore | None = None) -> None:
        self._store = status_store
        self._reporters: dict[str, SyncStatusReporter] = {}

    def reporter(self, config_id: str) -> SyncStatusReporter:
        reporter = self._reporters.get(config_id)
        if reporter is None:
            initial = self._store.get(config_id) if self._store else None
            reporter = SyncStatusReporter(config_id, self._store, initial)
            self._reporters[config_id] = reporter
        return reporter

    def status(self, config_id: str) -> SyncStatus:
        return self.reporter(config_id).current

    def forget(self, config_id: str) -> None:
        self._reporters.pop(config_id, None)
