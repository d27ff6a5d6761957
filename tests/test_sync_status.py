"""Tests for the sync status state machine and status board."""

import pytest

from journal_sync.errors import SyncErrorKind
from journal_sync.sync.models import SyncErrorRecord, SyncState
from journal_sync.sync.status import StatusBoard, SyncStatusReporter


@pytest.fixture
def reporter(status_store):
    return SyncStatusReporter("cfg1", status_store)


class TestTransitions:
    def test_full_run(self, reporter, status_store):
        seen = []
        reporter.subscribe(lambda s: seen.append(s.state))

        reporter.begin()
        reporter.transition(SyncState.UPLOADING, "Uploading")
        reporter.transition(SyncState.DOWNLOADING, "Downloading")
        final = reporter.finish(SyncState.COMPLETED, "done")

        assert final.state == SyncState.COMPLETED
        assert final.progress == 1.0
        assert final.last_success_at is not None
        assert SyncState.CHECKING in seen
        assert seen[-1] == SyncState.COMPLETED
        assert status_store.get("cfg1") == final

    def test_idle_cannot_jump_to_uploading(self, reporter):
        with pytest.raises(ValueError, match="Invalid sync state transition"):
            reporter.transition(SyncState.UPLOADING)

    def test_finish_requires_terminal_state(self, reporter):
        reporter.begin()
        with pytest.raises(ValueError):
            reporter.finish(SyncState.DOWNLOADING)

    def test_terminal_state_restarts_through_checking(self, reporter):
        reporter.begin()
        reporter.finish(SyncState.FAILED, error_message="offline")
        status = reporter.begin()
        assert status.state == SyncState.CHECKING
        assert status.error_message is None
        assert status.errors == []

    def test_failed_run_keeps_last_success(self, reporter):
        reporter.begin()
        success = reporter.finish(SyncState.COMPLETED).last_success_at
        reporter.begin()
        failed = reporter.finish(SyncState.FAILED, error_message="boom")
        assert failed.last_success_at == success
        assert failed.error_message == "boom"


class TestProgress:
    def test_progress_counts_completed_and_failed(self, reporter):
        reporter.begin()
        reporter.set_total(4)
        reporter.item_done()
        reporter.record_error(
            SyncErrorRecord(
                entity_key="journal:j1",
                kind=SyncErrorKind.NETWORK,
                message="timeout",
            )
        )
        status = reporter.current
        assert status.completed_items == 1
        assert status.failed_items == 1
        assert status.progress == pytest.approx(0.5)
        assert status.errors[0].retryable

    def test_progress_is_monotonic(self, reporter):
        values = []
        reporter.subscribe(lambda s: values.append(s.progress))
        reporter.begin()
        reporter.set_total(3)
        for _ in range(3):
            reporter.item_done()
        assert values == sorted(values)
        assert reporter.current.progress == pytest.approx(1.0)


class TestSubscriptions:
    def test_unsubscribe(self, reporter):
        seen = []
        unsubscribe = reporter.subscribe(seen.append)
        reporter.begin()
        unsubscribe()
        reporter.finish(SyncState.CANCELLED)
        assert [s.state for s in seen] == [SyncState.CHECKING]

    def test_failing_subscriber_does_not_break_run(self, reporter):
        def boom(_status):
            raise RuntimeError("subscriber bug")

        seen = []
        reporter.subscribe(boom)
        reporter.subscribe(seen.append)
        reporter.begin()
        assert seen[-1].state == SyncState.CHECKING


class TestStatusBoard:
    def test_one_reporter_per_config(self, status_store):
        board = StatusBoard(status_store)
        assert board.reporter("a") is board.reporter("a")
        assert board.reporter("a") is not board.reporter("b")

    def test_seeded_from_store(self, status_store):
        first = StatusBoard(status_store)
        first.reporter("cfg1").begin()
        first.reporter("cfg1").finish(SyncState.FAILED, error_message="auth")

        second = StatusBoard(status_store)
        assert second.status("cfg1").state == SyncState.FAILED
        assert second.status("cfg1").error_message == "auth"

    def test_forget(self, status_store):
        board = StatusBoard(status_store)
        reporter = board.reporter("cfg1")
        board.forget("cfg1")
        assert board.reporter("cfg1") is not reporter
