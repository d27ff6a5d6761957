"""Tests for the in-memory transport used as a test remote."""

import pytest

from journal_sync.core.memory_transport import MemoryTransport
from journal_sync.errors import (
    AuthenticationError,
    NotFoundError,
    QuotaExceededError,
    ServerUnreachableError,
    TransportError,
)


@pytest.fixture
def remote():
    return MemoryTransport()


def test_write_then_read(remote):
    remote.write("/journal_app/a.json", b"{}")
    assert remote.read("journal_app//a.json") == b"{}"
    assert "/journal_app" in remote.dirs
    assert remote.writes == ["/journal_app/a.json"]


def test_read_missing(remote):
    with pytest.raises(NotFoundError):
        remote.read("/nope")


def test_remove_missing_is_silent(remote):
    remote.remove("/nope")
    assert remote.calls["remove"] == 1


def test_remove_collection_is_recursive(remote):
    remote.write("/root/entries/j1/2024/01/entries.json", b"[]")
    remote.write("/root/manifest.json", b"{}")
    remote.write("/rootless.json", b"{}")

    remote.remove("/root/entries")
    assert set(remote.files) == {"/root/manifest.json", "/rootless.json"}
    assert "/root" in remote.dirs
    assert not any(d.startswith("/root/entries") for d in remote.dirs)

    remote.remove("/root")
    assert set(remote.files) == {"/rootless.json"}


def test_injected_failure_and_clear(remote):
    remote.fail("write", "/x.json")
    with pytest.raises(TransportError):
        remote.write("/x.json", b"1")
    assert "/x.json" not in remote.files

    remote.fail("write", "/x.json", QuotaExceededError("full"))
    with pytest.raises(QuotaExceededError):
        remote.write("/x.json", b"1")

    remote.clear_failures()
    remote.write("/x.json", b"1")
    assert remote.files["/x.json"] == b"1"


def test_ping_failures(remote):
    remote.ping()
    remote.reject_credentials()
    with pytest.raises(AuthenticationError):
        remote.ping()
    remote.go_offline()
    with pytest.raises(ServerUnreachableError):
        remote.ping()
    assert remote.calls["ping"] == 3
