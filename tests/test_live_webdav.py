"""End-to-end sync against a real WebDAV server (gated by --run-live).

Needs WEBDAV_URL, WEBDAV_USERNAME and WEBDAV_PASSWORD.  Everything is
written under a unique root collection that is removed afterwards.
"""

import os
import time

import pytest

from conftest import ts
from journal_sync.config import Config
from journal_sync.core.transport import create_transport
from journal_sync.service import JournalSyncService
from journal_sync.store.models import Entry, Journal
from journal_sync.sync.models import SyncState


@pytest.mark.live
class TestLiveEndToEnd:
    @pytest.fixture
    def server(self):
        url = os.environ.get("WEBDAV_URL", "")
        if not url:
            pytest.skip("WEBDAV_URL not set")
        return (
            url,
            os.environ.get("WEBDAV_USERNAME", ""),
            os.environ.get("WEBDAV_PASSWORD", ""),
        )

    @pytest.fixture
    def root_path(self, server):
        root = f"/journal_sync_test_{int(time.time())}"
        yield root
        url, username, password = server
        create_transport(url, username, password, insecure=True).remove(root)

    def _device(self, base, server, root_path):
        url, username, password = server
        service = JournalSyncService(
            Config(data_dir=base / "data", media_dir=base / "media", insecure=True)
        )
        service.create_config(url, username, password, id="live", root_path=root_path)
        return service

    async def test_two_devices(self, tmp_path, server, root_path):
        laptop = self._device(tmp_path / "laptop", server, root_path)
        assert await laptop.test_saved_connection("live")

        laptop.local_store.upsert_journal(
            Journal(id="j1", name="Live", created_at=ts(1), updated_at=ts(1))
        )
        laptop.local_store.upsert_entry(
            Entry(
                id="e1",
                journal_id="j1",
                title="Hello",
                content="from the laptop",
                created_at=ts(15),
                updated_at=ts(15),
            )
        )
        status = await laptop.perform_sync("live")
        assert status.state == SyncState.COMPLETED
        assert status.failed_items == 0

        phone = self._device(tmp_path / "phone", server, root_path)
        status = await phone.perform_sync("live")
        assert status.state == SyncState.COMPLETED
        assert phone.local_store.get_journal("j1").name == "Live"
        assert phone.local_store.list_entries("j1")[0].content == "from the laptop"

        await laptop.perform_sync("live")
        assert laptop.get_last_report("live").uploaded == []
