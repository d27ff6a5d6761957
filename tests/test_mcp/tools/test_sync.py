"""Tests for the sync config and sync run MCP tools.

Handlers run against a real JournalSyncService whose transport factory
returns an in-memory remote.
"""

from datetime import datetime, timezone

import pytest

from journal_sync.config import Config
from journal_sync.core.memory_transport import MemoryTransport
from journal_sync.mcp.tools import ALL_SPECS, ToolRegistry
from journal_sync.service import JournalSyncService
from journal_sync.store.models import Journal

NOW = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


@pytest.fixture
def remote():
    return MemoryTransport()


@pytest.fixture
def service(tmp_path, remote):
    config = Config(data_dir=tmp_path / "data", media_dir=tmp_path / "media")
    return JournalSyncService(config, transport_factory=lambda c, p: remote)


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


@pytest.fixture
def call(registry, service):
    async def _call(name, **args):
        return await registry.call_tool(name, args, service)

    return _call


@pytest.fixture
async def config_id(call):
    result = await call(
        "sync_config_create",
        server_url="https://dav.example.com",
        username="alice",
        password="pw",
        display_name="Home",
    )
    return result.structuredContent["id"]


def _text(result):
    return result.content[0].text


class TestConfigTools:
    async def test_list_empty(self, call):
        result = await call("sync_config_list")
        assert "No sync configs" in _text(result)
        assert result.structuredContent == {"configs": []}

    async def test_create_and_list(self, call, config_id, service):
        assert service.credential_store.get(config_id) == "pw"
        result = await call("sync_config_list")
        assert "1 sync config(s)" in _text(result)
        assert "Home (alice@https://dav.example.com/journal_app)" in _text(result)
        assert "last sync: never" in _text(result)
        assert "password" not in result.structuredContent["configs"][0]

    async def test_create_with_scope(self, call):
        result = await call(
            "sync_config_create",
            server_url="https://dav",
            username="bob",
            password="pw",
            synced_journal_ids=["j1"],
            sync_attachments=False,
        )
        assert "scope: j1; attachments: no" in _text(result)

    async def test_create_missing_password(self, call):
        result = await call("sync_config_create", server_url="https://dav", username="bob")
        assert result.isError
        assert "password is required" in _text(result)

    async def test_create_bad_url(self, call):
        result = await call(
            "sync_config_create", server_url="dav.example.com", username="b", password="p"
        )
        assert result.isError
        assert "http://" in _text(result)

    async def test_delete(self, call, config_id, service):
        result = await call("sync_config_delete", config_id=config_id)
        assert result.structuredContent == {"config_id": config_id, "deleted": True}
        assert service.get_config(config_id) is None

        again = await call("sync_config_delete", config_id=config_id)
        assert again.isError
        assert "not_found" in _text(again)


class TestSyncTools:
    async def test_sync_reports_results(self, call, config_id, service, remote):
        service.local_store.upsert_journal(
            Journal(id="j1", name="Diary", created_at=NOW, updated_at=NOW)
        )
        result = await call("journal_sync", config_id=config_id)

        assert not result.isError
        assert "completed" in _text(result)
        assert "1 uploaded" in _text(result)
        assert result.structuredContent["report"]["counts"]["uploaded"] == 1
        assert "/journal_app/journals_metadata.json" in remote.files

    async def test_sync_unknown_config(self, call):
        result = await call("journal_sync", config_id="ghost")
        assert result.isError
        assert "not_found" in _text(result)

    async def test_sync_missing_config_id(self, call):
        result = await call("journal_sync")
        assert "config_id is required" in _text(result)

    async def test_failed_sync_is_error(self, call, config_id, remote):
        remote.reject_credentials()
        result = await call("journal_sync", config_id=config_id)
        assert result.isError
        assert "sync_failed" in _text(result)
        assert "401" in _text(result)

    async def test_status_before_and_after(self, call, config_id):
        before = await call("journal_sync_status", config_id=config_id)
        assert before.structuredContent["status"]["state"] == "idle"
        assert "report" not in before.structuredContent

        await call("journal_sync", config_id=config_id)
        after = await call("journal_sync_status", config_id=config_id)
        assert after.structuredContent["status"]["state"] == "completed"
        assert "report" in after.structuredContent

    async def test_clear_manifest(self, call, config_id, service):
        await call("journal_sync", config_id=config_id)
        result = await call("journal_sync_clear_manifest", config_id=config_id)
        assert result.structuredContent["cleared"] is True
        assert service.manifest_store.load_manifest(config_id).entries == {}

    async def test_connection(self, call, config_id, remote):
        ok = await call("journal_sync_test_connection", config_id=config_id)
        assert ok.structuredContent == {"config_id": config_id, "connected": True}
        assert "/journal_app/connection_test.txt" not in remote.files

        remote.go_offline()
        failed = await call("journal_sync_test_connection", config_id=config_id)
        assert failed.isError
        assert "Error (network)" in _text(failed)
