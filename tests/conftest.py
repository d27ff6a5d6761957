"""Shared pytest fixtures for journal-sync tests."""

from datetime import datetime, timezone

import pytest

from journal_sync.config import Config
from journal_sync.core.async_utils import KeyedLock
from journal_sync.core.memory_transport import MemoryTransport
from journal_sync.file_handler import MediaStorage
from journal_sync.migration.engine import FileMigrationEngine
from journal_sync.store.config_store import SyncConfigStore
from journal_sync.store.credentials import CredentialStore
from journal_sync.store.local import JsonLocalStore
from journal_sync.store.manifest import ManifestStore
from journal_sync.store.models import Attachment, AttachmentType, Entry, Journal
from journal_sync.store.status_store import StatusStore
from journal_sync.sync.engine import ReconciliationEngine
from journal_sync.sync.models import SyncConfig
from journal_sync.sync.status import StatusBoard

PASSWORD = "s3cret"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live WebDAV server",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live WebDAV server"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def ts(day: int = 1, hour: int = 12, month: int = 1, year: int = 2024) -> datetime:
    """Aware UTC timestamp helper."""
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_journal():
    def _make(journal_id: str = "j1", **overrides) -> Journal:
        fields = {
            "id": journal_id,
            "name": f"Journal {journal_id}",
            "created_at": ts(1),
            "updated_at": ts(1),
        }
        fields.update(overrides)
        return Journal(**fields)

    return _make


@pytest.fixture
def make_entry():
    def _make(entry_id: str = "e1", journal_id: str = "j1", **overrides) -> Entry:
        fields = {
            "id": entry_id,
            "journal_id": journal_id,
            "title": f"Entry {entry_id}",
            "content": "Dear diary",
            "created_at": ts(15),
            "updated_at": ts(15),
        }
        fields.update(overrides)
        return Entry(**fields)

    return _make


@pytest.fixture
def make_attachment():
    def _make(
        attachment_id: str = "a1",
        entry_id: str = "e1",
        path: str = "images/2024/01/15/e1/photo.jpg",
        **overrides,
    ) -> Attachment:
        fields = {
            "id": attachment_id,
            "entry_id": entry_id,
            "type": AttachmentType.PHOTO,
            "name": "photo.jpg",
            "path": path,
            "created_at": ts(15),
        }
        fields.update(overrides)
        return Attachment(**fields)

    return _make


# ---------------------------------------------------------------------------
# Stores and engines
# ---------------------------------------------------------------------------


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def media(tmp_path):
    return MediaStorage(tmp_path / "media")


@pytest.fixture
def local_store(data_dir):
    return JsonLocalStore(data_dir)


@pytest.fixture
def manifest_store(data_dir):
    return ManifestStore(data_dir / "manifests")


@pytest.fixture
def credential_store(data_dir):
    return CredentialStore(data_dir / "credentials.json")


@pytest.fixture
def status_store(data_dir):
    return StatusStore(data_dir / "sync_status.json")


@pytest.fixture
def config_store(data_dir, manifest_store, credential_store, status_store):
    return SyncConfigStore(
        data_dir / "sync_configs.json",
        manifest_store,
        credential_store,
        status_store,
    )


@pytest.fixture
def transport():
    return MemoryTransport()


@pytest.fixture
def attachment_locks():
    return KeyedLock()


@pytest.fixture
def sync_config(config_store, credential_store):
    config = SyncConfig(
        id="cfg1",
        server_url="https://dav.example.com",
        username="alice",
    )
    config_store.create(config)
    credential_store.set(config.id, PASSWORD)
    return config


@pytest.fixture
def engine(
    config_store,
    manifest_store,
    credential_store,
    local_store,
    media,
    transport,
    attachment_locks,
    status_store,
):
    return ReconciliationEngine(
        config_store=config_store,
        manifest_store=manifest_store,
        credential_store=credential_store,
        local_store=local_store,
        media=media,
        transport_factory=lambda config, password: transport,
        attachment_locks=attachment_locks,
        status_board=StatusBoard(status_store),
    )


@pytest.fixture
def migration_engine(local_store, media, attachment_locks):
    return FileMigrationEngine(local_store, media, attachment_locks)


@pytest.fixture
def runtime_config(tmp_path):
    return Config(data_dir=tmp_path / "data", media_dir=tmp_path / "media")
