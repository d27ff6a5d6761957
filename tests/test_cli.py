"""Tests for the journal-sync command line interface."""

import json
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from journal_sync.cli import build_parser, main
from journal_sync.store.local import JsonLocalStore
from journal_sync.store.models import Attachment, AttachmentType


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in list(os.environ):
        if key.startswith("JOURNAL_SYNC_"):
            monkeypatch.delenv(key)
    with patch("journal_sync.cli.setup_logging"):
        yield


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


def run(data_dir, *argv):
    return main(["--data-dir", str(data_dir), *argv])


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_cleanup_defaults_to_dry_run(self):
        args = build_parser().parse_args(["cleanup"])
        assert args.apply is False
        assert args.path is None


class TestConfigCommands:
    def test_add_list_delete(self, data_dir, monkeypatch, capsys):
        monkeypatch.setenv("JOURNAL_SYNC_PASSWORD", "pw")
        assert run(
            data_dir, "--json", "config", "add", "https://dav.example.com", "alice",
            "--name", "Home", "--journal", "j1",
        ) == 0
        created = json.loads(capsys.readouterr().out)
        assert created["synced_journal_ids"] == ["j1"]

        assert run(data_dir, "config", "list") == 0
        listing = capsys.readouterr().out
        assert created["id"] in listing
        assert "alice@https://dav.example.com/journal_app" in listing

        assert run(data_dir, "config", "delete", created["id"]) == 0
        assert run(data_dir, "config", "delete", created["id"]) == 1

    def test_add_rejects_bad_url(self, data_dir, monkeypatch):
        monkeypatch.setenv("JOURNAL_SYNC_PASSWORD", "pw")
        assert run(data_dir, "config", "add", "dav.example.com", "alice") == 1

    def test_sync_unknown_config(self, data_dir):
        assert run(data_dir, "sync", "ghost") == 1

    def test_status_without_configs(self, data_dir, capsys):
        assert run(data_dir, "status") == 0
        assert "No sync configs." in capsys.readouterr().out


class TestMigrationCommands:
    @pytest.fixture
    def legacy(self, data_dir, tmp_path):
        source = tmp_path / "old" / "scan.pdf"
        source.parent.mkdir()
        source.write_bytes(b"%PDF")
        JsonLocalStore(data_dir).upsert_attachment(
            Attachment(
                id="a1",
                entry_id="e1",
                type=AttachmentType.FILE,
                name="scan.pdf",
                path=str(source),
                created_at=datetime(2024, 5, 6, tzinfo=timezone.utc),
            )
        )
        return source

    def test_stats(self, data_dir, legacy, capsys):
        assert run(data_dir, "stats") == 0
        assert "Attachments: 1 (1 legacy, 0 migrated)" in capsys.readouterr().out

    def test_migrate_dry_run(self, data_dir, legacy, capsys):
        assert run(data_dir, "-q", "migrate", "--dry-run") == 0
        assert "(dry run)" in capsys.readouterr().out
        assert JsonLocalStore(data_dir).get_attachment("a1").path == str(legacy)

    def test_migrate_then_cleanup(self, data_dir, legacy, capsys):
        assert run(data_dir, "-q", "migrate") == 0
        assert JsonLocalStore(data_dir).get_attachment("a1").path == (
            "files/2024/05/06/e1/scan.pdf"
        )
        assert run(data_dir, "validate") == 0
        assert run(data_dir, "cleanup", "--apply") == 0
        assert "Deleted 1 legacy file(s)" in capsys.readouterr().out
        assert not legacy.exists()

    def test_validate_missing_file(self, data_dir, legacy):
        legacy.unlink()
        assert run(data_dir, "validate") == 1


class TestInitConfig:
    def test_writes_starter_file(self, tmp_path, capsys):
        target = tmp_path / "cfg" / "config.yml"
        assert main(["init-config", str(target)]) == 0
        assert capsys.readouterr().out.strip() == str(target)
        assert target.exists()

    def test_keeps_existing_file(self, tmp_path):
        target = tmp_path / "config.yml"
        target.write_text("sync:\n  root_path: /notes\n")
        assert main(["init-config", str(target)]) == 0
        assert target.read_text() == "sync:\n  root_path: /notes\n"
