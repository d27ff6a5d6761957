"""Tests for logger.py: setup_logging(), resolve_level() and JsonFormatter.

logging.basicConfig is mocked because pytest's log capture interferes with
real root logger reconfiguration.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from journal_sync.logger import JsonFormatter, resolve_level, setup_logging

BASIC_CONFIG = "journal_sync.logger.logging.basicConfig"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("JOURNAL_SYNC_LOG_LEVEL", raising=False)
    monkeypatch.delenv("JOURNAL_SYNC_LOG_FILE", raising=False)


def _handlers(mock_basic):
    mock_basic.assert_called_once()
    return mock_basic.call_args.kwargs["handlers"]


# ---------------------------------------------------------------------------
# resolve_level
# ---------------------------------------------------------------------------


class TestResolveLevel:
    def test_mode_defaults(self):
        assert resolve_level("cli", False) == logging.INFO
        assert resolve_level("mcp", False) == logging.WARNING

    def test_debug_wins(self, monkeypatch):
        monkeypatch.setenv("JOURNAL_SYNC_LOG_LEVEL", "ERROR")
        assert resolve_level("cli", True, "WARNING") == logging.DEBUG

    def test_explicit_level_beats_env(self, monkeypatch):
        monkeypatch.setenv("JOURNAL_SYNC_LOG_LEVEL", "ERROR")
        assert resolve_level("cli", False, "warning") == logging.WARNING
        assert resolve_level("cli", False) == logging.ERROR

    def test_unknown_name_falls_back_to_info(self):
        assert resolve_level("mcp", False, "LOUD") == logging.INFO


# ---------------------------------------------------------------------------
# setup_logging
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @patch(BASIC_CONFIG)
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")
        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert mock_basic.call_args.kwargs["force"] is True

    @patch(BASIC_CONFIG)
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "cli.log"
        setup_logging(mode="cli", log_file=str(log_file))
        handlers = _handlers(mock_basic)
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)

    @patch(BASIC_CONFIG)
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path):
        log_file = tmp_path / "mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))
        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.FileHandler)
        assert handlers[0].baseFilename == str(log_file)
        assert mock_basic.call_args.kwargs["level"] == logging.WARNING

    @patch(BASIC_CONFIG)
    def test_mcp_mode_env_log_file(self, mock_basic, monkeypatch, tmp_path):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("JOURNAL_SYNC_LOG_FILE", str(log_file))
        setup_logging(mode="mcp")
        assert _handlers(mock_basic)[0].baseFilename == str(log_file)

    @patch(BASIC_CONFIG)
    def test_json_format(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        assert isinstance(_handlers(mock_basic)[0].formatter, JsonFormatter)

    @patch(BASIC_CONFIG)
    def test_third_party_silenced(self, _mock_basic):
        setup_logging(mode="cli")
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter
# ---------------------------------------------------------------------------


def _record(msg, args=(), exc_info=None, level=logging.INFO):
    return logging.LogRecord(
        name="journal_sync.sync.engine",
        level=level,
        pathname="engine.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJsonFormatter:
    def test_basic_output(self):
        data = json.loads(JsonFormatter().format(_record("Synced %d items", (3,))))
        assert data["level"] == "INFO"
        assert data["logger"] == "journal_sync.sync.engine"
        assert data["msg"] == "Synced 3 items"
        assert "ts" in data

    def test_includes_exception_on_one_line(self):
        try:
            raise ValueError("bad bundle")
        except ValueError:
            exc_info = sys.exc_info()
        output = JsonFormatter().format(_record("failed", exc_info=exc_info, level=logging.ERROR))
        assert "\n" not in output
        assert "bad bundle" in json.loads(output)["exc"]
