"""Logging setup for the CLI and the MCP server.

The MCP server speaks JSON-RPC over stdout, so in ``mcp`` mode records go
to a file only.  The CLI logs to stderr, optionally mirrored to a file.
"""

import json
import logging
import os
import sys

DEFAULT_LOG_FILE = "/tmp/journal-sync.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_QUIET_LOGGERS = ("urllib3", "requests", "httpx", "httpcore", "mcp")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (and exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(fmt: str, with_name: bool) -> logging.Formatter:
    if fmt == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    pattern = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(pattern, datefmt=DATE_FORMAT)


def resolve_level(mode: str, debug: bool, level: str | None = None) -> int:
    """Pick the effective level.

    ``debug`` wins, then *level*, then ``JOURNAL_SYNC_LOG_LEVEL``, then the
    mode default (WARNING for ``mcp``, INFO for ``cli``).  Unknown names
    fall back to INFO.
    """
    if debug:
        return logging.DEBUG
    default_level = "WARNING" if mode == "mcp" else "INFO"
    name = (level or os.getenv("JOURNAL_SYNC_LOG_LEVEL") or default_level).upper()
    value = getattr(logging, name, None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """Configure the root logger for the given execution mode.

    Args:
        mode: ``"mcp"`` logs to a file only, ``"cli"`` logs to stderr.
        debug: Force DEBUG level.
        log_file: Log file path.  Overrides ``JOURNAL_SYNC_LOG_FILE`` in
            ``mcp`` mode; in ``cli`` mode it adds a file handler.
        debug_format: ``"text"`` or ``"json"``.
        level: Level name, e.g. from the YAML ``logging`` section.

    Environment variables:
        JOURNAL_SYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        JOURNAL_SYNC_LOG_FILE: Log file for ``mcp`` mode
            (default: /tmp/journal-sync.log).
    """
    log_level = resolve_level(mode, debug, level)
    handlers: list[logging.Handler] = []

    if mode == "mcp":
        path = log_file or os.getenv("JOURNAL_SYNC_LOG_FILE", DEFAULT_LOG_FILE)
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setFormatter(_formatter(debug_format, with_name=True))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(stderr_handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    if log_level != logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
