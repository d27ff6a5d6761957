"""MCP tool handlers for running and inspecting syncs.

Defines four tools:

- ``journal_sync`` -- run one two-way sync for a config.
- ``journal_sync_status`` -- show the last status and report of a config.
- ``journal_sync_clear_manifest`` -- forget what was synced so the next run
  compares everything again.
- ``journal_sync_test_connection`` -- write/read/delete round trip against
  the config's server.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...service import JournalSyncService
from ...sync.models import SyncState
from ...sync.reporter import (
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)
from .errors import build_error_response, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_CONFIG_ID_SCHEMA = {
    "type": "object",
    "properties": {
        "config_id": {
            "type": "string",
            "description": "Sync config id (see sync_config_list)",
        },
    },
    "required": ["config_id"],
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="journal_sync",
        description=(
            "Synchronize journals, entries and attachments with a WebDAV "
            "destination. Conflicts are resolved automatically; deletions "
            "are never propagated."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema=_CONFIG_ID_SCHEMA,
    ),
    types.Tool(
        name="journal_sync_status",
        description=(
            "Show the current or last sync status for a config, with the "
            "per-item report of the last run in this session."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_CONFIG_ID_SCHEMA,
    ),
    types.Tool(
        name="journal_sync_clear_manifest",
        description=(
            "Clear the local sync manifest of a config. The next sync "
            "compares every item again without deleting anything."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_CONFIG_ID_SCHEMA,
    ),
    types.Tool(
        name="journal_sync_test_connection",
        description=(
            "Test a config's WebDAV server by writing, reading back and "
            "deleting a small probe file."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema=_CONFIG_ID_SCHEMA,
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _config_id(args: dict[str, Any]) -> str:
    config_id = args.get("config_id")
    if not config_id:
        raise ValueError("config_id is required")
    return config_id


async def _handle_sync(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    config_id = _config_id(args)
    if service.get_config(config_id) is None:
        raise KeyError(f"Sync config {config_id} not found")

    status = await service.perform_sync(config_id)
    report = service.get_last_report(config_id)
    text = format_status(status)
    structured: dict[str, Any] = {"status": status_to_json(status)}
    if report is not None:
        text = f"{text}\n\n{format_sync_report(report)}"
        structured["report"] = report_to_json(report)

    if status.state == SyncState.FAILED:
        return build_error_response(
            "sync_failed",
            status.error_message or "Sync failed",
            "Run journal_sync_test_connection to check the server, then retry.",
        )
    return text_result(text, structured)


async def _handle_status(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    config_id = _config_id(args)
    if service.get_config(config_id) is None:
        raise KeyError(f"Sync config {config_id} not found")
    status = service.get_status(config_id)
    report = service.get_last_report(config_id)
    text = format_status(status)
    structured: dict[str, Any] = {"status": status_to_json(status)}
    if report is not None:
        text = f"{text}\n\n{format_sync_report(report)}"
        structured["report"] = report_to_json(report)
    return text_result(text, structured)


async def _handle_clear_manifest(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    config_id = _config_id(args)
    if service.get_config(config_id) is None:
        raise KeyError(f"Sync config {config_id} not found")
    service.clear_local_manifest(config_id)
    return text_result(
        f"Cleared the sync manifest of {config_id}.",
        {"config_id": config_id, "cleared": True},
    )


async def _handle_test_connection(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    config_id = _config_id(args)
    ok = await service.test_saved_connection(config_id)
    if not ok:
        return build_error_response(
            "network",
            f"Connection test for {config_id} failed",
            "Check the server URL, credentials and the server log.",
        )
    return text_result(
        f"Connection to {config_id} succeeded.",
        {"config_id": config_id, "connected": True},
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], handler=_handle_sync),
    ToolSpec(tool=SYNC_TOOLS[1], handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[2], handler=_handle_clear_manifest),
    ToolSpec(tool=SYNC_TOOLS[3], handler=_handle_test_connection),
]
