"""MCP tool handlers for managing sync configs.

Defines three tools:

- ``sync_config_list`` -- list configured WebDAV destinations.
- ``sync_config_create`` -- add a destination and store its password.
- ``sync_config_delete`` -- remove a destination with its manifest and
  credential.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...service import JournalSyncService
from ...sync.models import SyncConfig, SyncFrequency
from .errors import format_timestamp, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


CONFIG_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_config_list",
        description=(
            "List configured WebDAV sync destinations with their scope and "
            "last successful sync time."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_config_create",
        description=(
            "Add a WebDAV sync destination. The password is stored in the "
            "local credential store, never in the config."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "server_url": {
                    "type": "string",
                    "description": "WebDAV base URL (http:// or https://)",
                },
                "username": {"type": "string"},
                "password": {"type": "string"},
                "display_name": {"type": "string"},
                "synced_journal_ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Journals to sync; empty means all",
                },
                "sync_attachments": {"type": "boolean", "default": True},
                "sync_frequency": {
                    "type": "string",
                    "enum": [f.value for f in SyncFrequency],
                    "default": SyncFrequency.MANUAL.value,
                },
                "root_path": {
                    "type": "string",
                    "description": "Remote root collection (default /journal_app)",
                },
            },
            "required": ["server_url", "username", "password"],
        },
    ),
    types.Tool(
        name="sync_config_delete",
        description=(
            "Delete a sync destination together with its manifest, stored "
            "password and last status. Remote data is not touched."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"config_id": {"type": "string"}},
            "required": ["config_id"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _describe(config: SyncConfig) -> str:
    scope = (
        ", ".join(config.synced_journal_ids)
        if config.synced_journal_ids
        else "all journals"
    )
    name = config.display_name or config.server_url
    return (
        f"- {config.id}: {name} ({config.username}@{config.server_url}"
        f"{config.root_path})\n"
        f"    scope: {scope}; attachments: "
        f"{'yes' if config.sync_attachments else 'no'}; "
        f"frequency: {config.sync_frequency.value}; "
        f"{'enabled' if config.enabled else 'disabled'}; "
        f"last sync: {format_timestamp(config.last_sync_at)}"
    )


async def _handle_list(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    configs = service.list_configs()
    if not configs:
        return text_result(
            "No sync configs. Use sync_config_create to add one.",
            {"configs": []},
        )
    text = "\n".join(_describe(c) for c in configs)
    return text_result(
        f"{len(configs)} sync config(s):\n{text}",
        {"configs": [c.model_dump(mode="json") for c in configs]},
    )


async def _handle_create(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    for key in ("server_url", "username", "password"):
        if not args.get(key):
            raise ValueError(f"{key} is required")
    extra = {
        key: args[key]
        for key in (
            "display_name",
            "synced_journal_ids",
            "sync_attachments",
            "sync_frequency",
            "root_path",
        )
        if key in args
    }
    config = service.create_config(
        args["server_url"], args["username"], args["password"], **extra
    )
    logger.info("Created sync config %s via MCP", config.id)
    return text_result(
        f"Created sync config {config.id}.\n{_describe(config)}",
        config.model_dump(mode="json"),
    )


async def _handle_delete(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    config_id = args.get("config_id")
    if not config_id:
        raise ValueError("config_id is required")
    deleted = service.delete_config(config_id)
    if not deleted:
        raise KeyError(f"Sync config {config_id} not found")
    return text_result(
        f"Deleted sync config {config_id} with its manifest and credential.",
        {"config_id": config_id, "deleted": True},
    )


CONFIG_SPECS: list[ToolSpec] = [
    ToolSpec(tool=CONFIG_TOOLS[0], handler=_handle_list),
    ToolSpec(tool=CONFIG_TOOLS[1], handler=_handle_create),
    ToolSpec(tool=CONFIG_TOOLS[2], handler=_handle_delete),
]
