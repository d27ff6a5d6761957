"""MCP tool handlers for attachment file migration.

Defines four tools:

- ``migration_status`` -- legacy versus migrated attachment counts.
- ``migrate_files`` -- copy legacy attachments into the media root
  (with optional dry-run).
- ``validate_migration`` -- list attachment records whose file is missing.
- ``cleanup_legacy_files`` -- delete originals of migrated attachments.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...service import JournalSyncService
from .errors import text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


MIGRATION_TOOLS: list[types.Tool] = [
    types.Tool(
        name="migration_status",
        description=(
            "Count attachments still stored at legacy absolute paths, by "
            "attachment type."
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
        name="migrate_files",
        description=(
            "Copy legacy attachments into the media root and update their "
            "records. Source files are kept."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Only check what would be migrated",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="validate_migration",
        description="Check that every attachment record points at a readable file.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="cleanup_legacy_files",
        description=(
            "Delete original files of migrated attachments once their copy "
            "is verified. Defaults to a dry run."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "dry_run": {"type": "boolean", "default": True},
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Limit cleanup to these original paths",
                },
            },
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_status(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    stats = await service.get_migration_stats()
    lines = [
        f"Attachments: {stats.total_count}",
        f"  Legacy paths:  {stats.legacy_count}",
        f"  Storage paths: {stats.migrated_count}",
    ]
    for type_name, count in sorted(stats.type_breakdown.items()):
        lines.append(f"  {type_name}: {count}")
    lines.append(
        "Migration needed." if stats.migration_needed else "Nothing to migrate."
    )
    structured = stats.model_dump(mode="json")
    structured["migration_needed"] = stats.migration_needed
    return text_result("\n".join(lines), structured)


async def _handle_migrate(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    dry_run = bool(args.get("dry_run", False))
    result = await service.migrate_all_files(dry_run=dry_run)
    structured = result.model_dump(mode="json")
    structured["success_rate"] = result.success_rate
    return text_result(result.summary(), structured)


async def _handle_validate(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    report = await service.validate_migration()
    lines = [
        f"{report.accessible} of {report.total} attachment files accessible "
        f"({report.success_rate:.1%})"
    ]
    for missing in report.inaccessible_files:
        lines.append(f"  ! {missing.attachment_id} {missing.name}: {missing.path}")
    structured = report.model_dump(mode="json")
    structured["success_rate"] = report.success_rate
    return text_result("\n".join(lines), structured)


async def _handle_cleanup(
    service: JournalSyncService, args: dict[str, Any]
) -> types.CallToolResult:
    dry_run = bool(args.get("dry_run", True))
    paths = args.get("paths")
    if paths is not None and not isinstance(paths, list):
        raise ValueError("paths must be a list of strings")
    count = await service.cleanup_legacy_files(dry_run=dry_run, specific_paths=paths)
    verb = "Would delete" if dry_run else "Deleted"
    return text_result(
        f"{verb} {count} legacy file(s).",
        {"dry_run": dry_run, "count": count},
    )


MIGRATION_SPECS: list[ToolSpec] = [
    ToolSpec(tool=MIGRATION_TOOLS[0], handler=_handle_status),
    ToolSpec(tool=MIGRATION_TOOLS[1], handler=_handle_migrate),
    ToolSpec(tool=MIGRATION_TOOLS[2], handler=_handle_validate),
    ToolSpec(tool=MIGRATION_TOOLS[3], handler=_handle_cleanup),
]
