"""Error response builders and shared utilities for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

from datetime import datetime
from typing import Any

import mcp.types as types

from ...errors import JournalSyncError, SyncErrorKind, classify_error


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            authentication, network, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Sync config abc not found", "Use sync_config_list.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def text_result(text: str, structured: dict[str, Any] | None = None) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def format_timestamp(timestamp: datetime | None) -> str:
    """Format a timestamp as ``YYYY-MM-DD HH:MM``, or ``never``."""
    match timestamp:
        case None:
            return "never"
        case datetime() as dt:
            return dt.strftime("%Y-%m-%d %H:%M")
        case _:
            return str(timestamp)


# ---------------------------------------------------------------------------
# Corrective actions per error kind
# ---------------------------------------------------------------------------

_KIND_ACTIONS: dict[SyncErrorKind, str] = {
    SyncErrorKind.AUTHENTICATION: (
        "Update the stored password with sync_config_create or check the "
        "account on the WebDAV server."
    ),
    SyncErrorKind.NETWORK: (
        "Check the server URL and network connectivity, then run "
        "journal_sync_test_connection."
    ),
    SyncErrorKind.SERVER: "Retry later or check the WebDAV server logs.",
    SyncErrorKind.QUOTA_EXCEEDED: "Free space on the WebDAV server, then retry.",
    SyncErrorKind.VALIDATION: (
        "Check the local data directory and configuration values."
    ),
    SyncErrorKind.FILE: "Check that the media directory is readable and writable.",
    SyncErrorKind.CONFLICT: "Run journal_sync again to resolve the conflict.",
    SyncErrorKind.UNKNOWN: "Check the server log and retry.",
}


def translate_sync_error(error: JournalSyncError) -> types.CallToolResult:
    """Translate a sync error into a structured error response."""
    kind = classify_error(error)
    return build_error_response(
        kind.value, str(error), _KIND_ACTIONS.get(kind, _KIND_ACTIONS[SyncErrorKind.UNKNOWN])
    )
