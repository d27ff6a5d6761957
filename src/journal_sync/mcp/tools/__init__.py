"""MCP tool handlers for journal sync and attachment migration.

This package contains MCP tool implementations that wrap
``JournalSyncService`` with async handlers and structured error responses.
"""

from .config import CONFIG_SPECS, CONFIG_TOOLS
from .errors import build_error_response, translate_sync_error
from .migration import MIGRATION_SPECS, MIGRATION_TOOLS
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = CONFIG_SPECS + SYNC_SPECS + MIGRATION_SPECS

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "CONFIG_SPECS",
    "SYNC_SPECS",
    "MIGRATION_SPECS",
    # Tool lists
    "CONFIG_TOOLS",
    "SYNC_TOOLS",
    "MIGRATION_TOOLS",
]
