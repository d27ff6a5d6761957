"""ToolSpec and ToolRegistry for read-only tool filtering.

This module provides a centralized registry for MCP tools so operators can
restrict an agent to tools that never change local or remote data.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition and an async
  handler with standardized signature (service, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time (``read_only`` keeps
  only tools annotated ``readOnlyHint=True``), then provides list_tools()
  and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...errors import JournalSyncError
from ...service import JournalSyncService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema,
            annotations).
        handler: Async handler with signature (service, args) -> CallToolResult.
    """

    tool: types.Tool
    handler: Callable[[JournalSyncService, dict], Awaitable[types.CallToolResult]]

    @property
    def read_only(self) -> bool:
        annotations = self.tool.annotations
        return bool(annotations and annotations.readOnlyHint)


class ToolRegistry:
    """Registry of ToolSpecs, optionally limited to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if not read_only or spec.read_only:
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        service: JournalSyncService,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Sync errors, lookups of unknown configs, validation errors and
        unexpected exceptions are all turned into structured
        ``CallToolResult`` responses with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            service: The running sync service.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(service, args)
        except JournalSyncError as e:
            logger.warning("Sync error in %s: %s", name, e)
            return translate_sync_error(e)
        except KeyError as e:
            return build_error_response(
                "not_found",
                str(e).strip("'\""),
                "Use sync_config_list to see configured destinations.",
            )
        except (ValueError, RuntimeError) as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry.",
            )
