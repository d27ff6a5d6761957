"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec read_only derived from the tool annotations
- ToolRegistry read-only filtering over the real tool set
- call_tool dispatch and error translation
"""

from unittest.mock import MagicMock

import mcp.types as types
import pytest

from journal_sync.errors import AuthenticationError
from journal_sync.mcp.tools import ALL_SPECS
from journal_sync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name, read_only=True, handler=None):
    if handler is None:

        async def handler(service, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
            annotations=types.ToolAnnotations(readOnlyHint=read_only),
        ),
        handler=handler,
    )


def _raising(exc):
    async def handler(service, args):
        raise exc

    return handler


def _text(result):
    return result.content[0].text


class TestToolSpec:
    def test_read_only_from_annotations(self):
        assert _make_spec("a").read_only is True
        assert _make_spec("b", read_only=False).read_only is False

    def test_missing_annotations_not_read_only(self):
        spec = ToolSpec(
            tool=types.Tool(name="c", inputSchema={"type": "object"}),
            handler=_raising(RuntimeError()),
        )
        assert spec.read_only is False

    def test_immutable(self):
        spec = _make_spec("a")
        with pytest.raises(AttributeError):
            spec.tool = None


class TestFiltering:
    def test_all_tools_by_default(self):
        registry = ToolRegistry(ALL_SPECS)
        assert registry.tool_count() == len(ALL_SPECS) == 11

    def test_read_only_keeps_inspection_tools(self):
        names = {t.name for t in ToolRegistry(ALL_SPECS, read_only=True).list_tools()}
        assert names == {
            "sync_config_list",
            "journal_sync_status",
            "journal_sync_test_connection",
            "migration_status",
            "validate_migration",
        }

    def test_tool_names_unique(self):
        names = [spec.tool.name for spec in ALL_SPECS]
        assert len(names) == len(set(names))


class TestCallTool:
    async def test_dispatch(self):
        registry = ToolRegistry([_make_spec("a")])
        result = await registry.call_tool("a", None, MagicMock())
        assert _text(result) == "ok:a"

    async def test_handler_receives_args(self):
        seen = {}

        async def handler(service, args):
            seen.update(args)
            return types.CallToolResult(content=[])

        registry = ToolRegistry([_make_spec("a", handler=handler)])
        await registry.call_tool("a", {"config_id": "cfg1"}, MagicMock())
        assert seen == {"config_id": "cfg1"}

    async def test_unknown_tool(self):
        with pytest.raises(ValueError, match="Unknown tool"):
            await ToolRegistry([]).call_tool("nope", {}, MagicMock())

    async def test_filtered_tool_is_unknown(self):
        registry = ToolRegistry([_make_spec("w", read_only=False)], read_only=True)
        with pytest.raises(ValueError):
            await registry.call_tool("w", {}, MagicMock())

    @pytest.mark.parametrize(
        "exc, error_type",
        [
            (AuthenticationError("HTTP 401"), "authentication"),
            (KeyError("Sync config x not found"), "not_found"),
            (ValueError("config_id is required"), "validation_error"),
            (RuntimeError("Sync for config x is running"), "validation_error"),
            (OSError("disk"), "server_error"),
        ],
    )
    async def test_errors_become_responses(self, exc, error_type):
        registry = ToolRegistry([_make_spec("a", handler=_raising(exc))])
        result = await registry.call_tool("a", {}, MagicMock())
        assert result.isError is True
        assert _text(result).startswith(f"Error ({error_type}):")
        assert "Action:" in _text(result)

    async def test_not_found_message_unquoted(self):
        registry = ToolRegistry(
            [_make_spec("a", handler=_raising(KeyError("Sync config x not found")))]
        )
        result = await registry.call_tool("a", {}, MagicMock())
        assert "Error (not_found): Sync config x not found" in _text(result)
