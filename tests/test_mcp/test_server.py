"""Tests for the MCP server module: global accessors, protocol handlers and CLI."""

from unittest.mock import MagicMock

import pytest

from journal_sync.mcp import server
from journal_sync.mcp.tools import ALL_SPECS, ToolRegistry


@pytest.fixture(autouse=True)
def reset_globals():
    yield
    server.set_service(None)
    server.set_registry(None)


class TestAccessors:
    def test_uninitialized(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            server.get_service()
        with pytest.raises(RuntimeError, match="not initialized"):
            server.get_registry()

    def test_set_and_get(self):
        service = MagicMock()
        registry = ToolRegistry([])
        server.set_service(service)
        server.set_registry(registry)
        assert server.get_service() is service
        assert server.get_registry() is registry


class TestHandlers:
    async def test_list_tools_read_only(self):
        server.set_registry(ToolRegistry(ALL_SPECS, read_only=True))
        tools = await server.handle_list_tools()
        assert all(tool.annotations.readOnlyHint for tool in tools)

    async def test_call_filtered_tool(self):
        server.set_service(MagicMock())
        server.set_registry(ToolRegistry(ALL_SPECS, read_only=True))
        result = await server.handle_call_tool("journal_sync", {"config_id": "cfg1"})
        assert result.isError
        assert result.content[0].text.startswith("Error (unknown_tool):")

    async def test_call_dispatches(self):
        service = MagicMock()
        service.list_configs.return_value = []
        server.set_service(service)
        server.set_registry(ToolRegistry(ALL_SPECS))
        result = await server.handle_call_tool("sync_config_list", None)
        assert "No sync configs" in result.content[0].text


class TestParser:
    def test_defaults(self):
        args = server.build_parser().parse_args([])
        assert args.read_only is False
        assert args.data_dir is None

    def test_flags(self):
        args = server.build_parser().parse_args(
            ["--data-dir", "/srv/j", "--read-only", "--insecure"]
        )
        assert args.data_dir == "/srv/j"
        assert args.read_only is True
        assert args.insecure is True
