"""MCP server for journal sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents manage WebDAV sync configs, run syncs and migrate attachment files.

Transport: stdio (for desktop agent integration)
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..service import JournalSyncService
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

server = Server("journal-sync")

# Initialized in main() once the lifespan has started
_service: JournalSyncService | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> JournalSyncService:
    """Get the global JournalSyncService instance.

    Raises:
        RuntimeError: If the service is not initialized
    """
    if _service is None:
        raise RuntimeError(
            "JournalSyncService not initialized. Server lifespan not started."
        )
    return _service


def set_service(service: JournalSyncService | None) -> None:
    global _service
    _service = service


def get_registry() -> ToolRegistry:
    """Return the registry built by main().

    Raises:
        RuntimeError: Before main() has registered the tools.
    """
    if _registry is None:
        raise RuntimeError("Tool registry not initialized; call main() first.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch *name* to its handler with the running service.

    Handler failures come back as ``isError`` results, never as protocol
    errors.
    """
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Hidden by --read-only or never registered
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None, read_only: bool = False):
    """Serve the journal sync tools over stdio until the client disconnects.

    Logging is set up for MCP mode (file only, never stdout) before the
    stdio transport starts.

    Args:
        config_overrides: Optional dict with config values to override
            (data_dir, media_dir, insecure, debug, log_file)
        read_only: Only expose tools annotated read-only.
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file, debug=overrides.get("debug", False))

    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(ALL_SPECS)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_service() is called here, not in the lifespan, so running this file
    # as __main__ updates the same module globals the handlers read.
    async with server_lifespan(config_overrides=overrides or None) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="journal-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_service(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journal-sync-mcp",
        description="Journal Sync MCP Server - WebDAV journal sync and attachment migration tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .journal_sync/config.yml)
  journal-sync-mcp

  # Use another data directory
  journal-sync-mcp --data-dir ~/journal-data --media-dir ~/journal-data/media

  # Expose only tools that change nothing
  journal-sync-mcp --read-only

The server speaks JSON-RPC on stdin/stdout; messages for humans go to stderr.
        """,
    )
    parser.add_argument("--data-dir", help="Directory holding the local store, configs and manifests")
    parser.add_argument("--media-dir", help="Attachment media root")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that do not change local or remote data",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"journal-sync-mcp version {__version__}",
    )
    return parser


def run() -> None:
    """Console entry point for ``journal-sync-mcp``."""
    args = build_parser().parse_args()

    config_overrides: dict = {}
    if args.data_dir:
        config_overrides["data_dir"] = args.data_dir
    if args.media_dir:
        config_overrides["media_dir"] = args.media_dir
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    try:
        asyncio.run(main(config_overrides=config_overrides, read_only=args.read_only))
    except RuntimeError:
        # server_lifespan has already reported the cause on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
