"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..config_loader import resolve_config
from ..core.async_utils import init_semaphore
from ..service import JournalSyncService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Resolve settings: CLI > env vars (.env loaded first) > YAML > defaults
    - Open the local stores and build the ``JournalSyncService``
    - Size the blocking I/O semaphore

    On shutdown:
    - Cancel any sync or migration still running

    Args:
        config_overrides: Optional dict with values from CLI (data_dir,
            media_dir, insecure, debug)

    Yields:
        Dict with 'service' key containing the initialized JournalSyncService

    Raises:
        RuntimeError: If configuration is invalid or the stores cannot be opened.
    """
    logger.info("MCP server starting...")
    _stderr_print("Journal Sync MCP Server starting...")

    try:
        config, _unified, sources = resolve_config(config_overrides)
        source_desc = ", ".join(sources) if sources else "defaults"
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        service = JournalSyncService(config)
        configs = service.list_configs()
    except Exception as e:
        logger.error("Failed to open local stores: %s", e)
        _stderr_print(f"ERROR: Cannot open data directory {config.data_dir}.")
        _stderr_print(f"  {e}")
        raise RuntimeError(
            f"Cannot open data directory {config.data_dir}: {e}"
        ) from e

    init_semaphore(config.max_parallel_requests)
    logger.info("Data directory: %s (%d sync configs)", config.data_dir, len(configs))
    _stderr_print(f"  Data directory: {config.data_dir}")
    _stderr_print(f"  Media directory: {config.media_dir}")
    _stderr_print(f"  Parallel requests: {config.max_parallel_requests}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"service": service}
    finally:
        for sync_config in service.list_configs():
            service.cancel_sync(sync_config.id)
        service.cancel_migration()
        logger.info("MCP server shutting down")
        _stderr_print("Journal Sync MCP Server shutting down.")
