"""Unified configuration schema for journal_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for storage, transport, sync defaults and logging, plus the
adapter that flattens it into fallbacks for ``load_config()``.

Usage:
    from journal_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.fallbacks())
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    """Local storage locations.

    All fields are optional: env vars and CLI args can supply them at
    runtime instead.
    """

    data_dir: str | None = Field(
        default=None, description="Directory for the local store and manifests"
    )
    media_dir: str | None = Field(
        default=None, description="Attachment media root"
    )

    model_config = {"frozen": True}


class TransportConfig(BaseModel):
    """Network settings shared by every WebDAV config."""

    timeout: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Per-request read timeout in seconds",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=100,
        description="Maximum concurrent blocking I/O calls (1-100)",
    )

    model_config = {"frozen": True}


class SyncDefaults(BaseModel):
    """Defaults applied to every sync run."""

    conflict_strategy: str = Field(
        default="last-write-wins",
        description="last-write-wins, local-wins or remote-wins",
    )
    root_path: str = Field(
        default="/journal_app",
        description="Remote root collection for newly created configs",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    sync: SyncDefaults = Field(default_factory=SyncDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def fallbacks(self) -> dict[str, Any]:
        """Flatten storage, transport and sync sections for ``load_config()``.

        ``None`` values are dropped so they never shadow built-in defaults.
        """
        merged: dict[str, Any] = {
            **self.storage.model_dump(),
            **self.transport.model_dump(),
            **self.sync.model_dump(),
        }
        return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
