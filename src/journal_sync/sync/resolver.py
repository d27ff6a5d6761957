"""Conflict resolution strategies for the reconciliation engine.

A conflict is an entity changed on both sides since the last sync.
Resolvers only pick a side; the engine writes the winning version to
whichever side differs.

- ``LastWriteWinsResolver``: newest ``updated_at`` wins, local on a tie.
- ``LocalWinsResolver``: always picks local.
- ``RemoteWinsResolver``: always picks remote.

Entry bundles are resolved entry by entry through ``merge_records()``, so a
bundle edited on two devices keeps the newest version of every entry.

The ``create_resolver()`` factory maps config strategy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping, Protocol, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Winner(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def choose(
        self, local_updated_at: datetime, remote_updated_at: datetime
    ) -> Winner:
        """Pick the side whose version should survive.

        Args:
            local_updated_at: Modification time of the local version.
            remote_updated_at: Modification time of the remote version.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class LastWriteWinsResolver:
    """Newest version wins; identical timestamps favour local."""

    def choose(
        self, local_updated_at: datetime, remote_updated_at: datetime
    ) -> Winner:
        if remote_updated_at > local_updated_at:
            return Winner.REMOTE
        return Winner.LOCAL


class LocalWinsResolver:
    def choose(
        self, local_updated_at: datetime, remote_updated_at: datetime
    ) -> Winner:
        return Winner.LOCAL


class RemoteWinsResolver:
    def choose(
        self, local_updated_at: datetime, remote_updated_at: datetime
    ) -> Winner:
        return Winner.REMOTE


# ---------------------------------------------------------------------------
# Record-level merge
# ---------------------------------------------------------------------------


def merge_records(
    resolver: ConflictResolver,
    local: Mapping[str, R],
    remote: Mapping[str, R],
    updated_at: Callable[[R], datetime],
) -> dict[str, R]:
    """Merge two keyed collections, resolving shared keys with *resolver*.

    Keys present on one side only are kept as they are.

    Returns:
        New dict with one record per key from either side.
    """
    merged: dict[str, R] = {**remote, **local}
    for key in local.keys() & remote.keys():
        winner = resolver.choose(updated_at(local[key]), updated_at(remote[key]))
        logger.debug("Record %s resolved to %s", key, winner.value)
        merged[key] = local[key] if winner == Winner.LOCAL else remote[key]
    return merged


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


_STRATEGY_MAP: dict[str, type] = {
    "last-write-wins": LastWriteWinsResolver,
    "local-wins": LocalWinsResolver,
    "remote-wins": RemoteWinsResolver,
}

STRATEGIES = tuple(_STRATEGY_MAP)


def create_resolver(strategy: str = "last-write-wins") -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"last-write-wins"``, ``"local-wins"``,
            ``"remote-wins"``.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
