"""In-memory ``Transport`` for tests and offline dry runs.

Behaves like a small WebDAV server: writes create missing parent
collections (as ``WebDAVTransport`` does after a 409), reads of missing files
raise ``NotFoundError`` and ``remove`` deletes collections recursively.
Failures can be injected per path or globally.
"""

from __future__ import annotations

import threading
from collections import Counter

from ..errors import (
    AuthenticationError,
    JournalSyncError,
    NotFoundError,
    ServerUnreachableError,
    TransportError,
)


def _normalize(path: str) -> str:
    return "/" + "/".join(s for s in path.split("/") if s)


class MemoryTransport:
    """Dict-backed remote.

    Attributes:
        files: Remote path -> bytes.
        dirs: Existing collections (``"/"`` always exists).
        calls: Count of operations by name (``"read"``, ``"write"``, ...).
        writes: Ordered list of paths written.
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/"}
        self.calls: Counter[str] = Counter()
        self.writes: list[str] = []
        self._failures: dict[tuple[str, str], JournalSyncError] = {}
        self._ping_error: JournalSyncError | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def fail(
        self,
        operation: str,
        path: str,
        error: JournalSyncError | None = None,
    ) -> None:
        """Make *operation* on *path* raise *error* until ``clear_failures()``."""
        path = _normalize(path)
        self._failures[(operation, path)] = error or TransportError(
            f"injected {operation} failure", path=path, status_code=500
        )

    def reject_credentials(self) -> None:
        self._ping_error = AuthenticationError("HTTP 401: credentials rejected")

    def go_offline(self, error: JournalSyncError | None = None) -> None:
        self._ping_error = error or ServerUnreachableError("server unreachable")

    def clear_failures(self) -> None:
        self._failures.clear()
        self._ping_error = None

    def _maybe_fail(self, operation: str, path: str) -> None:
        error = self._failures.get((operation, path))
        if error is not None:
            raise error

    # ------------------------------------------------------------------
    # Transport operations
    # ------------------------------------------------------------------

    def ping(self) -> None:
        with self._lock:
            self.calls["ping"] += 1
        if self._ping_error is not None:
            raise self._ping_error

    def mkdir(self, path: str) -> None:
        path = _normalize(path)
        with self._lock:
            self.calls["mkdir"] += 1
            self._maybe_fail("mkdir", path)
            current = ""
            for segment in [s for s in path.split("/") if s]:
                current = f"{current}/{segment}"
                self.dirs.add(current)

    def read(self, path: str) -> bytes:
        path = _normalize(path)
        with self._lock:
            self.calls["read"] += 1
            self._maybe_fail("read", path)
            if path not in self.files:
                raise NotFoundError(f"GET {path} returned HTTP 404", path=path)
            return self.files[path]

    def write(self, path: str, data: bytes) -> None:
        path = _normalize(path)
        parent = path.rsplit("/", 1)[0] or "/"
        if parent not in self.dirs:
            self.mkdir(parent)
        with self._lock:
            self.calls["write"] += 1
            self._maybe_fail("write", path)
            self.files[path] = bytes(data)
            self.writes.append(path)

    def remove(self, path: str) -> None:
        path = _normalize(path)
        with self._lock:
            self.calls["remove"] += 1
            self._maybe_fail("remove", path)
            self.files.pop(path, None)
            prefix = path.rstrip("/") + "/"
            for key in [k for k in self.files if k.startswith(prefix)]:
                del self.files[key]
            if path != "/":
                self.dirs -= {d for d in self.dirs if d == path or d.startswith(prefix)}
