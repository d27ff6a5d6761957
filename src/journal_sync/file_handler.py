"""Media storage: attachment bytes on local disk.

Resolves attachment paths (legacy absolute or storage-relative) to real files
and provides the atomic write and verified copy primitives the sync and
migration engines build on.  All functions are synchronous; the engines wrap
them with ``run_sync_limited()``.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from .storage_paths import is_legacy_path, is_path_safe

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class MediaStorage:
    """Attachment files rooted at *root*.

    Storage paths are always resolved under *root*; legacy paths are used as
    they are.

    Args:
        root: Media root directory.  Created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    # =========================================================================
    # Path Resolution
    # =========================================================================

    def resolve(self, path: str) -> Path:
        """Return the filesystem location of *path*.

        Raises:
            ValueError: If a storage path is unsafe or escapes the root.
        """
        if is_legacy_path(path):
            return Path(path)
        if not is_path_safe(path):
            raise ValueError(f"Unsafe storage path: {path}")
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage path escapes media root: {path}")
        return resolved

    # =========================================================================
    # Queries
    # =========================================================================

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except ValueError:
            return False

    def is_readable(self, path: str) -> bool:
        """Return ``True`` if *path* is an existing file we may read."""
        try:
            target = self.resolve(path)
        except ValueError:
            return False
        return target.is_file() and os.access(target, os.R_OK)

    def size(self, path: str) -> int:
        return self.resolve(path).stat().st_size

    def mtime(self, path: str) -> datetime:
        """Modification time of *path* as an aware UTC datetime."""
        return datetime.fromtimestamp(
            self.resolve(path).stat().st_mtime, tz=timezone.utc
        )

    def fingerprint(self, path: str) -> str:
        """SHA-256 hex digest of the file contents, read in chunks."""
        digest = hashlib.sha256()
        with open(self.resolve(path), "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()

    # =========================================================================
    # Read/Write
    # =========================================================================

    def read_bytes(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> Path:
        """Write *data* to storage path *path* atomically.

        Returns:
            The resolved destination.
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, target)
        except BaseException:
            _discard(tmp_path)
            raise
        return target

    def copy_in(self, source: Path, path: str) -> Path:
        """Copy *source* to storage path *path*, verifying the copy.

        The copy lands in a temporary file next to the destination and is
        only renamed into place once it exists, is non-empty and matches the
        source size.  The source is left untouched.

        Raises:
            OSError: If the source cannot be read or the copy fails.
            ValueError: If the copy is empty or truncated.
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        expected = source.stat().st_size
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as dst, open(source, "rb") as src:
                shutil.copyfileobj(src, dst, _CHUNK_SIZE)
            copied = os.path.getsize(tmp_path)
            if copied == 0:
                raise ValueError(f"Copy of {source} is empty")
            if copied != expected:
                raise ValueError(
                    f"Copy of {source} is {copied} bytes, expected {expected}"
                )
            os.replace(tmp_path, target)
        except BaseException:
            _discard(tmp_path)
            raise
        logger.debug("Copied %s -> %s (%d bytes)", source, target, expected)
        return target

    def remove(self, path: str) -> bool:
        """Delete *path*.  Returns ``False`` if it did not exist."""
        try:
            self.resolve(path).unlink()
        except FileNotFoundError:
            return False
        return True


def _discard(tmp_path: str) -> None:
    try:
        os.unlink(tmp_path)
    except OSError:
        pass
