"""Credential storage, kept apart from sync configs.

Passwords are stored in ``{data_dir}/credentials.json`` with owner-only
permissions.  Nothing else in the package writes a password to disk.
"""

from __future__ import annotations

import threading
from pathlib import Path

from .base import SCHEMA_VERSION, read_json, write_json

_FILE_MODE = 0o600


class CredentialStore:
    """Map config ids to passwords.

    Args:
        path: Location of the credential file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    def get(self, config_id: str) -> str | None:
        with self._lock:
            return self._read()["credentials"].get(config_id)

    def set(self, config_id: str, password: str) -> None:
        with self._lock:
            data = self._read()
            data["credentials"][config_id] = password
            write_json(self._path, data, mode=_FILE_MODE)

    def delete(self, config_id: str) -> None:
        with self._lock:
            data = self._read()
            if data["credentials"].pop(config_id, None) is not None:
                write_json(self._path, data, mode=_FILE_MODE)

    def _read(self) -> dict:
        data = read_json(
            self._path, {"version": SCHEMA_VERSION, "credentials": {}}
        )
        data.setdefault("credentials", {})
        return data
