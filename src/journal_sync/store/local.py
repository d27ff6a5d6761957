"""Local journal store.

``LocalStore`` is the interface the sync and migration engines depend on.
``JsonLocalStore`` keeps journals, entries and attachment records in a single
JSON document under the data directory.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from pydantic import ValidationError

from ..errors import StoreCorruptionError
from .base import SCHEMA_VERSION, read_json, write_json
from .models import Attachment, Entry, Journal

logger = logging.getLogger(__name__)


class LocalStore(Protocol):
    """Read/write access to journals, entries and attachment records."""

    def list_journals(self) -> list[Journal]: ...

    def get_journal(self, journal_id: str) -> Journal | None: ...

    def upsert_journal(self, journal: Journal) -> None: ...

    def list_entries(self, journal_id: str | None = None) -> list[Entry]: ...

    def get_entry(self, entry_id: str) -> Entry | None: ...

    def upsert_entry(self, entry: Entry) -> None: ...

    def list_attachments(
        self, entry_ids: Iterable[str] | None = None
    ) -> list[Attachment]: ...

    def get_attachment(self, attachment_id: str) -> Attachment | None: ...

    def upsert_attachment(self, attachment: Attachment) -> None: ...

    def update_attachment_path(
        self,
        attachment_id: str,
        path: str,
        metadata: dict[str, str] | None = None,
    ) -> Attachment: ...


class JsonLocalStore:
    """``LocalStore`` backed by ``{data_dir}/journal.json``.

    All access is serialized by a lock because the engines call into the
    store from worker threads.

    Args:
        data_dir: Directory holding the store document.
    """

    FILENAME = "journal.json"

    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / self.FILENAME
        self._lock = threading.Lock()
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Journals
    # ------------------------------------------------------------------

    def list_journals(self) -> list[Journal]:
        with self._lock:
            return self._parse_all("journals")

    def get_journal(self, journal_id: str) -> Journal | None:
        with self._lock:
            return self._parse_one("journals", journal_id)

    def upsert_journal(self, journal: Journal) -> None:
        with self._lock:
            self._put("journals", journal.id, journal)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def list_entries(self, journal_id: str | None = None) -> list[Entry]:
        with self._lock:
            entries = self._parse_all("entries")
        if journal_id is None:
            return entries
        return [e for e in entries if e.journal_id == journal_id]

    def get_entry(self, entry_id: str) -> Entry | None:
        with self._lock:
            return self._parse_one("entries", entry_id)

    def upsert_entry(self, entry: Entry) -> None:
        with self._lock:
            self._put("entries", entry.id, entry)

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def list_attachments(
        self, entry_ids: Iterable[str] | None = None
    ) -> list[Attachment]:
        with self._lock:
            attachments = self._parse_all("attachments")
        if entry_ids is None:
            return attachments
        wanted = set(entry_ids)
        return [a for a in attachments if a.entry_id in wanted]

    def get_attachment(self, attachment_id: str) -> Attachment | None:
        with self._lock:
            return self._parse_one("attachments", attachment_id)

    def upsert_attachment(self, attachment: Attachment) -> None:
        with self._lock:
            self._put("attachments", attachment.id, attachment)

    def update_attachment_path(
        self,
        attachment_id: str,
        path: str,
        metadata: dict[str, str] | None = None,
    ) -> Attachment:
        """Point *attachment_id* at *path*, merging *metadata* into its own.

        Raises:
            KeyError: If the attachment does not exist.
        """
        with self._lock:
            current = self._parse_one("attachments", attachment_id)
            if current is None:
                raise KeyError(f"Attachment {attachment_id} not found")
            merged = {**current.metadata, **(metadata or {})}
            updated = current.model_copy(update={"path": path, "metadata": merged})
            self._put("attachments", attachment_id, updated)
        logger.debug("Attachment %s now at %s", attachment_id, path)
        return updated

    # ------------------------------------------------------------------
    # Internal helpers (callers hold self._lock)
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            self._data = read_json(
                self._path,
                {
                    "version": SCHEMA_VERSION,
                    "journals": {},
                    "entries": {},
                    "attachments": {},
                },
            )
        return self._data

    def _parse_all(self, section: str) -> list:
        return [
            self._parse(section, key, raw)
            for key, raw in self._load().get(section, {}).items()
        ]

    def _parse_one(self, section: str, key: str):
        raw = self._load().get(section, {}).get(key)
        if raw is None:
            return None
        return self._parse(section, key, raw)

    def _parse(self, section: str, key: str, raw: dict):
        model = _SECTION_MODELS[section]
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            raise StoreCorruptionError(
                f"Invalid {section} record {key} in {self._path}: {exc}"
            ) from exc

    def _put(self, section: str, key: str, record) -> None:
        data = self._load()
        snapshot = {**data, section: {**data.get(section, {})}}
        snapshot[section][key] = record.model_dump(mode="json")
        write_json(self._path, snapshot)
        self._data = snapshot


_SECTION_MODELS: dict[str, type] = {
    "journals": Journal,
    "entries": Entry,
    "attachments": Attachment,
}
