"""Remote document layout, serialization and fingerprints.

Everything lives under the config's root collection (``/journal_app`` by
default)::

    manifest.json                               remote index
    journals_metadata.json                      every journal record
    entries/{journal_id}/{yyyy}/{mm}/entries.json   one bundle per month
    images/... audio/... files/...              attachment files

The *remote index* lists every synced entity with the fingerprint and update
time of its current remote version.  Comparing it against the local manifest
tells the engine what changed remotely without downloading content.
Attachment records travel inside the index (``record``) so a device that
downloads an attachment also learns its metadata.

Fingerprints are SHA-256 digests of canonical JSON (sorted keys, compact
separators), so the same record yields the same fingerprint on every device.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any, Iterable

from pydantic import BaseModel, Field, ValidationError

from ..errors import EntityError, RemoteDataError
from ..store.models import Attachment, Entry, Journal
from .models import utcnow

DOCUMENT_VERSION = 1

INDEX_FILENAME = "manifest.json"
JOURNALS_FILENAME = "journals_metadata.json"
ENTRIES_DIR = "entries"
BUNDLE_FILENAME = "entries.json"

JOURNAL_PREFIX = "journal"
BUNDLE_PREFIX = "entries"
ATTACHMENT_PREFIX = "attachment"


# ---------------------------------------------------------------------------
# Canonical encoding
# ---------------------------------------------------------------------------


def canonical_json(obj: Any) -> bytes:
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def journal_fingerprint(journal: Journal) -> str:
    return fingerprint_bytes(canonical_json(journal.model_dump(mode="json")))


def bundle_fingerprint(entries: Iterable[Entry]) -> str:
    """Fingerprint of a month bundle, independent of entry order."""
    records = sorted(
        (e.model_dump(mode="json") for e in entries), key=lambda r: r["id"]
    )
    return fingerprint_bytes(canonical_json(records))


# ---------------------------------------------------------------------------
# Entity keys and remote paths
# ---------------------------------------------------------------------------


def journal_key(journal_id: str) -> str:
    return f"{JOURNAL_PREFIX}:{journal_id}"


def bundle_key(journal_id: str, month: str) -> str:
    return f"{BUNDLE_PREFIX}:{journal_id}:{month}"


def attachment_key(attachment_id: str) -> str:
    return f"{ATTACHMENT_PREFIX}:{attachment_id}"


def entity_kind(key: str) -> str:
    """Return the prefix of an entity key (``journal``, ``entries``, ...)."""
    return key.split(":", 1)[0]


def entry_month(entry: Entry) -> str:
    """``yyyy-mm`` of the bundle *entry* belongs to."""
    return f"{entry.created_at.year:04d}-{entry.created_at.month:02d}"


def index_path(root: str) -> str:
    return f"{root.rstrip('/')}/{INDEX_FILENAME}"


def journals_path(root: str) -> str:
    return f"{root.rstrip('/')}/{JOURNALS_FILENAME}"


def bundle_path(root: str, journal_id: str, month: str) -> str:
    year, mm = month.split("-")
    return f"{root.rstrip('/')}/{ENTRIES_DIR}/{journal_id}/{year}/{mm}/{BUNDLE_FILENAME}"


def attachment_remote_path(root: str, storage_path: str) -> str:
    return f"{root.rstrip('/')}/{storage_path}"


# ---------------------------------------------------------------------------
# Remote index
# ---------------------------------------------------------------------------


class IndexItem(BaseModel):
    """Current remote version of one entity."""

    kind: str
    path: str
    fingerprint: str
    updated_at: datetime
    journal_id: str | None = None
    record: dict[str, Any] | None = None

    model_config = {"frozen": True}


class RemoteIndex(BaseModel):
    """Mutable in-memory copy of ``manifest.json`` for one run."""

    version: int = DOCUMENT_VERSION
    updated_at: datetime | None = None
    items: dict[str, IndexItem] = Field(default_factory=dict)

    def put(self, key: str, item: IndexItem) -> None:
        self.items[key] = item
        self.updated_at = utcnow()

    def attachment_record(self, key: str) -> Attachment | None:
        item = self.items.get(key)
        if item is None or item.record is None:
            return None
        try:
            return Attachment.model_validate(item.record)
        except ValidationError as exc:
            raise EntityError(
                f"Invalid attachment record for {key}: {exc}"
            ) from exc


def parse_index(data: bytes) -> RemoteIndex:
    """Decode ``manifest.json``.

    Raises:
        RemoteDataError: If the document is not a valid index.
    """
    try:
        return RemoteIndex.model_validate_json(data)
    except ValidationError as exc:
        raise RemoteDataError(f"Remote index is invalid: {exc}") from exc


def serialize_index(index: RemoteIndex) -> bytes:
    return index.model_dump_json(indent=2).encode("utf-8")


# ---------------------------------------------------------------------------
# Journals document
# ---------------------------------------------------------------------------


def parse_journals(data: bytes) -> dict[str, Journal]:
    """Decode ``journals_metadata.json`` into ``{journal_id: Journal}``.

    Raises:
        RemoteDataError: If the document cannot be parsed.
    """
    raw = _load_document(data, "journals metadata")
    try:
        return {
            key: Journal.model_validate(value)
            for key, value in raw.get("journals", {}).items()
        }
    except ValidationError as exc:
        raise RemoteDataError(f"Invalid journal in metadata: {exc}") from exc


def serialize_journals(journals: dict[str, Journal]) -> bytes:
    return _dump_document(
        {
            "journals": {
                key: journal.model_dump(mode="json")
                for key, journal in sorted(journals.items())
            }
        }
    )


# ---------------------------------------------------------------------------
# Entry bundles
# ---------------------------------------------------------------------------


def parse_bundle(data: bytes) -> dict[str, Entry]:
    """Decode an ``entries.json`` bundle into ``{entry_id: Entry}``.

    A damaged bundle only affects its own entity.

    Raises:
        EntityError: If the document cannot be parsed.
    """
    try:
        raw = _load_document(data, "entry bundle")
    except RemoteDataError as exc:
        raise EntityError(str(exc)) from exc
    try:
        return {
            record["id"]: Entry.model_validate(record)
            for record in raw.get("entries", [])
        }
    except (ValidationError, KeyError, TypeError) as exc:
        raise EntityError(f"Invalid entry in bundle: {exc}") from exc


def serialize_bundle(journal_id: str, month: str, entries: Iterable[Entry]) -> bytes:
    return _dump_document(
        {
            "journal_id": journal_id,
            "month": month,
            "entries": sorted(
                (e.model_dump(mode="json") for e in entries),
                key=lambda r: r["id"],
            ),
        }
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_document(data: bytes, what: str) -> dict[str, Any]:
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise RemoteDataError(f"Remote {what} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise RemoteDataError(f"Remote {what} is not a JSON object")
    return raw


def _dump_document(body: dict[str, Any]) -> bytes:
    return json.dumps(
        {"version": DOCUMENT_VERSION, **body}, indent=2, ensure_ascii=False
    ).encode("utf-8")
