"""Attachment storage path scheme.

Attachments live under the media root at::

    {type_dir}/{yyyy}/{mm}/{dd}/{entry_id}/{filename}

where ``type_dir`` is ``images``, ``audio`` or ``files`` and the date is the
attachment's creation date.  Anything that starts with a path separator or a
drive letter is a *legacy* path: an absolute location on the device that
created it.  Legacy paths are only ever rewritten to storage paths, never the
other way round.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import PurePosixPath, PureWindowsPath

from pydantic import BaseModel

from .store.models import Attachment, AttachmentType

IMAGES_DIR = "images"
AUDIO_DIR = "audio"
FILES_DIR = "files"

TYPE_DIRS: dict[AttachmentType, str] = {
    AttachmentType.PHOTO: IMAGES_DIR,
    AttachmentType.AUDIO: AUDIO_DIR,
    AttachmentType.FILE: FILES_DIR,
    AttachmentType.LOCATION: FILES_DIR,
}

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


class PathInfo(BaseModel):
    """Components of a parsed storage path."""

    type_dir: str
    entry_date: date
    entry_id: str
    filename: str
    relative_path: str

    model_config = {"frozen": True}


def is_legacy_path(path: str) -> bool:
    """Return ``True`` if *path* is an absolute, device-specific path."""
    return (
        path.startswith("/")
        or path.startswith("\\")
        or bool(_DRIVE_PATTERN.match(path))
    )


def type_dir(attachment_type: AttachmentType) -> str:
    """Return the top-level directory for *attachment_type*."""
    return TYPE_DIRS[attachment_type]


def original_filename(path: str) -> str:
    """Return the final component of a legacy or storage path.

    Windows-style paths (drive letter or backslashes) are split on both
    separators.
    """
    if _DRIVE_PATTERN.match(path) or "\\" in path:
        return PureWindowsPath(path).name
    return PurePosixPath(path).name


def _date_segments(when: date | datetime) -> str:
    return f"{when.year:04d}/{when.month:02d}/{when.day:02d}"


def entry_folder_path(
    attachment_type: AttachmentType, entry_date: date | datetime, entry_id: str
) -> str:
    """Return ``{type_dir}/{yyyy}/{mm}/{dd}/{entry_id}``."""
    return f"{type_dir(attachment_type)}/{_date_segments(entry_date)}/{entry_id}"


def generate_storage_path(
    attachment_type: AttachmentType,
    entry_date: date | datetime,
    entry_id: str,
    filename: str,
) -> str:
    """Build the storage path for a file belonging to *entry_id*."""
    return f"{entry_folder_path(attachment_type, entry_date, entry_id)}/{filename}"


def storage_path_for(attachment: Attachment) -> str:
    """Return the storage path *attachment* should live at.

    Uses the attachment's own creation date and the file name taken from its
    current path (falling back to ``attachment.name`` when the path has no
    file component).
    """
    filename = original_filename(attachment.path) or attachment.name
    return generate_storage_path(
        attachment.type,
        attachment.created_at,
        attachment.entry_id,
        filename,
    )


def disambiguate(path: str, attachment_id: str) -> str:
    """Insert *attachment_id* before the extension of the file in *path*.

    ``images/2024/01/15/e1/photo.jpg`` becomes
    ``images/2024/01/15/e1/photo_<id>.jpg``.
    """
    pure = PurePosixPath(path)
    return str(pure.with_name(f"{pure.stem}_{attachment_id}{pure.suffix}"))


def is_path_safe(relative_path: str) -> bool:
    """Return ``False`` for absolute paths and any ``..`` path segment."""
    if not relative_path or is_legacy_path(relative_path):
        return False
    return ".." not in relative_path.split("/")


def parse_storage_path(relative_path: str) -> PathInfo | None:
    """Split a storage path into its components.

    Returns ``None`` when *relative_path* does not follow the
    ``{type_dir}/{yyyy}/{mm}/{dd}/{entry_id}/{filename}`` layout.
    """
    parts = relative_path.split("/")
    if len(parts) < 6 or parts[0] not in (IMAGES_DIR, AUDIO_DIR, FILES_DIR):
        return None
    try:
        entry_date = date(int(parts[1]), int(parts[2]), int(parts[3]))
    except ValueError:
        return None
    filename = "/".join(parts[5:])
    if not parts[4] or not filename:
        return None
    return PathInfo(
        type_dir=parts[0],
        entry_date=entry_date,
        entry_id=parts[4],
        filename=filename,
        relative_path=relative_path,
    )
