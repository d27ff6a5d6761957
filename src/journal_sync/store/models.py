"""Records held by the local journal store."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AttachmentType(str, Enum):
    PHOTO = "photo"
    AUDIO = "audio"
    FILE = "file"
    LOCATION = "location"


class Journal(BaseModel):
    id: str
    name: str
    description: str = ""
    owner_id: str = ""
    shared_with_user_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    color: str | None = None
    icon: str | None = None

    model_config = {"frozen": True}


class Entry(BaseModel):
    id: str
    journal_id: str
    title: str = ""
    content: str = ""
    created_at: datetime
    updated_at: datetime
    tags: list[str] = Field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None

    model_config = {"frozen": True}


class Attachment(BaseModel):
    """A file owned by exactly one entry.

    ``path`` is either a legacy absolute path or a storage path relative to
    the media root; see ``journal_sync.storage_paths``.
    """

    id: str
    entry_id: str
    type: AttachmentType
    name: str
    path: str
    size: int | None = None
    mime_type: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"frozen": True}
