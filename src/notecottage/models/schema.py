"""Domain models for NoteCottage.

These are the transient, request-scoped views handed to callers. Persisted
rows live only in the relational store (see ``db_models``).
"""

import datetime
from datetime import timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

PRIVATE_GROUP_ID = "private"
SHARED_GROUP_ID = "shared"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(
    dt_value: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Attach UTC to naive datetimes read back from SQLite.

    ``None`` stays ``None`` so nullable columns like ``deleted_at`` round-trip.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class User(BaseModel):
    """A user account. ``password_hash`` is never serialized."""

    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    is_admin: bool = False
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)
    password_hash: Optional[str] = Field(default=None, exclude=True, repr=False)


class Folder(BaseModel):
    """A folder row."""

    id: int
    name: str
    parent_id: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    position: int = 0
    user_id: Optional[int] = None
    is_public: bool = False
    is_default: bool = False
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    @property
    def is_legacy(self) -> bool:
        """Folders without an owner predate multi-user support."""
        return self.user_id is None


class FolderUpdate(BaseModel):
    """The closed set of folder fields a plain update may change.

    Only fields explicitly set by the caller are applied; passing
    ``parent_id=None`` explicitly moves the folder to the top level.
    """

    name: Optional[str] = None
    parent_id: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_public: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the name is not blank."""
        if v is not None and not v.strip():
            raise ValueError("Folder name cannot be empty")
        return v.strip() if v is not None else None


class Note(BaseModel):
    """A note with its derived tag names."""

    id: int
    title: str
    content: str
    folder_id: Optional[int] = None
    user_id: Optional[int] = None
    position: int = 0
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)
    deleted_at: Optional[datetime.datetime] = None
    tags: List[str] = Field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_legacy(self) -> bool:
        """Notes lacking an owner or a folder are readable by everyone."""
        return self.user_id is None or self.folder_id is None


class NoteSummary(BaseModel):
    """A note as shown in listings: content truncated to a preview."""

    id: int
    title: str
    preview: str
    folder_id: Optional[int] = None
    user_id: Optional[int] = None
    position: int = 0
    created_at: datetime.datetime
    updated_at: datetime.datetime
    deleted_at: Optional[datetime.datetime] = None
    tags: List[str] = Field(default_factory=list)
    rank: Optional[float] = None


class TagCount(BaseModel):
    """A tag name with the number of active notes using it."""

    name: str
    count: int


class TitleMapEntry(BaseModel):
    """Wiki-link resolution target."""

    id: int
    title: str
    updated_at: datetime.datetime


class WikiLink(BaseModel):
    """A ``[[Target]]`` or ``[[Target|Label]]`` reference found in content."""

    target: str
    label: Optional[str] = None
    note_id: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.note_id is not None


class FolderNode(BaseModel):
    """A real folder in a materialized tree."""

    kind: Literal["folder"] = "folder"
    id: int
    name: str
    parent_id: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    position: int = 0
    user_id: Optional[int] = None
    is_public: bool = False
    is_default: bool = False
    note_count: int = 0
    children: List["FolderNode"] = Field(default_factory=list)


class FolderGroup(BaseModel):
    """A synthetic, never-persisted tree root ("private" or "shared")."""

    kind: Literal["group"] = "group"
    id: Literal["private", "shared"]
    name: str
    icon: str
    position: int
    is_public: bool
    note_count: int = 0
    children: List[FolderNode] = Field(default_factory=list)


TreeNode = Union[FolderGroup, FolderNode]


class SystemStats(BaseModel):
    """Instance-wide counts for the admin dashboard."""

    user_count: int
    total_notes: int
    public_notes: int
    private_notes: int
    total_folders: int
    total_tags: int


class UserStats(BaseModel):
    """Per-user counts."""

    note_count: int
    folder_count: int
    trash_count: int
    tag_count: int
