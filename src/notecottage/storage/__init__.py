"""Storage layer for NoteCottage."""

from notecottage.storage.database import Database
from notecottage.storage.folder_repository import FolderRepository
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.note_repository import NoteRepository
from notecottage.storage.tag_repository import TagRepository
from notecottage.storage.user_repository import SettingsRepository, UserRepository

__all__ = [
    "Database",
    "FtsIndex",
    "TagRepository",
    "FolderRepository",
    "NoteRepository",
    "UserRepository",
    "SettingsRepository",
]
