"""Permission-checked note and folder operations.

This is the surface the HTTP layer calls: every method takes the acting
user's id, consults the access predicates and raises
``PermissionDeniedError`` before touching anything it may not.
"""
import logging
from typing import Dict, List, Optional, Set, Tuple

from notecottage.config import LEGACY_DEFAULT_FOLDER_ID
from notecottage.exceptions import (
    FolderNotFoundError,
    NoteNotFoundError,
    PermissionDeniedError,
)
from notecottage.models.schema import (
    Folder,
    FolderGroup,
    FolderUpdate,
    Note,
    NoteSummary,
    TagCount,
    TitleMapEntry,
    WikiLink,
)
from notecottage.services.access_control import (
    can_access_folder,
    can_access_note,
    can_modify_folder,
    can_modify_note,
)
from notecottage.services.folder_tree import build_folder_tree
from notecottage.storage.database import Database
from notecottage.storage.folder_repository import UNCHANGED, FolderRepository
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.note_repository import NoteRepository
from notecottage.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class NotebookService:
    """Notes, folders and tags as seen by one acting user."""

    def __init__(self, db: Database):
        self.db = db
        self.fts = FtsIndex(db)
        self.tags = TagRepository(db)
        self.folders = FolderRepository(db, fts=self.fts)
        self.notes = NoteRepository(db, tags=self.tags, fts=self.fts)

    # ------------------------------------------------------------------
    # Permission helpers
    # ------------------------------------------------------------------

    def _load_note(self, note_id: int) -> Tuple[Note, Optional[Folder]]:
        note = self.notes.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        folder = self.folders.get(note.folder_id) if note.folder_id is not None else None
        return note, folder

    def _readable_note(self, actor_id: Optional[int], note_id: int) -> Note:
        note, folder = self._load_note(note_id)
        if not can_access_note(note, folder, actor_id):
            raise PermissionDeniedError(
                "You do not have access to this note",
                actor_id=actor_id, resource="note", resource_id=note_id,
            )
        return note

    def _writable_note(self, actor_id: Optional[int], note_id: int) -> Note:
        note, folder = self._load_note(note_id)
        if not can_modify_note(note, folder, actor_id):
            raise PermissionDeniedError(
                "You do not have permission to modify this note",
                actor_id=actor_id, resource="note", resource_id=note_id,
            )
        return note

    def _readable_folder(self, actor_id: Optional[int], folder_id: int) -> Folder:
        folder = self.folders.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        if not can_access_folder(folder, actor_id):
            raise PermissionDeniedError(
                "You do not have access to this folder",
                actor_id=actor_id, resource="folder", resource_id=folder_id,
            )
        return folder

    def _writable_folder(self, actor_id: Optional[int], folder_id: int) -> Folder:
        folder = self.folders.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        if not can_modify_folder(folder, actor_id):
            raise PermissionDeniedError(
                "Only the folder owner can modify this folder",
                actor_id=actor_id, resource="folder", resource_id=folder_id,
            )
        return folder

    def _visible_note_ids(self, actor_id: Optional[int]) -> Set[int]:
        return {n.id for n in self.notes.list_active_for_user(actor_id)}

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create_note(
        self,
        actor_id: Optional[int],
        title: str,
        content: str,
        folder_id: Optional[int] = None,
    ) -> Note:
        """Create a note owned by the actor, in a folder they can see.

        Without a folder the note goes to the actor's default folder, or the
        legacy "Uncategorized" folder when they have none; the target must
        still be readable by the actor.
        """
        if folder_id is None:
            default = self.folders.get_default_folder_for_user(actor_id)
            folder_id = default.id if default else LEGACY_DEFAULT_FOLDER_ID
        self._readable_folder(actor_id, folder_id)
        return self.notes.create(title, content, folder_id=folder_id, user_id=actor_id)

    def get_note(self, actor_id: Optional[int], note_id: int) -> Note:
        return self._readable_note(actor_id, note_id)

    def update_note(self, actor_id: Optional[int], note_id: int, content: str) -> Note:
        self._writable_note(actor_id, note_id)
        return self.notes.update_content(note_id, content)

    def trash_note(self, actor_id: Optional[int], note_id: int) -> bool:
        self._writable_note(actor_id, note_id)
        return self.notes.soft_delete(note_id)

    def restore_note(self, actor_id: Optional[int], note_id: int) -> bool:
        self._writable_note(actor_id, note_id)
        return self.notes.restore(note_id)

    def purge_note(self, actor_id: Optional[int], note_id: int) -> None:
        self._writable_note(actor_id, note_id)
        self.notes.purge(note_id)

    def empty_trash(self, actor_id: Optional[int]) -> int:
        """Permanently delete the actor's trashed notes.

        The anonymous actor only reaches trashed notes without an owner.
        """
        return self.notes.empty_trash(user_id=actor_id)

    def move_note(
        self, actor_id: Optional[int], note_id: int, folder_id: Optional[int]
    ) -> Note:
        self._writable_note(actor_id, note_id)
        if folder_id is not None:
            self._readable_folder(actor_id, folder_id)
        return self.notes.move(note_id, folder_id)

    def reorder_note(
        self, actor_id: Optional[int], note_id: int, folder_id: Optional[int], position: int
    ) -> Note:
        self._writable_note(actor_id, note_id)
        if folder_id is not None:
            self._readable_folder(actor_id, folder_id)
        return self.notes.reorder(note_id, folder_id, position)

    def list_notes(self, actor_id: Optional[int]) -> List[NoteSummary]:
        return self.notes.list_active_for_user(actor_id)

    def list_trash(self, actor_id: Optional[int]) -> List[NoteSummary]:
        """The actor's trashed notes; ownerless ones for the anonymous actor."""
        return self.notes.list_trash(user_id=actor_id)

    def list_folder_notes(self, actor_id: Optional[int], folder_id: int) -> List[NoteSummary]:
        self._readable_folder(actor_id, folder_id)
        return self.notes.list_by_folder(folder_id)

    def search(self, actor_id: Optional[int], query: str) -> List[NoteSummary]:
        """Ranked search results restricted to notes the actor can read."""
        return self.notes.search(query, actor_id=actor_id)

    def title_map(self, actor_id: Optional[int]) -> Dict[str, TitleMapEntry]:
        visible = self._visible_note_ids(actor_id)
        return {
            key: entry for key, entry in self.notes.title_map().items()
            if entry.id in visible
        }

    def resolve_wiki_links(self, actor_id: Optional[int], content: str) -> List[WikiLink]:
        """Resolve links, leaving targets the actor cannot read unresolved."""
        visible = self._visible_note_ids(actor_id)
        links = self.notes.resolve_wiki_links(content)
        for link in links:
            if link.note_id is not None and link.note_id not in visible:
                link.note_id = None
        return links

    def backlinks(self, actor_id: Optional[int], note_id: int) -> List[NoteSummary]:
        self._readable_note(actor_id, note_id)
        visible = self._visible_note_ids(actor_id)
        return [n for n in self.notes.backlinks(note_id) if n.id in visible]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def list_tags(self) -> List[TagCount]:
        return self.tags.list_all()

    def notes_for_tag(self, actor_id: Optional[int], tag_name: str) -> List[NoteSummary]:
        ids = self.tags.list_notes_for_tag(tag_name)
        visible = {n.id: n for n in self.notes.list_active_for_user(actor_id)}
        return [visible[i] for i in ids if i in visible]

    def delete_tag(self, tag_name: str) -> None:
        self.tags.delete(tag_name)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(
        self,
        actor_id: Optional[int],
        name: str,
        parent_id: Optional[int] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        is_public: bool = False,
    ) -> Folder:
        """Create a folder owned by the actor under a parent they can see."""
        if parent_id is not None:
            self._readable_folder(actor_id, parent_id)
        return self.folders.create(
            name,
            parent_id=parent_id,
            color=color,
            icon=icon,
            user_id=actor_id,
            is_public=is_public,
        )

    def update_folder(
        self, actor_id: Optional[int], folder_id: int, changes: FolderUpdate
    ) -> Folder:
        self._writable_folder(actor_id, folder_id)
        if "parent_id" in changes.model_fields_set and changes.parent_id is not None:
            self._readable_folder(actor_id, changes.parent_id)
        return self.folders.update(folder_id, changes)

    def reorder_folder(
        self,
        actor_id: Optional[int],
        folder_id: int,
        new_position: int,
        new_parent_id=UNCHANGED,
        is_public: Optional[bool] = None,
    ) -> Folder:
        self._writable_folder(actor_id, folder_id)
        if new_parent_id is not UNCHANGED and new_parent_id is not None:
            self._readable_folder(actor_id, new_parent_id)
        return self.folders.reorder(
            folder_id, new_position, new_parent_id=new_parent_id, is_public=is_public
        )

    def delete_folder(self, actor_id: Optional[int], folder_id: int) -> int:
        self._writable_folder(actor_id, folder_id)
        return self.folders.delete(folder_id)

    def folder_tree(self, actor_id: Optional[int]) -> List[FolderGroup]:
        """The actor's visible folders under the Private and Shared roots."""
        return build_folder_tree(
            self.folders.list_for_user(actor_id), self.folders.note_counts()
        )

    def breadcrumbs(self, actor_id: Optional[int], folder_id: int) -> List[Folder]:
        self._readable_folder(actor_id, folder_id)
        return [
            f for f in self.folders.ancestors(folder_id)
            if can_access_folder(f, actor_id)
        ]
