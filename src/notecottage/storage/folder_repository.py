"""Repository for the folder hierarchy.

Folders form a forest. Siblings (folders sharing a parent, or all
top-level folders) are ordered by a gap-free ``position`` starting at 0.
The store has no constraint preventing cycles, so every reparenting path
goes through the descendant check here.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from notecottage.config import config
from notecottage.exceptions import (
    ErrorCode,
    FolderCycleError,
    FolderNotFoundError,
    ProtectedFolderError,
    ValidationError,
)
from notecottage.models.db_models import DBFolder, DBNote, db_now
from notecottage.models.schema import Folder, FolderUpdate, ensure_timezone_aware
from notecottage.storage.database import Database
from notecottage.storage.fts_index import FtsIndex

logger = logging.getLogger(__name__)

# Sentinel for "keep the current parent" in reorder(); None means top level
UNCHANGED = object()


def is_descendant_in(
    parents: Dict[int, Optional[int]],
    candidate_id: int,
    ancestor_id: int,
    max_depth: Optional[int] = None,
) -> bool:
    """Whether ``candidate_id`` is ``ancestor_id`` or lies beneath it.

    Walks parent pointers upward from the candidate using an in-memory
    ``id -> parent_id`` map. A walk that revisits a folder, exceeds the depth
    cap or reaches a parent missing from the map is reported as a descendant,
    so callers refuse the move rather than risk a cycle.
    """
    if candidate_id not in parents:
        return False
    limit = max_depth or config.max_folder_depth
    visited = set()
    current: Optional[int] = candidate_id
    while current is not None:
        if current == ancestor_id:
            return True
        if current in visited or len(visited) >= limit:
            logger.warning(
                f"Folder chain from {candidate_id} does not terminate; "
                "treating as descendant"
            )
            return True
        visited.add(current)
        if current not in parents:
            logger.warning(
                f"Folder chain from {candidate_id} references missing folder {current}"
            )
            return True
        current = parents[current]
    return False


class FolderRepository:
    """Repository for folder storage, ordering and reparenting."""

    def __init__(self, db: Database, fts: Optional[FtsIndex] = None):
        """Initialize the repository.

        Args:
            db: Database handle.
            fts: Search index; hard deletes remove the index rows of the
                notes they cascade to.
        """
        self.db = db
        self.fts = fts or FtsIndex(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _db_to_model(db_folder: DBFolder) -> Folder:
        return Folder(
            id=db_folder.id,
            name=db_folder.name,
            parent_id=db_folder.parent_id,
            color=db_folder.color,
            icon=db_folder.icon,
            position=db_folder.position,
            user_id=db_folder.user_id,
            is_public=bool(db_folder.is_public),
            is_default=bool(db_folder.is_default),
            created_at=ensure_timezone_aware(db_folder.created_at),
            updated_at=ensure_timezone_aware(db_folder.updated_at),
        )

    @staticmethod
    def _require(session: Session, folder_id: int) -> DBFolder:
        db_folder = session.get(DBFolder, folder_id)
        if db_folder is None:
            raise FolderNotFoundError(folder_id)
        return db_folder

    @staticmethod
    def _parent_map(session: Session) -> Dict[int, Optional[int]]:
        rows = session.execute(select(DBFolder.id, DBFolder.parent_id)).all()
        return {folder_id: parent_id for folder_id, parent_id in rows}

    @staticmethod
    def _siblings(session: Session, parent_id: Optional[int], exclude_id: int) -> List[DBFolder]:
        # "parent_id IS ?" in SQL; SQLAlchemy renders IS NULL for None
        query = (
            select(DBFolder)
            .where(DBFolder.parent_id.is_(None) if parent_id is None
                   else DBFolder.parent_id == parent_id)
            .where(DBFolder.id != exclude_id)
            .order_by(DBFolder.position, DBFolder.id)
        )
        return list(session.scalars(query).all())

    @staticmethod
    def _validate_name(name: Optional[str]) -> str:
        if name is None or not name.strip():
            raise ValidationError(
                "Folder name is required",
                field="name",
                code=ErrorCode.FOLDER_NAME_REQUIRED,
            )
        return name.strip()

    def _check_parent(
        self, session: Session, folder_id: Optional[int], parent_id: Optional[int]
    ) -> None:
        if parent_id is None:
            return
        if session.get(DBFolder, parent_id) is None:
            raise ValidationError(
                f"Parent folder {parent_id} not found",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.PARENT_NOT_FOUND,
            )
        if folder_id is not None and is_descendant_in(
            self._parent_map(session), parent_id, folder_id
        ):
            raise FolderCycleError(folder_id, parent_id)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        parent_id: Optional[int] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        user_id: Optional[int] = None,
        is_public: bool = False,
        is_default: bool = False,
        session: Optional[Session] = None,
    ) -> Folder:
        """Create a folder after the last of its future siblings.

        Raises:
            ValidationError: If the name is blank or the parent does not exist.
        """
        name = self._validate_name(name)
        with self.db.session_scope(session, "folder_create") as s:
            self._check_parent(s, None, parent_id)
            parent_clause = (
                DBFolder.parent_id.is_(None) if parent_id is None
                else DBFolder.parent_id == parent_id
            )
            max_position = s.scalar(select(func.max(DBFolder.position)).where(parent_clause))
            now = db_now()
            db_folder = DBFolder(
                name=name,
                parent_id=parent_id,
                color=color,
                icon=icon if icon is not None else config.default_folder_icon,
                position=0 if max_position is None else max_position + 1,
                user_id=user_id,
                is_public=bool(is_public),
                is_default=bool(is_default),
                created_at=now,
                updated_at=now,
            )
            s.add(db_folder)
            s.flush()
            folder = self._db_to_model(db_folder)
        logger.info(f"Created folder {folder.id} '{folder.name}' (parent={parent_id})")
        return folder

    def get(self, folder_id: int, session: Optional[Session] = None) -> Optional[Folder]:
        """Get a folder by id, or None if it does not exist."""
        with self.db.session_scope(session, "folder_get") as s:
            db_folder = s.get(DBFolder, folder_id)
            return self._db_to_model(db_folder) if db_folder else None

    def list_all(self) -> List[Folder]:
        """Every folder, grouped by parent and ordered by position."""
        with self.db.transaction("folder_list") as session:
            rows = session.scalars(
                select(DBFolder).order_by(
                    DBFolder.parent_id, DBFolder.position, DBFolder.name
                )
            ).all()
            return [self._db_to_model(row) for row in rows]

    def list_for_user(self, user_id: Optional[int]) -> List[Folder]:
        """Folders visible to a user: public ones plus the user's own.

        Without a user only public folders are returned.
        """
        query = select(DBFolder)
        if user_id is None:
            query = query.where(DBFolder.is_public.is_(True))
        else:
            query = query.where(
                (DBFolder.is_public.is_(True)) | (DBFolder.user_id == user_id)
            )
        query = query.order_by(DBFolder.parent_id, DBFolder.position, DBFolder.name)
        with self.db.transaction("folder_list_for_user") as session:
            return [self._db_to_model(row) for row in session.scalars(query).all()]

    def get_default_folder_for_user(
        self, user_id: Optional[int], session: Optional[Session] = None
    ) -> Optional[Folder]:
        """The user's personal default folder, if one exists."""
        if user_id is None:
            return None
        with self.db.session_scope(session, "folder_default") as s:
            db_folder = s.scalars(
                select(DBFolder)
                .where(DBFolder.user_id == user_id, DBFolder.is_default.is_(True))
                .order_by(DBFolder.id)
                .limit(1)
            ).first()
            return self._db_to_model(db_folder) if db_folder else None

    # ------------------------------------------------------------------
    # Typed updates
    # ------------------------------------------------------------------

    def rename(self, folder_id: int, name: str) -> Folder:
        return self.update(folder_id, FolderUpdate(name=self._validate_name(name)))

    def set_icon(self, folder_id: int, icon: Optional[str]) -> Folder:
        return self.update(folder_id, FolderUpdate(icon=icon))

    def set_color(self, folder_id: int, color: Optional[str]) -> Folder:
        return self.update(folder_id, FolderUpdate(color=color))

    def set_public(self, folder_id: int, is_public: bool) -> Folder:
        return self.update(folder_id, FolderUpdate(is_public=is_public))

    def set_parent(self, folder_id: int, parent_id: Optional[int]) -> Folder:
        """Reparent without renumbering siblings; use ``reorder`` for that."""
        return self.update(folder_id, FolderUpdate(parent_id=parent_id))

    def update(self, folder_id: int, changes: FolderUpdate) -> Folder:
        """Apply the fields explicitly set on ``changes``.

        Raises:
            FolderNotFoundError: If the folder does not exist.
            FolderCycleError: If the new parent lies beneath the folder.
            ProtectedFolderError: If a default folder would leave the top level.
        """
        fields = changes.model_fields_set
        with self.db.transaction("folder_update") as session:
            db_folder = self._require(session, folder_id)
            if "parent_id" in fields and changes.parent_id != db_folder.parent_id:
                if db_folder.is_default and changes.parent_id is not None:
                    raise ProtectedFolderError(folder_id, "moved out of the top level")
                self._check_parent(session, folder_id, changes.parent_id)
                db_folder.parent_id = changes.parent_id
            if "name" in fields:
                db_folder.name = self._validate_name(changes.name)
            if "color" in fields:
                db_folder.color = changes.color
            if "icon" in fields:
                db_folder.icon = changes.icon
            if "is_public" in fields and changes.is_public is not None:
                db_folder.is_public = changes.is_public
            db_folder.updated_at = db_now()
            session.flush()
            folder = self._db_to_model(db_folder)
        logger.debug(f"Updated folder {folder_id}: {sorted(fields)}")
        return folder

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def reorder(
        self,
        folder_id: int,
        new_position: int,
        new_parent_id=UNCHANGED,
        is_public: Optional[bool] = None,
    ) -> Folder:
        """Move a folder to ``new_position`` among the siblings of ``new_parent_id``.

        Omitting ``new_parent_id`` keeps the current parent; passing ``None``
        moves the folder to the top level. When the parent changes, the old
        sibling group is compacted first. The new group is then renumbered
        0..n with the folder spliced in at ``new_position`` (clamped to the
        group length). ``is_public`` optionally changes the privacy flag in
        the same transaction, as when a folder is dragged between the
        private and shared roots.

        Raises:
            FolderNotFoundError: If the folder does not exist.
            ValidationError: If the position is negative or the parent is missing.
            FolderCycleError: If the new parent lies beneath the folder.
            ProtectedFolderError: If a default folder would leave the top level.
        """
        if new_position is None or new_position < 0:
            raise ValidationError(
                "Position must be a non-negative integer",
                field="position",
                value=new_position,
                code=ErrorCode.INVALID_POSITION,
            )
        with self.db.transaction("folder_reorder") as session:
            db_folder = self._require(session, folder_id)
            old_parent_id = db_folder.parent_id
            parent_id = old_parent_id if new_parent_id is UNCHANGED else new_parent_id

            if parent_id != old_parent_id:
                if db_folder.is_default and parent_id is not None:
                    raise ProtectedFolderError(folder_id, "moved out of the top level")
                self._check_parent(session, folder_id, parent_id)

                for index, sibling in enumerate(
                    self._siblings(session, old_parent_id, folder_id)
                ):
                    sibling.position = index

            siblings = self._siblings(session, parent_id, folder_id)
            siblings.insert(min(new_position, len(siblings)), db_folder)
            for index, sibling in enumerate(siblings):
                sibling.position = index

            db_folder.parent_id = parent_id
            if is_public is not None:
                db_folder.is_public = is_public
            db_folder.updated_at = db_now()
            session.flush()
            folder = self._db_to_model(db_folder)
        logger.info(
            f"Reordered folder {folder_id} to position {folder.position} "
            f"under parent {folder.parent_id}"
        )
        return folder

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def subtree_ids(self, session: Session, folder_id: int) -> List[int]:
        """Ids of a folder and all folders beneath it."""
        parents = self._parent_map(session)
        children: Dict[Optional[int], List[int]] = {}
        for child_id, parent_id in parents.items():
            children.setdefault(parent_id, []).append(child_id)
        result = []
        stack = [folder_id]
        seen = set()
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(children.get(current, []))
        return result

    def delete(self, folder_id: int) -> int:
        """Delete a folder together with its subfolders and their notes.

        Returns:
            Number of notes removed with the subtree.

        Raises:
            FolderNotFoundError: If the folder does not exist.
            ProtectedFolderError: If the folder is a default folder.
        """
        with self.db.transaction("folder_delete") as session:
            db_folder = self._require(session, folder_id)
            if db_folder.is_default:
                raise ProtectedFolderError(folder_id, "deleted")
            folder_ids = self.subtree_ids(session, folder_id)
            note_ids = list(session.scalars(
                select(DBNote.id).where(DBNote.folder_id.in_(folder_ids))
            ).all())
            self.fts.remove_notes(session, note_ids)
            parent_id = db_folder.parent_id
            session.delete(db_folder)
            session.flush()
            for index, sibling in enumerate(self._siblings(session, parent_id, folder_id)):
                sibling.position = index
        logger.info(
            f"Deleted folder {folder_id} with {len(folder_ids) - 1} subfolders "
            f"and {len(note_ids)} notes"
        )
        return len(note_ids)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_descendant(self, candidate_id: int, ancestor_id: int) -> bool:
        """Whether ``candidate_id`` is ``ancestor_id`` or lies beneath it."""
        with self.db.transaction("folder_is_descendant") as session:
            parents = self._parent_map(session)
        return is_descendant_in(parents, candidate_id, ancestor_id)

    def ancestors(self, folder_id: int) -> List[Folder]:
        """Breadcrumb path from the top-level folder down to ``folder_id``.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.db.transaction("folder_ancestors") as session:
            db_folder = self._require(session, folder_id)
            path = [db_folder]
            seen = {db_folder.id}
            while path[-1].parent_id is not None and len(path) < config.max_folder_depth:
                parent = session.get(DBFolder, path[-1].parent_id)
                if parent is None or parent.id in seen:
                    break
                seen.add(parent.id)
                path.append(parent)
            return [self._db_to_model(f) for f in reversed(path)]

    def note_count(self, folder_id: int) -> int:
        """Non-trashed notes directly in a folder (not counting subfolders)."""
        with self.db.transaction("folder_note_count") as session:
            return session.scalar(
                select(func.count(DBNote.id)).where(
                    DBNote.folder_id == folder_id, DBNote.deleted_at.is_(None)
                )
            ) or 0

    def note_counts(self) -> Dict[int, int]:
        """Non-trashed note count per folder id in one query."""
        with self.db.transaction("folder_note_counts") as session:
            rows = session.execute(
                select(DBNote.folder_id, func.count(DBNote.id))
                .where(DBNote.folder_id.is_not(None), DBNote.deleted_at.is_(None))
                .group_by(DBNote.folder_id)
            ).all()
        return {folder_id: count for folder_id, count in rows}

    def count(self, user_id: Optional[int] = None) -> int:
        query = select(func.count(DBFolder.id))
        if user_id is not None:
            query = query.where(DBFolder.user_id == user_id)
        with self.db.transaction("folder_count") as session:
            return session.scalar(query) or 0
