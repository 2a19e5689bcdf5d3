"""Repository for notes: lifecycle, trash, ordering and lookups.

Every write that changes note text runs the tag relink and the search
index hook inside the same transaction as the row change, so tags, index
and table cannot drift apart.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from notecottage.config import LEGACY_DEFAULT_FOLDER_ID, config
from notecottage.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    NoteNotFoundError,
    ValidationError,
)
from notecottage.models.db_models import DBFolder, DBNote, db_now, note_tags
from notecottage.models.schema import (
    Note,
    NoteSummary,
    TitleMapEntry,
    WikiLink,
    ensure_timezone_aware,
)
from notecottage.observability import timed_operation
from notecottage.parsing import extract_wiki_links, links_to_title
from notecottage.storage.database import UNRESTRICTED, Database
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class NoteRepository:
    """Repository for note storage and retrieval."""

    def __init__(
        self,
        db: Database,
        tags: Optional[TagRepository] = None,
        fts: Optional[FtsIndex] = None,
    ):
        """Initialize the repository.

        Args:
            db: Database handle.
            tags: Tag repository used to relink tags on content changes.
            fts: Search index kept in step with note writes.
        """
        self.db = db
        self.tags = tags or TagRepository(db)
        self.fts = fts or FtsIndex(db)

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------

    def _db_to_model(self, db_note: DBNote, tags: Optional[List[str]] = None) -> Note:
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content,
            folder_id=db_note.folder_id,
            user_id=db_note.user_id,
            position=db_note.position,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
            deleted_at=ensure_timezone_aware(db_note.deleted_at),
            tags=tags if tags is not None else [t.name for t in db_note.tags],
        )

    def _summaries(
        self,
        session: Session,
        db_notes: Iterable[DBNote],
        ranks: Optional[Dict[int, float]] = None,
    ) -> List[NoteSummary]:
        db_notes = list(db_notes)
        tag_map = self.tags.tags_by_note([n.id for n in db_notes], session=session)
        return [
            NoteSummary(
                id=n.id,
                title=n.title,
                preview=(n.content or "")[:config.preview_length],
                folder_id=n.folder_id,
                user_id=n.user_id,
                position=n.position,
                created_at=ensure_timezone_aware(n.created_at),
                updated_at=ensure_timezone_aware(n.updated_at),
                deleted_at=ensure_timezone_aware(n.deleted_at),
                tags=tag_map.get(n.id, []),
                rank=ranks.get(n.id) if ranks else None,
            )
            for n in db_notes
        ]

    @staticmethod
    def _require(session: Session, note_id: int) -> DBNote:
        db_note = session.get(DBNote, note_id)
        if db_note is None:
            raise NoteNotFoundError(note_id)
        return db_note

    @staticmethod
    def _require_folder(session: Session, folder_id: Optional[int]) -> None:
        if folder_id is not None and session.get(DBFolder, folder_id) is None:
            raise FolderNotFoundError(folder_id)

    @staticmethod
    def _scope_to_owner(query, user_id):
        if user_id is UNRESTRICTED:
            return query
        if user_id is None:
            return query.where(DBNote.user_id.is_(None))
        return query.where(DBNote.user_id == user_id)

    @staticmethod
    def _validate_content(content: Optional[str]) -> str:
        if content is None or not content.strip():
            raise ValidationError(
                "Note content is required",
                field="content",
                code=ErrorCode.NOTE_CONTENT_REQUIRED,
            )
        return content

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        content: str,
        folder_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> Note:
        """Create a note, index it and link its tags in one transaction.

        Without a folder the note lands in the owner's default folder, or in
        the legacy "Uncategorized" folder when the owner has none.

        Raises:
            ValidationError: If title or content is blank.
            FolderNotFoundError: If ``folder_id`` does not exist.
        """
        if title is None or not title.strip():
            raise ValidationError(
                "Note title is required",
                field="title",
                code=ErrorCode.NOTE_TITLE_REQUIRED,
            )
        content = self._validate_content(content)
        title = title.strip()

        with timed_operation("note_create", title=title[:30]):
            with self.db.transaction("note_create") as session:
                if folder_id is None:
                    folder_id = self._default_folder_id(session, user_id)
                self._require_folder(session, folder_id)
                now = db_now()
                db_note = DBNote(
                    title=title,
                    content=content,
                    folder_id=folder_id,
                    user_id=user_id,
                    position=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(db_note)
                session.flush()
                self.fts.index_note(session, db_note.id, title, content)
                applied = self.tags.relink(db_note.id, content, session=session)
                note = self._db_to_model(db_note, tags=sorted(applied))

        logger.info(f"Created note {note.id} '{note.title}' in folder {note.folder_id}")
        return note

    def _default_folder_id(self, session: Session, user_id: Optional[int]) -> int:
        if user_id is not None:
            default_id = session.scalar(
                select(DBFolder.id)
                .where(DBFolder.user_id == user_id, DBFolder.is_default.is_(True))
                .order_by(DBFolder.id)
                .limit(1)
            )
            if default_id is not None:
                return default_id
        return LEGACY_DEFAULT_FOLDER_ID

    def get(self, note_id: int) -> Optional[Note]:
        """Get a note by id, including trashed notes; None if missing."""
        with self.db.transaction("note_get") as session:
            db_note = session.get(DBNote, note_id)
            if db_note is None:
                return None
            return self._db_to_model(
                db_note, tags=self.tags.get_tags_for_note(note_id, session=session)
            )

    def update_content(self, note_id: int, content: str) -> Note:
        """Replace a note's content; titles are fixed after creation.

        Raises:
            ValidationError: If content is blank.
            NoteNotFoundError: If the note does not exist.
        """
        content = self._validate_content(content)
        with self.db.transaction("note_update") as session:
            db_note = self._require(session, note_id)
            db_note.content = content
            db_note.updated_at = db_now()
            session.flush()
            self.fts.reindex_note(session, note_id, db_note.title, content)
            applied = self.tags.relink(note_id, content, session=session)
            note = self._db_to_model(db_note, tags=sorted(applied))
        logger.debug(f"Updated content of note {note_id}")
        return note

    def soft_delete(self, note_id: int) -> bool:
        """Move a note to the trash.

        Returns:
            True if the note was trashed, False if it already was.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.db.transaction("note_soft_delete") as session:
            db_note = self._require(session, note_id)
            if db_note.deleted_at is not None:
                return False
            db_note.deleted_at = db_now()
        logger.info(f"Moved note {note_id} to trash")
        return True

    def restore(self, note_id: int) -> bool:
        """Bring a note back from the trash and re-derive its tags.

        Returns:
            True if the note was restored, False if it was not in the trash.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.db.transaction("note_restore") as session:
            db_note = self._require(session, note_id)
            if db_note.deleted_at is None:
                return False
            db_note.deleted_at = None
            self.tags.relink(note_id, db_note.content, session=session)
        logger.info(f"Restored note {note_id} from trash")
        return True

    def purge(self, note_id: int) -> None:
        """Permanently delete a note with its tag links and index entry.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.db.transaction("note_purge") as session:
            db_note = self._require(session, note_id)
            self.fts.remove_notes(session, [note_id])
            session.delete(db_note)
        logger.info(f"Permanently deleted note {note_id}")

    def empty_trash(self, user_id=UNRESTRICTED) -> int:
        """Permanently delete trashed notes.

        Pass ``user_id`` to limit this to one owner; ``None`` selects the
        notes that have no owner.

        Returns:
            Number of notes removed.
        """
        query = self._scope_to_owner(
            select(DBNote).where(DBNote.deleted_at.is_not(None)), user_id
        )
        with self.db.transaction("note_empty_trash") as session:
            trashed = list(session.scalars(query).all())
            self.fts.remove_notes(session, [n.id for n in trashed])
            for db_note in trashed:
                session.delete(db_note)
        logger.info(f"Emptied trash: {len(trashed)} notes removed")
        return len(trashed)

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def move(self, note_id: int, folder_id: Optional[int]) -> Note:
        """Put a note in another folder, keeping its position value.

        Raises:
            NoteNotFoundError: If the note does not exist.
            FolderNotFoundError: If the target folder does not exist.
        """
        with self.db.transaction("note_move") as session:
            db_note = self._require(session, note_id)
            self._require_folder(session, folder_id)
            db_note.folder_id = folder_id
            db_note.updated_at = db_now()
            session.flush()
            note = self._db_to_model(db_note)
        logger.debug(f"Moved note {note_id} to folder {folder_id}")
        return note

    def reorder(self, note_id: int, folder_id: Optional[int], position: int) -> Note:
        """Set a note's folder and explicit position; siblings are not renumbered.

        Raises:
            NoteNotFoundError: If the note does not exist.
            FolderNotFoundError: If the target folder does not exist.
            ValidationError: If the position is negative.
        """
        if position is None or position < 0:
            raise ValidationError(
                "Position must be a non-negative integer",
                field="position",
                value=position,
                code=ErrorCode.INVALID_POSITION,
            )
        with self.db.transaction("note_reorder") as session:
            db_note = self._require(session, note_id)
            self._require_folder(session, folder_id)
            db_note.folder_id = folder_id
            db_note.position = position
            db_note.updated_at = db_now()
            session.flush()
            note = self._db_to_model(db_note)
        return note

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_active(self) -> List[NoteSummary]:
        """Non-trashed notes, most recently updated first."""
        with self.db.transaction("note_list_active") as session:
            rows = session.scalars(
                select(DBNote)
                .where(DBNote.deleted_at.is_(None))
                .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
            ).all()
            return self._summaries(session, rows)

    def list_active_for_user(self, user_id: Optional[int]) -> List[NoteSummary]:
        """Non-trashed notes a user may read.

        That is notes without a folder plus notes in public folders or in
        folders the user owns.
        """
        owner_clause = (
            DBFolder.user_id.is_(None) if user_id is None else DBFolder.user_id == user_id
        )
        with self.db.transaction("note_list_for_user") as session:
            rows = session.scalars(
                select(DBNote)
                .outerjoin(DBFolder, DBFolder.id == DBNote.folder_id)
                .where(DBNote.deleted_at.is_(None))
                .where(or_(
                    DBNote.folder_id.is_(None),
                    DBFolder.is_public.is_(True),
                    owner_clause,
                ))
                .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
            ).all()
            return self._summaries(session, rows)

    def list_trash(self, user_id=UNRESTRICTED) -> List[NoteSummary]:
        """Trashed notes, most recently deleted first, scoped like ``empty_trash``."""
        query = self._scope_to_owner(
            select(DBNote).where(DBNote.deleted_at.is_not(None)), user_id
        )
        with self.db.transaction("note_list_trash") as session:
            rows = session.scalars(
                query.order_by(DBNote.deleted_at.desc(), DBNote.id.desc())
            ).all()
            return self._summaries(session, rows)

    def list_by_folder(self, folder_id: int) -> List[NoteSummary]:
        """Non-trashed notes directly in a folder, in position order."""
        with self.db.transaction("note_list_by_folder") as session:
            rows = session.scalars(
                select(DBNote)
                .where(DBNote.folder_id == folder_id, DBNote.deleted_at.is_(None))
                .order_by(DBNote.position, DBNote.updated_at.desc(), DBNote.id)
            ).all()
            return self._summaries(session, rows)

    def search(
        self, query: str, limit: Optional[int] = None, actor_id=UNRESTRICTED
    ) -> List[NoteSummary]:
        """Full-text search over non-trashed notes, best match first.

        With ``actor_id`` given, only notes readable by that actor are matched.
        """
        with timed_operation("note_search", query=query[:30] if query else ""):
            hits = self.fts.search(query, limit=limit, actor_id=actor_id)
            if not hits:
                return []
            ranks = {hit.note_id: hit.rank for hit in hits}
            with self.db.transaction("note_search_load") as session:
                by_id = {
                    n.id: n
                    for n in session.scalars(
                        select(DBNote).where(DBNote.id.in_(list(ranks)))
                    ).all()
                }
                ordered = [by_id[hit.note_id] for hit in hits if hit.note_id in by_id]
                return self._summaries(session, ordered, ranks=ranks)

    # ------------------------------------------------------------------
    # Wiki-links
    # ------------------------------------------------------------------

    def title_map(self) -> Dict[str, TitleMapEntry]:
        """Map lowercase titles of non-trashed notes to their note.

        Titles are not unique; on a collision the most recently updated note
        wins. Built fresh on every call.
        """
        with self.db.transaction("note_title_map") as session:
            rows = session.execute(
                select(DBNote.id, DBNote.title, DBNote.updated_at)
                .where(DBNote.deleted_at.is_(None))
                .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
            ).all()
        mapping: Dict[str, TitleMapEntry] = {}
        for note_id, title, updated_at in rows:
            key = title.lower()
            if key not in mapping:
                mapping[key] = TitleMapEntry(
                    id=note_id,
                    title=title,
                    updated_at=ensure_timezone_aware(updated_at),
                )
        return mapping

    def resolve_wiki_links(self, content: str) -> List[WikiLink]:
        """Resolve each ``[[Target]]`` in content against the title map."""
        links = extract_wiki_links(content)
        if not links:
            return []
        mapping = self.title_map()
        resolved = []
        for target, label in links:
            entry = mapping.get(target.lower())
            resolved.append(WikiLink(
                target=target,
                label=label,
                note_id=entry.id if entry else None,
            ))
        return resolved

    def backlinks(self, note_id: int) -> List[NoteSummary]:
        """Non-trashed notes whose content links to this note's title.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.db.transaction("note_backlinks") as session:
            target = self._require(session, note_id)
            candidates = session.scalars(
                select(DBNote)
                .where(
                    DBNote.deleted_at.is_(None),
                    DBNote.id != note_id,
                    DBNote.content.contains("[["),
                )
                .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
            ).all()
            linking = [n for n in candidates if links_to_title(n.content, target.title)]
            return self._summaries(session, linking)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def count(self, user_id: Optional[int] = None, trashed: bool = False) -> int:
        """Count active (or trashed) notes, optionally for one owner."""
        query = select(func.count(DBNote.id)).where(
            DBNote.deleted_at.is_not(None) if trashed else DBNote.deleted_at.is_(None)
        )
        if user_id is not None:
            query = query.where(DBNote.user_id == user_id)
        with self.db.transaction("note_count") as session:
            return session.scalar(query) or 0

    def count_by_visibility(self) -> Dict[str, int]:
        """Active notes split by whether their folder is public."""
        with self.db.transaction("note_count_by_visibility") as session:
            rows = session.execute(
                select(DBFolder.is_public, func.count(DBNote.id))
                .select_from(DBNote)
                .outerjoin(DBFolder, DBFolder.id == DBNote.folder_id)
                .where(DBNote.deleted_at.is_(None))
                .group_by(DBFolder.is_public)
            ).all()
        counts = {"public": 0, "private": 0}
        for is_public, count in rows:
            counts["public" if is_public else "private"] += count
        return counts

    def tag_count_for_user(self, user_id: int) -> int:
        """Distinct tags on a user's active notes."""
        with self.db.transaction("note_user_tag_count") as session:
            return session.scalar(
                select(func.count(func.distinct(note_tags.c.tag_id)))
                .select_from(note_tags)
                .join(DBNote, DBNote.id == note_tags.c.note_id)
                .where(DBNote.user_id == user_id, DBNote.deleted_at.is_(None))
            ) or 0
