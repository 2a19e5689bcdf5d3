"""Repository for tag storage and note-tag linking."""
import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, func, select, text
from sqlalchemy.orm import Session

from notecottage.exceptions import (
    ErrorCode,
    TagInUseError,
    TagNotFoundError,
    ValidationError,
)
from notecottage.models.db_models import DBNote, DBTag, db_now, note_tags
from notecottage.models.schema import TagCount
from notecottage.parsing import TAG_PATTERN, extract_tags
from notecottage.storage.database import Database

logger = logging.getLogger(__name__)


class TagRepository:
    """Repository for managing tags.

    Tags are derived from note content; this repository keeps the
    ``note_tags`` join table in step with it. Tags whose last note goes
    away are kept until deleted explicitly.
    """

    def __init__(self, db: Database):
        """Initialize the tag repository.

        Args:
            db: Database handle shared with the other repositories.
        """
        self.db = db

    @staticmethod
    def _normalize(tag_name: str) -> str:
        name = (tag_name or "").strip().lstrip("#").lower()
        if not name or not TAG_PATTERN.fullmatch(f"#{name}"):
            raise ValidationError(
                f"Invalid tag name: {tag_name!r}",
                field="name",
                value=tag_name,
                code=ErrorCode.TAG_INVALID,
            )
        return name

    def get_or_create(self, tag_name: str, session: Optional[Session] = None) -> int:
        """Get an existing tag or create a new one.

        Args:
            tag_name: The name of the tag (normalized to lowercase).
            session: Optional session to join an open transaction.

        Returns:
            The tag id.
        """
        name = self._normalize(tag_name)
        with self.db.session_scope(session, "tag_get_or_create") as s:
            # INSERT OR IGNORE handles concurrent creation of the same name
            s.execute(
                text("INSERT OR IGNORE INTO tags (name, created_at) VALUES (:name, :now)"),
                {"name": name, "now": db_now()},
            )
            return s.scalar(select(DBTag.id).where(DBTag.name == name))

    def link_note_to_tag(
        self, note_id: int, tag_id: int, session: Optional[Session] = None
    ) -> None:
        """Associate a note with a tag; linking an existing pair is a no-op."""
        with self.db.session_scope(session, "tag_link") as s:
            s.execute(
                text(
                    "INSERT OR IGNORE INTO note_tags (note_id, tag_id, created_at) "
                    "VALUES (:note_id, :tag_id, :now)"
                ),
                {"note_id": note_id, "tag_id": tag_id, "now": db_now()},
            )

    def relink(
        self, note_id: int, content: str, session: Optional[Session] = None
    ) -> Set[str]:
        """Replace a note's tag associations with the tags found in content.

        Clearing and re-adding run in one transaction, so a failure leaves
        the previous associations in place.

        Returns:
            The applied tag names.
        """
        tags = extract_tags(content)
        with self.db.session_scope(session, "tag_relink") as s:
            s.execute(delete(note_tags).where(note_tags.c.note_id == note_id))
            for name in tags:
                tag_id = self.get_or_create(name, session=s)
                self.link_note_to_tag(note_id, tag_id, session=s)
        logger.debug(f"Relinked note {note_id} to {len(tags)} tags")
        return tags

    def get_tags_for_note(self, note_id: int, session: Optional[Session] = None) -> List[str]:
        """Get the tag names of a note, sorted by name."""
        with self.db.session_scope(session, "tags_for_note") as s:
            rows = s.execute(
                select(DBTag.name)
                .join(note_tags, DBTag.id == note_tags.c.tag_id)
                .where(note_tags.c.note_id == note_id)
                .order_by(DBTag.name)
            ).all()
            return [row[0] for row in rows]

    def tags_by_note(
        self, note_ids: Iterable[int], session: Optional[Session] = None
    ) -> Dict[int, List[str]]:
        """Map each note id to its sorted tag names in one query."""
        ids = list(note_ids)
        result = {note_id: [] for note_id in ids}
        if not ids:
            return result
        with self.db.session_scope(session, "tags_by_note") as s:
            rows = s.execute(
                select(note_tags.c.note_id, DBTag.name)
                .select_from(note_tags)
                .join(DBTag, DBTag.id == note_tags.c.tag_id)
                .where(note_tags.c.note_id.in_(ids))
                .order_by(DBTag.name)
            ).all()
        for note_id, name in rows:
            result[note_id].append(name)
        return result

    def _active_count(self, session: Session, tag_id: int) -> int:
        return session.scalar(
            select(func.count(note_tags.c.note_id))
            .select_from(note_tags)
            .join(DBNote, DBNote.id == note_tags.c.note_id)
            .where(note_tags.c.tag_id == tag_id, DBNote.deleted_at.is_(None))
        ) or 0

    def list_all(self) -> List[TagCount]:
        """All tags with the number of non-trashed notes using each.

        Orphaned tags are included with a count of zero.
        """
        active = (
            select(note_tags.c.tag_id, note_tags.c.note_id)
            .join(DBNote, DBNote.id == note_tags.c.note_id)
            .where(DBNote.deleted_at.is_(None))
            .subquery()
        )
        with self.db.transaction("tag_list") as session:
            rows = session.execute(
                select(DBTag.name, func.count(active.c.note_id))
                .select_from(DBTag)
                .outerjoin(active, DBTag.id == active.c.tag_id)
                .group_by(DBTag.id, DBTag.name)
                .order_by(DBTag.name)
            ).all()
        return [TagCount(name=name, count=count) for name, count in rows]

    def list_notes_for_tag(self, tag_name: str) -> List[int]:
        """Ids of non-trashed notes carrying a tag, most recently updated first.

        Raises:
            TagNotFoundError: If no such tag exists.
        """
        name = tag_name.strip().lstrip("#").lower()
        with self.db.transaction("tag_notes") as session:
            tag_id = session.scalar(select(DBTag.id).where(DBTag.name == name))
            if tag_id is None:
                raise TagNotFoundError(name)
            rows = session.execute(
                select(DBNote.id)
                .join(note_tags, DBNote.id == note_tags.c.note_id)
                .where(note_tags.c.tag_id == tag_id, DBNote.deleted_at.is_(None))
                .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
            ).all()
        return [row[0] for row in rows]

    def delete(self, tag_name: str) -> None:
        """Delete an unused tag.

        Associations held only by trashed notes are removed with the tag.

        Raises:
            TagNotFoundError: If no such tag exists.
            TagInUseError: If any non-trashed note still uses it.
        """
        name = tag_name.strip().lstrip("#").lower()
        with self.db.transaction("tag_delete") as session:
            db_tag = session.scalar(select(DBTag).where(DBTag.name == name))
            if db_tag is None:
                raise TagNotFoundError(name)
            count = self._active_count(session, db_tag.id)
            if count > 0:
                raise TagInUseError(name, count)
            session.execute(delete(note_tags).where(note_tags.c.tag_id == db_tag.id))
            session.delete(db_tag)
        logger.info(f"Deleted tag '{name}'")

    def count(self) -> int:
        with self.db.transaction("tag_count") as session:
            return session.scalar(select(func.count(DBTag.id))) or 0
