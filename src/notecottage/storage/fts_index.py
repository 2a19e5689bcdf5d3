"""FTS5 full-text search index for notes.

Keeps ``notes_fts`` consistent with the ``notes`` table through explicit
hooks called by the note write path inside its own transaction, and exposes
the integrity check and rebuild used by operator tooling.

Soft delete does not touch the index: the row still exists, and queries
filter trashed notes by joining on ``notes.deleted_at``.
"""
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.orm import Session

from notecottage.config import config
from notecottage.exceptions import (
    ErrorCode,
    SearchError,
    SearchIndexCorruptedError,
    StorageError,
    ValidationError,
)
from notecottage.models.db_models import FTS_TABLE, create_fts_table
from notecottage.storage.database import UNRESTRICTED, Database

logger = logging.getLogger(__name__)


@dataclass
class IndexHealth:
    """Result of comparing the index against the notes table."""

    note_count: int = 0
    index_count: int = 0
    probe_ok: bool = False
    issues: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.probe_ok and self.note_count == self.index_count and not self.issues


@dataclass
class SearchHit:
    """A ranked match; lower rank is more relevant (FTS5 bm25)."""

    note_id: int
    rank: float


def build_prefix_query(query: str) -> str:
    """Turn free text into an FTS5 prefix query.

    Each whitespace-separated token becomes a quoted prefix term, so
    FTS5 operators and punctuation in user input are matched literally.
    Embedded double quotes are doubled, the FTS5 string escape.
    """
    terms = []
    for token in query.split():
        escaped = token.replace('"', '""')
        terms.append(f'"{escaped}"*')
    return " ".join(terms)


class FtsIndex:
    """FTS5 full-text search index.

    Args:
        db: Database handle.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Write hooks (run inside the caller's transaction)
    # ------------------------------------------------------------------

    def index_note(self, session: Session, note_id: int, title: str, content: str) -> None:
        """Add a freshly inserted note to the index."""
        session.execute(
            text(f"INSERT INTO {FTS_TABLE}(rowid, title, content) VALUES (:id, :title, :content)"),
            {"id": note_id, "title": title, "content": content},
        )

    def reindex_note(self, session: Session, note_id: int, title: str, content: str) -> None:
        """Replace the indexed title and body for a note."""
        session.execute(
            text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :id"), {"id": note_id}
        )
        self.index_note(session, note_id, title, content)

    def remove_notes(self, session: Session, note_ids: Iterable[int]) -> int:
        """Remove index entries ahead of a hard delete."""
        removed = 0
        for note_id in note_ids:
            session.execute(
                text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :id"), {"id": note_id}
            )
            removed += 1
        return removed

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def search(
        self, query: str, limit: Optional[int] = None, actor_id=UNRESTRICTED
    ) -> List[SearchHit]:
        """Prefix-match every token, skipping trashed notes.

        With ``actor_id`` given, only notes that actor may read are matched,
        so the limit applies to visible notes. ``None`` is the anonymous actor.

        Raises:
            ValidationError: If the query is blank.
            SearchIndexCorruptedError: If the index is corrupted.
        """
        if not query or not query.strip():
            raise ValidationError(
                "Search query is required",
                field="query",
                code=ErrorCode.SEARCH_INVALID_QUERY,
            )
        params = {
            "query": build_prefix_query(query),
            "limit": limit or config.search_limit,
        }
        visibility = ""
        if actor_id is not UNRESTRICTED:
            if actor_id is None:
                owner = "folders.user_id IS NULL"
            else:
                owner = "folders.user_id = :actor_id"
                params["actor_id"] = actor_id
            visibility = (
                "AND (notes.folder_id IS NULL OR folders.is_public = 1 "
                f"OR {owner})"
            )
        sql = text(f"""
            SELECT notes.id, {FTS_TABLE}.rank
            FROM {FTS_TABLE}
            JOIN notes ON notes.id = {FTS_TABLE}.rowid
            LEFT JOIN folders ON folders.id = notes.folder_id
            WHERE {FTS_TABLE} MATCH :query AND notes.deleted_at IS NULL
            {visibility}
            ORDER BY {FTS_TABLE}.rank, notes.updated_at DESC
            LIMIT :limit
        """)
        try:
            with self.db.transaction("search") as session:
                rows = session.execute(sql, params).fetchall()
        except SearchIndexCorruptedError:
            raise
        except StorageError as e:
            raise SearchError(
                f"Full-text search failed: {e}",
                query=query,
                code=ErrorCode.SEARCH_FAILED,
            ) from e
        return [SearchHit(note_id=row[0], rank=row[1]) for row in rows]

    # ------------------------------------------------------------------
    # Integrity & recovery
    # ------------------------------------------------------------------

    def check_integrity(self) -> IndexHealth:
        """Compare row counts and run the FTS5 integrity probe."""
        health = IndexHealth()
        with self.db.transaction("fts_integrity_check") as session:
            health.note_count = session.execute(text("SELECT COUNT(*) FROM notes")).scalar() or 0
            try:
                health.index_count = session.execute(
                    text(f"SELECT COUNT(*) FROM {FTS_TABLE}")
                ).scalar() or 0
                session.execute(
                    text(f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES('integrity-check')")
                )
                health.probe_ok = True
            except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
                health.issues.append(f"FTS5 integrity check failed: {e}")
                health.probe_ok = False

        if health.note_count != health.index_count:
            health.issues.append(
                f"Index out of sync: {health.note_count} notes vs "
                f"{health.index_count} index rows"
            )

        if health.healthy:
            logger.info(f"Search index healthy ({health.note_count} notes)")
        else:
            logger.warning(f"Search index unhealthy: {health.issues}")
        return health

    def rebuild(self) -> int:
        """Drop the index and repopulate it from the notes table in one pass.

        Returns:
            Number of notes indexed.

        Raises:
            SearchIndexCorruptedError: If counts still disagree afterwards.
        """
        with self.db.transaction("fts_rebuild") as session:
            session.execute(text(f"DROP TABLE IF EXISTS {FTS_TABLE}"))
            create_fts_table(session)
            session.execute(text(f"""
                INSERT INTO {FTS_TABLE}(rowid, title, content)
                SELECT id, title, content FROM notes
            """))
            note_count = session.execute(text("SELECT COUNT(*) FROM notes")).scalar() or 0
            index_count = session.execute(
                text(f"SELECT COUNT(*) FROM {FTS_TABLE}")
            ).scalar() or 0
            if note_count != index_count:
                raise SearchIndexCorruptedError(
                    f"Rebuild left index out of sync: {note_count} notes vs "
                    f"{index_count} index rows",
                    operation="fts_rebuild",
                )
        logger.info(f"Search index rebuilt with {index_count} notes")
        return index_count

