"""SQLAlchemy database models for NoteCottage."""
import datetime
import logging
from datetime import timezone
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Table, Text, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from notecottage.config import LEGACY_DEFAULT_FOLDER_ID, config

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Settings seeded on first start; existing values are never overwritten
DEFAULT_SETTINGS = {
    "registration_enabled": "true",
    "max_users": "5",
    "app_name": "NoteCottage",
}

FTS_TABLE = "notes_fts"


def db_now() -> datetime.datetime:
    """Current UTC time as a naive datetime (SQLite stores no offset)."""
    return datetime.datetime.now(timezone.utc).replace(tzinfo=None)


# Association table for tags and notes
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=db_now, nullable=False),
)


class DBUser(Base):
    """Database model for a user account."""
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=db_now, nullable=False)
    updated_at = Column(DateTime, default=db_now, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class DBSystemSetting(Base):
    """Key/value system setting."""
    __tablename__ = "system_settings"
    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=db_now, nullable=False)


class DBFolder(Base):
    """Database model for a folder.

    ``user_id`` NULL marks a legacy folder from before multi-user support.
    ``is_default`` marks the legacy "Uncategorized" folder and each user's
    personal default folder; those cannot be deleted.
    """
    __tablename__ = "folders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    parent_id = Column(
        Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True
    )
    color = Column(String(32), nullable=True)
    icon = Column(String(32), nullable=True)
    position = Column(Integer, default=0, nullable=False)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    is_public = Column(Boolean, default=False, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=db_now, nullable=False)
    updated_at = Column(DateTime, default=db_now, nullable=False)

    __table_args__ = (
        Index("ix_folders_parent_position", "parent_id", "position"),
        Index("ix_folders_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False, index=True)
    content = Column(Text, nullable=False)
    folder_id = Column(
        Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=db_now, nullable=False)
    updated_at = Column(DateTime, default=db_now, nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    tags = relationship(
        "DBTag", secondary=note_tags, back_populates="notes",
        passive_deletes=True, order_by="DBTag.name"
    )

    __table_args__ = (
        Index("ix_notes_folder_position", "folder_id", "position"),
        Index("ix_notes_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime, default=db_now, nullable=False)

    # Relationships
    notes = relationship(
        "DBNote", secondary=note_tags, back_populates="tags", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create an engine and initialize the schema with hardened configuration.

    Applies SQLite settings on every connection:
    - foreign keys ON, so cascades and reference checks are enforced
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)

    Args:
        database_url: SQLAlchemy URL. Defaults to ``config.get_db_url()``.

    Returns:
        The configured engine.
    """
    url = database_url or config.get_db_url()

    if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    init_fts5(engine)
    _seed_defaults(engine)

    logger.info(f"Database initialized: {engine.url}")
    return engine


def create_fts_table(conn) -> None:
    """Create the FTS5 table mirroring ``notes(title, content)``.

    The index is a standalone FTS5 table whose rowid is the note id. It is
    maintained by explicit calls from the note write path, not by triggers.
    """
    conn.execute(text(f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
            title,
            content
        )
    """))


def init_fts5(engine: Engine) -> None:
    """Initialize FTS5 full-text search virtual table."""
    with engine.begin() as conn:
        create_fts_table(conn)


def _seed_defaults(engine: Engine) -> None:
    """Insert default settings and the legacy "Uncategorized" folder.

    Idempotent; safe to run on every start.
    """
    now = db_now()
    with engine.begin() as conn:
        for key, value in DEFAULT_SETTINGS.items():
            conn.execute(
                text(
                    "INSERT OR IGNORE INTO system_settings (key, value, updated_at) "
                    "VALUES (:key, :value, :now)"
                ),
                {"key": key, "value": value, "now": now},
            )
        conn.execute(
            text(
                "INSERT OR IGNORE INTO folders "
                "(id, name, parent_id, color, icon, position, user_id, is_public, "
                " is_default, created_at, updated_at) "
                "VALUES (:id, 'Uncategorized', NULL, '#95a5a6', :icon, 0, NULL, 0, "
                " 1, :now, :now)"
            ),
            {"id": LEGACY_DEFAULT_FOLDER_ID, "icon": "\U0001F4C2", "now": now},
        )


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
