"""Baseline schema: users, settings, folders, notes, tags and search index

Revision ID: 5c2d8e1f0a7b
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c2d8e1f0a7b"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every table plus the FTS5 index and default rows."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "folders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "parent_id", sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("icon", sa.String(32), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_folders_parent_position", "folders", ["parent_id", "position"])
    op.create_index("ix_folders_user_id", "folders", ["user_id"])

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "folder_id", sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_notes_title", "notes", ["title"])
    op.create_index("ix_notes_deleted_at", "notes", ["deleted_at"])
    op.create_index("ix_notes_folder_position", "notes", ["folder_id", "position"])
    op.create_index("ix_notes_user_id", "notes", ["user_id"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "note_tags",
        sa.Column(
            "note_id", sa.Integer(),
            sa.ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "tag_id", sa.Integer(),
            sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.execute("CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(title, content)")

    op.execute(
        "INSERT OR IGNORE INTO system_settings (key, value, updated_at) VALUES "
        "('registration_enabled', 'true', CURRENT_TIMESTAMP), "
        "('max_users', '5', CURRENT_TIMESTAMP), "
        "('app_name', 'NoteCottage', CURRENT_TIMESTAMP)"
    )
    op.execute(
        "INSERT OR IGNORE INTO folders "
        "(id, name, parent_id, color, icon, position, user_id, is_public, is_default, "
        " created_at, updated_at) "
        "VALUES (1, 'Uncategorized', NULL, '#95a5a6', '\U0001F4C2', 0, NULL, 0, 1, "
        " CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
    )


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.execute("DROP TABLE IF EXISTS notes_fts")
    op.drop_table("note_tags")
    op.drop_table("tags")
    op.drop_index("ix_notes_user_id")
    op.drop_index("ix_notes_folder_position")
    op.drop_index("ix_notes_deleted_at")
    op.drop_index("ix_notes_title")
    op.drop_table("notes")
    op.drop_index("ix_folders_user_id")
    op.drop_index("ix_folders_parent_position")
    op.drop_table("folders")
    op.drop_table("system_settings")
    op.drop_table("users")
