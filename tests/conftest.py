"""Common test fixtures for NoteCottage."""

import tempfile
from pathlib import Path

import pytest

from notecottage.config import config
from notecottage.services.notebook_service import NotebookService
from notecottage.services.user_service import UserService
from notecottage.storage.database import Database
from notecottage.storage.folder_repository import FolderRepository
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.note_repository import NoteRepository
from notecottage.storage.tag_repository import TagRepository
from notecottage.storage.user_repository import SettingsRepository, UserRepository


@pytest.fixture
def temp_dir():
    """Create a temporary directory for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", temp_dir / "test_notecottage.db")
    monkeypatch.setattr(config, "database_url", None)
    monkeypatch.setattr(config, "log_dir", temp_dir / "logs")
    yield config


@pytest.fixture
def db(test_config):
    """An initialized database handle on a fresh SQLite file."""
    database = Database(test_config.get_db_url()).init()
    yield database
    database.close()


@pytest.fixture
def fts(db):
    return FtsIndex(db)


@pytest.fixture
def tag_repository(db):
    return TagRepository(db)


@pytest.fixture
def folder_repository(db, fts):
    return FolderRepository(db, fts=fts)


@pytest.fixture
def note_repository(db, tag_repository, fts):
    return NoteRepository(db, tags=tag_repository, fts=fts)


@pytest.fixture
def user_repository(db, fts):
    return UserRepository(db, fts=fts)


@pytest.fixture
def settings_repository(db):
    return SettingsRepository(db)


@pytest.fixture
def notebook(db):
    return NotebookService(db)


@pytest.fixture
def user_service(db):
    return UserService(db)


@pytest.fixture
def two_users(user_service):
    """Register an admin and a regular user; returns (admin, user)."""
    admin = user_service.register("alice", "alice@example.com", "hash-a")
    user = user_service.register("bob", "bob@example.com", "hash-b")
    return admin, user
