"""Tests for the pydantic domain models."""
import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from notecottage.models.schema import (
    Folder,
    FolderUpdate,
    Note,
    WikiLink,
    ensure_timezone_aware,
)


class TestFolderUpdate:
    def test_only_set_fields_tracked(self):
        changes = FolderUpdate(parent_id=None)
        assert changes.model_fields_set == {"parent_id"}

    def test_name_stripped(self):
        assert FolderUpdate(name="  Work ").name == "Work"

    def test_blank_name_rejected(self):
        with pytest.raises(PydanticValidationError):
            FolderUpdate(name="   ")

    def test_unknown_field_rejected(self):
        with pytest.raises(PydanticValidationError):
            FolderUpdate(position=3)


class TestLegacyFlags:
    def test_folder_without_owner(self):
        assert Folder(id=1, name="Uncategorized").is_legacy
        assert not Folder(id=2, name="Mine", user_id=5).is_legacy

    def test_note_without_owner_or_folder(self):
        assert Note(id=1, title="t", content="c", user_id=5).is_legacy
        assert not Note(id=1, title="t", content="c", user_id=5, folder_id=2).is_legacy

    def test_note_deleted_flag(self):
        note = Note(id=1, title="t", content="c", deleted_at=datetime.datetime.now())
        assert note.is_deleted


class TestHelpers:
    def test_naive_datetime_becomes_utc(self):
        naive = datetime.datetime(2024, 1, 1, 12, 0)
        aware = ensure_timezone_aware(naive)
        assert aware.tzinfo == datetime.timezone.utc
        assert aware.hour == 12

    def test_none_passes_through(self):
        assert ensure_timezone_aware(None) is None

    def test_wiki_link_resolved(self):
        assert WikiLink(target="A", note_id=3).resolved
        assert not WikiLink(target="A").resolved
