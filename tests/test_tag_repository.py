"""Tests for tag linking and the tag lifecycle."""
import pytest
from sqlalchemy import func, select

from notecottage.exceptions import (
    ErrorCode,
    TagInUseError,
    TagNotFoundError,
    ValidationError,
)
from notecottage.models.db_models import note_tags
from notecottage.parsing import extract_tags


class TestRelink:
    """Tests for replacing a note's tags from its content."""

    def test_relink_matches_extraction(self, note_repository, tag_repository):
        """Relinking yields exactly the extracted tag set."""
        note = note_repository.create("Plan", "nothing yet")
        content = "Shipping #Release with #qa and #release notes #1"
        applied = tag_repository.relink(note.id, content)
        assert applied == extract_tags(content)
        assert tag_repository.get_tags_for_note(note.id) == sorted(extract_tags(content))

    def test_relink_replaces_previous_tags(self, note_repository, tag_repository):
        """Old associations are cleared before new ones are added."""
        note = note_repository.create("Plan", "#alpha #beta")
        tag_repository.relink(note.id, "#gamma")
        assert tag_repository.get_tags_for_note(note.id) == ["gamma"]

    def test_link_is_idempotent(self, db, note_repository, tag_repository):
        """Linking the same pair twice leaves one association row."""
        note = note_repository.create("Idempotent", "plain text")
        tag_id = tag_repository.get_or_create("once")
        tag_repository.link_note_to_tag(note.id, tag_id)
        tag_repository.link_note_to_tag(note.id, tag_id)
        with db.transaction() as session:
            count = session.scalar(
                select(func.count()).select_from(note_tags).where(
                    note_tags.c.note_id == note.id
                )
            )
        assert count == 1

    def test_get_or_create_reuses_row(self, tag_repository):
        """The same name always maps to the same tag id."""
        assert tag_repository.get_or_create("Reuse") == tag_repository.get_or_create("#reuse")

    def test_get_or_create_rejects_invalid_name(self, tag_repository):
        """Names that could never be extracted are refused."""
        with pytest.raises(ValidationError) as exc_info:
            tag_repository.get_or_create("9lives")
        assert exc_info.value.code == ErrorCode.TAG_INVALID


class TestTagListing:
    """Tests for counts and per-tag note listings."""

    def test_counts_exclude_trashed_notes(self, note_repository, tag_repository):
        """Trashed notes do not count towards a tag's usage."""
        keep = note_repository.create("Keep", "#shared #keep")
        gone = note_repository.create("Gone", "#shared")
        note_repository.soft_delete(gone.id)

        counts = {t.name: t.count for t in tag_repository.list_all()}
        assert counts == {"keep": 1, "shared": 1}
        assert tag_repository.list_notes_for_tag("shared") == [keep.id]

    def test_orphaned_tags_are_retained(self, note_repository, tag_repository):
        """A tag with no notes left is listed with a zero count."""
        note = note_repository.create("Temp", "#orphan")
        note_repository.update_content(note.id, "no tags any more")
        counts = {t.name: t.count for t in tag_repository.list_all()}
        assert counts["orphan"] == 0

    def test_restore_relinks_tags(self, note_repository, tag_repository):
        """Restoring a note brings its tags back into the counts."""
        note = note_repository.create("Back", "#again")
        note_repository.soft_delete(note.id)
        note_repository.restore(note.id)
        assert tag_repository.list_notes_for_tag("again") == [note.id]

    def test_notes_for_unknown_tag(self, tag_repository):
        """Listing an unknown tag is a not-found error."""
        with pytest.raises(TagNotFoundError):
            tag_repository.list_notes_for_tag("missing")


class TestTagDelete:
    """Tests for explicit tag deletion."""

    def test_delete_unused_tag(self, note_repository, tag_repository):
        """An orphaned tag can be deleted."""
        note = note_repository.create("Temp", "#unused")
        note_repository.update_content(note.id, "plain")
        tag_repository.delete("unused")
        assert "unused" not in {t.name for t in tag_repository.list_all()}

    def test_delete_tag_in_use_fails(self, note_repository, tag_repository):
        """A tag still used by an active note cannot be deleted."""
        note_repository.create("Busy", "#busy")
        with pytest.raises(TagInUseError) as exc_info:
            tag_repository.delete("busy")
        assert exc_info.value.count == 1
        assert "busy" in {t.name for t in tag_repository.list_all()}

    def test_delete_tag_used_only_in_trash(self, note_repository, tag_repository):
        """Links from trashed notes do not block deletion."""
        note = note_repository.create("Trashed", "#trashonly")
        note_repository.soft_delete(note.id)
        tag_repository.delete("trashonly")
        assert tag_repository.get_tags_for_note(note.id) == []

    def test_delete_missing_tag(self, tag_repository):
        """Deleting an unknown tag is a not-found error."""
        with pytest.raises(TagNotFoundError):
            tag_repository.delete("nope")
