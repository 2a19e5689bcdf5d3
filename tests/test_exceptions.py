"""Tests for the error taxonomy."""
from notecottage.exceptions import (
    DuplicateValueError,
    ErrorCode,
    FolderCycleError,
    NoteNotFoundError,
    PermissionDeniedError,
    SearchIndexCorruptedError,
    StorageError,
    ValidationError,
)


class TestErrorKinds:
    """Each family maps to a kind and an HTTP status."""

    def test_not_found(self):
        error = NoteNotFoundError(7)
        assert error.kind == "not_found"
        assert error.http_status == 404
        assert error.details == {"note_id": 7}

    def test_validation(self):
        error = ValidationError("bad", field="title", value="x" * 300)
        assert error.http_status == 400
        assert len(error.details["value"]) == 100

    def test_constraint_family(self):
        cycle = FolderCycleError(1, 2)
        duplicate = DuplicateValueError("taken", field="email")
        assert cycle.kind == duplicate.kind == "constraint"
        assert cycle.code == ErrorCode.FOLDER_CYCLE
        assert duplicate.details == {"field": "email"}

    def test_permission_denied(self):
        error = PermissionDeniedError("no", actor_id=3, resource="note", resource_id=9)
        assert error.http_status == 403
        assert error.details == {"actor_id": 3, "resource": "note", "resource_id": 9}

    def test_index_corruption_is_storage(self):
        error = SearchIndexCorruptedError(operation="search")
        assert isinstance(error, StorageError)
        assert error.kind == "corruption"
        assert error.code == ErrorCode.FTS_CORRUPTED


class TestSerialization:
    """Tests for to_dict and string rendering."""

    def test_to_dict(self):
        data = NoteNotFoundError(5).to_dict()
        assert data["error"] == "NoteNotFoundError"
        assert data["kind"] == "not_found"
        assert data["code"] == ErrorCode.NOTE_NOT_FOUND.value
        assert data["code_name"] == "NOTE_NOT_FOUND"
        assert data["details"] == {"note_id": 5}

    def test_str_includes_code_and_details(self):
        text = str(NoteNotFoundError(5))
        assert text.startswith("[NOTE_NOT_FOUND]")
        assert "note_id=5" in text

    def test_str_without_details(self):
        assert str(StorageError("boom")) == "[STORAGE_WRITE_FAILED] boom"
