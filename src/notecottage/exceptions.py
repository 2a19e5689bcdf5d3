"""Custom exceptions for NoteCottage.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every exception carries a ``kind``
so the HTTP layer can map it to a status without inspecting messages:
not-found -> 404, permission -> 403, validation/constraint -> 400,
corruption/storage -> 500.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_TITLE_REQUIRED = 1004
    NOTE_CONTENT_REQUIRED = 1005

    # Folder errors (2xxx)
    FOLDER_NOT_FOUND = 2001
    FOLDER_NAME_REQUIRED = 2002
    FOLDER_CYCLE = 2003
    FOLDER_PROTECTED = 2004
    PARENT_NOT_FOUND = 2005

    # Tag errors (3xxx)
    TAG_NOT_FOUND = 3001
    TAG_INVALID = 3002
    TAG_IN_USE = 3003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_CONNECTION_FAILED = 4004
    DATABASE_CORRUPTED = 4005
    FTS_CORRUPTED = 4007
    CONSTRAINT_VIOLATION = 4101
    DUPLICATE_VALUE = 4102
    FOREIGN_KEY_VIOLATION = 4103

    # Search errors (5xxx)
    SEARCH_FAILED = 5001
    SEARCH_INVALID_QUERY = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_POSITION = 7002
    INVALID_SETTING = 7003

    # User errors (8xxx)
    USER_NOT_FOUND = 8001
    PERMISSION_DENIED = 8002
    REGISTRATION_CLOSED = 8003
    USER_LIMIT_REACHED = 8004
    LAST_ADMIN = 8005
    SELF_MODIFICATION = 8006


class NoteCottageError(Exception):
    """Base exception for all NoteCottage errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    kind = "error"
    http_status = 500

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(NoteCottageError):
    """Raised when an operation targets an id that does not exist."""

    kind = "not_found"
    http_status = 404


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class FolderNotFoundError(NotFoundError):
    """Raised when a folder cannot be found."""

    def __init__(self, folder_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Folder with ID '{folder_id}' not found",
            code=ErrorCode.FOLDER_NOT_FOUND,
            details={"folder_id": folder_id}
        )
        self.folder_id = folder_id


class TagNotFoundError(NotFoundError):
    """Raised when a tag cannot be found."""

    def __init__(self, tag_name: str):
        super().__init__(
            f"Tag '{tag_name}' not found",
            code=ErrorCode.TAG_NOT_FOUND,
            details={"tag_name": tag_name}
        )
        self.tag_name = tag_name


class UserNotFoundError(NotFoundError):
    """Raised when a user cannot be found."""

    def __init__(self, user_id: Any):
        super().__init__(
            f"User '{user_id}' not found",
            code=ErrorCode.USER_NOT_FOUND,
            details={"user_id": user_id}
        )
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Validation and constraints
# ---------------------------------------------------------------------------


class ValidationError(NoteCottageError):
    """Raised for missing or malformed input."""

    kind = "validation"
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class ConstraintViolationError(NoteCottageError):
    """Raised when a write would break a structural rule of the store."""

    kind = "constraint"
    http_status = 400

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONSTRAINT_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        details = dict(details or {})
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=code, details=details)
        self.original_error = original_error


class FolderCycleError(ConstraintViolationError):
    """Raised when reparenting would make a folder its own ancestor."""

    def __init__(self, folder_id: int, parent_id: int):
        super().__init__(
            f"Cannot move folder {folder_id} into itself or its descendant {parent_id}",
            code=ErrorCode.FOLDER_CYCLE,
            details={"folder_id": folder_id, "parent_id": parent_id}
        )
        self.folder_id = folder_id
        self.parent_id = parent_id


class ProtectedFolderError(ConstraintViolationError):
    """Raised when deleting or reparenting a default folder."""

    def __init__(self, folder_id: int, operation: str):
        super().__init__(
            f"Default folder {folder_id} cannot be {operation}",
            code=ErrorCode.FOLDER_PROTECTED,
            details={"folder_id": folder_id, "operation": operation}
        )
        self.folder_id = folder_id
        self.operation = operation


class TagInUseError(ConstraintViolationError):
    """Raised when deleting a tag that notes still reference."""

    def __init__(self, tag_name: str, count: int):
        super().__init__(
            f"Cannot delete tag '{tag_name}': used by {count} notes",
            code=ErrorCode.TAG_IN_USE,
            details={"tag_name": tag_name, "count": count}
        )
        self.tag_name = tag_name
        self.count = count


class DuplicateValueError(ConstraintViolationError):
    """Raised when a unique field (username, email, tag name) is taken."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            code=ErrorCode.DUPLICATE_VALUE,
            details=details,
            original_error=original_error
        )
        self.field = field


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionDeniedError(NoteCottageError):
    """Raised when an access-control predicate rejects the acting user."""

    kind = "permission_denied"
    http_status = 403

    def __init__(
        self,
        message: str,
        actor_id: Optional[int] = None,
        resource: Optional[str] = None,
        resource_id: Optional[Any] = None,
        code: ErrorCode = ErrorCode.PERMISSION_DENIED
    ):
        details: Dict[str, Any] = {"actor_id": actor_id}
        if resource:
            details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = resource_id
        super().__init__(message, code=code, details=details)
        self.actor_id = actor_id
        self.resource = resource
        self.resource_id = resource_id


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(NoteCottageError):
    """Raised for storage/persistence errors."""

    kind = "storage"
    http_status = 500

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class DatabaseCorruptionError(StorageError):
    """Raised when database corruption is detected."""

    kind = "corruption"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = "database_check",
        code: ErrorCode = ErrorCode.DATABASE_CORRUPTED,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation=operation,
            code=code,
            original_error=original_error
        )


class SearchIndexCorruptedError(DatabaseCorruptionError):
    """Raised when the FTS5 index disagrees with the notes table.

    The notes table is intact; the operator should run the index rebuild
    (``notecottage rebuild-index``) rather than restore the whole store.
    """

    def __init__(
        self,
        message: str = "Search index corrupted; run 'notecottage rebuild-index'",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation=operation,
            code=ErrorCode.FTS_CORRUPTED,
            original_error=original_error
        )


class SearchError(NoteCottageError):
    """Raised when a full-text query cannot be executed."""

    kind = "search"
    http_status = 400

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]
        super().__init__(message, code=code, details=details)
        self.query = query


class ConfigurationError(NoteCottageError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
