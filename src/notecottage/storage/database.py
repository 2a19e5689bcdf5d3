"""Database handle shared by all repositories.

Replaces a module-level connection: callers construct one ``Database``
at startup, pass it to every repository, and ``close()`` it on shutdown.
"""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notecottage.exceptions import (
    ConstraintViolationError,
    DuplicateValueError,
    ErrorCode,
    NoteCottageError,
    SearchIndexCorruptedError,
    StorageError,
)
from notecottage.models.db_models import get_session_factory, init_db

logger = logging.getLogger(__name__)

_CORRUPTION_MARKERS = ("malformed", "corrupt")

# Passed as an actor or owner to skip per-user scoping (operator tooling)
UNRESTRICTED = object()


def is_corruption_error(error: BaseException) -> bool:
    """Whether a driver error reports a corrupted page or virtual table."""
    orig = getattr(error, "orig", error)
    if getattr(orig, "sqlite_errorname", "") in ("SQLITE_CORRUPT", "SQLITE_CORRUPT_VTAB"):
        return True
    message = str(orig).lower()
    return any(marker in message for marker in _CORRUPTION_MARKERS)


def translate_integrity_error(error: IntegrityError) -> ConstraintViolationError:
    """Map a SQLite constraint failure onto the constraint taxonomy."""
    message = str(error.orig)
    if "UNIQUE constraint failed" in message:
        # e.g. "UNIQUE constraint failed: users.email"
        column = message.rsplit(":", 1)[-1].strip()
        field = column.split(".")[-1] if column else None
        return DuplicateValueError(
            f"Value for '{column}' already exists",
            field=field,
            original_error=error,
        )
    if "FOREIGN KEY constraint failed" in message:
        return ConstraintViolationError(
            "Referenced row does not exist",
            code=ErrorCode.FOREIGN_KEY_VIOLATION,
            original_error=error,
        )
    return ConstraintViolationError(
        f"Constraint violated: {message}",
        original_error=error,
    )


class Database:
    """Owns the engine and session factory for one store.

    Args:
        database_url: SQLAlchemy URL; defaults to the configured SQLite file.
        engine: Pre-configured engine. When provided, ``database_url`` is ignored.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
    ):
        self._database_url = database_url
        self.engine: Optional[Engine] = engine
        self.session_factory = get_session_factory(engine) if engine is not None else None

    def init(self) -> "Database":
        """Create the engine (if needed), schema, index and default rows."""
        if self.engine is None:
            try:
                self.engine = init_db(self._database_url)
            except (SQLAlchemyDatabaseError, sqlite3.DatabaseError) as e:
                logger.error(f"Failed to initialize database: {e}")
                raise StorageError(
                    "Failed to initialize database",
                    operation="init",
                    code=ErrorCode.STORAGE_CONNECTION_FAILED,
                    original_error=e,
                ) from e
            self.session_factory = get_session_factory(self.engine)
        return self

    def close(self) -> None:
        """Dispose of pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connections closed")
            self.engine = None
            self.session_factory = None

    def __enter__(self) -> "Database":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_factory(self):
        if self.session_factory is None:
            raise StorageError(
                "Database is not initialized; call init() first",
                operation="session",
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
            )
        return self.session_factory

    @contextmanager
    def transaction(self, operation: str = "transaction") -> Iterator[Session]:
        """Run a block in one all-or-nothing transaction.

        Any exception rolls back every statement in the block. Driver errors
        are translated: constraint failures become ``ConstraintViolationError``,
        corruption becomes ``SearchIndexCorruptedError`` and anything else
        becomes ``StorageError``.
        """
        factory = self._require_factory()
        try:
            with factory() as session:
                with session.begin():
                    yield session
        except NoteCottageError:
            raise
        except IntegrityError as e:
            raise translate_integrity_error(e) from e
        except (SQLAlchemyDatabaseError, sqlite3.DatabaseError) as e:
            if is_corruption_error(e):
                logger.error(
                    f"Corruption detected during {operation}: {e}. "
                    "Run 'notecottage rebuild-index' to repair the search index."
                )
                raise SearchIndexCorruptedError(
                    operation=operation, original_error=e
                ) from e
            logger.error(f"Storage failure during {operation}: {e}")
            raise StorageError(
                f"Storage failure during {operation}",
                operation=operation,
                original_error=e,
            ) from e

    @contextmanager
    def session_scope(
        self, session: Optional[Session] = None, operation: str = "transaction"
    ) -> Iterator[Session]:
        """Join the caller's transaction if given, otherwise open a new one."""
        if session is not None:
            yield session
        else:
            with self.transaction(operation) as new_session:
                yield new_session
