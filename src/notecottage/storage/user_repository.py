"""Repositories for user accounts and system settings."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from notecottage.exceptions import (
    ErrorCode,
    UserNotFoundError,
    ValidationError,
)
from notecottage.models.db_models import (
    DEFAULT_SETTINGS,
    DBFolder,
    DBNote,
    DBSystemSetting,
    DBUser,
    db_now,
)
from notecottage.models.schema import User, ensure_timezone_aware
from notecottage.storage.database import Database
from notecottage.storage.fts_index import FtsIndex

logger = logging.getLogger(__name__)

MAX_USERS_LIMIT = (1, 20)


class UserRepository:
    """Repository for user accounts.

    Credential hashes are opaque strings produced by the auth layer.
    """

    def __init__(self, db: Database, fts: Optional[FtsIndex] = None):
        self.db = db
        self.fts = fts or FtsIndex(db)

    @staticmethod
    def _db_to_model(db_user: DBUser) -> User:
        return User(
            id=db_user.id,
            username=db_user.username,
            email=db_user.email,
            display_name=db_user.display_name,
            is_admin=bool(db_user.is_admin),
            created_at=ensure_timezone_aware(db_user.created_at),
            updated_at=ensure_timezone_aware(db_user.updated_at),
            password_hash=db_user.password_hash,
        )

    @staticmethod
    def _require(session: Session, user_id: int) -> DBUser:
        db_user = session.get(DBUser, user_id)
        if db_user is None:
            raise UserNotFoundError(user_id)
        return db_user

    def create(
        self,
        username: str,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
        is_admin: bool = False,
        session: Optional[Session] = None,
    ) -> User:
        """Insert a user.

        Raises:
            DuplicateValueError: If the username or email is taken.
        """
        now = db_now()
        with self.db.session_scope(session, "user_create") as s:
            db_user = DBUser(
                username=username,
                email=email,
                password_hash=password_hash,
                display_name=display_name,
                is_admin=bool(is_admin),
                created_at=now,
                updated_at=now,
            )
            s.add(db_user)
            s.flush()
            user = self._db_to_model(db_user)
        logger.info(f"Created user {user.id} '{user.username}' (admin={user.is_admin})")
        return user

    def get(self, user_id: int, session: Optional[Session] = None) -> Optional[User]:
        with self.db.session_scope(session, "user_get") as s:
            db_user = s.get(DBUser, user_id)
            return self._db_to_model(db_user) if db_user else None

    def get_by_username(self, username: str) -> Optional[User]:
        with self.db.transaction("user_get_by_username") as session:
            db_user = session.scalar(select(DBUser).where(DBUser.username == username))
            return self._db_to_model(db_user) if db_user else None

    def get_by_email(self, email: str) -> Optional[User]:
        with self.db.transaction("user_get_by_email") as session:
            db_user = session.scalar(select(DBUser).where(DBUser.email == email))
            return self._db_to_model(db_user) if db_user else None

    def list(self) -> List[User]:
        """All users in registration order."""
        with self.db.transaction("user_list") as session:
            rows = session.scalars(select(DBUser).order_by(DBUser.id)).all()
            return [self._db_to_model(row) for row in rows]

    def update_display_name(self, user_id: int, display_name: Optional[str]) -> User:
        with self.db.transaction("user_update_profile") as session:
            db_user = self._require(session, user_id)
            db_user.display_name = display_name
            db_user.updated_at = db_now()
            return self._db_to_model(db_user)

    def set_password_hash(self, user_id: int, password_hash: str) -> None:
        with self.db.transaction("user_set_password") as session:
            db_user = self._require(session, user_id)
            db_user.password_hash = password_hash
            db_user.updated_at = db_now()

    def set_admin(
        self, user_id: int, is_admin: bool, session: Optional[Session] = None
    ) -> User:
        with self.db.session_scope(session, "user_set_admin") as s:
            db_user = self._require(s, user_id)
            db_user.is_admin = bool(is_admin)
            db_user.updated_at = db_now()
            return self._db_to_model(db_user)

    def delete(self, user_id: int, session: Optional[Session] = None) -> int:
        """Delete a user with everything the store cascades from them.

        That covers the user's folders (with their subtrees and the notes in
        them) and the user's notes elsewhere.

        Returns:
            Number of notes removed.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        with self.db.session_scope(session, "user_delete") as s:
            db_user = self._require(s, user_id)
            parents = dict(s.execute(select(DBFolder.id, DBFolder.parent_id)).all())
            owned = set(s.scalars(select(DBFolder.id).where(DBFolder.user_id == user_id)).all())
            doomed = set(owned)
            changed = True
            while changed:
                changed = False
                for folder_id, parent_id in parents.items():
                    if parent_id in doomed and folder_id not in doomed:
                        doomed.add(folder_id)
                        changed = True
            conditions = [DBNote.user_id == user_id]
            if doomed:
                conditions.append(DBNote.folder_id.in_(doomed))
            note_ids = list(s.scalars(select(DBNote.id).where(or_(*conditions))).all())
            self.fts.remove_notes(s, note_ids)
            s.delete(db_user)
        logger.info(f"Deleted user {user_id} with {len(note_ids)} notes")
        return len(note_ids)

    def count(self, session: Optional[Session] = None) -> int:
        with self.db.session_scope(session, "user_count") as s:
            return s.scalar(select(func.count(DBUser.id))) or 0

    def admin_count(self, session: Optional[Session] = None) -> int:
        with self.db.session_scope(session, "user_admin_count") as s:
            return s.scalar(
                select(func.count(DBUser.id)).where(DBUser.is_admin.is_(True))
            ) or 0


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text_value = str(value).strip().lower()
    if text_value in ("true", "1", "yes", "on"):
        return True
    if text_value in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_max_users(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("max_users must be an integer")
    number = int(value)
    low, high = MAX_USERS_LIMIT
    if not low <= number <= high:
        raise ValueError(f"max_users must be between {low} and {high}")
    return number


def _parse_app_name(value: Any) -> str:
    name = str(value).strip() if value is not None else ""
    if not name:
        raise ValueError("app_name cannot be empty")
    return name


# Typed parsers for every known setting
SETTING_PARSERS = {
    "registration_enabled": _parse_bool,
    "max_users": _parse_max_users,
    "app_name": _parse_app_name,
}


class SettingsRepository:
    """Key/value system settings with typed accessors."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str, session: Optional[Session] = None) -> Any:
        """Typed value of a setting; the seeded default if the row is missing.

        Raises:
            ValidationError: If the key is unknown.
        """
        parser = self._parser(key)
        with self.db.session_scope(session, "setting_get") as s:
            raw = s.scalar(select(DBSystemSetting.value).where(DBSystemSetting.key == key))
        return parser(raw if raw is not None else DEFAULT_SETTINGS[key])

    def update(self, key: str, value: Any) -> Any:
        """Validate and store a setting.

        Returns:
            The stored, typed value.

        Raises:
            ValidationError: If the key is unknown or the value is out of range.
        """
        parser = self._parser(key)
        try:
            typed = parser(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid value for setting '{key}': {e}",
                field=key,
                value=value,
                code=ErrorCode.INVALID_SETTING,
            ) from e
        stored = str(typed).lower() if isinstance(typed, bool) else str(typed)
        with self.db.transaction("setting_update") as session:
            row = session.get(DBSystemSetting, key)
            if row is None:
                session.add(DBSystemSetting(key=key, value=stored, updated_at=db_now()))
            else:
                row.value = stored
                row.updated_at = db_now()
        logger.info(f"Setting '{key}' updated to {stored!r}")
        return typed

    def all(self) -> Dict[str, Any]:
        """Every known setting with its typed value."""
        with self.db.transaction("setting_all") as session:
            rows = dict(session.execute(
                select(DBSystemSetting.key, DBSystemSetting.value)
            ).all())
        result = {}
        for key, parser in SETTING_PARSERS.items():
            result[key] = parser(rows.get(key, DEFAULT_SETTINGS[key]))
        return result

    @staticmethod
    def _parser(key: str):
        parser = SETTING_PARSERS.get(key)
        if parser is None:
            raise ValidationError(
                f"Unknown setting '{key}'",
                field="key",
                value=key,
                code=ErrorCode.INVALID_SETTING,
            )
        return parser
