"""Registration, administration and statistics.

Password hashing happens in the auth layer; this service receives and
stores opaque hashes only.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from notecottage.exceptions import (
    DuplicateValueError,
    ErrorCode,
    PermissionDeniedError,
    UserNotFoundError,
    ValidationError,
)
from notecottage.models.schema import SystemStats, User, UserStats
from notecottage.storage.database import Database
from notecottage.storage.folder_repository import FolderRepository
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.note_repository import NoteRepository
from notecottage.storage.tag_repository import TagRepository
from notecottage.storage.user_repository import SettingsRepository, UserRepository

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FIRST_USER_FOLDER_NAME = "Uncategorized"
FIRST_USER_FOLDER_ICON = "\U0001F4C2"


class UserService:
    """User accounts and instance administration."""

    def __init__(self, db: Database):
        self.db = db
        self.fts = FtsIndex(db)
        self.users = UserRepository(db, fts=self.fts)
        self.settings = SettingsRepository(db)
        self.folders = FolderRepository(db, fts=self.fts)
        self.tags = TagRepository(db)
        self.notes = NoteRepository(db, tags=self.tags, fts=self.fts)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_identity(username: str, email: str) -> None:
        if not username or not USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username must be 3-20 characters (letters, numbers, underscore)",
                field="username",
                value=username,
            )
        if not email or not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format", field="email", value=email)

    def _require_admin(self, actor_id: Optional[int]) -> User:
        actor = self.users.get(actor_id) if actor_id is not None else None
        if actor is None or not actor.is_admin:
            raise PermissionDeniedError(
                "Administrator privileges required",
                actor_id=actor_id,
                resource="admin",
            )
        return actor

    def _check_unique(self, username: str, email: str) -> None:
        if self.users.get_by_username(username):
            raise DuplicateValueError("Username already exists", field="username")
        if self.users.get_by_email(email):
            raise DuplicateValueError("Email already exists", field="email")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        username: str,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
    ) -> User:
        """Self-service sign-up.

        The first account becomes administrator and gets an "Uncategorized"
        folder; later accounts get a "<username>'s Notes" folder. The user
        and the folder are created in one transaction.

        Raises:
            ValidationError: If the username or email is malformed.
            PermissionDeniedError: If registration is closed or the user
                limit is reached.
            DuplicateValueError: If the username or email is taken.
        """
        self._validate_identity(username, email)
        self._check_unique(username, email)

        with self.db.transaction("user_register") as session:
            user_count = self.users.count(session=session)
            if user_count > 0 and not self.settings.get("registration_enabled", session=session):
                raise PermissionDeniedError(
                    "Registration is currently disabled",
                    resource="registration",
                    code=ErrorCode.REGISTRATION_CLOSED,
                )
            max_users = self.settings.get("max_users", session=session)
            if user_count >= max_users:
                raise PermissionDeniedError(
                    "Maximum user limit reached",
                    resource="registration",
                    code=ErrorCode.USER_LIMIT_REACHED,
                )

            is_first = user_count == 0
            user = self.users.create(
                username, email, password_hash,
                display_name=display_name or None,
                is_admin=is_first,
                session=session,
            )
            self.folders.create(
                FIRST_USER_FOLDER_NAME if is_first else f"{username}'s Notes",
                icon=FIRST_USER_FOLDER_ICON,
                user_id=user.id,
                is_public=False,
                is_default=True,
                session=session,
            )
        logger.info(f"Registered user {user.id} '{username}' (first={is_first})")
        return user

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def list_users(self, actor_id: int) -> List[User]:
        self._require_admin(actor_id)
        return self.users.list()

    def create_user(
        self,
        actor_id: int,
        username: str,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
        is_admin: bool = False,
    ) -> User:
        """Admin-created account with its own "Uncategorized" folder.

        Bypasses the registration switch and the user limit.
        """
        self._require_admin(actor_id)
        self._validate_identity(username, email)
        self._check_unique(username, email)
        with self.db.transaction("admin_create_user") as session:
            user = self.users.create(
                username, email, password_hash,
                display_name=display_name,
                is_admin=is_admin,
                session=session,
            )
            self.folders.create(
                FIRST_USER_FOLDER_NAME,
                user_id=user.id,
                is_public=False,
                is_default=True,
                session=session,
            )
        return user

    def set_admin(self, actor_id: int, user_id: int, is_admin: bool) -> User:
        """Grant or revoke administrator rights.

        Raises:
            PermissionDeniedError: If the actor is not an admin, tries to
                change their own flag, or would demote the last admin.
            UserNotFoundError: If the target user does not exist.
        """
        self._require_admin(actor_id)
        if actor_id == user_id:
            raise PermissionDeniedError(
                "Cannot change your own admin status",
                actor_id=actor_id, resource="user", resource_id=user_id,
                code=ErrorCode.SELF_MODIFICATION,
            )
        with self.db.transaction("admin_set_admin") as session:
            target = self.users.get(user_id, session=session)
            if target is None:
                raise UserNotFoundError(user_id)
            if target.is_admin and not is_admin and self.users.admin_count(session=session) <= 1:
                raise PermissionDeniedError(
                    "Cannot remove admin privileges from the last admin",
                    actor_id=actor_id, resource="user", resource_id=user_id,
                    code=ErrorCode.LAST_ADMIN,
                )
            user = self.users.set_admin(user_id, is_admin, session=session)
        logger.info(f"User {actor_id} set admin={is_admin} on user {user_id}")
        return user

    def reset_password(self, actor_id: int, user_id: int, password_hash: str) -> None:
        self._require_admin(actor_id)
        self.users.set_password_hash(user_id, password_hash)

    def delete_user(self, actor_id: int, user_id: int) -> int:
        """Delete a user with their folders and notes.

        Returns:
            Number of notes removed.

        Raises:
            PermissionDeniedError: If the actor is not an admin, targets
                themselves, or targets the last admin.
            UserNotFoundError: If the target user does not exist.
        """
        self._require_admin(actor_id)
        if actor_id == user_id:
            raise PermissionDeniedError(
                "Cannot delete your own account",
                actor_id=actor_id, resource="user", resource_id=user_id,
                code=ErrorCode.SELF_MODIFICATION,
            )
        with self.db.transaction("admin_delete_user") as session:
            target = self.users.get(user_id, session=session)
            if target is None:
                raise UserNotFoundError(user_id)
            if target.is_admin and self.users.admin_count(session=session) <= 1:
                raise PermissionDeniedError(
                    "Cannot delete the last admin",
                    actor_id=actor_id, resource="user", resource_id=user_id,
                    code=ErrorCode.LAST_ADMIN,
                )
            removed = self.users.delete(user_id, session=session)
        logger.info(f"User {actor_id} deleted user {user_id}")
        return removed

    def get_settings(self) -> Dict[str, Any]:
        return self.settings.all()

    def update_setting(self, actor_id: int, key: str, value: Any) -> Any:
        self._require_admin(actor_id)
        return self.settings.update(key, value)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def system_stats(self) -> SystemStats:
        """Instance-wide counts; trashed notes are not counted."""
        visibility = self.notes.count_by_visibility()
        return SystemStats(
            user_count=self.users.count(),
            total_notes=self.notes.count(),
            public_notes=visibility["public"],
            private_notes=visibility["private"],
            total_folders=self.folders.count(),
            total_tags=self.tags.count(),
        )

    def admin_stats(self, actor_id: int) -> SystemStats:
        self._require_admin(actor_id)
        return self.system_stats()

    def user_stats(self, user_id: int) -> UserStats:
        if self.users.get(user_id) is None:
            raise UserNotFoundError(user_id)
        return UserStats(
            note_count=self.notes.count(user_id=user_id),
            folder_count=self.folders.count(user_id=user_id),
            trash_count=self.notes.count(user_id=user_id, trashed=True),
            tag_count=self.notes.tag_count_for_user(user_id),
        )
