"""Access control predicates.

Pure functions over already loaded rows; callers fetch the note and its
folder first. Ownership is compared with plain equality, so a record
without an owner matches an actor without an identity.

Records without an owner (``user_id`` None) predate multi-user support
and stay writable by anyone who can see them.
"""
from typing import Optional

from notecottage.models.schema import Folder, Note


def can_access_folder(folder: Optional[Folder], actor_id: Optional[int]) -> bool:
    """Public folders are readable by everyone, private ones by their owner."""
    if folder is None:
        return False
    if folder.is_public:
        return True
    return folder.user_id == actor_id


def can_modify_folder(folder: Optional[Folder], actor_id: Optional[int]) -> bool:
    """Only the owner may change a folder, public or not."""
    if folder is None:
        return False
    return folder.user_id == actor_id


def can_access_note(
    note: Optional[Note], folder: Optional[Folder], actor_id: Optional[int]
) -> bool:
    """A note without a folder is readable by everyone; otherwise its folder decides.

    Args:
        note: The note, or None if it does not exist.
        folder: The note's folder as loaded by the caller, None if missing.
        actor_id: The acting user, None when anonymous.
    """
    if note is None:
        return False
    if note.folder_id is None:
        return True
    return can_access_folder(folder, actor_id)


def can_modify_note(
    note: Optional[Note], folder: Optional[Folder], actor_id: Optional[int]
) -> bool:
    """Owners may always write; so may anyone when the note is ownerless.

    Notes in a public folder are writable by every user. When the note has
    no folder, or its folder no longer exists, ownership alone decides.
    """
    if note is None:
        return False
    owns = note.user_id is None or note.user_id == actor_id
    if note.folder_id is None or folder is None:
        return owns
    if folder.is_public:
        return True
    return owns
