"""Materialize a flat folder list into the sidebar tree.

The tree always has exactly two roots, the synthetic "Private" and
"Shared" groups. They are built per call and never stored.
"""
import logging
from typing import Dict, Iterable, List, Optional

from notecottage.models.schema import (
    PRIVATE_GROUP_ID,
    SHARED_GROUP_ID,
    Folder,
    FolderGroup,
    FolderNode,
)

logger = logging.getLogger(__name__)


def _sort_key(node: FolderNode):
    return (node.position, node.name.lower(), node.id)


def _sort_children(nodes: List[FolderNode]) -> None:
    stack = [nodes]
    while stack:
        current = stack.pop()
        current.sort(key=_sort_key)
        stack.extend(node.children for node in current)


def build_folder_tree(
    folders: Iterable[Folder],
    note_counts: Optional[Dict[int, int]] = None,
) -> List[FolderGroup]:
    """Build ``[private_group, shared_group]`` from visible folders.

    Args:
        folders: Permission-filtered folders, in any order.
        note_counts: Folder id -> number of notes directly inside it.

    Returns:
        The two group roots. Top-level folders are split by their public
        flag. A folder whose parent is not among ``folders`` (hidden from the
        actor) is promoted to the group matching its own flag rather than
        dropped, so a shared subfolder under someone else's private parent
        stays reachable. Each group's ``note_count`` is the
        sum over its top-level folders; folder counts are not recursive.
    """
    counts = note_counts or {}
    private_root = FolderGroup(
        id=PRIVATE_GROUP_ID, name="Private", icon="\U0001F512", position=0, is_public=False
    )
    shared_root = FolderGroup(
        id=SHARED_GROUP_ID, name="Shared", icon="\U0001F465", position=1, is_public=True
    )

    nodes: Dict[int, FolderNode] = {}
    for folder in folders:
        nodes[folder.id] = FolderNode(
            id=folder.id,
            name=folder.name,
            parent_id=folder.parent_id,
            color=folder.color,
            icon=folder.icon,
            position=folder.position,
            user_id=folder.user_id,
            is_public=folder.is_public,
            is_default=folder.is_default,
            note_count=counts.get(folder.id, 0),
        )

    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is not None and parent is not node:
            parent.children.append(node)
            continue
        if node.parent_id is not None:
            logger.debug(f"Folder {node.id} parent {node.parent_id} not visible; promoting")
        group = shared_root if node.is_public else private_root
        group.children.append(node)
        group.note_count += node.note_count

    _sort_children(private_root.children)
    _sort_children(shared_root.children)
    return [private_root, shared_root]
