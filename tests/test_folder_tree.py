"""Tests for building the two-root sidebar tree."""
from notecottage.models.schema import Folder
from notecottage.services.folder_tree import build_folder_tree


def make(folder_id, name, parent_id=None, position=0, is_public=False, user_id=1):
    return Folder(
        id=folder_id,
        name=name,
        parent_id=parent_id,
        position=position,
        is_public=is_public,
        user_id=user_id,
    )


def names(nodes):
    return [node.name for node in nodes]


class TestFolderTree:
    """Tests for build_folder_tree."""

    def test_always_two_groups(self):
        private, shared = build_folder_tree([])
        assert (private.id, private.position, private.is_public) == ("private", 0, False)
        assert (shared.id, shared.position, shared.is_public) == ("shared", 1, True)
        assert private.children == [] and shared.children == []
        assert private.icon == "\U0001F512"
        assert shared.icon == "\U0001F465"

    def test_split_by_visibility_and_sorted(self):
        folders = [
            make(1, "Zeta", position=1),
            make(2, "alpha", position=1),
            make(3, "First", position=0),
            make(4, "Team", is_public=True),
        ]
        private, shared = build_folder_tree(folders)
        assert names(private.children) == ["First", "alpha", "Zeta"]
        assert names(shared.children) == ["Team"]

    def test_nested_children(self):
        folders = [
            make(1, "Root"),
            make(2, "B", parent_id=1, position=1),
            make(3, "A", parent_id=1, position=0),
            make(4, "Leaf", parent_id=3),
        ]
        private, _ = build_folder_tree(folders)
        root = private.children[0]
        assert names(root.children) == ["A", "B"]
        assert names(root.children[0].children) == ["Leaf"]

    def test_public_child_of_private_parent_stays_nested(self):
        """A child sits under its visible parent whatever its own flag."""
        folders = [make(1, "Mine"), make(2, "Shared sub", parent_id=1, is_public=True)]
        private, shared = build_folder_tree(folders)
        assert names(private.children[0].children) == ["Shared sub"]
        assert shared.children == []

    def test_invisible_parent_promotes_child(self):
        """A visible folder under a hidden parent lands in its own group."""
        folders = [make(5, "Orphan", parent_id=99, is_public=True, user_id=2)]
        private, shared = build_folder_tree(folders)
        assert private.children == []
        assert names(shared.children) == ["Orphan"]

    def test_note_counts(self):
        folders = [make(1, "Top"), make(2, "Sub", parent_id=1), make(3, "Pub", is_public=True)]
        private, shared = build_folder_tree(folders, {1: 2, 2: 5, 3: 1})
        top = private.children[0]
        assert top.note_count == 2
        assert top.children[0].note_count == 5
        assert private.note_count == 2
        assert shared.note_count == 1
