"""Tests for permission-checked operations as seen by different users."""
import pytest

from notecottage.exceptions import FolderNotFoundError, NoteNotFoundError, PermissionDeniedError
from notecottage.models.schema import FolderUpdate


@pytest.fixture
def private_note(notebook, two_users):
    """A note in alice's private default folder."""
    alice, _ = two_users
    return notebook.create_note(alice.id, "Secret plan", "launch #secret")


@pytest.fixture
def shared_folder(notebook, two_users):
    alice, _ = two_users
    return notebook.create_folder(alice.id, "Team", is_public=True)


class TestPrivateContent:
    """A second user cannot see or change content in a private folder."""

    def test_read_denied(self, notebook, two_users, private_note):
        alice, bob = two_users
        assert notebook.get_note(alice.id, private_note.id).title == "Secret plan"
        with pytest.raises(PermissionDeniedError) as exc_info:
            notebook.get_note(bob.id, private_note.id)
        assert exc_info.value.resource == "note"

    def test_write_denied(self, notebook, two_users, private_note):
        _, bob = two_users
        with pytest.raises(PermissionDeniedError):
            notebook.update_note(bob.id, private_note.id, "hijacked")
        with pytest.raises(PermissionDeniedError):
            notebook.trash_note(bob.id, private_note.id)
        with pytest.raises(PermissionDeniedError):
            notebook.purge_note(bob.id, private_note.id)

    def test_hidden_from_listings_and_search(self, notebook, two_users, private_note):
        alice, bob = two_users
        assert private_note.id in [n.id for n in notebook.list_notes(alice.id)]
        assert private_note.id not in [n.id for n in notebook.list_notes(bob.id)]
        assert notebook.search(bob.id, "launch") == []
        assert [n.id for n in notebook.search(alice.id, "launch")] == [private_note.id]
        assert "secret plan" not in notebook.title_map(bob.id)
        assert notebook.notes_for_tag(bob.id, "secret") == []

    def test_links_to_hidden_notes_unresolved(self, notebook, two_users, private_note):
        alice, bob = two_users
        assert notebook.resolve_wiki_links(alice.id, "[[Secret plan]]")[0].resolved
        assert not notebook.resolve_wiki_links(bob.id, "[[Secret plan]]")[0].resolved

    def test_cannot_create_in_foreign_private_folder(self, notebook, two_users, private_note):
        _, bob = two_users
        with pytest.raises(PermissionDeniedError):
            notebook.create_note(bob.id, "Sneaky", "x", folder_id=private_note.folder_id)
        with pytest.raises(PermissionDeniedError):
            notebook.list_folder_notes(bob.id, private_note.folder_id)

    def test_missing_note(self, notebook, two_users):
        alice, _ = two_users
        with pytest.raises(NoteNotFoundError):
            notebook.get_note(alice.id, 999)


class TestSharedContent:
    """Notes in public folders are open to every user; the folder is not."""

    def test_notes_readable_and_writable(self, notebook, two_users, shared_folder):
        alice, bob = two_users
        note = notebook.create_note(alice.id, "Agenda", "draft", folder_id=shared_folder.id)
        assert notebook.get_note(bob.id, note.id).id == note.id
        assert notebook.update_note(bob.id, note.id, "edited by bob").content == "edited by bob"
        assert [n.id for n in notebook.list_folder_notes(bob.id, shared_folder.id)] == [note.id]

    def test_folder_owner_only(self, notebook, two_users, shared_folder):
        _, bob = two_users
        with pytest.raises(PermissionDeniedError):
            notebook.update_folder(bob.id, shared_folder.id, FolderUpdate(name="Mine now"))
        with pytest.raises(PermissionDeniedError):
            notebook.reorder_folder(bob.id, shared_folder.id, 0)
        with pytest.raises(PermissionDeniedError):
            notebook.delete_folder(bob.id, shared_folder.id)

    def test_subfolder_under_shared_parent(self, notebook, two_users, shared_folder):
        _, bob = two_users
        child = notebook.create_folder(bob.id, "Bob's corner", parent_id=shared_folder.id)
        assert child.parent_id == shared_folder.id
        assert child.user_id == bob.id

    def test_backlinks_filtered(self, notebook, two_users, shared_folder):
        alice, bob = two_users
        target = notebook.create_note(alice.id, "Roadmap", "q3", folder_id=shared_folder.id)
        public_link = notebook.create_note(
            alice.id, "Public ref", "[[Roadmap]]", folder_id=shared_folder.id
        )
        notebook.create_note(alice.id, "Private ref", "[[Roadmap]]")
        assert [n.id for n in notebook.backlinks(bob.id, target.id)] == [public_link.id]
        assert len(notebook.backlinks(alice.id, target.id)) == 2


class TestFolderOperations:
    """Tests for folder management through the service."""

    def test_update_and_move_to_top_level(self, notebook, two_users):
        alice, _ = two_users
        parent = notebook.create_folder(alice.id, "Parent")
        child = notebook.create_folder(alice.id, "Child", parent_id=parent.id)
        moved = notebook.update_folder(
            alice.id, child.id, FolderUpdate(parent_id=None, color="#ff0000")
        )
        assert moved.parent_id is None
        assert moved.color == "#ff0000"

    def test_cannot_reparent_under_foreign_private_folder(self, notebook, two_users):
        alice, bob = two_users
        hidden = notebook.create_folder(alice.id, "Hidden")
        mine = notebook.create_folder(bob.id, "Mine")
        with pytest.raises(PermissionDeniedError):
            notebook.reorder_folder(bob.id, mine.id, 0, new_parent_id=hidden.id)

    def test_folder_tree_per_user(self, notebook, two_users, shared_folder):
        alice, bob = two_users
        notebook.create_note(alice.id, "Agenda", "x", folder_id=shared_folder.id)
        private, shared = notebook.folder_tree(bob.id)
        assert [f.name for f in private.children] == ["bob's Notes"]
        assert [f.name for f in shared.children] == ["Team"]
        assert shared.note_count == 1

        private, _ = notebook.folder_tree(alice.id)
        assert [f.name for f in private.children] == ["Uncategorized"]

    def test_breadcrumbs(self, notebook, two_users):
        alice, _ = two_users
        a = notebook.create_folder(alice.id, "A")
        b = notebook.create_folder(alice.id, "B", parent_id=a.id)
        c = notebook.create_folder(alice.id, "C", parent_id=b.id)
        assert [f.name for f in notebook.breadcrumbs(alice.id, c.id)] == ["A", "B", "C"]

    def test_missing_folder(self, notebook, two_users):
        alice, _ = two_users
        with pytest.raises(FolderNotFoundError):
            notebook.breadcrumbs(alice.id, 999)


class TestTrashScope:
    """Trash listings and emptying are per user."""

    def test_empty_trash_only_touches_own_notes(self, notebook, two_users, shared_folder):
        alice, bob = two_users
        mine = notebook.create_note(bob.id, "Mine", "x")
        theirs = notebook.create_note(alice.id, "Theirs", "y", folder_id=shared_folder.id)
        notebook.trash_note(bob.id, mine.id)
        notebook.trash_note(bob.id, theirs.id)

        assert [n.id for n in notebook.list_trash(bob.id)] == [mine.id]
        assert notebook.empty_trash(bob.id) == 1
        assert [n.id for n in notebook.list_trash(alice.id)] == [theirs.id]
        assert notebook.restore_note(alice.id, theirs.id) is True

    def test_anonymous_actor_reaches_only_ownerless_trash(self, notebook, two_users):
        alice, _ = two_users
        private = notebook.create_note(alice.id, "Private draft", "x")
        notebook.trash_note(alice.id, private.id)
        legacy = notebook.notes.create("Legacy", "y")
        notebook.notes.soft_delete(legacy.id)

        assert [n.id for n in notebook.list_trash(None)] == [legacy.id]
        assert notebook.empty_trash(None) == 1
        assert [n.id for n in notebook.list_trash(alice.id)] == [private.id]


class TestSearchVisibility:
    """Search limits apply to notes the actor can read."""

    def test_hidden_matches_do_not_crowd_out_visible_ones(
        self, notebook, two_users, test_config, monkeypatch
    ):
        alice, bob = two_users
        notebook.create_note(alice.id, "zebra zebra", "zebra zebra zebra")
        mine = notebook.create_note(bob.id, "Animals", "a zebra once")
        monkeypatch.setattr(test_config, "search_limit", 1)

        assert [n.id for n in notebook.search(bob.id, "zebra")] == [mine.id]

    def test_anonymous_sees_folderless_and_public(self, notebook, two_users, shared_folder):
        alice, _ = two_users
        public = notebook.create_note(alice.id, "Open", "giraffe", folder_id=shared_folder.id)
        notebook.create_note(alice.id, "Closed", "giraffe")
        assert [n.id for n in notebook.search(None, "giraffe")] == [public.id]


class TestDefaultFolderResolution:
    """Notes created without a folder land somewhere the actor can read."""

    def test_default_folder_used(self, notebook, two_users, folder_repository):
        _, bob = two_users
        note = notebook.create_note(bob.id, "Quick", "x")
        assert note.folder_id == folder_repository.get_default_folder_for_user(bob.id).id
        assert notebook.get_note(bob.id, note.id).id == note.id

    def test_user_without_default_folder_rejected(self, notebook, user_repository):
        carol = user_repository.create("carol", "carol@example.com", "hash")
        with pytest.raises(PermissionDeniedError):
            notebook.create_note(carol.id, "Lost", "x")
        assert notebook.notes.count() == 0
