"""Tests for the tag store and the file index store."""

import pytest

from ftag.errors import ConflictError, InvalidNameError, TagNotFoundError
from ftag.models import Color
from ftag.state import FileIndex, TagStore


@pytest.fixture
def store():
    return TagStore()


class TestTagStore:
    """Creating, renaming and looking up tags."""

    def test_create_and_lookup(self, store):
        """A new tag is reachable by name and by id."""
        tag = store.create("work", color=Color(r=1, g=2, b=3))
        assert store.by_name("work") is tag
        assert store.get(tag.id) is tag
        assert tag.id in store
        assert len(store) == 1

    def test_create_duplicate_raises(self, store):
        """Names are unique."""
        store.create("work")
        with pytest.raises(ConflictError, match="already exists"):
            store.create("work")

    def test_create_invalid_name_raises(self, store):
        """Names the tag file cannot hold are refused."""
        with pytest.raises(InvalidNameError):
            store.create("-work")

    def test_require_missing_raises(self, store):
        with pytest.raises(TagNotFoundError, match="'nope' not found"):
            store.require("nope")

    def test_iteration_follows_creation_order(self, store):
        """Tags iterate in the order they were created."""
        for name in ["c", "a", "b"]:
            store.create(name)
        assert [t.name for t in store] == ["c", "a", "b"]

    def test_rename_updates_name_index(self, store):
        """Renaming moves the name index entry."""
        tag = store.create("old")
        assert store.rename(tag, "new") is True
        assert store.by_name("old") is None
        assert store.by_name("new") is tag
        assert store.check_consistency() == []

    def test_rename_to_same_name_is_noop(self, store):
        tag = store.create("same")
        assert store.rename(tag, "same") is False

    def test_rename_collision_raises(self, store):
        """Renaming onto a taken name fails and keeps the old name."""
        tag = store.create("a")
        store.create("b")
        with pytest.raises(ConflictError):
            store.rename(tag, "b")
        assert tag.name == "a"

    def test_set_color_and_enabled_report_changes(self, store):
        """Setters report whether anything changed."""
        tag = store.create("a")
        assert store.set_enabled(tag, True) is False
        assert store.set_enabled(tag, False) is True
        assert store.set_color(tag, Color(r=0, g=0, b=0)) is True
        assert store.set_color(tag, Color(r=0, g=0, b=0)) is False


class TestEdges:
    """add_edge/remove_edge keep supertag and subtag lists in step."""

    def test_add_edge_is_symmetric(self, store):
        """One call updates both sides."""
        sup, sub = store.create("sup"), store.create("sub")
        assert store.add_edge(sup.id, sub.id) is True
        assert sub.supers == [sup.id]
        assert sup.subs == [sub.id]

    def test_add_edge_twice_is_noop(self, store):
        """Edges are not duplicated."""
        sup, sub = store.create("sup"), store.create("sub")
        store.add_edge(sup.id, sub.id)
        assert store.add_edge(sup.id, sub.id) is False
        assert sup.subs == [sub.id]

    def test_remove_edge(self, store):
        """Removing an edge clears both sides; a second removal is a no-op."""
        sup, sub = store.create("sup"), store.create("sub")
        store.add_edge(sup.id, sub.id)
        assert store.remove_edge(sup.id, sub.id) is True
        assert sub.supers == [] and sup.subs == []
        assert store.remove_edge(sup.id, sub.id) is False

    def test_clear_supers_and_subs(self, store):
        """Clearing one side also clears the other tags' lists."""
        a, b, c = store.create("a"), store.create("b"), store.create("c")
        store.add_edge(a.id, b.id)
        store.add_edge(b.id, c.id)
        store.clear_supers(b)
        store.clear_subs(b)
        assert a.subs == [] and c.supers == []
        assert store.check_consistency() == []

    def test_detach_removes_every_edge(self, store):
        """Detaching drops the tag and every edge, self-loops included."""
        a, b, c = store.create("a"), store.create("b"), store.create("c")
        store.add_edge(a.id, b.id)
        store.add_edge(b.id, c.id)
        store.add_edge(b.id, b.id)
        store.detach(b.id)
        assert b.id not in store
        assert store.by_name("b") is None
        assert a.subs == [] and c.supers == []
        assert store.check_consistency() == []

    def test_mutation_sequence_stays_consistent(self, store):
        """A mixed series of edits never leaves a one-sided edge."""
        tags = [store.create(f"t{i}") for i in range(6)]
        for i, sup in enumerate(tags):
            for sub in tags[i:]:
                store.add_edge(sup.id, sub.id)
        store.remove_edge(tags[0].id, tags[3].id)
        store.detach(tags[2].id)
        store.rename(tags[4], "renamed")
        store.clear_subs(tags[1])
        assert store.check_consistency() == []

    def test_check_consistency_reports_one_sided_edge(self, store):
        """An edge written on one side only is reported."""
        a, b = store.create("a"), store.create("b")
        a.subs.append(b.id)
        errors = store.check_consistency()
        assert any("does not list it as a supertag" in e for e in errors)


class TestClosure:
    """closure() walks enabled subtags and terminates on cycles."""

    def test_closure_order(self, store):
        """The closure is pre-order, following subtag order."""
        root, a, b, a1 = (store.create(n) for n in ["root", "a", "b", "a1"])
        store.add_edge(root.id, a.id)
        store.add_edge(root.id, b.id)
        store.add_edge(a.id, a1.id)
        assert store.closure(root.id) == [root.id, a.id, a1.id, b.id]

    def test_closure_terminates_on_cycle_and_self_loop(self, store):
        """Each tag appears once even when the graph loops."""
        a, b, c = store.create("a"), store.create("b"), store.create("c")
        store.add_edge(a.id, b.id)
        store.add_edge(b.id, c.id)
        store.add_edge(c.id, a.id)
        store.add_edge(b.id, b.id)
        assert sorted(store.closure(a.id)) == sorted([a.id, b.id, c.id])

    def test_disabled_subtag_prunes(self, store):
        """A disabled subtag cuts off its whole branch."""
        a, b, c = store.create("a"), store.create("b", enabled=False), store.create("c")
        store.add_edge(a.id, b.id)
        store.add_edge(b.id, c.id)
        assert store.closure(a.id) == [a.id]

    def test_deep_chain_does_not_recurse(self, store):
        """A chain deeper than the recursion limit still resolves."""
        tags = [store.create(f"t{i}") for i in range(5000)]
        for sup, sub in zip(tags, tags[1:]):
            store.add_edge(sup.id, sub.id)
        assert len(store.closure(tags[0].id)) == 5000


class TestFileIndex:
    """File entries keyed by inode."""

    def test_add_and_iterate_in_inode_order(self):
        """Entries iterate by ascending inode."""
        index = FileIndex()
        index.add(9, "/c")
        index.add(5, "/a")
        assert [e.inode for e in index] == [5, 9]
        assert 9 in index and len(index) == 2

    def test_add_existing_raises(self):
        """An inode can be tracked once."""
        index = FileIndex()
        index.add(5, "/a")
        with pytest.raises(ConflictError):
            index.add(5, "/b")

    def test_add_zero_raises(self):
        with pytest.raises(ValueError):
            FileIndex().add(0, "/a")

    def test_set_path_and_pop(self):
        """set_path reports changes; pop returns the entry."""
        index = FileIndex()
        index.add(5)
        assert index.set_path(5, "/a") is True
        assert index.set_path(5, "/a") is False
        assert index.pop(5).path == "/a"
        assert 5 not in index

    def test_search_path_normalizes_stored_paths(self):
        """Stored paths are compared after lexical normalization."""
        index = FileIndex()
        index.add(5, "/home/user/../user/docs//report.txt")
        index.add(7)
        assert index.search_path("/home/user/docs/report.txt") == 5
        assert index.search_path("/nowhere") == 0
