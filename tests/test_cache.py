"""Tests for snapshots and change detection."""

import json

import pytest

from buckify.cache import (
    SNAPSHOT_FORMAT_VERSION,
    ChangeSet,
    ChangeType,
    Snapshot,
    diff,
)
from buckify.errors import SnapshotError
from buckify.graph import FINGERPRINT_ALGORITHM, Graph, GraphNode


def node(package_id, version="1.0.0", features=()):
    return GraphNode(
        package_id=package_id,
        name=package_id.split("@")[0],
        version=version,
        edition="2021",
        features=features,
    )


def graph_of(*nodes):
    return Graph.build(nodes, [])


class TestDiff:
    """Test classification of changes between two graphs."""

    def test_empty_snapshot_marks_everything_added(self):
        changes = diff(graph_of(node("a@1"), node("b@1")), Snapshot.empty())
        assert list(changes.items()) == [("a@1", ChangeType.ADDED), ("b@1", ChangeType.ADDED)]

    def test_added_changed_removed(self):
        before = graph_of(node("a@1"), node("b@1"), node("c@1"))
        after = graph_of(node("a@1"), node("b@1", features=["std"]), node("d@1"))

        changes = diff(after, Snapshot.from_graph(before))

        assert changes.get("a@1") is None
        assert changes.get("b@1") is ChangeType.CHANGED
        assert changes.get("c@1") is ChangeType.REMOVED
        assert changes.get("d@1") is ChangeType.ADDED
        assert len(changes) == 3

    def test_removed_entries_keep_identity(self):
        before = graph_of(node("gone@2", version="2.0.0"))
        changes = Snapshot.from_graph(before).diff(graph_of())
        (change,) = list(changes.of_type(ChangeType.REMOVED))
        assert (change.name, change.version) == ("gone", "2.0.0")

    def test_unchanged_graph_yields_no_changes(self):
        graph = graph_of(node("a@1"), node("b@1"))
        changes = diff(graph, Snapshot.from_graph(graph))
        assert not changes

    def test_iteration_is_sorted(self):
        changes = diff(graph_of(node("z@1"), node("a@1"), node("m@1")), Snapshot.empty())
        assert [package_id for package_id, _ in changes.items()] == ["a@1", "m@1", "z@1"]


class TestChangeSet:
    def test_duplicate_ids_are_rejected(self):
        changes = ChangeSet()
        changes.record("a", ChangeType.ADDED, "a", "1")
        with pytest.raises(ValueError):
            changes.record("a", ChangeType.CHANGED, "a", "1")


class TestSnapshotPersistence:
    """Test saving and loading snapshots."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "buckify.snap"
        snapshot = Snapshot.from_graph(graph_of(node("a@1"), node("b@1")))
        snapshot.save(path)
        assert Snapshot.load(path) == snapshot

    def test_saved_text_is_stable(self, tmp_path):
        path = tmp_path / "buckify.snap"
        Snapshot.from_graph(graph_of(node("b@1"), node("a@1"))).save(path)
        first = path.read_text()
        Snapshot.from_graph(graph_of(node("a@1"), node("b@1"))).save(path)
        assert path.read_text() == first
        assert first.endswith("\n")
        data = json.loads(first)
        assert data["format"] == {"version": SNAPSHOT_FORMAT_VERSION, "algorithm": FINGERPRINT_ALGORITHM}
        assert list(data["entries"]) == ["a@1", "b@1"]

    def test_missing_file_is_empty(self, tmp_path):
        assert Snapshot.load(tmp_path / "absent.snap") == Snapshot.empty()

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "buckify.snap"
        path.write_text("{not json")
        assert Snapshot.load(path) == Snapshot.empty()

    def test_other_algorithm_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "buckify.snap"
        path.write_text(
            json.dumps({"format": {"version": SNAPSHOT_FORMAT_VERSION, "algorithm": "md5"}, "entries": {}})
        )
        assert Snapshot.load(path) == Snapshot.empty()

    def test_from_dict_rejects_missing_header(self):
        with pytest.raises(SnapshotError):
            Snapshot.from_dict({"entries": {}})

    def test_from_dict_rejects_malformed_entry(self):
        data = {
            "format": {"version": SNAPSHOT_FORMAT_VERSION, "algorithm": FINGERPRINT_ALGORITHM},
            "entries": {"a": {"fingerprint": "x"}},
        }
        with pytest.raises(SnapshotError):
            Snapshot.from_dict(data)
