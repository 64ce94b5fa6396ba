"""Tests for incremental BUCK file regeneration."""

import logging

import pytest

from buckify.cache import SNAPSHOT_FILE_NAME, ChangeType, Snapshot
from buckify.config import PatchEntry, RepoConfig
from buckify.graph import Graph
from buckify.sync import (
    check_pinned_versions,
    regenerate_dependents,
    root_buck_path,
    run_sync,
    third_party_aliases,
    vendor_dir,
)

SERDE_LABEL = "//third-party/rust/crates/serde/1.0.200:serde"


@pytest.fixture
def project(workspace):
    """A root binary, one member library and two registry crates."""

    ids = {
        "app": workspace.package("app", first_party=True, bins=["app"], root=True),
        "util": workspace.package("util", first_party=True, path="crates/util"),
        "serde": workspace.package("serde", "1.0.200"),
        "foo": workspace.package("foo", "1.2.0", build_script=True),
    }
    workspace.dep(ids["app"], ids["util"])
    workspace.dep(ids["app"], ids["serde"])
    workspace.dep(ids["util"], ids["serde"])
    return workspace, ids


def sync(workspace, resolver, config=None, **flags):
    ctx = workspace.context(resolver, config)
    for key, value in flags.items():
        setattr(ctx, key, value)
    return run_sync(workspace.metadata(), ctx), ctx


def drop_package(workspace, package_id):
    del workspace.packages[package_id]
    del workspace.nodes[package_id]
    for node in workspace.nodes.values():
        node["deps"] = [dep for dep in node["deps"] if dep["pkg"] != package_id]


def action_logged(caplog, action, subject):
    return any(message.split() == [action, *subject.split()] for message in caplog.messages)


class TestRunSync:
    """Test a full regeneration pass."""

    def test_first_pass_writes_every_file(self, project, resolver):
        workspace, ids = project
        changes, ctx = sync(workspace, resolver)

        assert all(change is ChangeType.ADDED for _, change in changes.items())
        assert len(changes) == 4

        root_text = root_buck_path(ctx).read_text()
        assert root_buck_path(ctx) == workspace.root / "BUCK"
        assert "rust_binary(" in root_text
        assert (workspace.root / "crates" / "util" / "BUCK").exists()
        serde_text = (vendor_dir(ctx, "serde", "1.0.200") / "BUCK").read_text()
        assert "http_archive(" in serde_text
        assert 'name = "serde"' in serde_text
        assert "buildscript_run(" in (vendor_dir(ctx, "foo", "1.2.0") / "BUCK").read_text()

        snapshot = Snapshot.load(workspace.root / SNAPSHOT_FILE_NAME)
        assert sorted(snapshot.entries) == sorted(ids.values())

    def test_second_pass_has_no_changes(self, project, resolver):
        workspace, _ = project
        sync(workspace, resolver)
        changes, _ = sync(workspace, resolver)
        assert not changes

    def test_unchanged_packages_are_not_rewritten(self, project, resolver):
        workspace, _ = project
        _, ctx = sync(workspace, resolver)
        serde_buck = vendor_dir(ctx, "serde", "1.0.200") / "BUCK"
        serde_buck.write_text("# kept\n")
        sync(workspace, resolver)
        assert serde_buck.read_text() == "# kept\n"

    def test_root_is_flushed_every_pass(self, project, resolver):
        workspace, _ = project
        _, ctx = sync(workspace, resolver)
        root_buck_path(ctx).write_text("# stale\n")
        sync(workspace, resolver)
        assert "rust_binary(" in root_buck_path(ctx).read_text()

    def test_removed_package_drops_vendor_dir(self, project, resolver, caplog):
        workspace, ids = project
        _, ctx = sync(workspace, resolver)
        assert vendor_dir(ctx, "foo", "1.2.0").exists()

        drop_package(workspace, ids["foo"])
        with caplog.at_level(logging.INFO, logger="buckify"):
            changes, _ = sync(workspace, resolver)

        assert changes.get(ids["foo"]) is ChangeType.REMOVED
        assert not vendor_dir(ctx, "foo", "1.2.0").exists()
        assert not vendor_dir(ctx, "foo", "1.2.0").parent.exists()
        assert action_logged(caplog, "Removing", "foo v1.2.0")

    def test_removed_member_keeps_its_directory(self, project, resolver):
        workspace, ids = project
        sync(workspace, resolver)
        drop_package(workspace, ids["util"])
        sync(workspace, resolver)
        assert (workspace.root / "crates" / "util" / "BUCK").exists()

    def test_changed_package_is_flushed(self, project, resolver, caplog):
        workspace, ids = project
        sync(workspace, resolver)
        workspace.nodes[ids["serde"]]["features"] = ["derive"]

        with caplog.at_level(logging.INFO, logger="buckify"):
            changes, ctx = sync(workspace, resolver)

        assert changes.get(ids["serde"]) is ChangeType.CHANGED
        assert action_logged(caplog, "Flushing", "serde v1.0.200")
        assert '"derive"' in (vendor_dir(ctx, "serde", "1.0.200") / "BUCK").read_text()

    def test_separate_skips_members(self, project, resolver):
        workspace, _ = project
        sync(workspace, resolver, separate=True)
        assert not (workspace.root / "crates" / "util" / "BUCK").exists()
        assert (workspace.root / "BUCK").exists()

    def test_aliases_follow_configuration(self, project, resolver):
        workspace, _ = project
        alias_buck = workspace.root / "third-party" / "rust" / "BUCK"

        sync(workspace, resolver)
        assert not alias_buck.exists()

        sync(workspace, resolver, RepoConfig(inherit_workspace_deps=True))
        assert f'"{SERDE_LABEL}"' in alias_buck.read_text()


class TestManualEdits:
    """Test forwarding of hand-written attributes across regeneration."""

    def edit_member(self, workspace, ids):
        path = workspace.root / "crates" / "util" / "BUCK"
        text = path.read_text()
        path.write_text(text.replace(f'"{SERDE_LABEL}"', f'"//manual:extra", "{SERDE_LABEL}"', 1))
        workspace.nodes[ids["util"]]["features"] = ["extra"]
        return path

    def test_manual_dep_is_kept(self, project, resolver):
        workspace, ids = project
        config = RepoConfig(patch_fields=frozenset({"deps"}))
        sync(workspace, resolver, config)
        path = self.edit_member(workspace, ids)

        changes, _ = sync(workspace, resolver, config)

        assert changes.get(ids["util"]) is ChangeType.CHANGED
        text = path.read_text()
        assert '"//manual:extra"' in text
        assert f'"{SERDE_LABEL}"' in text

    def test_manual_dep_is_dropped_without_patch_fields(self, project, resolver):
        workspace, ids = project
        sync(workspace, resolver)
        path = self.edit_member(workspace, ids)
        sync(workspace, resolver)
        assert "//manual:extra" not in path.read_text()

    def test_no_merge_overrides_patch_fields(self, project, resolver):
        workspace, ids = project
        config = RepoConfig(patch_fields=frozenset({"deps"}))
        sync(workspace, resolver, config)
        path = self.edit_member(workspace, ids)
        sync(workspace, resolver, config, no_merge=True)
        assert "//manual:extra" not in path.read_text()

    def test_undecodable_file_is_replaced(self, project, resolver, caplog):
        workspace, ids = project
        config = RepoConfig(patch_fields=frozenset({"deps"}))
        sync(workspace, resolver, config)
        path = workspace.root / "crates" / "util" / "BUCK"
        path.write_bytes(b"rust_library(\n    name = \"util\",  # \xff\xfe\n)\n")
        workspace.nodes[ids["util"]]["features"] = ["extra"]

        with caplog.at_level(logging.WARNING, logger="buckify"):
            sync(workspace, resolver, config)

        assert f'"{SERDE_LABEL}"' in path.read_text()
        assert "Not merging manual edits" in caplog.text


class TestHelpers:
    """Test the building blocks used by the command line."""

    def test_aliases_pick_latest_version(self, workspace, resolver):
        app = workspace.package("app", first_party=True, root=True)
        util = workspace.package("util", first_party=True, path="crates/util")
        old = workspace.package("rand", "0.7.3")
        new = workspace.package("rand", "0.8.5")
        workspace.dep(app, new)
        workspace.dep(util, old)

        (alias,) = third_party_aliases(workspace.context(resolver))

        assert alias.name == "rand"
        assert alias.actual == "//third-party/rust/crates/rand/0.8.5:rand"

    def test_regenerate_dependents_skips_root(self, project, resolver):
        workspace, ids = project
        ctx = workspace.context(resolver)
        graph = Graph.from_metadata(workspace.metadata(), workspace.root)

        touched = regenerate_dependents(graph, ids["serde"], ctx)

        assert touched == [ids["util"]]
        assert (workspace.root / "crates" / "util" / "BUCK").exists()
        assert not (workspace.root / "BUCK").exists()

    def test_pinned_version_drift_is_reported(self, project, resolver, caplog):
        workspace, _ = project
        config = RepoConfig(
            pinned_versions={
                "serde": PatchEntry("1.0.100", "1.0.150"),
                "foo": PatchEntry("1.3.0", "1.2.0"),
                "absent": PatchEntry("1.0.0", "0.9.0"),
            }
        )
        ctx = workspace.context(resolver, config)
        graph = Graph.from_metadata(workspace.metadata(), workspace.root)

        with caplog.at_level(logging.WARNING, logger="buckify"):
            drifted = check_pinned_versions(graph, ctx)

        assert drifted == ["serde"]
        assert "serde is pinned to v1.0.150" in caplog.text
