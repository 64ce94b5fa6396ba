"""Tests for cargo metadata loading and the error model."""

import json
from pathlib import PurePosixPath

import pytest

from buckify.errors import BuckifyError, ManifestError, MetadataError
from buckify.metadata import load_checksums, load_metadata, parse_metadata, version_key


class TestMetadata:
    """Test decoding of cargo metadata documents."""

    def test_targets_are_classified(self, workspace):
        workspace.package("app", first_party=True, bins=["app"], tests=["smoke"], build_script=True, root=True)
        (package,) = workspace.metadata().packages

        assert package.is_first_party
        assert package.manifest_dir == PurePosixPath(workspace.root.as_posix())
        assert [t.name for t in package.lib_targets()] == ["app"]
        assert [t.name for t in package.bin_targets()] == ["app"]
        assert [t.name for t in package.test_targets()] == ["smoke"]
        assert package.custom_build_target().name == "build-script-build"

    def test_normal_dependency_kind(self, workspace):
        app = workspace.package("app", first_party=True, root=True)
        serde = workspace.package("serde", "1.0.200")
        workspace.dep(app, serde, kinds=[(None, None), ("dev", None)])

        node = {n.id: n for n in workspace.metadata().resolve.nodes}[app]

        assert [k.dep_kind for k in node.deps[0].dep_kinds] == ["normal", "dev"]

    def test_virtual_workspace_needs_a_single_member(self, workspace):
        workspace.package("a", first_party=True, path="a")
        workspace.package("b", first_party=True, path="b")
        with pytest.raises(MetadataError) as excinfo:
            workspace.metadata().root_package()
        assert excinfo.value.hint

    def test_single_member_is_the_root(self, workspace):
        member = workspace.package("a", first_party=True, path="a")
        assert workspace.metadata().root_package().id == member

    def test_invalid_document(self):
        with pytest.raises(MetadataError):
            parse_metadata({"packages": "nope"})

    def test_load_reports_bad_json_location(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text('{"packages": [\n  oops\n]}')
        with pytest.raises(MetadataError) as excinfo:
            load_metadata(path)
        assert excinfo.value.line == 2

    def test_load_from_file(self, workspace, tmp_path):
        workspace.package("app", first_party=True, root=True)
        metadata_path, _ = workspace.write(tmp_path)
        assert load_metadata(metadata_path).root_package().name == "app"
        assert json.loads(metadata_path.read_text())["version"] == 1


class TestChecksums:
    """Test reading registry checksums from Cargo.lock."""

    def test_only_registry_packages_have_checksums(self, workspace, tmp_path):
        workspace.package("app", first_party=True, root=True)
        workspace.package("serde", "1.0.200")
        _, lockfile_path = workspace.write(tmp_path)

        checksums = load_checksums(lockfile_path)

        assert checksums == workspace.checksums()
        assert list(checksums) == ["serde-1.0.200"]

    def test_missing_lockfile(self, tmp_path):
        with pytest.raises(MetadataError):
            load_checksums(tmp_path / "Cargo.lock")

    def test_missing_checksum_is_an_error(self, workspace, resolver):
        workspace.package("app", first_party=True, root=True)
        serde = workspace.package("serde", "1.0.200")
        ctx = workspace.context(resolver)
        ctx.checksums_map.clear()
        with pytest.raises(MetadataError):
            ctx.checksum(ctx.package(serde))

    def test_unknown_package(self, workspace, resolver):
        workspace.package("app", first_party=True, root=True)
        ctx = workspace.context(resolver)
        with pytest.raises(MetadataError):
            ctx.package("missing")


class TestVersionKey:
    def test_semantic_order(self):
        versions = ["0.10.0", "0.9.1", "1.0.0-alpha.1", "1.0.0"]
        assert sorted(versions, key=version_key) == ["0.9.1", "0.10.0", "1.0.0-alpha.1", "1.0.0"]

    def test_unparsable_versions_sort_first(self):
        assert sorted(["1.0.0", "not-a-version"], key=version_key) == ["not-a-version", "1.0.0"]


class TestErrorFormat:
    def test_message_location_code_and_hint(self):
        error = ManifestError("Bad manifest", path="crates/a/Cargo.toml", line=3, hint="Move it")
        assert error.format() == "Bad manifest (crates/a/Cargo.toml:3; MANIFEST) Hint: Move it"

    def test_plain_message(self):
        assert BuckifyError("Something failed").format() == "Something failed"

    def test_location_without_line(self):
        error = MetadataError("Cargo.lock not found", path="Cargo.lock")
        assert error.where() == "Cargo.lock"
        assert error.format() == "Cargo.lock not found (Cargo.lock; METADATA)"

    def test_location_with_column(self):
        error = BuckifyError("Unexpected token", path="BUCK", line=4, column=9)
        assert error.where() == "BUCK:4:9"
        assert BuckifyError("No file").where() is None
