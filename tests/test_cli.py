"""Tests for the buckify command line."""

import logging

import pytest

from conftest import FakeToolchain

from buckify import cli
from buckify.cache import SNAPSHOT_FILE_NAME, Snapshot


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    package_logger = logging.getLogger("buckify")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def fake_rustc(monkeypatch):
    monkeypatch.setattr(cli, "Toolchain", lambda rustc: FakeToolchain())


@pytest.fixture
def project_files(workspace, tmp_path):
    app = workspace.package("app", first_party=True, bins=["app"], root=True)
    util = workspace.package("util", first_party=True, path="crates/util")
    serde = workspace.package("serde", "1.0.200")
    workspace.dep(app, util)
    workspace.dep(util, serde)
    metadata_path, lockfile_path = workspace.write(tmp_path)
    common = ["--metadata", str(metadata_path), "--lockfile", str(lockfile_path), "--root", str(tmp_path)]
    return workspace, common


class TestSyncCommand:
    def test_sync_writes_files(self, project_files, tmp_path):
        _, common = project_files
        cli.main(["--log-level", "error", "sync", *common])
        assert (tmp_path / "BUCK").exists()
        assert (tmp_path / "crates" / "util" / "BUCK").exists()
        assert (tmp_path / "third-party" / "rust" / "crates" / "serde" / "1.0.200" / "BUCK").exists()
        assert (tmp_path / SNAPSHOT_FILE_NAME).exists()

    def test_custom_snapshot_path(self, project_files, tmp_path):
        _, common = project_files
        snapshot = tmp_path / "state" / "custom.snap"
        snapshot.parent.mkdir()
        cli.main(["sync", *common, "--snapshot", str(snapshot)])
        assert Snapshot.load(snapshot).entries
        assert not (tmp_path / SNAPSHOT_FILE_NAME).exists()

    def test_separate(self, project_files, tmp_path):
        _, common = project_files
        cli.main(["sync", *common, "--separate"])
        assert not (tmp_path / "crates" / "util" / "BUCK").exists()

    def test_missing_metadata_exits_with_error(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["sync", "--metadata", str(tmp_path / "absent.json"), "--root", str(tmp_path)])
        assert excinfo.value.code == 1
        assert capsys.readouterr().err.startswith("error: ")


class TestRegenerateCommand:
    def test_regenerates_crate_and_dependents(self, project_files, tmp_path):
        _, common = project_files
        cli.main(["regenerate", "serde", "--version", "1.0.200", *common])
        assert (tmp_path / "third-party" / "rust" / "crates" / "serde" / "1.0.200" / "BUCK").exists()
        assert (tmp_path / "crates" / "util" / "BUCK").exists()
        assert not (tmp_path / "BUCK").exists()

    def test_unknown_crate(self, project_files, capsys):
        _, common = project_files
        with pytest.raises(SystemExit):
            cli.main(["regenerate", "tokio", *common])
        assert "tokio is not part of the dependency graph" in capsys.readouterr().err


class TestParser:
    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main([])
        assert excinfo.value.code == 1
        assert "usage: buckify" in capsys.readouterr().out

    def test_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv(cli.LOG_LEVEL_ENV, "debug")
        cli.configure_logging()
        assert logging.getLogger("buckify").level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        cli.configure_logging("chatty")
        assert logging.getLogger("buckify").level == logging.INFO


class TestRegenerateSnapshot:
    """Test that a partial regeneration leaves other pending work to sync."""

    def test_pending_changes_survive_regenerate(self, project_files, tmp_path):
        workspace, common = project_files
        cli.main(["sync", *common])

        rand = workspace.package("rand", "0.8.5")
        workspace.dep(workspace.root_id, rand)
        workspace.write(tmp_path)
        cli.main(["regenerate", "serde", *common])

        rand_buck = tmp_path / "third-party" / "rust" / "crates" / "rand" / "0.8.5" / "BUCK"
        assert not rand_buck.exists()
        assert rand not in Snapshot.load(tmp_path / SNAPSHOT_FILE_NAME).entries

        cli.main(["sync", *common])
        assert rand_buck.exists()
        assert rand in Snapshot.load(tmp_path / SNAPSHOT_FILE_NAME).entries

    def test_root_is_flushed(self, project_files, tmp_path):
        workspace, common = project_files
        cli.main(["regenerate", "app", *common])
        assert "rust_binary(" in (tmp_path / "BUCK").read_text()
        assert list(Snapshot.load(tmp_path / SNAPSHOT_FILE_NAME).entries) == [workspace.root_id]
