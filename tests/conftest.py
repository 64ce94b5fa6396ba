"""Shared fixtures: a fake rustc and a builder for cargo metadata documents."""

import hashlib
import json
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from buckify.config import RepoConfig
from buckify.metadata import BuckifyContext, CargoMetadata, parse_metadata
from buckify.platform import Cfg, CfgCache, PlatformResolver, SUPPORTED_TARGETS, Toolchain

REGISTRY = "registry+https://github.com/rust-lang/crates.io-index"
REGISTRY_SRC = "/home/dev/.cargo/registry/src/index.crates.io-6f17d22bba15001f"
HOST_TRIPLE = "x86_64-unknown-linux-gnu"


def triple_cfgs(triple: str) -> List[Cfg]:
    """The cfg flags rustc reports for ``triple``, reduced to what tests need."""

    arch = triple.split("-")[0]
    target_arch = {"i686": "x86"}.get(arch, arch)
    width = "32" if arch == "i686" else "64"
    cfgs = [
        Cfg("debug_assertions"),
        Cfg("panic", "unwind"),
        Cfg("target_arch", target_arch),
        Cfg("target_pointer_width", width),
    ]
    if "apple-darwin" in triple:
        cfgs += [Cfg("unix"), Cfg("target_family", "unix"), Cfg("target_os", "macos"), Cfg("target_vendor", "apple")]
    elif "windows" in triple:
        env = "gnu" if triple.endswith("gnu") else "msvc"
        cfgs += [
            Cfg("windows"),
            Cfg("target_family", "windows"),
            Cfg("target_os", "windows"),
            Cfg("target_env", env),
            Cfg("target_vendor", "pc"),
        ]
    else:
        cfgs += [
            Cfg("unix"),
            Cfg("target_family", "unix"),
            Cfg("target_os", "linux"),
            Cfg("target_env", "gnu"),
            Cfg("target_vendor", "unknown"),
        ]
    return cfgs


class FakeToolchain(Toolchain):
    """Answers cfg queries from a table instead of running rustc."""

    def __init__(self, host: str = HOST_TRIPLE, failing: Iterable[str] = ()):
        super().__init__("rustc")
        self.host = host
        self.failing = set(failing)
        self.queries: List[Optional[str]] = []

    def print_cfg(self, triple: Optional[str] = None) -> List[Cfg]:
        self.queries.append(triple)
        if triple in self.failing:
            raise subprocess.CalledProcessError(1, ["rustc", "--print=cfg", "--target", triple])
        return triple_cfgs(triple or self.host)

    def host_triple(self) -> str:
        return self.host


class CargoWorkspace:
    """Builds a ``cargo metadata`` document for a workspace rooted at ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.packages: Dict[str, dict] = {}
        self.nodes: Dict[str, dict] = {}
        self.root_id: Optional[str] = None

    def package(
        self,
        name: str,
        version: str = "0.1.0",
        *,
        first_party: bool = False,
        path: str = "",
        lib: bool = True,
        lib_test: bool = True,
        proc_macro: bool = False,
        bins: Sequence[str] = (),
        tests: Sequence[str] = (),
        build_script: bool = False,
        links: Optional[str] = None,
        edition: str = "2021",
        features: Sequence[str] = (),
        root: bool = False,
    ) -> str:
        if first_party:
            manifest_dir = self.root / path if path else self.root
            package_id = f"path+file://{manifest_dir}#{name}@{version}"
            source = None
        else:
            manifest_dir = Path(REGISTRY_SRC) / f"{name}-{version}"
            package_id = f"{REGISTRY}#{name}@{version}"
            source = REGISTRY
        crate = name.replace("-", "_")
        targets = []
        if lib:
            targets.append(
                {
                    "name": crate,
                    "kind": ["proc-macro"] if proc_macro else ["lib"],
                    "src_path": f"{manifest_dir}/src/lib.rs",
                    "edition": edition,
                    "test": lib_test,
                }
            )
        for bin_name in bins:
            src = "src/main.rs" if bin_name == crate else f"src/bin/{bin_name}.rs"
            targets.append({"name": bin_name, "kind": ["bin"], "src_path": f"{manifest_dir}/{src}"})
        for test_name in tests:
            targets.append({"name": test_name, "kind": ["test"], "src_path": f"{manifest_dir}/tests/{test_name}.rs"})
        if build_script:
            targets.append(
                {
                    "name": "build-script-build",
                    "kind": ["custom-build"],
                    "src_path": f"{manifest_dir}/build.rs",
                }
            )
        self.packages[package_id] = {
            "id": package_id,
            "name": name,
            "version": version,
            "source": source,
            "manifest_path": f"{manifest_dir}/Cargo.toml",
            "edition": edition,
            "links": links,
            "targets": targets,
            "authors": [],
        }
        self.nodes[package_id] = {"id": package_id, "deps": [], "features": list(features)}
        if root:
            self.root_id = package_id
        return package_id

    def dep(
        self,
        source: str,
        target: str,
        name: Optional[str] = None,
        kinds: Sequence[Tuple[Optional[str], Optional[str]]] = ((None, None),),
    ) -> None:
        dep_name = name or self.packages[target]["name"].replace("-", "_")
        self.nodes[source]["deps"].append(
            {
                "name": dep_name,
                "pkg": target,
                "dep_kinds": [{"kind": kind, "target": platform} for kind, platform in kinds],
            }
        )

    def as_dict(self) -> dict:
        return {
            "packages": list(self.packages.values()),
            "resolve": {"nodes": list(self.nodes.values()), "root": self.root_id},
            "workspace_root": str(self.root),
            "workspace_members": [pid for pid, p in self.packages.items() if p["source"] is None],
            "version": 1,
        }

    def metadata(self) -> CargoMetadata:
        return parse_metadata(self.as_dict())

    def checksums(self) -> Dict[str, str]:
        return {
            f"{p['name']}-{p['version']}": hashlib.sha256(p["id"].encode()).hexdigest()
            for p in self.packages.values()
            if p["source"] is not None
        }

    def lockfile(self) -> str:
        lines = ["version = 4", ""]
        checksums = self.checksums()
        for package in sorted(self.packages.values(), key=lambda p: (p["name"], p["version"])):
            lines.append("[[package]]")
            lines.append(f'name = "{package["name"]}"')
            lines.append(f'version = "{package["version"]}"')
            if package["source"] is not None:
                lines.append(f'source = "{package["source"]}"')
                lines.append(f'checksum = "{checksums[package["name"] + "-" + package["version"]]}"')
            lines.append("")
        return "\n".join(lines)

    def write(self, directory: Path) -> Tuple[Path, Path]:
        metadata_path = Path(directory) / "metadata.json"
        lockfile_path = Path(directory) / "Cargo.lock"
        metadata_path.write_text(json.dumps(self.as_dict()), encoding="utf-8")
        lockfile_path.write_text(self.lockfile(), encoding="utf-8")
        return metadata_path, lockfile_path

    def context(self, resolver: PlatformResolver, repo_config: Optional[RepoConfig] = None) -> BuckifyContext:
        return BuckifyContext.from_metadata(
            self.metadata(),
            self.checksums(),
            self.root,
            resolver,
            repo_config or RepoConfig(),
        )


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def resolver(toolchain):
    return PlatformResolver(CfgCache(toolchain, SUPPORTED_TARGETS))


@pytest.fixture
def workspace(tmp_path):
    return CargoWorkspace(tmp_path)
