"""
Cargo metadata models and the regeneration context.

The models mirror the subset of ``cargo metadata --format-version 1`` that
buckify consumes. They are validated with Pydantic v2 and ignore every field
they do not declare, so newer cargo releases that add fields keep working.

Example:
    ctx = BuckifyContext.load(
        metadata_path=Path("metadata.json"),
        lockfile_path=Path("Cargo.lock"),
        buck2_root=Path("."),
    )
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import RepoConfig, load_repo_config
from .errors import MetadataError
from .platform import CfgCache, PlatformResolver, Toolchain

LIB_KINDS = frozenset({"lib", "cdylib", "dylib", "rlib", "staticlib", "proc-macro"})


class MetadataModel(BaseModel):
    """Base class for cargo metadata records."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class Target(MetadataModel):
    name: str
    kind: List[str]
    src_path: str
    edition: Optional[str] = None
    test: bool = True

    def is_lib(self) -> bool:
        return any(kind in LIB_KINDS for kind in self.kind)

    def is_bin(self) -> bool:
        return "bin" in self.kind

    def is_test(self) -> bool:
        return "test" in self.kind

    def is_custom_build(self) -> bool:
        return "custom-build" in self.kind

    def is_proc_macro(self) -> bool:
        return "proc-macro" in self.kind


class Package(MetadataModel):
    id: str
    name: str
    version: str
    source: Optional[str] = None
    manifest_path: str
    edition: str = "2015"
    links: Optional[str] = None
    targets: List[Target] = Field(default_factory=list)

    @property
    def is_first_party(self) -> bool:
        return self.source is None

    @property
    def manifest_dir(self) -> PurePosixPath:
        return PurePosixPath(self.manifest_path.replace("\\", "/")).parent

    def lib_targets(self) -> List[Target]:
        return [t for t in self.targets if t.is_lib()]

    def bin_targets(self) -> List[Target]:
        return [t for t in self.targets if t.is_bin()]

    def test_targets(self) -> List[Target]:
        return [t for t in self.targets if t.is_test()]

    def custom_build_target(self) -> Optional[Target]:
        return next((t for t in self.targets if t.is_custom_build()), None)


class DepKindInfo(MetadataModel):
    # cargo reports normal dependencies with a null kind
    kind: Optional[str] = None
    target: Optional[str] = None

    @property
    def dep_kind(self) -> str:
        return self.kind or "normal"


class NodeDep(MetadataModel):
    name: str
    pkg: str
    dep_kinds: List[DepKindInfo] = Field(default_factory=list)


class Node(MetadataModel):
    id: str
    deps: List[NodeDep] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)


class Resolve(MetadataModel):
    nodes: List[Node]
    root: Optional[str] = None


class CargoMetadata(MetadataModel):
    packages: List[Package]
    resolve: Resolve
    workspace_root: str
    workspace_members: List[str] = Field(default_factory=list)

    def root_package(self) -> Package:
        root_id = self.resolve.root
        if root_id is None:
            if len(self.workspace_members) != 1:
                raise MetadataError(
                    "Could not determine the root package of a virtual workspace",
                    hint="Run from the directory of the package to convert",
                )
            root_id = self.workspace_members[0]
        for package in self.packages:
            if package.id == root_id:
                return package
        raise MetadataError(f"Root package '{root_id}' is missing from metadata")


def version_key(text: str) -> Tuple[int, Any]:
    """Sort key for crate versions; unparsable versions sort first, by text."""

    try:
        return (1, Version(text))
    except InvalidVersion:
        return (0, text)


def parse_metadata(data: Dict[str, Any]) -> CargoMetadata:
    try:
        return CargoMetadata.model_validate(data)
    except ValidationError as exc:
        raise MetadataError(f"Invalid cargo metadata: {exc}") from exc


def load_metadata(path: Path) -> CargoMetadata:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise MetadataError("Cargo metadata file not found", path=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise MetadataError(
            f"Cargo metadata is not valid JSON: {exc.msg}",
            path=str(path),
            line=exc.lineno,
            column=exc.colno,
        ) from exc
    return parse_metadata(data)


def load_checksums(path: Path) -> Dict[str, str]:
    """Return ``{"<name>-<version>": sha256}`` for every registry package in ``Cargo.lock``."""

    try:
        with Path(path).open("rb") as handle:
            lock = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise MetadataError("Cargo.lock not found", path=str(path)) from exc
    except tomllib.TOMLDecodeError as exc:
        raise MetadataError(f"Cargo.lock is not valid TOML: {exc}", path=str(path)) from exc
    checksums: Dict[str, str] = {}
    for entry in lock.get("package", []):
        checksum = entry.get("checksum")
        if checksum:
            checksums[f"{entry['name']}-{entry['version']}"] = checksum
    return checksums


@dataclass
class BuckifyContext:
    """Everything rule emission needs to know about the current resolution."""

    root: Package
    packages_map: Dict[str, Package]
    nodes_map: Dict[str, Node]
    checksums_map: Dict[str, str]
    workspace_root: PurePosixPath
    buck2_root: PurePosixPath
    resolver: PlatformResolver
    repo_config: RepoConfig = field(default_factory=RepoConfig)
    # skip merging manual changes in existing BUCK files
    no_merge: bool = False
    # leave first-party packages to their own regeneration pass
    separate: bool = False

    @classmethod
    def from_metadata(
        cls,
        metadata: CargoMetadata,
        checksums: Dict[str, str],
        buck2_root: Path,
        resolver: PlatformResolver,
        repo_config: Optional[RepoConfig] = None,
    ) -> "BuckifyContext":
        return cls(
            root=metadata.root_package(),
            packages_map={p.id: p for p in metadata.packages},
            nodes_map={n.id: n for n in metadata.resolve.nodes},
            checksums_map=dict(checksums),
            workspace_root=PurePosixPath(metadata.workspace_root.replace("\\", "/")),
            buck2_root=PurePosixPath(str(buck2_root).replace("\\", "/")),
            resolver=resolver,
            repo_config=repo_config or RepoConfig(),
        )

    @classmethod
    def load(
        cls,
        metadata_path: Path,
        lockfile_path: Path,
        buck2_root: Path,
        toolchain: Optional[Toolchain] = None,
    ) -> "BuckifyContext":
        metadata = load_metadata(metadata_path)
        checksums = load_checksums(lockfile_path)
        resolver = PlatformResolver(CfgCache(toolchain or Toolchain()))
        return cls.from_metadata(
            metadata,
            checksums,
            buck2_root,
            resolver,
            load_repo_config(Path(buck2_root)),
        )

    def package(self, package_id: str) -> Package:
        try:
            return self.packages_map[package_id]
        except KeyError:
            raise MetadataError(f"Package '{package_id}' is missing from metadata") from None

    def node(self, package_id: str) -> Node:
        try:
            return self.nodes_map[package_id]
        except KeyError:
            raise MetadataError(f"Resolve node '{package_id}' is missing from metadata") from None

    def checksum(self, package: Package) -> str:
        key = f"{package.name}-{package.version}"
        try:
            return self.checksums_map[key]
        except KeyError:
            raise MetadataError(
                f"No checksum recorded in Cargo.lock for {package.name} v{package.version}"
            ) from None


__all__ = [
    "BuckifyContext",
    "CargoMetadata",
    "DepKindInfo",
    "LIB_KINDS",
    "Node",
    "NodeDep",
    "Package",
    "Resolve",
    "Target",
    "load_checksums",
    "load_metadata",
    "parse_metadata",
    "version_key",
]
