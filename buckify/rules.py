"""Build rule records emitted into BUCK files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Dict, FrozenSet, Optional, Set, Tuple

# Generated rules reference vendored crates below this directory.
RUST_CRATES_ROOT = "third-party/rust/crates"
THIRD_PARTY_ALIAS_ROOT = "third-party/rust"


@dataclass
class Glob:
    include: Set[str] = field(default_factory=set)
    exclude: Set[str] = field(default_factory=set)


@dataclass
class Load:
    bzl: str
    items: Set[str] = field(default_factory=set)

    KIND: ClassVar[str] = "load"


@dataclass
class Rule:
    """Base class for rules rendered as a call with keyword arguments.

    ``FIELDS`` lists the attributes in the order they are written. Empty
    collections and ``None`` values are omitted unless the attribute is in
    ``ALWAYS``. ``KEYWORDS`` renames attributes whose BUCK keyword is not a
    usable Python name.
    """

    name: str

    KIND: ClassVar[str] = ""
    FIELDS: ClassVar[Tuple[str, ...]] = ("name",)
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset({"name"})
    KEYWORDS: ClassVar[Dict[str, str]] = {}

    @classmethod
    def keyword(cls, attribute: str) -> str:
        return cls.KEYWORDS.get(attribute, attribute)

    @classmethod
    def attribute(cls, keyword: str) -> Optional[str]:
        for attribute in cls.FIELDS:
            if cls.keyword(attribute) == keyword:
                return attribute
        return None


@dataclass
class HttpArchive(Rule):
    urls: Set[str] = field(default_factory=set)
    sha256: str = ""
    archive_type: str = "tar.gz"
    strip_prefix: str = ""
    out: Optional[str] = None

    KIND: ClassVar[str] = "http_archive"
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "urls", "sha256", "archive_type", "strip_prefix", "out")
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset({"name", "urls", "sha256", "archive_type", "strip_prefix"})
    KEYWORDS: ClassVar[Dict[str, str]] = {"archive_type": "type"}


@dataclass
class CargoManifest(Rule):
    vendor: str = ""

    KIND: ClassVar[str] = "cargo_manifest"
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "vendor")
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset({"name", "vendor"})


@dataclass
class FileGroup(Rule):
    srcs: Glob = field(default_factory=Glob)
    out: Optional[str] = None

    KIND: ClassVar[str] = "filegroup"
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "srcs", "out")
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset({"name", "srcs"})


_RUST_FIELDS_HEAD = (
    "name",
    "srcs",
    "crate",
    "crate_root",
    "edition",
    "target_compatible_with",
    "compatible_with",
    "exec_compatible_with",
    "env",
    "features",
    "rustc_flags",
)
_RUST_FIELDS_TAIL = ("named_deps", "os_named_deps", "os_deps", "visibility", "deps")


@dataclass
class RustRule(Rule):
    """Rules that carry dependency attributes.

    Only libraries, binaries and tests are dependency-bearing; the emission
    engine attaches resolved dependencies through this interface.
    """

    srcs: Set[str] = field(default_factory=set)
    crate: str = ""
    crate_root: str = ""
    edition: str = ""
    target_compatible_with: Set[str] = field(default_factory=set)
    compatible_with: Set[str] = field(default_factory=set)
    exec_compatible_with: Set[str] = field(default_factory=set)
    env: Dict[str, str] = field(default_factory=dict)
    features: Set[str] = field(default_factory=set)
    rustc_flags: Set[str] = field(default_factory=set)
    named_deps: Dict[str, str] = field(default_factory=dict)
    # alias -> os key -> label
    os_named_deps: Dict[str, Dict[str, str]] = field(default_factory=dict)
    # os key -> labels
    os_deps: Dict[str, Set[str]] = field(default_factory=dict)
    visibility: Set[str] = field(default_factory=set)
    deps: Set[str] = field(default_factory=set)

    FIELDS: ClassVar[Tuple[str, ...]] = _RUST_FIELDS_HEAD + _RUST_FIELDS_TAIL
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset(
        {"name", "srcs", "crate", "crate_root", "edition", "visibility"}
    )


@dataclass
class RustLibrary(RustRule):
    proc_macro: Optional[bool] = None

    KIND: ClassVar[str] = "rust_library"
    FIELDS: ClassVar[Tuple[str, ...]] = _RUST_FIELDS_HEAD + ("proc_macro",) + _RUST_FIELDS_TAIL


@dataclass
class RustBinary(RustRule):
    KIND: ClassVar[str] = "rust_binary"


@dataclass
class RustTest(RustRule):
    KIND: ClassVar[str] = "rust_test"


@dataclass
class BuildscriptRun(Rule):
    package_name: str = ""
    buildscript_rule: str = ""
    env: Dict[str, str] = field(default_factory=dict)
    env_srcs: Set[str] = field(default_factory=set)
    features: Set[str] = field(default_factory=set)
    version: str = ""
    manifest_dir: str = ""
    visibility: Set[str] = field(default_factory=set)

    KIND: ClassVar[str] = "buildscript_run"
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "name",
        "package_name",
        "buildscript_rule",
        "env",
        "env_srcs",
        "features",
        "version",
        "manifest_dir",
        "visibility",
    )
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset(
        {"name", "package_name", "buildscript_rule", "version", "manifest_dir"}
    )


@dataclass
class Alias(Rule):
    actual: str = ""
    visibility: Set[str] = field(default_factory=set)

    KIND: ClassVar[str] = "alias"
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "actual", "visibility")
    ALWAYS: ClassVar[FrozenSet[str]] = frozenset({"name", "actual", "visibility"})


RULE_TYPES: Dict[str, type] = {
    cls.KIND: cls
    for cls in (HttpArchive, CargoManifest, FileGroup, RustLibrary, RustBinary, RustTest, BuildscriptRun, Alias)
}


__all__ = [
    "Alias",
    "BuildscriptRun",
    "CargoManifest",
    "FileGroup",
    "Glob",
    "HttpArchive",
    "Load",
    "RULE_TYPES",
    "RUST_CRATES_ROOT",
    "Rule",
    "RustBinary",
    "RustLibrary",
    "RustRule",
    "RustTest",
    "THIRD_PARTY_ALIAS_ROOT",
]
