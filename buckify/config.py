"""Repository configuration support for buckify."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "buckify.toml"

# Rule attributes that may be carried forward from an existing BUCK file.
MERGEABLE_FIELDS: FrozenSet[str] = frozenset(
    {
        "target_compatible_with",
        "compatible_with",
        "exec_compatible_with",
        "env",
        "features",
        "rustc_flags",
        "visibility",
        "deps",
        "os_deps",
        "named_deps",
        "os_named_deps",
    }
)


@dataclass(frozen=True)
class PatchEntry:
    """A dependency version that was pinned by hand."""

    from_version: str
    to_version: str


@dataclass
class RepoConfig:
    """Resolved repository configuration."""

    inherit_workspace_deps: bool = False
    align_cells: bool = False
    ignore_tests: bool = True
    restrict_platforms: bool = False
    patch_fields: FrozenSet[str] = frozenset()
    bundle_cell: str = "buckal"
    pinned_versions: Dict[str, PatchEntry] = field(default_factory=dict)


def _read_toml_config(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _expect_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a boolean, got {value!r}", path=CONFIG_FILE_NAME)
    return value


def _parse_patch_fields(data: Dict[str, Any]) -> FrozenSet[str]:
    values = data.get("patch_fields") or []
    if not isinstance(values, (list, tuple)):
        raise ConfigError("'patch_fields' must be a list of field names", path=CONFIG_FILE_NAME)
    fields = {str(item) for item in values}
    unknown = sorted(fields - MERGEABLE_FIELDS)
    if unknown:
        raise ConfigError(
            f"Unknown patch field(s): {', '.join(unknown)}",
            path=CONFIG_FILE_NAME,
            hint=f"Supported fields: {', '.join(sorted(MERGEABLE_FIELDS))}",
        )
    return frozenset(fields)


def _parse_pinned_versions(data: Dict[str, Any]) -> Dict[str, PatchEntry]:
    patch_section = data.get("patch") or {}
    version_section = patch_section.get("version") or {}
    pinned: Dict[str, PatchEntry] = {}
    for name, raw in version_section.items():
        if not isinstance(raw, dict) or "from" not in raw or "to" not in raw:
            raise ConfigError(
                f"[patch.version] entry for '{name}' must define 'from' and 'to'",
                path=CONFIG_FILE_NAME,
            )
        pinned[name] = PatchEntry(from_version=str(raw["from"]), to_version=str(raw["to"]))
    return pinned


def config_from_dict(data: Dict[str, Any]) -> RepoConfig:
    """Build a :class:`RepoConfig` from an already-decoded TOML document."""

    bundle_cell = data.get("bundle_cell", "buckal")
    if not isinstance(bundle_cell, str) or not bundle_cell:
        raise ConfigError("'bundle_cell' must be a non-empty string", path=CONFIG_FILE_NAME)
    return RepoConfig(
        inherit_workspace_deps=_expect_bool(data, "inherit_workspace_deps", False),
        align_cells=_expect_bool(data, "align_cells", False),
        ignore_tests=_expect_bool(data, "ignore_tests", True),
        restrict_platforms=_expect_bool(data, "restrict_platforms", False),
        patch_fields=_parse_patch_fields(data),
        bundle_cell=bundle_cell,
        pinned_versions=_parse_pinned_versions(data),
    )


def load_repo_config(root: Path) -> RepoConfig:
    """Load ``buckify.toml`` from the build root.

    A missing file yields defaults. A file that cannot be read or decoded is
    reported and also yields defaults; well-formed TOML with invalid values
    raises :class:`ConfigError`.
    """

    path = Path(root) / CONFIG_FILE_NAME
    if not path.exists():
        return RepoConfig()
    try:
        data = _read_toml_config(path)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Failed to read repo config file at %s, using defaults: %s", path, exc)
        return RepoConfig()
    return config_from_dict(data)


__all__ = [
    "CONFIG_FILE_NAME",
    "MERGEABLE_FIELDS",
    "PatchEntry",
    "RepoConfig",
    "config_from_dict",
    "load_repo_config",
]
