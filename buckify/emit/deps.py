"""Dependency resolution and attachment for dependency-bearing rules."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import PurePosixPath
from typing import FrozenSet, Optional, Set, Tuple

from ..errors import CfgParseError, DependencyConflictError, ManifestError
from ..metadata import BuckifyContext, Node, NodeDep, Package
from ..platform import Os, Platform
from ..rules import RUST_CRATES_ROOT, THIRD_PARTY_ALIAS_ROOT, RustRule

logger = logging.getLogger(__name__)


class TargetKind(Enum):
    LIB = "lib"
    BIN = "bin"
    CUSTOM_BUILD = "custom-build"
    TEST = "test"


def dep_kind_matches(target_kind: TargetKind, dep_kind: str) -> bool:
    if target_kind is TargetKind.CUSTOM_BUILD:
        return dep_kind == "build"
    if target_kind is TargetKind.TEST:
        # Test targets see dev-dependencies as well as regular ones.
        return dep_kind in ("normal", "dev")
    return dep_kind == "normal"


def buck_rule_name_for_lib(package: Package) -> str:
    """Name of the library rule for a first-party package with exactly one library."""

    libs = package.lib_targets()
    if len(libs) != 1:
        raise ManifestError(
            f"Expected exactly one library target for dependency {package.name}, but found {len(libs)}",
            path=package.manifest_path,
        )
    lib_name = libs[0].name
    if any(target.name == lib_name for target in package.bin_targets()):
        return f"lib{lib_name}"
    return lib_name


def resolve_first_party_label(package: Package, buck2_root: PurePosixPath) -> str:
    manifest_dir = package.manifest_dir
    try:
        relative = manifest_dir.relative_to(buck2_root).as_posix()
    except ValueError:
        raise ManifestError(
            f"Dependency manifest dir `{manifest_dir}` is not under Buck2 root `{buck2_root}`",
            path=package.manifest_path,
        ) from None
    if relative == ".":
        relative = ""
    return f"//{relative}:{buck_rule_name_for_lib(package)}"


def third_party_label(package: Package) -> str:
    return f"//{RUST_CRATES_ROOT}/{package.name}/{package.version}:{package.name}"


def resolve_dep_label(
    dep: NodeDep,
    package: Package,
    buck2_root: PurePosixPath,
    use_workspace_alias: bool,
) -> Tuple[str, Optional[str]]:
    """Return the label for ``dep`` and its alias when the dependency was renamed."""

    alias = dep.name if dep.name != package.name.replace("-", "_") else None
    if package.is_first_party:
        return resolve_first_party_label(package, buck2_root), alias
    if use_workspace_alias:
        return f"//{THIRD_PARTY_ALIAS_ROOT}:{package.name}", alias
    return third_party_label(package), alias


def insert_dep(
    rule: RustRule,
    target: str,
    alias: Optional[str] = None,
    platforms: Optional[FrozenSet[Os]] = None,
) -> None:
    """Record ``target`` in the attribute selected by ``alias`` and ``platforms``.

    With ``platforms`` of ``None`` the dependency is unconditional and goes to
    ``deps`` or ``named_deps``; otherwise it goes to ``os_deps`` or
    ``os_named_deps`` once per OS.

    An unconditional alias seen twice with different targets keeps the first
    target and logs a warning. A platform-scoped alias may map to one target
    per OS; a different second target raises :class:`DependencyConflictError`.
    """

    if platforms is not None:
        for os_ in sorted(platforms, key=lambda item: item.key):
            os_key = os_.key
            if alias is not None:
                entries = rule.os_named_deps.setdefault(alias, {})
                existing = entries.get(os_key)
                if existing is None:
                    entries[os_key] = target
                elif existing != target:
                    raise DependencyConflictError(
                        f"os_named_deps alias '{alias}' had conflicting targets for platform "
                        f"'{os_key}': '{existing}' vs '{target}'"
                    )
            else:
                rule.os_deps.setdefault(os_key, set()).add(target)
    elif alias is not None:
        existing = rule.named_deps.get(alias)
        if existing is None:
            rule.named_deps[alias] = target
        elif existing != target:
            logger.warning(
                "named_deps alias '%s' had conflicting targets: '%s' vs '%s'",
                alias,
                existing,
                target,
            )
    else:
        rule.deps.add(target)


def _resolve_edge(
    dep: NodeDep,
    dep_package: Package,
    kind: TargetKind,
    ctx: BuckifyContext,
) -> Tuple[bool, Set[Os]]:
    """Return ``(unconditional, oses)`` for the dep kinds relevant to ``kind``."""

    unconditional = False
    platforms: Set[Os] = set()
    has_unsupported_platform = False
    for dep_kind in dep.dep_kinds:
        if not dep_kind_matches(kind, dep_kind.dep_kind):
            continue
        if dep_kind.target is None:
            unconditional = True
            continue
        try:
            platform = Platform.parse(dep_kind.target)
        except CfgParseError as exc:
            logger.debug("Cannot evaluate platform %r: %s", dep_kind.target, exc)
            platform = None
        oses = ctx.resolver.oses_from_platform(platform) if platform is not None else frozenset()
        if oses:
            platforms.update(oses)
            continue
        if platform is not None and platform.is_target_only():
            has_unsupported_platform = True
        elif ctx.repo_config.restrict_platforms:
            logger.info(
                "note: Dependency '%s' (package '%s'): ignoring platform '%s' that matches no supported target.",
                dep.name,
                dep_package.name,
                dep_kind.target,
            )
        else:
            logger.info(
                "note: Dependency '%s' (package '%s') has platform '%s' that could not be resolved; treating it as unconditional.",
                dep.name,
                dep_package.name,
                dep_kind.target,
            )
            unconditional = True
    if not unconditional and not platforms and has_unsupported_platform:
        logger.info(
            "note: Dependency '%s' (package '%s') targets only unsupported platforms and will be omitted.",
            dep.name,
            dep_package.name,
        )
    return unconditional, platforms


def set_deps(rule: RustRule, node: Node, kind: TargetKind, ctx: BuckifyContext) -> None:
    use_workspace_alias = ctx.repo_config.inherit_workspace_deps and node.id == ctx.root.id
    for dep in node.deps:
        dep_package = ctx.packages_map.get(dep.pkg)
        if dep_package is None:
            continue
        unconditional, platforms = _resolve_edge(dep, dep_package, kind, ctx)
        if not unconditional and not platforms:
            continue
        label, alias = resolve_dep_label(dep, dep_package, ctx.buck2_root, use_workspace_alias)
        insert_dep(rule, label, alias, None if unconditional else frozenset(platforms))


__all__ = [
    "TargetKind",
    "buck_rule_name_for_lib",
    "dep_kind_matches",
    "insert_dep",
    "resolve_dep_label",
    "resolve_first_party_label",
    "set_deps",
    "third_party_label",
]
