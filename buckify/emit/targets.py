"""Emitters for the individual rule kinds."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Type, TypeVar

from ..errors import CfgParseError, ManifestError
from ..metadata import BuckifyContext, Node, Package, Target
from ..platform import Platform, buck_labels, lookup_platforms
from ..rules import (
    RUST_CRATES_ROOT,
    BuildscriptRun,
    CargoManifest,
    FileGroup,
    Glob,
    HttpArchive,
    RustBinary,
    RustLibrary,
    RustRule,
    RustTest,
)
from .deps import TargetKind, dep_kind_matches, set_deps

logger = logging.getLogger(__name__)

CRATES_IO_DOWNLOAD = "https://static.crates.io/crates"

R = TypeVar("R", bound=RustRule)


def build_name(target_name: str) -> str:
    """Strip cargo's ``-build`` suffix from a build script target name."""

    return target_name[: -len("-build")] if target_name.endswith("-build") else target_name


def vendor_target(package: Package) -> str:
    return f":{package.name}-vendor"


def crate_root(target: Target, manifest_dir: PurePosixPath) -> str:
    src_path = PurePosixPath(target.src_path.replace("\\", "/"))
    try:
        relative = src_path.relative_to(manifest_dir)
    except ValueError:
        raise ManifestError(
            f"Source path of target '{target.name}' is outside its package directory",
            path=target.src_path,
        ) from None
    return f"vendor/{relative.as_posix()}"


def _emit_rust_rule(
    rule_type: Type[R],
    package: Package,
    node: Node,
    target: Target,
    name: str,
    kind: TargetKind,
    ctx: BuckifyContext,
    public: bool = True,
) -> R:
    rule = rule_type(
        name=name,
        srcs={vendor_target(package)},
        crate=target.name.replace("-", "_"),
        crate_root=crate_root(target, package.manifest_dir),
        edition=package.edition,
        features=set(node.features),
        rustc_flags={f"@$(location :{package.name}-manifest[env_flags])"},
        visibility={"PUBLIC"} if public else set(),
    )
    set_deps(rule, node, kind, ctx)
    return rule


def _apply_platforms(rule: RustRule, package: Package) -> None:
    platforms = lookup_platforms(package.name)
    if platforms:
        rule.compatible_with = buck_labels(platforms)


def emit_rust_library(
    package: Package,
    node: Node,
    lib_target: Target,
    name: str,
    ctx: BuckifyContext,
) -> RustLibrary:
    rule = _emit_rust_rule(RustLibrary, package, node, lib_target, name, TargetKind.LIB, ctx)
    if lib_target.is_proc_macro():
        rule.proc_macro = True
    _apply_platforms(rule, package)
    return rule


def emit_rust_binary(
    package: Package,
    node: Node,
    bin_target: Target,
    name: str,
    ctx: BuckifyContext,
) -> RustBinary:
    rule = _emit_rust_rule(RustBinary, package, node, bin_target, name, TargetKind.BIN, ctx)
    _apply_platforms(rule, package)
    return rule


def emit_rust_test(
    package: Package,
    node: Node,
    test_target: Target,
    name: str,
    ctx: BuckifyContext,
) -> RustTest:
    rule = _emit_rust_rule(RustTest, package, node, test_target, name, TargetKind.TEST, ctx)
    _apply_platforms(rule, package)
    return rule


def emit_buildscript_build(
    build_target: Target,
    package: Package,
    node: Node,
    ctx: BuckifyContext,
) -> RustBinary:
    return _emit_rust_rule(
        RustBinary,
        package,
        node,
        build_target,
        f"{package.name}-{build_target.name}",
        TargetKind.CUSTOM_BUILD,
        ctx,
        public=False,
    )


def _links_metadata_label(dep_package: Package) -> str:
    build_target = dep_package.custom_build_target()
    if build_target is None:
        raise ManifestError(
            f"Dependency {dep_package.name} has links key but no build script target",
            path=dep_package.manifest_path,
        )
    return (
        f"//{RUST_CRATES_ROOT}/{dep_package.name}/{dep_package.version}:"
        f"{dep_package.name}-{build_name(build_target.name)}-run[metadata]"
    )


def _applies_to_host(platform_text: str, ctx: BuckifyContext) -> bool:
    try:
        platform = Platform.parse(platform_text)
    except CfgParseError as exc:
        logger.debug("Cannot evaluate platform %r for the host: %s", platform_text, exc)
        return False
    return ctx.resolver.matches_host(platform)


def emit_buildscript_run(
    package: Package,
    node: Node,
    build_target: Target,
    ctx: BuckifyContext,
) -> BuildscriptRun:
    rule = BuildscriptRun(
        name=f"{package.name}-{build_name(build_target.name)}-run",
        package_name=package.name,
        buildscript_rule=f":{package.name}-{build_target.name}",
        env_srcs={f":{package.name}-manifest[env_dict]"},
        features=set(node.features),
        version=package.version,
        manifest_dir=vendor_target(package),
        visibility={"PUBLIC"},
    )
    # Normal dependencies that declare `links` for the host pass their
    # build script metadata to this build script as DEP_* variables.
    for dep in node.deps:
        dep_package = ctx.packages_map.get(dep.pkg)
        if dep_package is None or dep_package.links is None:
            continue
        if any(
            dep_kind_matches(TargetKind.LIB, dep_kind.dep_kind)
            and (dep_kind.target is None or _applies_to_host(dep_kind.target, ctx))
            for dep_kind in dep.dep_kinds
        ):
            rule.env_srcs.add(_links_metadata_label(dep_package))
    return rule


def patch_with_buildscript(rule: RustRule, build_target: Target, package: Package) -> None:
    """Wire the build script's output directory and flags into ``rule``."""

    run_name = f"{package.name}-{build_name(build_target.name)}-run"
    rule.env["OUT_DIR"] = f"$(location :{run_name}[out_dir])"
    rule.rustc_flags.add(f"@$(location :{run_name}[rustc_flags])")


def emit_http_archive(package: Package, ctx: BuckifyContext) -> HttpArchive:
    return HttpArchive(
        name=f"{package.name}-vendor",
        urls={f"{CRATES_IO_DOWNLOAD}/{package.name}/{package.name}-{package.version}.crate"},
        sha256=ctx.checksum(package),
        archive_type="tar.gz",
        strip_prefix=f"{package.name}-{package.version}",
        out="vendor",
    )


def emit_filegroup(package: Package) -> FileGroup:
    return FileGroup(
        name=f"{package.name}-vendor",
        srcs=Glob(include={"**/**"}),
        out="vendor",
    )


def emit_cargo_manifest(package: Package) -> CargoManifest:
    return CargoManifest(name=f"{package.name}-manifest", vendor=vendor_target(package))


__all__ = [
    "build_name",
    "crate_root",
    "emit_buildscript_build",
    "emit_buildscript_run",
    "emit_cargo_manifest",
    "emit_filegroup",
    "emit_http_archive",
    "emit_rust_binary",
    "emit_rust_library",
    "emit_rust_test",
    "patch_with_buildscript",
    "vendor_target",
]
