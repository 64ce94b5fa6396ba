"""Turn one resolved package into the rules of its BUCK file."""

from __future__ import annotations

from typing import List

from ..errors import ManifestError
from ..metadata import BuckifyContext, Node, Package
from ..rules import Rule, RustBinary, RustLibrary
from .targets import (
    emit_buildscript_build,
    emit_buildscript_run,
    emit_cargo_manifest,
    emit_filegroup,
    emit_http_archive,
    emit_rust_binary,
    emit_rust_library,
    emit_rust_test,
    patch_with_buildscript,
)


def _append_buildscript_rules(rules: List[Rule], package: Package, node: Node, ctx: BuckifyContext) -> None:
    build_target = package.custom_build_target()
    if build_target is None:
        return
    for rule in rules:
        if isinstance(rule, (RustLibrary, RustBinary)):
            patch_with_buildscript(rule, build_target, package)
    rules.append(emit_buildscript_build(build_target, package, node, ctx))
    rules.append(emit_buildscript_run(package, node, build_target, ctx))


def buckify_dep_node(node: Node, ctx: BuckifyContext) -> List[Rule]:
    """Rules for a registry crate: archive, manifest, library and build script."""

    package = ctx.package(node.id)
    libs = package.lib_targets()
    if not libs:
        raise ManifestError(f"No library target found for {package.name} v{package.version}")
    rules: List[Rule] = [
        emit_http_archive(package, ctx),
        emit_cargo_manifest(package),
        emit_rust_library(package, node, libs[0], package.name, ctx),
    ]
    _append_buildscript_rules(rules, package, node, ctx)
    return rules


def buckify_root_node(node: Node, ctx: BuckifyContext) -> List[Rule]:
    """Rules for a package that lives in the build tree."""

    package = ctx.package(node.id)
    bins = package.bin_targets()
    libs = package.lib_targets()
    bin_names = {target.name for target in bins}
    lib_names = {target.name for target in libs}

    rules: List[Rule] = [emit_filegroup(package), emit_cargo_manifest(package)]

    for bin_target in bins:
        binary = emit_rust_binary(package, node, bin_target, bin_target.name, ctx)
        if bin_target.name in lib_names:
            # A binary may use the library of the same package through the crate name.
            binary.deps.add(f":lib{bin_target.name}")
        rules.append(binary)

    for lib_target in libs:
        name = f"lib{lib_target.name}" if lib_target.name in bin_names else lib_target.name
        rules.append(emit_rust_library(package, node, lib_target, name, ctx))
        if not ctx.repo_config.ignore_tests and lib_target.test:
            rules.append(emit_rust_test(package, node, lib_target, f"{lib_target.name}-unittest", ctx))

    if not ctx.repo_config.ignore_tests:
        crate_name = package.name.replace("-", "_")
        for test_target in package.test_targets():
            test = emit_rust_test(package, node, test_target, test_target.name, ctx)
            has_bin = crate_name in bin_names
            if has_bin:
                test.env[f"CARGO_BIN_EXE_{crate_name}"] = f"$(location :{crate_name})"
            if crate_name in lib_names:
                test.deps.add(f":lib{crate_name}" if has_bin else f":{crate_name}")
            rules.append(test)

    _append_buildscript_rules(rules, package, node, ctx)
    return rules


def emit_for_node(node_id: str, ctx: BuckifyContext) -> List[Rule]:
    package = ctx.package(node_id)
    node = ctx.node(node_id)
    if package.is_first_party:
        return buckify_root_node(node, ctx)
    return buckify_dep_node(node, ctx)


__all__ = ["buckify_dep_node", "buckify_root_node", "emit_for_node"]
