"""
Incremental regeneration of BUCK files.

A sync pass diffs the current dependency graph against the snapshot of the
previous pass and only touches the BUCK files of packages that changed::

    metadata = load_metadata(metadata_path)
    ctx = BuckifyContext.from_metadata(metadata, checksums, root, resolver, config)
    changes = run_sync(metadata, ctx)

Every BUCK file is rendered, merged and patched in memory and written in a
single call, so a failure while emitting a package leaves its previous file
in place.
"""

from __future__ import annotations

import logging
import shutil
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .cache import SNAPSHOT_FILE_NAME, ChangeSet, ChangeType, Snapshot
from .emit import emit_for_node
from .graph import Graph, relative_manifest_dir
from .metadata import BuckifyContext, CargoMetadata, Package, version_key
from .patching import patch_root_windows_rustc_flags, patch_rust_test_target_compatible_with
from .rules import RUST_CRATES_ROOT, THIRD_PARTY_ALIAS_ROOT, Alias, Rule
from .starlark import merge, render

logger = logging.getLogger(__name__)

BUCK_FILE_NAME = "BUCK"


def log_action(action: str, message: str) -> None:
    logger.info("%12s %s", action, message)


def vendor_dir(ctx: BuckifyContext, name: str, version: str) -> Path:
    return Path(str(ctx.buck2_root)) / RUST_CRATES_ROOT / name / version


def package_dir(package: Package, ctx: BuckifyContext) -> Path:
    """Directory holding the BUCK file of ``package``."""

    if package.is_first_party:
        return Path(str(package.manifest_dir))
    return vendor_dir(ctx, package.name, package.version)


def _write_buck_file(path: Path, rules: Sequence[Rule], ctx: BuckifyContext, root: bool = False) -> None:
    existing: Optional[str] = None
    if path.exists() and not ctx.no_merge and ctx.repo_config.patch_fields:
        try:
            existing = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Not merging manual edits from %s: %s", path, exc)
    merged = merge(existing, rules, ctx.repo_config.patch_fields, str(path))
    content = render(merged, ctx.repo_config.bundle_cell)
    if root:
        content = patch_root_windows_rustc_flags(content, ctx)
    content = patch_rust_test_target_compatible_with(content, str(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def regenerate_node(package_id: str, ctx: BuckifyContext) -> bool:
    """Rewrite the BUCK file of one package; the root package is left to :func:`flush_root`."""

    if package_id == ctx.root.id:
        return False
    package = ctx.package(package_id)
    rules = emit_for_node(package_id, ctx)
    _write_buck_file(package_dir(package, ctx) / BUCK_FILE_NAME, rules, ctx)
    return True


def _remove_vendor_dir(ctx: BuckifyContext, name: str, version: str) -> None:
    target = vendor_dir(ctx, name, version)
    if target.exists():
        shutil.rmtree(target)
    parent = target.parent
    if parent.exists() and not any(parent.iterdir()):
        parent.rmdir()


def apply_changes(changes: ChangeSet, ctx: BuckifyContext) -> None:
    """Regenerate added and changed packages and drop the vendor trees of removed ones."""

    workspace_prefix = f"path+file://{ctx.workspace_root}"
    for change in changes.changes():
        if change.change_type is ChangeType.REMOVED:
            if change.package_id == ctx.root.id or change.package_id.startswith(workspace_prefix):
                continue
            log_action("Removing", f"{change.name} v{change.version}")
            _remove_vendor_dir(ctx, change.name, change.version)
            continue

        if change.package_id == ctx.root.id:
            continue
        package = ctx.package(change.package_id)
        if ctx.separate and package.is_first_party:
            continue
        action = "Adding" if change.change_type is ChangeType.ADDED else "Flushing"
        log_action(action, f"{package.name} v{package.version}")
        regenerate_node(change.package_id, ctx)


def third_party_aliases(ctx: BuckifyContext) -> List[Alias]:
    """One alias per third-party crate used by first-party packages, at its newest version."""

    grouped: Dict[str, List[Package]] = defaultdict(list)
    for package_id, package in ctx.packages_map.items():
        if not package.is_first_party:
            continue
        node = ctx.nodes_map.get(package_id)
        if node is None:
            continue
        for dep in node.deps:
            dep_package = ctx.package(dep.pkg)
            if not dep_package.is_first_party:
                grouped[dep_package.name].append(dep_package)

    aliases = []
    for crate_name in sorted(grouped):
        latest = max(grouped[crate_name], key=lambda p: version_key(p.version))
        aliases.append(
            Alias(
                name=crate_name,
                actual=f"//{RUST_CRATES_ROOT}/{crate_name}/{latest.version}:{crate_name}",
                visibility={"PUBLIC"},
            )
        )
    return aliases


def generate_third_party_aliases(ctx: BuckifyContext) -> Path:
    path = Path(str(ctx.buck2_root)) / THIRD_PARTY_ALIAS_ROOT / BUCK_FILE_NAME
    content = render(third_party_aliases(ctx), ctx.repo_config.bundle_cell)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    log_action("Generated", f"third-party alias rules at {path}")
    return path


def root_buck_path(ctx: BuckifyContext) -> Path:
    relative = relative_manifest_dir(ctx.root.manifest_dir, ctx.buck2_root)
    return Path(str(ctx.buck2_root)) / relative / BUCK_FILE_NAME


def flush_root(ctx: BuckifyContext) -> Path:
    """Regenerate the BUCK file of the root package, which is rewritten on every pass."""

    log_action("Flushing", f"{ctx.root.name} v{ctx.root.version}")
    if ctx.repo_config.inherit_workspace_deps:
        log_action("Generating", "third-party alias rules (inherit_workspace_deps=true)")
        generate_third_party_aliases(ctx)
    else:
        log_action("Skipping", "third-party alias generation (inherit_workspace_deps=false)")

    path = root_buck_path(ctx)
    rules = emit_for_node(ctx.root.id, ctx)
    _write_buck_file(path, rules, ctx, root=True)
    return path


def regenerate_dependents(graph: Graph, package_id: str, ctx: BuckifyContext) -> List[str]:
    """Regenerate every package that depends on ``package_id``; return the ids touched."""

    touched = []
    for dependent in sorted(graph.dependents(package_id)):
        if dependent == ctx.root.id:
            continue
        package = ctx.package(dependent)
        log_action("Flushing", f"{package.name} v{package.version}")
        regenerate_node(dependent, ctx)
        touched.append(dependent)
    return touched


def check_pinned_versions(graph: Graph, ctx: BuckifyContext) -> List[str]:
    """Report pinned dependencies whose resolved version drifted from the pin."""

    drifted = []
    for name, entry in sorted(ctx.repo_config.pinned_versions.items()):
        node = graph.find_by_name(name)
        if node is None:
            logger.debug("Pinned dependency %s is not part of the graph", name)
            continue
        if node.version != entry.to_version:
            logger.warning(
                "%s is pinned to v%s (from v%s) but resolved to v%s",
                name,
                entry.to_version,
                entry.from_version,
                node.version,
            )
            drifted.append(name)
    return drifted


def run_sync(
    metadata: CargoMetadata,
    ctx: BuckifyContext,
    snapshot_path: Optional[Path] = None,
) -> ChangeSet:
    """Run one regeneration pass and persist the new snapshot."""

    snapshot_path = Path(snapshot_path or Path(str(ctx.buck2_root)) / SNAPSHOT_FILE_NAME)
    graph = Graph.from_metadata(metadata, ctx.buck2_root)
    check_pinned_versions(graph, ctx)

    previous = Snapshot.load(snapshot_path)
    changes = previous.diff(graph)
    logger.debug("%d package(s) changed since the last sync", len(changes))

    flush_root(ctx)
    apply_changes(changes, ctx)
    Snapshot.from_graph(graph).save(snapshot_path)
    return changes


__all__ = [
    "BUCK_FILE_NAME",
    "apply_changes",
    "check_pinned_versions",
    "flush_root",
    "generate_third_party_aliases",
    "log_action",
    "package_dir",
    "regenerate_dependents",
    "regenerate_node",
    "root_buck_path",
    "run_sync",
    "third_party_aliases",
    "vendor_dir",
]
