"""Command line entry point for buckify."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .cache import SNAPSHOT_FILE_NAME, Snapshot
from .config import load_repo_config
from .errors import BuckifyError
from .graph import Graph
from .metadata import BuckifyContext, load_checksums, load_metadata
from .platform import CfgCache, PlatformResolver, Toolchain
from .sync import flush_root, log_action, regenerate_dependents, regenerate_node, run_sync

LOG_LEVEL_ENV = "BUCKIFY_LOG_LEVEL"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the ``buckify`` logger from ``level`` or ``BUCKIFY_LOG_LEVEL``."""

    log_level = (level or os.getenv(LOG_LEVEL_ENV, "info")).lower()
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    numeric_level = level_map.get(log_level, logging.INFO)

    package_logger = logging.getLogger("buckify")
    package_logger.setLevel(numeric_level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)
        package_logger.propagate = False


def _load(args: argparse.Namespace):
    root = Path(args.root).resolve()
    metadata = load_metadata(Path(args.metadata))
    checksums = load_checksums(Path(args.lockfile))
    resolver = PlatformResolver(CfgCache(Toolchain(args.rustc)))
    ctx = BuckifyContext.from_metadata(metadata, checksums, root, resolver, load_repo_config(root))
    ctx.no_merge = args.no_merge
    ctx.separate = getattr(args, "separate", False)
    return metadata, ctx


def _snapshot_path(args: argparse.Namespace) -> Path:
    if args.snapshot:
        return Path(args.snapshot)
    return Path(args.root).resolve() / SNAPSHOT_FILE_NAME


def cmd_sync(args: argparse.Namespace) -> None:
    metadata, ctx = _load(args)
    changes = run_sync(metadata, ctx, _snapshot_path(args))
    log_action("Finished", f"{len(changes)} package(s) updated")


def cmd_regenerate(args: argparse.Namespace) -> None:
    """Rewrite the BUCK files of one crate and everything that depends on it.

    Only the snapshot entries of the rewritten packages are refreshed, so
    other pending changes are still picked up by the next ``sync``.
    """

    metadata, ctx = _load(args)
    graph = Graph.from_metadata(metadata, ctx.buck2_root)
    node = graph.find_by_name(args.crate, args.version)
    if node is None:
        wanted = f"{args.crate} v{args.version}" if args.version else args.crate
        raise BuckifyError(f"Package {wanted} is not part of the dependency graph")
    if node.package_id == ctx.root.id:
        flush_root(ctx)
    else:
        log_action("Flushing", f"{node.name} v{node.version}")
        regenerate_node(node.package_id, ctx)
    touched = [node.package_id, *regenerate_dependents(graph, node.package_id, ctx)]

    snapshot_path = _snapshot_path(args)
    snapshot = Snapshot.load(snapshot_path)
    snapshot.update(graph, touched)
    snapshot.save(snapshot_path)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--metadata",
        default="metadata.json",
        help="Output of `cargo metadata --format-version 1` (default: metadata.json)",
    )
    parser.add_argument("--lockfile", default="Cargo.lock", help="Path to Cargo.lock")
    parser.add_argument("--root", default=".", help="Buck2 project root (defaults to current directory)")
    parser.add_argument("--snapshot", default=None, help=f"Snapshot file (defaults to <root>/{SNAPSHOT_FILE_NAME})")
    parser.add_argument("--rustc", default="rustc", help="rustc executable used to query target cfgs")
    parser.add_argument(
        "--no-merge",
        action="store_true",
        help="Do not carry manual edits of existing BUCK files forward",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buckify",
        description="Generate Buck2 BUCK files from a Cargo dependency graph",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error"],
        default=None,
        help=f"Logging level (or set {LOG_LEVEL_ENV})",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Regenerate BUCK files for changed packages")
    _add_common_arguments(sync_parser)
    sync_parser.add_argument(
        "--separate",
        action="store_true",
        help="Skip first-party packages other than the root",
    )
    sync_parser.set_defaults(func=cmd_sync)

    regen_parser = subparsers.add_parser(
        "regenerate",
        help="Regenerate the BUCK files of a crate and its dependents",
    )
    regen_parser.add_argument("crate", help="Crate name")
    regen_parser.add_argument("--version", dest="version", default=None, help="Crate version")
    _add_common_arguments(regen_parser)
    regen_parser.set_defaults(func=cmd_regenerate)
    return parser


def main(argv: Optional[list] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)
    try:
        args.func(args)
    except BuckifyError as exc:
        print(f"error: {exc.format()}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
