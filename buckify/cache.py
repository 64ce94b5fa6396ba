"""
Snapshot persistence and change detection.

A snapshot records the fingerprint of every node from the last successful
regeneration. Diffing the current graph against it yields the nodes that
must be regenerated::

    previous = Snapshot.load(root / SNAPSHOT_FILE_NAME)
    changes = diff(graph, previous)
    for package_id, change in changes.items():
        ...
    Snapshot.from_graph(graph).save(root / SNAPSHOT_FILE_NAME)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple

from .errors import SnapshotError
from .graph import FINGERPRINT_ALGORITHM, Graph, fingerprint

logger = logging.getLogger(__name__)

SNAPSHOT_FILE_NAME = "buckify.snap"
SNAPSHOT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class SnapshotEntry:
    fingerprint: str
    name: str
    version: str


class ChangeType(Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class Change:
    package_id: str
    change_type: ChangeType
    name: str
    version: str


class ChangeSet:
    """Classified changes keyed by package id, iterated in sorted order."""

    def __init__(self) -> None:
        self._changes: Dict[str, Change] = {}

    def record(self, package_id: str, change_type: ChangeType, name: str, version: str) -> None:
        if package_id in self._changes:
            raise ValueError(f"Package {package_id} is already part of the change set")
        self._changes[package_id] = Change(package_id, change_type, name, version)

    def get(self, package_id: str) -> Optional[ChangeType]:
        change = self._changes.get(package_id)
        return change.change_type if change else None

    def items(self) -> Iterator[Tuple[str, ChangeType]]:
        for package_id in sorted(self._changes):
            yield package_id, self._changes[package_id].change_type

    def changes(self) -> Iterator[Change]:
        for package_id in sorted(self._changes):
            yield self._changes[package_id]

    def of_type(self, change_type: ChangeType) -> Iterator[Change]:
        return (change for change in self.changes() if change.change_type is change_type)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._changes

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)


@dataclass
class Snapshot:
    entries: Dict[str, SnapshotEntry] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @classmethod
    def from_graph(cls, graph: Graph) -> "Snapshot":
        return cls(
            {
                node.package_id: SnapshotEntry(fingerprint(node), node.name, node.version)
                for node in graph.nodes()
            }
        )

    def update(self, graph: Graph, package_ids: Iterable[str]) -> None:
        """Record the current fingerprints of ``package_ids``; other entries are left as they were."""

        for package_id in package_ids:
            node = graph.get_node(package_id)
            self.entries[package_id] = SnapshotEntry(fingerprint(node), node.name, node.version)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Snapshot":
        header = data.get("format")
        if not isinstance(header, dict):
            raise SnapshotError("Snapshot is missing its format header")
        if header.get("version") != SNAPSHOT_FORMAT_VERSION or header.get("algorithm") != FINGERPRINT_ALGORITHM:
            raise SnapshotError(
                f"Incompatible snapshot format {header.get('version')}/{header.get('algorithm')}",
                hint="The snapshot will be rebuilt from scratch",
            )
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, dict):
            raise SnapshotError("Snapshot entries must be a mapping")
        entries: Dict[str, SnapshotEntry] = {}
        for package_id, raw in raw_entries.items():
            try:
                entries[package_id] = SnapshotEntry(
                    fingerprint=str(raw["fingerprint"]),
                    name=str(raw["name"]),
                    version=str(raw["version"]),
                )
            except (KeyError, TypeError) as exc:
                raise SnapshotError(f"Malformed snapshot entry for {package_id}") from exc
        return cls(entries)

    def to_dict(self) -> Dict[str, object]:
        return {
            "format": {"version": SNAPSHOT_FORMAT_VERSION, "algorithm": FINGERPRINT_ALGORITHM},
            "entries": {
                package_id: {
                    "fingerprint": entry.fingerprint,
                    "name": entry.name,
                    "version": entry.version,
                }
                for package_id, entry in sorted(self.entries.items())
            },
        }

    @classmethod
    def load(cls, path: Path) -> "Snapshot":
        """Load a snapshot; an absent or incompatible one yields an empty snapshot."""

        path = Path(path)
        if not path.exists():
            return cls.empty()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, exc)
            return cls.empty()
        if not isinstance(data, dict):
            logger.warning("Ignoring snapshot %s: unexpected document shape", path)
            return cls.empty()
        try:
            return cls.from_dict(data)
        except SnapshotError as exc:
            logger.warning("Ignoring snapshot %s: %s", path, exc.format())
            return cls.empty()

    def save(self, path: Path) -> None:
        text = json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        Path(path).write_text(text, encoding="utf-8")

    def diff(self, current: Graph) -> ChangeSet:
        return diff(current, self)


def diff(current: Graph, previous: Snapshot) -> ChangeSet:
    changes = ChangeSet()
    for node in current.nodes():
        entry = previous.entries.get(node.package_id)
        if entry is None:
            changes.record(node.package_id, ChangeType.ADDED, node.name, node.version)
        elif entry.fingerprint != fingerprint(node):
            changes.record(node.package_id, ChangeType.CHANGED, node.name, node.version)
    for package_id, entry in previous.entries.items():
        if package_id not in current:
            changes.record(package_id, ChangeType.REMOVED, entry.name, entry.version)
    return changes


__all__ = [
    "Change",
    "ChangeSet",
    "ChangeType",
    "SNAPSHOT_FILE_NAME",
    "SNAPSHOT_FORMAT_VERSION",
    "Snapshot",
    "SnapshotEntry",
    "diff",
]
