"""Resolved dependency graph and node fingerprints."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

from .errors import ManifestError
from .metadata import CargoMetadata, version_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FirstParty:
    """A package that lives in the build tree.

    ``relative_path`` is the manifest directory relative to the build root,
    with ``/`` separators; the root package itself uses ``""``.
    """

    relative_path: str = ""


@dataclass(frozen=True)
class ThirdParty:
    """A package fetched from a registry."""


NodeKind = Union[FirstParty, ThirdParty]


@dataclass(frozen=True)
class GraphNode:
    package_id: str
    name: str
    version: str
    edition: str
    features: FrozenSet[str] = field(default_factory=frozenset)
    kind: NodeKind = field(default_factory=ThirdParty)
    dep_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # Accept any iterable so callers may pass lists with duplicates.
        object.__setattr__(self, "features", frozenset(self.features))
        object.__setattr__(self, "dep_ids", frozenset(self.dep_ids))

    @property
    def is_first_party(self) -> bool:
        return isinstance(self.kind, FirstParty)

    def to_canonical(self) -> Dict[str, object]:
        if isinstance(self.kind, FirstParty):
            kind: Dict[str, object] = {"type": "first_party", "relative_path": self.kind.relative_path}
        else:
            kind = {"type": "third_party"}
        return {
            "package_id": self.package_id,
            "name": self.name,
            "version": self.version,
            "edition": self.edition,
            "features": sorted(self.features),
            "kind": kind,
            "deps": sorted(self.dep_ids),
        }


FINGERPRINT_ALGORITHM = "sha256-canonical-json-v1"


def fingerprint(node: GraphNode) -> str:
    """Content hash of ``node``; independent of set construction order."""

    encoded = json.dumps(node.to_canonical(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def relative_manifest_dir(manifest_dir: PurePosixPath, root: PurePosixPath) -> str:
    try:
        relative = manifest_dir.relative_to(root)
    except ValueError:
        raise ManifestError(
            f"Manifest directory {manifest_dir} is outside the build root {root}",
            path=str(manifest_dir),
        ) from None
    text = relative.as_posix()
    return "" if text == "." else text


class Graph:
    """A DAG of :class:`GraphNode` keyed by package id.

    Adjacency is stored in both directions so neighbor queries cost
    O(degree). An edge that would close a cycle is dropped.
    """

    def __init__(self, root_path: Union[str, PurePosixPath] = "") -> None:
        self.root_path = PurePosixPath(str(root_path).replace("\\", "/"))
        self._nodes: Dict[str, GraphNode] = {}
        self._outgoing: Dict[str, Set[str]] = {}
        self._incoming: Dict[str, Set[str]] = {}
        self.root_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        nodes: Iterable[GraphNode],
        edges: Iterable[Tuple[str, str]],
        root_path: Union[str, PurePosixPath] = "",
    ) -> "Graph":
        graph = cls(root_path)
        for node in nodes:
            graph.add_node(node)
        for source, target in edges:
            graph.add_edge(source, target)
        return graph

    @classmethod
    def from_metadata(
        cls,
        metadata: CargoMetadata,
        root_path: Union[str, PurePosixPath],
    ) -> "Graph":
        root = PurePosixPath(str(root_path).replace("\\", "/"))
        packages = {package.id: package for package in metadata.packages}
        nodes: List[GraphNode] = []
        edges: List[Tuple[str, str]] = []
        for resolved in metadata.resolve.nodes:
            package = packages.get(resolved.id)
            if package is None:
                logger.debug("Resolve node %s has no package entry, skipping", resolved.id)
                continue
            if package.is_first_party:
                kind: NodeKind = FirstParty(relative_manifest_dir(package.manifest_dir, root))
            else:
                kind = ThirdParty()
            dep_ids = [dep.pkg for dep in resolved.deps]
            nodes.append(
                GraphNode(
                    package_id=package.id,
                    name=package.name,
                    version=package.version,
                    edition=package.edition,
                    features=resolved.features,
                    kind=kind,
                    dep_ids=dep_ids,
                )
            )
            edges.extend((resolved.id, dep_id) for dep_id in dep_ids)
        graph = cls.build(nodes, edges, root)
        root_package = metadata.root_package()
        graph.root_id = root_package.id
        return graph

    def add_node(self, node: GraphNode) -> None:
        self._nodes[node.package_id] = node
        self._outgoing.setdefault(node.package_id, set())
        self._incoming.setdefault(node.package_id, set())

    def add_edge(self, source: str, target: str) -> bool:
        """Add ``source -> target``; return False when the edge was rejected."""

        if source not in self._nodes or target not in self._nodes:
            logger.debug("Ignoring edge %s -> %s: unknown endpoint", source, target)
            return False
        if source == target or self._reachable(target, source):
            logger.debug("Ignoring edge %s -> %s: it would close a cycle", source, target)
            return False
        self._outgoing[source].add(target)
        self._incoming[target].add(source)
        return True

    def _reachable(self, start: str, goal: str) -> bool:
        stack = [start]
        seen = {start}
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            for nxt in self._outgoing.get(current, ()):
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return False

    def get_node(self, package_id: str) -> Optional[GraphNode]:
        return self._nodes.get(package_id)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes(self) -> Iterator[GraphNode]:
        for package_id in sorted(self._nodes):
            yield self._nodes[package_id]

    def dependencies(self, package_id: str) -> FrozenSet[str]:
        return frozenset(self._outgoing.get(package_id, ()))

    def dependents(self, package_id: str) -> FrozenSet[str]:
        return frozenset(self._incoming.get(package_id, ()))

    def find_by_name(self, name: str, version: Optional[str] = None) -> Optional[GraphNode]:
        """Return the node named ``name``; the highest version wins when several exist."""

        matches = [
            node
            for node in self.nodes()
            if node.name == name and (version is None or node.version == version)
        ]
        if not matches:
            return None
        return max(matches, key=lambda node: version_key(node.version))


__all__ = [
    "FINGERPRINT_ALGORITHM",
    "FirstParty",
    "Graph",
    "GraphNode",
    "NodeKind",
    "ThirdParty",
    "fingerprint",
    "relative_manifest_dir",
]
