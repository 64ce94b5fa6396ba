"""Resolve platform predicates to the operating systems buckify supports."""

from __future__ import annotations

import logging
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .cfg import Cfg, Platform, parse_cfg_lines

logger = logging.getLogger(__name__)


class Os(Enum):
    """Target operating system families."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"

    @property
    def key(self) -> str:
        return self.value

    @property
    def buck_label(self) -> str:
        return f"prelude//os/constraints:{self.value}"


# Tier-1 host platforms plus x86_64-apple-darwin.
SUPPORTED_TARGETS: Tuple[Tuple[Os, str], ...] = (
    (Os.MACOS, "aarch64-apple-darwin"),
    (Os.MACOS, "x86_64-apple-darwin"),
    (Os.WINDOWS, "aarch64-pc-windows-msvc"),
    (Os.WINDOWS, "x86_64-pc-windows-msvc"),
    (Os.WINDOWS, "x86_64-pc-windows-gnu"),
    (Os.WINDOWS, "i686-pc-windows-msvc"),
    (Os.LINUX, "aarch64-unknown-linux-gnu"),
    (Os.LINUX, "x86_64-unknown-linux-gnu"),
    (Os.LINUX, "i686-unknown-linux-gnu"),
)

# Packages whose platform applicability cannot be derived from their
# dependents' predicates.
PACKAGE_PLATFORMS: Dict[str, FrozenSet[Os]] = {
    "hyper-named-pipe": frozenset({Os.WINDOWS}),
    "system-configuration": frozenset({Os.MACOS}),
    "windows-future": frozenset({Os.WINDOWS}),
    "windows": frozenset({Os.WINDOWS}),
    "winreg": frozenset({Os.WINDOWS}),
}


def lookup_platforms(package_name: str) -> Optional[FrozenSet[Os]]:
    return PACKAGE_PLATFORMS.get(package_name)


def buck_labels(oses: Iterable[Os]) -> Set[str]:
    return {os_.buck_label for os_ in oses}


class Toolchain:
    """Thin wrapper over the ``rustc`` binary used to query target configuration."""

    def __init__(self, rustc: str = "rustc") -> None:
        self.rustc = rustc

    def _run(self, args: Sequence[str]) -> str:
        # No timeout: a hung rustc blocks the caller.
        result = subprocess.run(
            [self.rustc, *args],
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout

    def print_cfg(self, triple: Optional[str] = None) -> List[Cfg]:
        args = ["--print=cfg"]
        if triple is not None:
            args += ["--target", triple]
        return parse_cfg_lines(self._run(args))

    def host_triple(self) -> str:
        output = self._run(["-vV"])
        for line in output.splitlines():
            if line.startswith("host: "):
                return line[len("host: "):].strip()
        raise RuntimeError(f"Failed to find host triple in rustc output:\n{output}")


class CfgCache:
    """Per-triple ``rustc --print=cfg`` results, loaded once.

    The first call to :meth:`get` queries every triple concurrently, one
    worker per triple. A triple whose query fails is left out of the cache
    and never matches any predicate. After initialization the cache is
    read-only.
    """

    def __init__(
        self,
        toolchain: Toolchain,
        targets: Sequence[Tuple[Os, str]] = SUPPORTED_TARGETS,
    ) -> None:
        self.toolchain = toolchain
        self.targets = tuple(targets)
        self._lock = threading.Lock()
        self._cfgs: Optional[Dict[str, FrozenSet[Cfg]]] = None
        self._host: Optional[Tuple[str, FrozenSet[Cfg]]] = None

    def _query(self, triple: str) -> FrozenSet[Cfg]:
        return frozenset(self.toolchain.print_cfg(triple))

    def _load(self) -> Dict[str, FrozenSet[Cfg]]:
        triples = sorted({triple for _, triple in self.targets})
        loaded: Dict[str, FrozenSet[Cfg]] = {}
        if not triples:
            return loaded
        with ThreadPoolExecutor(max_workers=len(triples)) as executor:
            futures = {triple: executor.submit(self._query, triple) for triple in triples}
            for triple, future in futures.items():
                try:
                    loaded[triple] = future.result()
                except Exception as exc:  # noqa: BLE001
                    logger.debug("Skipping target %s: cfg query failed: %s", triple, exc)
        return loaded

    def get(self) -> Mapping[str, FrozenSet[Cfg]]:
        if self._cfgs is None:
            with self._lock:
                if self._cfgs is None:
                    self._cfgs = self._load()
        return self._cfgs

    def host(self) -> Tuple[str, FrozenSet[Cfg]]:
        """Return the host triple and its cfg set."""

        if self._host is None:
            with self._lock:
                if self._host is None:
                    self._host = (
                        self.toolchain.host_triple(),
                        frozenset(self.toolchain.print_cfg()),
                    )
        return self._host


class PlatformResolver:
    """Maps platform predicates onto the supported :class:`Os` values."""

    def __init__(self, cache: CfgCache) -> None:
        self.cache = cache

    def oses_from_platform(self, platform: Platform) -> FrozenSet[Os]:
        cfgs = self.cache.get()
        matched = set()
        for os_, triple in self.cache.targets:
            triple_cfgs = cfgs.get(triple)
            if triple_cfgs is None:
                continue
            if platform.matches(triple, triple_cfgs):
                matched.add(os_)
        return frozenset(matched)

    def matches_host(self, platform: Platform) -> bool:
        triple, cfgs = self.cache.host()
        return platform.matches(triple, cfgs)


def platform_is_target_only(platform: Platform) -> bool:
    return platform.is_target_only()


__all__ = [
    "CfgCache",
    "Os",
    "PACKAGE_PLATFORMS",
    "PlatformResolver",
    "SUPPORTED_TARGETS",
    "Toolchain",
    "buck_labels",
    "lookup_platforms",
    "platform_is_target_only",
]
