"""Platform predicate parsing and resolution."""

from .cfg import Cfg, Platform, parse_cfg_lines
from .resolver import (
    SUPPORTED_TARGETS,
    CfgCache,
    Os,
    PlatformResolver,
    Toolchain,
    buck_labels,
    lookup_platforms,
    platform_is_target_only,
)

__all__ = [
    "Cfg",
    "CfgCache",
    "Os",
    "Platform",
    "PlatformResolver",
    "SUPPORTED_TARGETS",
    "Toolchain",
    "buck_labels",
    "lookup_platforms",
    "parse_cfg_lines",
    "platform_is_target_only",
]
