"""Rule emission for resolved packages."""

from .deps import TargetKind, dep_kind_matches, insert_dep, set_deps
from .nodes import buckify_dep_node, buckify_root_node, emit_for_node

__all__ = [
    "TargetKind",
    "buckify_dep_node",
    "buckify_root_node",
    "dep_kind_matches",
    "emit_for_node",
    "insert_dep",
    "set_deps",
]
