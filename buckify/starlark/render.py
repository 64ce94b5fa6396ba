"""Deterministic BUCK file rendering.

Output layout::

    # @generated by buckify

    load("@buckal//:cargo_manifest.bzl", "cargo_manifest")
    load("@buckal//:wrapper.bzl", "rust_library")

    rust_library(
        name = "foo",
        srcs = [":foo-vendor"],
        ...
    )

Sets and dict keys are sorted. A list with at most one scalar stays on one
line; longer lists and all non-empty dicts put one entry per line with a
trailing comma.
"""

from __future__ import annotations

from typing import Any, List, Sequence

from ..rules import BuildscriptRun, CargoManifest, Glob, Load, Rule, RustBinary, RustLibrary, RustTest

GENERATED_BANNER = "# @generated by buckify"
INDENT = "    "

# wrapper.bzl provides these rule kinds.
WRAPPER_KINDS = (RustLibrary.KIND, RustBinary.KIND, RustTest.KIND, BuildscriptRun.KIND)


def quote(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool, int)) or value is None


def render_value(value: Any, indent: int = 1) -> str:
    """Render ``value`` as it appears after ``keyword = `` at nesting level ``indent``."""

    if isinstance(value, bool):
        return "True" if value else "False"
    if value is None:
        return "None"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, Glob):
        return _render_glob(value, indent)
    if isinstance(value, (set, frozenset)):
        return _render_list(sorted(value), indent)
    if isinstance(value, (list, tuple)):
        return _render_list(list(value), indent)
    if isinstance(value, dict):
        return _render_dict(value, indent)
    raise TypeError(f"Cannot render value of type {type(value).__name__}")


def _render_list(items: List[Any], indent: int) -> str:
    if not items:
        return "[]"
    if len(items) == 1 and _is_scalar(items[0]):
        return f"[{render_value(items[0], indent)}]"
    inner = INDENT * (indent + 1)
    lines = [f"{inner}{render_value(item, indent + 1)}," for item in items]
    return "[\n" + "\n".join(lines) + f"\n{INDENT * indent}]"


def _render_dict(mapping: dict, indent: int) -> str:
    if not mapping:
        return "{}"
    inner = INDENT * (indent + 1)
    lines = [
        f"{inner}{render_value(key, indent + 1)}: {render_value(mapping[key], indent + 1)},"
        for key in sorted(mapping)
    ]
    return "{\n" + "\n".join(lines) + f"\n{INDENT * indent}}}"


def _render_glob(glob: Glob, indent: int) -> str:
    if not glob.exclude:
        return f"glob({_render_list(sorted(glob.include), indent)})"
    inner = INDENT * (indent + 1)
    return (
        "glob(\n"
        f"{inner}include = {_render_list(sorted(glob.include), indent + 1)},\n"
        f"{inner}exclude = {_render_list(sorted(glob.exclude), indent + 1)},\n"
        f"{INDENT * indent})"
    )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Glob):
        return not value.include and not value.exclude
    if isinstance(value, (set, frozenset, list, tuple, dict)):
        return not value
    return False


def render_rule(rule: Rule) -> str:
    lines = [f"{rule.KIND}("]
    for attribute in rule.FIELDS:
        value = getattr(rule, attribute)
        if attribute not in rule.ALWAYS and _is_empty(value):
            continue
        if value is None:
            continue
        lines.append(f"{INDENT}{rule.keyword(attribute)} = {render_value(value)},")
    lines.append(")")
    return "\n".join(lines) + "\n"


def render_load(load: Load) -> str:
    args = ", ".join(quote(item) for item in [load.bzl, *sorted(load.items)])
    return f"load({args})\n"


def load_statements(rules: Sequence[Rule], cell: str = "buckal") -> List[Load]:
    """Load statements for the rule kinds present, in declaration order."""

    kinds = {rule.KIND for rule in rules}
    loads: List[Load] = []
    if CargoManifest.KIND in kinds:
        loads.append(Load(bzl=f"@{cell}//:cargo_manifest.bzl", items={CargoManifest.KIND}))
    wrapper_items = {kind for kind in WRAPPER_KINDS if kind in kinds}
    if wrapper_items:
        loads.append(Load(bzl=f"@{cell}//:wrapper.bzl", items=wrapper_items))
    return loads


def render(rules: Sequence[Rule], cell: str = "buckal") -> str:
    """Render a complete BUCK file for ``rules``."""

    parts = [GENERATED_BANNER + "\n\n"]
    loads = load_statements(rules, cell)
    if loads:
        parts.append("".join(render_load(load) for load in loads))
        parts.append("\n")
    parts.append("\n".join(render_rule(rule) for rule in rules))
    return "".join(parts)


__all__ = [
    "GENERATED_BANNER",
    "load_statements",
    "quote",
    "render",
    "render_load",
    "render_rule",
    "render_value",
]
