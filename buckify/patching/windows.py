"""Windows import library flags for root binaries and tests.

The ``windows_*`` and ``winapi-*-pc-windows-gnu`` crates ship import
libraries whose link flags come out of their build scripts. Root binaries
must pass those flags for the matching ABI and CPU, so their
``rustc_flags`` gain a nested ``select`` over OS, ABI and CPU.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

from ..metadata import BuckifyContext, version_key
from ..rules import RUST_CRATES_ROOT
from ..starlark.render import quote
from ..starlark.syntax import BinaryOp, Call, Expr
from .splice import (
    Insertion,
    apply_insertions,
    attribute_insertions,
    call_name,
    find_calls,
    try_parse,
)

logger = logging.getLogger(__name__)

CONSTRAINT_WINDOWS = "prelude//os/constraints:windows"
CONSTRAINT_ABI_GNU = "prelude//abi/constraints:gnu"
CONSTRAINT_ABI_MSVC = "prelude//abi/constraints:msvc"
CONSTRAINT_CPU_ARM64 = "prelude//cpu/constraints:arm64"
CONSTRAINT_CPU_X86_32 = "prelude//cpu/constraints:x86_32"
SELECT_DEFAULT = "DEFAULT"

GNU_PACKAGES = ("windows_x86_64_gnu", "winapi-x86_64-pc-windows-gnu")
MSVC_X86_64_PACKAGES = ("windows_x86_64_msvc",)
MSVC_I686_PACKAGES = ("windows_i686_msvc",)
MSVC_AARCH64_PACKAGES = ("windows_aarch64_msvc",)


@dataclass
class WindowsImportLibFlags:
    gnu: List[str] = field(default_factory=list)
    msvc_x86_64: List[str] = field(default_factory=list)
    msvc_i686: List[str] = field(default_factory=list)
    msvc_aarch64: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.gnu or self.msvc_x86_64 or self.msvc_i686 or self.msvc_aarch64)


def _build_script_flags(ctx: BuckifyContext, package_names: Sequence[str]) -> List[str]:
    flags: List[str] = []
    for package_name in package_names:
        matches = sorted(
            (p for p in ctx.packages_map.values() if p.name == package_name),
            key=lambda p: version_key(p.version),
        )
        for package in matches:
            flags.append(
                f"@$(location //{RUST_CRATES_ROOT}/{package.name}/{package.version}:"
                f"{package.name}-build-script-run[rustc_flags])"
            )
    return flags


def windows_import_lib_flags(ctx: BuckifyContext) -> WindowsImportLibFlags:
    return WindowsImportLibFlags(
        gnu=_build_script_flags(ctx, GNU_PACKAGES),
        msvc_x86_64=_build_script_flags(ctx, MSVC_X86_64_PACKAGES),
        msvc_i686=_build_script_flags(ctx, MSVC_I686_PACKAGES),
        msvc_aarch64=_build_script_flags(ctx, MSVC_AARCH64_PACKAGES),
    )


# A select branch value: a list of flags or a nested select.
Branch = Union[List[str], "Select"]


@dataclass
class Select:
    entries: List[Tuple[str, Branch]]


def _write(value: Branch, indent: int) -> str:
    pad = " " * (indent + 4)
    if isinstance(value, Select):
        lines = [f"{pad}{quote(key)}: {_write(branch, indent + 4)}," for key, branch in value.entries]
        return "select({\n" + "\n".join(lines) + "\n" + " " * indent + "})"
    if not value:
        return "[]"
    lines = [f"{pad}{quote(item)}," for item in value]
    return "[\n" + "\n".join(lines) + "\n" + " " * indent + "]"


def render_windows_rustc_flags_select(flags: WindowsImportLibFlags) -> str:
    """Render the nested select, or ``""`` when there are no flags."""

    if flags.is_empty():
        return ""

    def msvc_cpu_select() -> Select:
        return Select(
            [
                (CONSTRAINT_CPU_ARM64, list(flags.msvc_aarch64)),
                (CONSTRAINT_CPU_X86_32, list(flags.msvc_i686)),
                (SELECT_DEFAULT, list(flags.msvc_x86_64)),
            ]
        )

    windows = Select(
        [
            (CONSTRAINT_ABI_GNU, list(flags.gnu)),
            (CONSTRAINT_ABI_MSVC, msvc_cpu_select()),
            (SELECT_DEFAULT, msvc_cpu_select()),
        ]
    )
    # Written inline after `] + `, indented as if it started at the
    # attribute's own level.
    return _write(Select([(CONSTRAINT_WINDOWS, windows), (SELECT_DEFAULT, [])]), 4)


def _has_select_clause(expr: Expr) -> bool:
    while isinstance(expr, BinaryOp) and expr.op == "+":
        if isinstance(expr.right, Call) and expr.right.func_name == "select":
            return True
        expr = expr.left
    return False


def _rustc_flags_insertions(text: str, call: Call, select_expr: str) -> List[Insertion]:
    arg = call.keyword("rustc_flags")
    if arg is None:
        return attribute_insertions(text, call, "rustc_flags", select_expr)
    if _has_select_clause(arg.value):
        return []
    return [(arg.value.end, f" + {select_expr}")]


def patch_rustc_flags(text: str, kinds: Sequence[str], names: Sequence[str], select_expr: str) -> str:
    """Append ``+ select_expr`` to ``rustc_flags`` of the named rules of ``kinds``.

    ``names`` empty means every rule of those kinds.
    """

    module = try_parse(text)
    if module is None:
        return text
    insertions: List[Insertion] = []
    for call in find_calls(module, kinds):
        if names and call_name(call) not in names:
            continue
        insertions.extend(_rustc_flags_insertions(text, call, select_expr))
    if not insertions:
        return text
    return apply_insertions(text, insertions)


def patch_root_windows_rustc_flags(text: str, ctx: BuckifyContext) -> str:
    bin_names = [target.name for target in ctx.root.bin_targets()]
    flags = windows_import_lib_flags(ctx)
    select_expr = render_windows_rustc_flags_select(flags)
    if not select_expr:
        return text
    if bin_names:
        text = patch_rustc_flags(text, ["rust_binary"], bin_names, select_expr)
    else:
        logger.debug("Root package has no binaries; patching tests only")
    return patch_rustc_flags(text, ["rust_test"], [], select_expr)


__all__ = [
    "WindowsImportLibFlags",
    "patch_root_windows_rustc_flags",
    "patch_rustc_flags",
    "render_windows_rustc_flags_select",
    "windows_import_lib_flags",
]
