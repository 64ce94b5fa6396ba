"""Targeted edits of generated BUCK files."""

from .cross import CROSS_SELECT_EXPR, patch_rust_test_target_compatible_with
from .windows import patch_root_windows_rustc_flags, render_windows_rustc_flags_select

__all__ = [
    "CROSS_SELECT_EXPR",
    "patch_root_windows_rustc_flags",
    "patch_rust_test_target_compatible_with",
    "render_windows_rustc_flags_select",
]
