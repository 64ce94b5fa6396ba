"""Keep tests out of cross-compiling configurations."""

from __future__ import annotations

from typing import List

from .splice import Insertion, apply_insertions, attribute_insertions, find_calls, try_parse

CROSS_SELECT_EXPR = 'select({"//platforms:cross": ["config//:none"], "DEFAULT": []})'


def patch_rust_test_target_compatible_with(text: str, path: str = "BUCK") -> str:
    """Add a cross-compilation ``target_compatible_with`` to every ``rust_test``.

    Tests that already declare ``target_compatible_with`` are left alone, as
    is the whole text when it does not parse.
    """

    module = try_parse(text, path)
    if module is None:
        return text
    insertions: List[Insertion] = []
    for call in find_calls(module, ["rust_test"]):
        if call.keyword("target_compatible_with") is not None:
            continue
        insertions.extend(attribute_insertions(text, call, "target_compatible_with", CROSS_SELECT_EXPR))
    if not insertions:
        return text
    return apply_insertions(text, insertions)


__all__ = ["CROSS_SELECT_EXPR", "patch_rust_test_target_compatible_with"]
