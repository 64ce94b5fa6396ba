"""Locate calls in a parsed BUCK file and splice text at their spans."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from ..errors import StarlarkSyntaxError
from ..starlark.parser import parse
from ..starlark.syntax import Call, Module, StringLit

logger = logging.getLogger(__name__)

# (offset, text) pairs
Insertion = Tuple[int, str]


def try_parse(text: str, path: str = "BUCK") -> Optional[Module]:
    try:
        return parse(text, path)
    except StarlarkSyntaxError as exc:
        logger.debug("Skipping patch of %s: %s", path, exc.format())
        return None


def find_calls(module: Module, kinds: Iterable[str], name: Optional[str] = None) -> List[Call]:
    """Top-level calls to any of ``kinds``, optionally with ``name = "<name>"``."""

    wanted = set(kinds)
    found = []
    for call in module.calls():
        if call.func_name not in wanted:
            continue
        if name is not None and call_name(call) != name:
            continue
        found.append(call)
    return found


def call_name(call: Call) -> Optional[str]:
    arg = call.keyword("name")
    if arg is not None and isinstance(arg.value, StringLit):
        return arg.value.value
    return None


def closing_paren_offset(call: Call) -> int:
    """Offset of the ``)`` that ends ``call``."""

    return call.end - 1


def needs_leading_comma(text: str, offset: int) -> bool:
    for char in reversed(text[:offset]):
        if char.isspace():
            continue
        return char not in ",("
    return True


def attribute_insertions(text: str, call: Call, keyword: str, value: str) -> List[Insertion]:
    """Insertions adding ``keyword = value`` as the last argument of ``call``."""

    offset = closing_paren_offset(call)
    insertions: List[Insertion] = []
    if needs_leading_comma(text, offset):
        anchor = len(text[:offset].rstrip())
        insertions.append((anchor, ","))
    lead = "" if text[:offset].endswith("\n") else "\n"
    insertions.append((offset, f"{lead}    {keyword} = {value},\n"))
    return insertions


def apply_insertions(text: str, insertions: Iterable[Insertion]) -> str:
    """Apply insertions from the end of the text backwards so offsets stay valid.

    Insertions sharing an offset end up in the order they were given.
    """

    out = text
    ordered = sorted(enumerate(insertions), key=lambda item: (item[1][0], item[0]), reverse=True)
    for _, (offset, snippet) in ordered:
        if offset < 0 or offset > len(out):
            continue
        out = out[:offset] + snippet + out[offset:]
    return out


__all__ = [
    "Insertion",
    "apply_insertions",
    "attribute_insertions",
    "call_name",
    "closing_paren_offset",
    "find_calls",
    "needs_leading_comma",
    "try_parse",
]
