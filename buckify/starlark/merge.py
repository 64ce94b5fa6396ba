"""Carry manual edits of an existing BUCK file into regenerated rules."""

from __future__ import annotations

import copy
import logging
from typing import AbstractSet, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import StarlarkSyntaxError
from ..rules import BuildscriptRun, Rule, RustRule
from .parser import parse
from .values import build_rule, evaluate_module

logger = logging.getLogger(__name__)

RuleKey = Tuple[str, str]

# Attributes a buildscript_run may carry forward.
BUILDSCRIPT_RUN_FIELDS = frozenset({"env", "features", "visibility"})


def parse_buck_file(text: str, path: str = "BUCK") -> Dict[RuleKey, Rule]:
    """Parse BUCK file text into rules keyed by ``(kind, name)``.

    Raises :class:`StarlarkSyntaxError` when the text cannot be parsed.
    Calls to unknown functions and calls without a string ``name`` are
    skipped.
    """

    rules: Dict[RuleKey, Rule] = {}
    for rule_call in evaluate_module(parse(text, path)):
        rule = build_rule(rule_call.kind, rule_call.kwargs)
        if rule is not None:
            rules[(rule.KIND, rule.name)] = rule
    return rules


def patch_set(dst: Set[str], src: AbstractSet[str]) -> None:
    dst.update(src)


def patch_map(dst: Dict[str, str], src: Dict[str, str], label: str = "") -> None:
    """Insert entries of ``src`` missing from ``dst``; ``dst`` wins on conflicts."""

    for key, value in src.items():
        if key not in dst:
            dst[key] = value
        elif label and dst[key] != value:
            logger.warning(
                "%s entry '%s' was edited by hand ('%s'); keeping generated '%s'",
                label,
                key,
                value,
                dst[key],
            )


def _patch_rust_rule(dst: RustRule, src: RustRule, fields: AbstractSet[str]) -> None:
    for attribute in ("target_compatible_with", "compatible_with", "exec_compatible_with", "features", "rustc_flags", "visibility", "deps"):
        if attribute in fields:
            patch_set(getattr(dst, attribute), getattr(src, attribute))
    if "env" in fields:
        patch_map(dst.env, src.env)
    if "os_deps" in fields:
        for os_key, labels in src.os_deps.items():
            patch_set(dst.os_deps.setdefault(os_key, set()), labels)
    if "named_deps" in fields:
        patch_map(dst.named_deps, src.named_deps, label=f"{dst.name}: named_deps")
    if "os_named_deps" in fields:
        for alias, per_os in src.os_named_deps.items():
            patch_map(
                dst.os_named_deps.setdefault(alias, {}),
                per_os,
                label=f"{dst.name}: os_named_deps[{alias}]",
            )


def _patch_buildscript_run(dst: BuildscriptRun, src: BuildscriptRun, fields: AbstractSet[str]) -> None:
    if "env" in fields:
        patch_map(dst.env, src.env)
    if "features" in fields:
        patch_set(dst.features, src.features)
    if "visibility" in fields:
        patch_set(dst.visibility, src.visibility)


def patch_rules(
    existing: Dict[RuleKey, Rule],
    rules: Sequence[Rule],
    fields: AbstractSet[str],
) -> List[Rule]:
    """Return copies of ``rules`` with manual entries from ``existing`` forwarded."""

    patched: List[Rule] = []
    for rule in rules:
        rule = copy.deepcopy(rule)
        previous = existing.get((rule.KIND, rule.name))
        if isinstance(rule, RustRule) and isinstance(previous, RustRule):
            _patch_rust_rule(rule, previous, fields)
        elif isinstance(rule, BuildscriptRun) and isinstance(previous, BuildscriptRun):
            _patch_buildscript_run(rule, previous, fields & BUILDSCRIPT_RUN_FIELDS)
        patched.append(rule)
    return patched


def merge(
    existing_text: Optional[str],
    rules: Sequence[Rule],
    fields: AbstractSet[str],
    path: str = "BUCK",
) -> List[Rule]:
    """Merge manual edits from ``existing_text`` into ``rules``.

    Unparsable existing text is reported and the rules are returned as
    generated.
    """

    if not existing_text or not fields:
        return list(rules)
    try:
        existing = parse_buck_file(existing_text, path)
    except StarlarkSyntaxError as exc:
        logger.warning("Not merging manual edits from %s: %s", path, exc.format())
        return list(rules)
    return patch_rules(existing, rules, fields)


__all__ = ["merge", "parse_buck_file", "patch_map", "patch_rules", "patch_set"]
