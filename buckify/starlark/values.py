"""Evaluate parsed BUCK files into rule records.

Only declarative values are interpreted: literals, containers, ``glob``,
``select`` and ``+``. Anything else evaluates to :data:`UNKNOWN`, and an
attribute whose value cannot be coerced to the type a rule expects falls
back to that attribute's default.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..rules import RULE_TYPES, FileGroup, Glob, Rule
from .syntax import (
    Assign,
    BinaryOp,
    Call,
    Constant,
    DictExpr,
    Expr,
    Identifier,
    ListExpr,
    Module,
    NumberLit,
    StringLit,
    TupleExpr,
    UnaryOp,
)

logger = logging.getLogger(__name__)


class _Unknown:
    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN = _Unknown()

SET_FIELDS = frozenset(
    {
        "srcs",
        "urls",
        "target_compatible_with",
        "compatible_with",
        "exec_compatible_with",
        "features",
        "rustc_flags",
        "visibility",
        "deps",
        "env_srcs",
    }
)
MAP_FIELDS = frozenset({"env", "named_deps"})


@dataclass
class RuleCall:
    """A top-level rule invocation with its evaluated keyword arguments."""

    kind: str
    kwargs: Dict[str, Any]
    call: Call


class Evaluator:
    def __init__(self) -> None:
        self.scope: Dict[str, Any] = {}

    def evaluate(self, expr: Expr) -> Any:
        if isinstance(expr, StringLit):
            return expr.value
        if isinstance(expr, NumberLit):
            try:
                return int(expr.text, 0)
            except ValueError:
                return UNKNOWN
        if isinstance(expr, Constant):
            return expr.value
        if isinstance(expr, Identifier):
            return self.scope.get(expr.name, UNKNOWN)
        if isinstance(expr, ListExpr):
            return [self.evaluate(item) for item in expr.items]
        if isinstance(expr, TupleExpr):
            return tuple(self.evaluate(item) for item in expr.items)
        if isinstance(expr, DictExpr):
            result = {}
            for key_expr, value_expr in expr.entries:
                key = self.evaluate(key_expr)
                if isinstance(key, (str, int, bool)):
                    result[key] = self.evaluate(value_expr)
            return result
        if isinstance(expr, Call):
            return self._evaluate_call(expr)
        if isinstance(expr, BinaryOp) and expr.op == "+":
            return self._concat(self.evaluate(expr.left), self.evaluate(expr.right))
        if isinstance(expr, UnaryOp) and expr.op == "-":
            operand = self.evaluate(expr.operand)
            return -operand if isinstance(operand, int) and not isinstance(operand, bool) else UNKNOWN
        return UNKNOWN

    def _concat(self, left: Any, right: Any) -> Any:
        if isinstance(left, list) and isinstance(right, list):
            return left + right
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        if isinstance(left, dict) and isinstance(right, dict):
            return {**left, **right}
        # `[...] + select(...)` keeps the unconditional part.
        if isinstance(left, list):
            return left
        return UNKNOWN

    def _evaluate_call(self, call: Call) -> Any:
        name = call.func_name
        if name == "glob":
            include: Any = []
            exclude: Any = []
            for arg in call.args:
                if arg.star:
                    continue
                if arg.name is None or arg.name == "include":
                    include = self.evaluate(arg.value)
                elif arg.name == "exclude":
                    exclude = self.evaluate(arg.value)
            return Glob(include=_string_set(include) or set(), exclude=_string_set(exclude) or set())
        if name == "select" and call.args:
            return self.evaluate(call.args[0].value)
        return UNKNOWN

    def run(self, module: Module) -> List[RuleCall]:
        calls: List[RuleCall] = []
        for statement in module.statements:
            if isinstance(statement, Assign):
                value = self.evaluate(statement.value)
                if statement.op == "+=":
                    value = self._concat(self.scope.get(statement.target, UNKNOWN), value)
                self.scope[statement.target] = value
                continue
            expr = statement.expr
            if not isinstance(expr, Call) or expr.func_name is None:
                continue
            kwargs = {
                arg.name: self.evaluate(arg.value)
                for arg in expr.args
                if arg.name is not None and not arg.star
            }
            calls.append(RuleCall(kind=expr.func_name, kwargs=kwargs, call=expr))
        return calls


def _string_set(value: Any) -> Optional[set]:
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return set(value)
    return None


def _string_map(value: Any) -> Optional[Dict[str, str]]:
    if isinstance(value, dict) and all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        return dict(value)
    return None


def _coerce(rule_type: type, attribute: str, value: Any) -> Any:
    """Return ``value`` in the attribute's type, or ``UNKNOWN`` when it does not fit."""

    if value is UNKNOWN:
        return UNKNOWN
    if attribute == "srcs" and issubclass(rule_type, FileGroup):
        return value if isinstance(value, Glob) else UNKNOWN
    if attribute in SET_FIELDS:
        result = _string_set(value)
        return UNKNOWN if result is None else result
    if attribute in MAP_FIELDS:
        result = _string_map(value)
        return UNKNOWN if result is None else result
    if attribute == "os_deps":
        if not isinstance(value, dict):
            return UNKNOWN
        sets = {key: _string_set(labels) for key, labels in value.items()}
        if any(not isinstance(key, str) or labels is None for key, labels in sets.items()):
            return UNKNOWN
        return sets
    if attribute == "os_named_deps":
        if not isinstance(value, dict):
            return UNKNOWN
        maps = {key: _string_map(labels) for key, labels in value.items()}
        if any(not isinstance(key, str) or labels is None for key, labels in maps.items()):
            return UNKNOWN
        return maps
    if attribute == "proc_macro":
        return value if isinstance(value, bool) or value is None else UNKNOWN
    if attribute == "out":
        return value if isinstance(value, str) or value is None else UNKNOWN
    return value if isinstance(value, str) else UNKNOWN


def build_rule(kind: str, kwargs: Dict[str, Any]) -> Optional[Rule]:
    """Construct the rule record for ``kind`` from evaluated keyword arguments."""

    rule_type = RULE_TYPES.get(kind)
    if rule_type is None:
        return None
    name = kwargs.get("name")
    if not isinstance(name, str):
        return None
    values: Dict[str, Any] = {}
    known = {f.name for f in dataclasses.fields(rule_type)}
    for keyword, raw in kwargs.items():
        attribute = rule_type.attribute(keyword)
        if attribute is None or attribute not in known or attribute == "name":
            continue
        value = _coerce(rule_type, attribute, raw)
        if value is UNKNOWN:
            logger.debug("Ignoring unrecognized value of %s.%s in %s", kind, keyword, name)
            continue
        values[attribute] = value
    return rule_type(name=name, **values)


def evaluate_module(module: Module) -> List[RuleCall]:
    return Evaluator().run(module)


__all__ = ["Evaluator", "RuleCall", "UNKNOWN", "build_rule", "evaluate_module"]
