"""Cargo platform predicates.

A dependency edge may be restricted to a platform, written either as a bare
target triple (``x86_64-pc-windows-gnu``) or as a ``cfg(...)`` expression::

    cfg(all(unix, not(target_os = "macos")))

This module parses both forms and evaluates them against the configuration
flags that ``rustc --print=cfg`` reports for a target.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Iterator, List, Optional, Tuple, Union

from ..errors import CfgParseError

# Bare cfg names that describe the target rather than the build profile.
TARGET_IDENTITY_NAMES = frozenset({"unix", "windows"})


@dataclass(frozen=True)
class Cfg:
    """One configuration flag: ``name`` or ``name="value"``."""

    name: str
    value: Optional[str] = None

    @classmethod
    def parse(cls, line: str) -> "Cfg":
        text = line.strip()
        if "=" not in text:
            if not _is_identifier(text):
                raise CfgParseError(f"Invalid cfg name: {line!r}")
            return cls(text)
        key, _, raw_value = text.partition("=")
        key = key.strip()
        raw_value = raw_value.strip()
        if not _is_identifier(key):
            raise CfgParseError(f"Invalid cfg key: {line!r}")
        if len(raw_value) < 2 or raw_value[0] != '"' or raw_value[-1] != '"':
            raise CfgParseError(f"cfg value must be a quoted string: {line!r}")
        return cls(key, raw_value[1:-1])

    @property
    def is_target_identity(self) -> bool:
        if self.value is None:
            return self.name in TARGET_IDENTITY_NAMES
        return self.name.startswith("target_")

    def __str__(self) -> str:
        if self.value is None:
            return self.name
        return f'{self.name}="{self.value}"'


def parse_cfg_lines(text: str) -> List[Cfg]:
    """Parse ``rustc --print=cfg`` output, skipping lines that are not flags."""

    cfgs: List[Cfg] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            cfgs.append(Cfg.parse(line))
        except CfgParseError:
            continue
    return cfgs


@dataclass(frozen=True)
class CfgValue:
    cfg: Cfg

    def matches(self, cfgs: FrozenSet[Cfg]) -> bool:
        return self.cfg in cfgs


@dataclass(frozen=True)
class CfgNot:
    operand: "CfgExpr"

    def matches(self, cfgs: FrozenSet[Cfg]) -> bool:
        return not self.operand.matches(cfgs)


@dataclass(frozen=True)
class CfgAll:
    operands: Tuple["CfgExpr", ...]

    def matches(self, cfgs: FrozenSet[Cfg]) -> bool:
        return all(operand.matches(cfgs) for operand in self.operands)


@dataclass(frozen=True)
class CfgAny:
    operands: Tuple["CfgExpr", ...]

    def matches(self, cfgs: FrozenSet[Cfg]) -> bool:
        return any(operand.matches(cfgs) for operand in self.operands)


CfgExpr = Union[CfgValue, CfgNot, CfgAll, CfgAny]


def iter_cfgs(expr: CfgExpr) -> Iterator[Cfg]:
    """Yield every flag mentioned anywhere in ``expr``."""

    if isinstance(expr, CfgValue):
        yield expr.cfg
    elif isinstance(expr, CfgNot):
        yield from iter_cfgs(expr.operand)
    else:
        for operand in expr.operands:
            yield from iter_cfgs(operand)


@dataclass(frozen=True)
class Platform:
    """A platform restriction: a target triple name or a cfg expression."""

    name: Optional[str] = None
    expr: Optional[CfgExpr] = None
    source: str = ""

    @classmethod
    def parse(cls, text: str) -> "Platform":
        source = text.strip()
        if source.startswith("cfg(") and source.endswith(")"):
            parser = _CfgExprParser(source[len("cfg("):-1], source)
            return cls(expr=parser.parse(), source=source)
        if not source or not all(ch.isalnum() or ch in "_-." for ch in source):
            raise CfgParseError(f"Invalid platform expression: {text!r}")
        return cls(name=source, source=source)

    def matches(self, target: str, cfgs: Iterable[Cfg]) -> bool:
        if self.name is not None:
            return self.name == target
        assert self.expr is not None
        return self.expr.matches(frozenset(cfgs))

    def is_target_only(self) -> bool:
        """True when the predicate only depends on target identity.

        Such predicates evaluate identically for every build profile, so a
        predicate of this kind that matches no supported triple genuinely
        targets an unsupported platform.
        """

        if self.name is not None:
            return True
        assert self.expr is not None
        return all(cfg.is_target_identity for cfg in iter_cfgs(self.expr))

    def __str__(self) -> str:
        return self.source


def _is_identifier(text: str) -> bool:
    return bool(text) and (text[0].isalpha() or text[0] == "_") and all(
        ch.isalnum() or ch == "_" for ch in text
    )


class _CfgExprParser:
    """Recursive-descent parser for the body of ``cfg(...)``."""

    def __init__(self, text: str, source: str) -> None:
        self.tokens = list(self._tokenize(text, source))
        self.pos = 0
        self.source = source

    def error(self, message: str) -> CfgParseError:
        return CfgParseError(f"{message} in {self.source!r}")

    def _tokenize(self, text: str, source: str) -> Iterator[str]:
        i = 0
        while i < len(text):
            ch = text[i]
            if ch.isspace():
                i += 1
            elif ch in "(),=":
                yield ch
                i += 1
            elif ch == '"':
                end = text.find('"', i + 1)
                if end < 0:
                    raise CfgParseError(f"Unterminated string in {source!r}")
                yield text[i:end + 1]
                i = end + 1
            elif ch.isalnum() or ch == "_":
                start = i
                while i < len(text) and (text[i].isalnum() or text[i] == "_"):
                    i += 1
                yield text[start:i]
            else:
                raise CfgParseError(f"Unexpected character {ch!r} in {source!r}")

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def advance(self) -> str:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of cfg expression")
        self.pos += 1
        return token

    def expect(self, token: str) -> None:
        found = self.advance()
        if found != token:
            raise self.error(f"Expected {token!r}, found {found!r}")

    def parse(self) -> CfgExpr:
        expr = self.parse_expr()
        if self.peek() is not None:
            raise self.error(f"Unexpected token {self.peek()!r}")
        return expr

    def parse_expr(self) -> CfgExpr:
        ident = self.advance()
        if not _is_identifier(ident):
            raise self.error(f"Expected identifier, found {ident!r}")
        if self.peek() == "(" and ident in ("all", "any", "not"):
            self.advance()
            operands: List[CfgExpr] = []
            while self.peek() != ")":
                operands.append(self.parse_expr())
                if self.peek() == ",":
                    self.advance()
                elif self.peek() != ")":
                    raise self.error("Expected ',' or ')'")
            self.expect(")")
            if ident == "not":
                if len(operands) != 1:
                    raise self.error("not() takes exactly one predicate")
                return CfgNot(operands[0])
            if ident == "all":
                return CfgAll(tuple(operands))
            return CfgAny(tuple(operands))
        if self.peek() == "=":
            self.advance()
            literal = self.advance()
            if len(literal) < 2 or not literal.startswith('"'):
                raise self.error(f"Expected string literal, found {literal!r}")
            return CfgValue(Cfg(ident, literal[1:-1]))
        return CfgValue(Cfg(ident))


__all__ = [
    "Cfg",
    "CfgAll",
    "CfgAny",
    "CfgExpr",
    "CfgNot",
    "CfgValue",
    "Platform",
    "iter_cfgs",
    "parse_cfg_lines",
]
