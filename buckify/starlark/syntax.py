"""Syntax tree for parsed BUCK files.

Every node records the character span it covers in the source, ``start``
inclusive and ``end`` exclusive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union


@dataclass
class Node:
    start: int
    end: int


@dataclass
class StringLit(Node):
    value: str = ""


@dataclass
class NumberLit(Node):
    text: str = "0"


@dataclass
class Constant(Node):
    """``True``, ``False`` or ``None``."""

    value: Optional[bool] = None


@dataclass
class Identifier(Node):
    name: str = ""


@dataclass
class ListExpr(Node):
    items: List["Expr"] = field(default_factory=list)


@dataclass
class TupleExpr(Node):
    items: List["Expr"] = field(default_factory=list)


@dataclass
class DictExpr(Node):
    entries: List[Tuple["Expr", "Expr"]] = field(default_factory=list)


@dataclass
class Argument(Node):
    """A call argument; ``star`` is ``""``, ``"*"`` or ``"**"``."""

    value: "Expr" = None  # type: ignore[assignment]
    name: Optional[str] = None
    star: str = ""


@dataclass
class Call(Node):
    func: "Expr" = None  # type: ignore[assignment]
    args: List[Argument] = field(default_factory=list)

    @property
    def func_name(self) -> Optional[str]:
        return self.func.name if isinstance(self.func, Identifier) else None

    def keyword(self, name: str) -> Optional[Argument]:
        for arg in self.args:
            if arg.name == name:
                return arg
        return None


@dataclass
class Attribute(Node):
    value: "Expr" = None  # type: ignore[assignment]
    attr: str = ""


@dataclass
class Index(Node):
    value: "Expr" = None  # type: ignore[assignment]
    index: "Expr" = None  # type: ignore[assignment]


@dataclass
class UnaryOp(Node):
    op: str = ""
    operand: "Expr" = None  # type: ignore[assignment]


@dataclass
class BinaryOp(Node):
    left: "Expr" = None  # type: ignore[assignment]
    op: str = ""
    right: "Expr" = None  # type: ignore[assignment]


@dataclass
class Conditional(Node):
    """``body if test else orelse``."""

    body: "Expr" = None  # type: ignore[assignment]
    test: "Expr" = None  # type: ignore[assignment]
    orelse: "Expr" = None  # type: ignore[assignment]


Expr = Union[
    StringLit,
    NumberLit,
    Constant,
    Identifier,
    ListExpr,
    TupleExpr,
    DictExpr,
    Call,
    Attribute,
    Index,
    UnaryOp,
    BinaryOp,
    Conditional,
]


@dataclass
class ExprStatement(Node):
    expr: Expr = None  # type: ignore[assignment]


@dataclass
class Assign(Node):
    target: str = ""
    op: str = "="
    value: Expr = None  # type: ignore[assignment]


Statement = Union[ExprStatement, Assign]


@dataclass
class Module(Node):
    statements: List[Statement] = field(default_factory=list)

    def calls(self) -> List[Call]:
        """Top-level call statements, in source order."""

        return [
            stmt.expr
            for stmt in self.statements
            if isinstance(stmt, ExprStatement) and isinstance(stmt.expr, Call)
        ]


__all__ = [
    "Argument",
    "Assign",
    "Attribute",
    "BinaryOp",
    "Call",
    "Conditional",
    "Constant",
    "DictExpr",
    "Expr",
    "ExprStatement",
    "Identifier",
    "Index",
    "ListExpr",
    "Module",
    "Node",
    "NumberLit",
    "Statement",
    "StringLit",
    "TupleExpr",
    "UnaryOp",
]
