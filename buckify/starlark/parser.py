"""Recursive-descent parser for BUCK files.

Supports the declarative subset BUCK files are written in: top-level calls
and assignments whose values are literals, lists, dicts, tuples, nested
calls, attribute/index access, conditional expressions and the usual binary
operators. Function definitions and loops are rejected with
:class:`~buckify.errors.StarlarkSyntaxError`.

Grammar (informal)::

    Module     = { Statement ( NEWLINE | ";" | EOF ) } ;
    Statement  = IDENT ( "=" | "+=" ) Expr | Expr ;
    Expr       = Or [ "if" Or "else" Expr ] ;
    Or         = And { "or" And } ;
    And        = Not { "and" Not } ;
    Not        = "not" Not | Compare ;
    Compare    = BitOr [ ( "==" | "!=" | "<" | ">" | "<=" | ">=" | "in" ) BitOr ] ;
    BitOr      = Sum { "|" Sum } ;
    Sum        = Term { ( "+" | "-" ) Term } ;
    Term       = Unary { ( "*" | "/" | "%" ) Unary } ;
    Unary      = "-" Unary | Postfix ;
    Postfix    = Primary { Call | "." IDENT | "[" Expr "]" } ;
"""

from __future__ import annotations

from typing import List, Optional

from ..errors import StarlarkSyntaxError
from .lexer import Token, TokenType, tokenize
from .syntax import (
    Argument,
    Assign,
    Attribute,
    BinaryOp,
    Call,
    Conditional,
    Constant,
    DictExpr,
    Expr,
    ExprStatement,
    Identifier,
    Index,
    ListExpr,
    Module,
    NumberLit,
    Statement,
    StringLit,
    TupleExpr,
    UnaryOp,
)

COMPARISON_TOKENS = (
    TokenType.EQ,
    TokenType.NE,
    TokenType.LT,
    TokenType.GT,
    TokenType.LE,
    TokenType.GE,
    TokenType.IN,
)

UNSUPPORTED_STATEMENTS = (TokenType.DEF, TokenType.FOR, TokenType.IF, TokenType.RETURN)


class Parser:
    def __init__(self, tokens: List[Token], path: str = "BUCK"):
        self.tokens = tokens
        self.path = path
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[min(self.pos, len(self.tokens) - 1)]

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.current()
        if token.type is not TokenType.EOF:
            self.pos += 1
        return token

    def match(self, *types: TokenType) -> bool:
        return self.current().type in types

    def consume_if(self, *types: TokenType) -> Optional[Token]:
        if self.match(*types):
            return self.advance()
        return None

    def expect(self, *types: TokenType) -> Token:
        if not self.match(*types):
            expected = " or ".join(t.name.lower().replace("_", " ") for t in types)
            found = self.current()
            raise self.error(f"Expected {expected}, got {found.value or found.type.name.lower()!r}")
        return self.advance()

    def error(self, message: str) -> StarlarkSyntaxError:
        token = self.current()
        return StarlarkSyntaxError(message, path=self.path, line=token.line, column=token.column)

    def skip_separators(self) -> None:
        while self.match(TokenType.NEWLINE, TokenType.SEMICOLON):
            self.advance()

    # Statements

    def parse_module(self) -> Module:
        statements: List[Statement] = []
        self.skip_separators()
        while not self.match(TokenType.EOF):
            statements.append(self.parse_statement())
            if not self.match(TokenType.EOF):
                self.expect(TokenType.NEWLINE, TokenType.SEMICOLON)
            self.skip_separators()
        end = self.current().end
        return Module(start=0, end=end, statements=statements)

    def parse_statement(self) -> Statement:
        if self.match(*UNSUPPORTED_STATEMENTS):
            raise self.error(f"Unsupported statement '{self.current().value}'")
        if self.match(TokenType.IDENTIFIER) and self.peek(1).type in (
            TokenType.ASSIGN,
            TokenType.PLUS_ASSIGN,
        ):
            target = self.advance()
            op = self.advance().value
            value = self.parse_expr()
            return Assign(start=target.start, end=value.end, target=target.value, op=op, value=value)
        expr = self.parse_expr()
        return ExprStatement(start=expr.start, end=expr.end, expr=expr)

    # Expressions

    def parse_expr(self) -> Expr:
        body = self.parse_or()
        if self.consume_if(TokenType.IF):
            test = self.parse_or()
            self.expect(TokenType.ELSE)
            orelse = self.parse_expr()
            return Conditional(start=body.start, end=orelse.end, body=body, test=test, orelse=orelse)
        return body

    def _parse_binary(self, operand, *types: TokenType) -> Expr:
        left = operand()
        while self.match(*types):
            op = self.advance().value
            right = operand()
            left = BinaryOp(start=left.start, end=right.end, left=left, op=op, right=right)
        return left

    def parse_or(self) -> Expr:
        return self._parse_binary(self.parse_and, TokenType.OR)

    def parse_and(self) -> Expr:
        return self._parse_binary(self.parse_not, TokenType.AND)

    def parse_not(self) -> Expr:
        if self.match(TokenType.NOT):
            token = self.advance()
            operand = self.parse_not()
            return UnaryOp(start=token.start, end=operand.end, op="not", operand=operand)
        return self.parse_comparison()

    def parse_comparison(self) -> Expr:
        left = self.parse_bit_or()
        if self.match(*COMPARISON_TOKENS):
            op = self.advance().value
            right = self.parse_bit_or()
            return BinaryOp(start=left.start, end=right.end, left=left, op=op, right=right)
        return left

    def parse_bit_or(self) -> Expr:
        return self._parse_binary(self.parse_sum, TokenType.PIPE)

    def parse_sum(self) -> Expr:
        return self._parse_binary(self.parse_term, TokenType.PLUS, TokenType.MINUS)

    def parse_term(self) -> Expr:
        return self._parse_binary(self.parse_unary, TokenType.STAR, TokenType.SLASH, TokenType.PERCENT)

    def parse_unary(self) -> Expr:
        if self.match(TokenType.MINUS, TokenType.PLUS):
            token = self.advance()
            operand = self.parse_unary()
            return UnaryOp(start=token.start, end=operand.end, op=token.value, operand=operand)
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while True:
            if self.match(TokenType.LPAREN):
                expr = self.parse_call(expr)
            elif self.consume_if(TokenType.DOT):
                attr = self.expect(TokenType.IDENTIFIER)
                expr = Attribute(start=expr.start, end=attr.end, value=expr, attr=attr.value)
            elif self.consume_if(TokenType.LBRACKET):
                index = self.parse_expr()
                close = self.expect(TokenType.RBRACKET)
                expr = Index(start=expr.start, end=close.end, value=expr, index=index)
            else:
                return expr

    def parse_call(self, func: Expr) -> Call:
        self.expect(TokenType.LPAREN)
        args: List[Argument] = []
        while not self.match(TokenType.RPAREN):
            args.append(self.parse_argument())
            if not self.consume_if(TokenType.COMMA):
                break
        close = self.expect(TokenType.RPAREN)
        return Call(start=func.start, end=close.end, func=func, args=args)

    def parse_argument(self) -> Argument:
        start = self.current().start
        if self.match(TokenType.STAR, TokenType.DOUBLE_STAR):
            star = self.advance().value
            value = self.parse_expr()
            return Argument(start=start, end=value.end, value=value, star=star)
        if self.match(TokenType.IDENTIFIER) and self.peek(1).type is TokenType.ASSIGN:
            name = self.advance().value
            self.advance()
            value = self.parse_expr()
            return Argument(start=start, end=value.end, value=value, name=name)
        value = self.parse_expr()
        return Argument(start=start, end=value.end, value=value)

    def parse_primary(self) -> Expr:
        token = self.current()
        if token.type is TokenType.STRING:
            self.advance()
            value, end = token.value, token.end
            # Adjacent string literals concatenate.
            while self.match(TokenType.STRING):
                nxt = self.advance()
                value += nxt.value
                end = nxt.end
            return StringLit(start=token.start, end=end, value=value)
        if token.type is TokenType.NUMBER:
            self.advance()
            return NumberLit(start=token.start, end=token.end, text=token.value)
        if token.type in (TokenType.TRUE, TokenType.FALSE, TokenType.NONE):
            self.advance()
            value = {TokenType.TRUE: True, TokenType.FALSE: False}.get(token.type)
            return Constant(start=token.start, end=token.end, value=value)
        if token.type is TokenType.IDENTIFIER:
            self.advance()
            return Identifier(start=token.start, end=token.end, name=token.value)
        if token.type is TokenType.LBRACKET:
            return self.parse_list()
        if token.type is TokenType.LBRACE:
            return self.parse_dict()
        if token.type is TokenType.LPAREN:
            return self.parse_parenthesized()
        raise self.error(f"Unexpected token {token.value or token.type.name.lower()!r}")

    def parse_list(self) -> ListExpr:
        open_token = self.expect(TokenType.LBRACKET)
        items: List[Expr] = []
        while not self.match(TokenType.RBRACKET):
            items.append(self.parse_expr())
            if not self.consume_if(TokenType.COMMA):
                break
        close = self.expect(TokenType.RBRACKET)
        return ListExpr(start=open_token.start, end=close.end, items=items)

    def parse_dict(self) -> DictExpr:
        open_token = self.expect(TokenType.LBRACE)
        entries = []
        while not self.match(TokenType.RBRACE):
            key = self.parse_expr()
            self.expect(TokenType.COLON)
            value = self.parse_expr()
            entries.append((key, value))
            if not self.consume_if(TokenType.COMMA):
                break
        close = self.expect(TokenType.RBRACE)
        return DictExpr(start=open_token.start, end=close.end, entries=entries)

    def parse_parenthesized(self) -> Expr:
        open_token = self.expect(TokenType.LPAREN)
        if self.match(TokenType.RPAREN):
            close = self.advance()
            return TupleExpr(start=open_token.start, end=close.end, items=[])
        first = self.parse_expr()
        if self.match(TokenType.RPAREN):
            self.advance()
            return first
        items = [first]
        while self.consume_if(TokenType.COMMA):
            if self.match(TokenType.RPAREN):
                break
            items.append(self.parse_expr())
        close = self.expect(TokenType.RPAREN)
        return TupleExpr(start=open_token.start, end=close.end, items=items)


def parse(source: str, path: str = "BUCK") -> Module:
    """Parse BUCK file text into a :class:`Module`."""

    return Parser(tokenize(source, path), path).parse_module()


__all__ = ["Parser", "parse"]
