"""Lexical analyzer for BUCK files.

Produces tokens with line/column positions and character offsets into the
source, so later stages can splice text at exact syntax-tree boundaries.
Newlines inside brackets are insignificant and are not emitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from ..errors import StarlarkSyntaxError


class TokenType(Enum):
    """Token types for the Starlark subset used in BUCK files."""

    # Literals
    STRING = auto()
    NUMBER = auto()

    IDENTIFIER = auto()

    # Keywords
    TRUE = auto()
    FALSE = auto()
    NONE = auto()
    DEF = auto()
    IF = auto()
    ELSE = auto()
    FOR = auto()
    IN = auto()
    RETURN = auto()
    AND = auto()
    OR = auto()
    NOT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    DOUBLE_STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    PIPE = auto()
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    GT = auto()
    LE = auto()
    GE = auto()

    # Punctuation
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LPAREN = auto()
    RPAREN = auto()
    COLON = auto()
    SEMICOLON = auto()
    COMMA = auto()
    DOT = auto()

    NEWLINE = auto()
    EOF = auto()


@dataclass
class Token:
    """A single token; ``start``/``end`` are character offsets (end exclusive)."""

    type: TokenType
    value: str
    line: int
    column: int
    start: int
    end: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


KEYWORDS = {
    "True": TokenType.TRUE,
    "False": TokenType.FALSE,
    "None": TokenType.NONE,
    "def": TokenType.DEF,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "return": TokenType.RETURN,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
}

TWO_CHAR_TOKENS = {
    "**": TokenType.DOUBLE_STAR,
    "+=": TokenType.PLUS_ASSIGN,
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
}

CHAR_TOKENS = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.PERCENT,
    "|": TokenType.PIPE,
    "=": TokenType.ASSIGN,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ":": TokenType.COLON,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
}

OPENING = frozenset({"(", "[", "{"})
CLOSING = frozenset({")", "]", "}"})

ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "0": "\0"}


class Lexer:
    """Tokenizer for BUCK file source."""

    def __init__(self, source: str, path: str = "BUCK"):
        self.source = source
        self.path = path
        self.pos = 0
        self.line = 1
        self.column = 1
        self.depth = 0
        self.tokens: List[Token] = []

    def error(self, message: str) -> StarlarkSyntaxError:
        return StarlarkSyntaxError(message, path=self.path, line=self.line, column=self.column)

    def peek(self, offset: int = 0) -> Optional[str]:
        pos = self.pos + offset
        if pos < len(self.source):
            return self.source[pos]
        return None

    def advance(self) -> Optional[str]:
        if self.pos >= len(self.source):
            return None
        char = self.source[self.pos]
        self.pos += 1
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char

    def skip_whitespace(self) -> None:
        """Skip blanks, comments, line continuations and bracketed newlines."""

        while True:
            char = self.peek()
            if char in (" ", "\t", "\r"):
                self.advance()
            elif char == "\\" and self.peek(1) == "\n":
                self.advance()
                self.advance()
            elif char == "#":
                while self.peek() is not None and self.peek() != "\n":
                    self.advance()
            elif char == "\n" and self.depth > 0:
                self.advance()
            else:
                return

    def read_string(self) -> str:
        raw = False
        if self.peek() in ("r", "R"):
            raw = True
            self.advance()
        quote = self.advance()
        triple = self.peek() == quote and self.peek(1) == quote
        if triple:
            self.advance()
            self.advance()
        chars = []
        while True:
            char = self.peek()
            if char is None:
                raise self.error("Unterminated string literal")
            if triple:
                if char == quote and self.peek(1) == quote and self.peek(2) == quote:
                    self.advance()
                    self.advance()
                    self.advance()
                    break
            elif char == quote:
                self.advance()
                break
            elif char == "\n":
                raise self.error("Unterminated string literal")
            if char == "\\" and not raw:
                self.advance()
                escape = self.advance()
                if escape is None:
                    raise self.error("Unterminated string literal")
                if escape == "\n":
                    continue
                chars.append(ESCAPES.get(escape, "\\" + escape))
                continue
            chars.append(self.advance())
        return "".join(chars)

    def read_number(self) -> str:
        chars = []
        while self.peek() is not None and (self.peek().isalnum() or self.peek() == "."):
            chars.append(self.advance())
        return "".join(chars)

    def read_identifier(self) -> str:
        chars = []
        while self.peek() is not None and (self.peek().isalnum() or self.peek() == "_"):
            chars.append(self.advance())
        return "".join(chars)

    def add_token(self, token_type: TokenType, value: str, start: int, line: int, column: int) -> None:
        self.tokens.append(
            Token(type=token_type, value=value, line=line, column=column, start=start, end=self.pos)
        )

    def tokenize(self) -> List[Token]:
        while True:
            self.skip_whitespace()
            start, line, column = self.pos, self.line, self.column
            char = self.peek()
            if char is None:
                break

            if char == "\n":
                self.advance()
                # Collapse blank lines into a single separator.
                if self.tokens and self.tokens[-1].type is not TokenType.NEWLINE:
                    self.add_token(TokenType.NEWLINE, "\n", start, line, column)
                continue

            if char in ('"', "'") or (char in ("r", "R") and self.peek(1) in ('"', "'")):
                value = self.read_string()
                self.add_token(TokenType.STRING, value, start, line, column)
                continue

            if char.isdigit():
                value = self.read_number()
                self.add_token(TokenType.NUMBER, value, start, line, column)
                continue

            if char.isalpha() or char == "_":
                value = self.read_identifier()
                self.add_token(KEYWORDS.get(value, TokenType.IDENTIFIER), value, start, line, column)
                continue

            two_char = char + (self.peek(1) or "")
            if two_char in TWO_CHAR_TOKENS:
                self.advance()
                self.advance()
                self.add_token(TWO_CHAR_TOKENS[two_char], two_char, start, line, column)
                continue

            if char in CHAR_TOKENS:
                self.advance()
                if char in OPENING:
                    self.depth += 1
                elif char in CLOSING:
                    self.depth = max(0, self.depth - 1)
                self.add_token(CHAR_TOKENS[char], char, start, line, column)
                continue

            raise self.error(f"Unexpected character {char!r}")

        self.tokens.append(
            Token(TokenType.EOF, "", self.line, self.column, self.pos, self.pos)
        )
        return self.tokens


def tokenize(source: str, path: str = "BUCK") -> List[Token]:
    return Lexer(source, path).tokenize()


__all__ = ["KEYWORDS", "Lexer", "Token", "TokenType", "tokenize"]
