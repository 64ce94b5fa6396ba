"""Reading and writing BUCK files."""

from .lexer import Lexer, Token, TokenType, tokenize
from .merge import merge, parse_buck_file
from .parser import Parser, parse
from .render import GENERATED_BANNER, render, render_rule

__all__ = [
    "GENERATED_BANNER",
    "Lexer",
    "Parser",
    "Token",
    "TokenType",
    "merge",
    "parse",
    "parse_buck_file",
    "render",
    "render_rule",
    "tokenize",
]
