"""VeriProof Lexer — Tokenizer for formulas and statement snippets.

One token stream serves both the assertion language and the small
imperative language used to describe code transformations.  Connectives
are accepted in unicode and ASCII spellings and normalised to a single
token type each:

    ∧  &&  /\\  and        AND
    ∨  ||  \\/  or         OR
    →  ->  =>              IMPLIES
    ↔  <-> <=>             IFF
    ¬  !   ~    not        NOT
    ∀  forall              FORALL
    ∃  exists              EXISTS

Every token keeps its character span so that callers can splice the
original text (see ``formulas.substitute_variable``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from veriproof.errors import SourceLocation, FormulaSyntaxError


class TokenType(Enum):
    # Keywords
    TRUE = auto()
    FALSE = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    RETURN = auto()
    SKIP = auto()
    LET = auto()

    # Literals
    INT_LIT = auto()

    # Identifier
    IDENT = auto()

    # Logical connectives
    AND = auto()
    OR = auto()
    NOT = auto()
    IMPLIES = auto()
    IFF = auto()
    FORALL = auto()
    EXISTS = auto()

    # Relations
    EQ = auto()
    NEQ = auto()
    LT = auto()
    LTE = auto()
    GT = auto()
    GTE = auto()

    # Arithmetic
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()

    # Statements
    ASSIGN = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    SEMICOLON = auto()
    DOT = auto()
    COLON = auto()

    # Special
    EOF = auto()


KEYWORDS: dict[str, TokenType] = {
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "return": TokenType.RETURN,
    "skip": TokenType.SKIP,
    "let": TokenType.LET,
    "var": TokenType.LET,
    "const": TokenType.LET,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
    "forall": TokenType.FORALL,
    "exists": TokenType.EXISTS,
}

# Longest spelling first so that "<=>" wins over "<=" and "->" over "-".
SYMBOLS: list[tuple[str, TokenType]] = [
    ("<->", TokenType.IFF),
    ("<=>", TokenType.IFF),
    ("&&", TokenType.AND),
    ("/\\", TokenType.AND),
    ("||", TokenType.OR),
    ("\\/", TokenType.OR),
    ("->", TokenType.IMPLIES),
    ("=>", TokenType.IMPLIES),
    (":=", TokenType.ASSIGN),
    ("==", TokenType.EQ),
    ("!=", TokenType.NEQ),
    ("<=", TokenType.LTE),
    (">=", TokenType.GTE),
    ("∧", TokenType.AND),
    ("∨", TokenType.OR),
    ("→", TokenType.IMPLIES),
    ("⇒", TokenType.IMPLIES),
    ("↔", TokenType.IFF),
    ("⇔", TokenType.IFF),
    ("¬", TokenType.NOT),
    ("∀", TokenType.FORALL),
    ("∃", TokenType.EXISTS),
    ("≠", TokenType.NEQ),
    ("≤", TokenType.LTE),
    ("≥", TokenType.GTE),
    ("!", TokenType.NOT),
    ("~", TokenType.NOT),
    ("=", TokenType.EQ),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("+", TokenType.PLUS),
    ("-", TokenType.MINUS),
    ("*", TokenType.STAR),
    ("/", TokenType.SLASH),
    ("%", TokenType.PERCENT),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("{", TokenType.LBRACE),
    ("}", TokenType.RBRACE),
    (",", TokenType.COMMA),
    (";", TokenType.SEMICOLON),
    (".", TokenType.DOT),
    (":", TokenType.COLON),
]


@dataclass
class Token:
    type: TokenType
    value: str
    start: int
    end: int
    location: SourceLocation

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.location})"


class Lexer:
    """Tokenizer for assertion formulas and statement snippets."""

    def __init__(self, source: str, filename: str = "<formula>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1

    def _loc(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.filename)

    def _peek(self) -> Optional[str]:
        if self.pos < len(self.source):
            return self.source[self.pos]
        return None

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace_and_comments(self) -> None:
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch.isspace():
                self._advance()
            elif self.source.startswith("//", self.pos):
                while self.pos < len(self.source) and self.source[self.pos] != "\n":
                    self._advance()
            else:
                break

    def _read_number(self) -> Token:
        loc = self._loc()
        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos].isdigit():
            self._advance()
        return Token(TokenType.INT_LIT, self.source[start:self.pos], start, self.pos, loc)

    def _read_identifier(self) -> Token:
        loc = self._loc()
        start = self.pos
        while self.pos < len(self.source) and (
                self.source[self.pos].isalnum() or self.source[self.pos] in "_'"):
            self._advance()
        value = self.source[start:self.pos]
        token_type = KEYWORDS.get(value, TokenType.IDENT)
        return Token(token_type, value, start, self.pos, loc)

    def _read_symbol(self) -> Token:
        loc = self._loc()
        start = self.pos
        for spelling, token_type in SYMBOLS:
            if self.source.startswith(spelling, self.pos):
                for _ in spelling:
                    self._advance()
                return Token(token_type, spelling, start, self.pos, loc)
        raise FormulaSyntaxError(
            f"Unexpected character {self.source[self.pos]!r}", loc,
            source=self.source,
        )

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while True:
            self._skip_whitespace_and_comments()
            if self.pos >= len(self.source):
                break
            ch = self._peek()
            if ch.isdigit():
                tokens.append(self._read_number())
            elif ch.isalpha() or ch == "_":
                tokens.append(self._read_identifier())
            else:
                tokens.append(self._read_symbol())
        tokens.append(Token(TokenType.EOF, "", self.pos, self.pos, self._loc()))
        return tokens


def tokenize(source: str, filename: str = "<formula>") -> list[Token]:
    return Lexer(source, filename).tokenize()
