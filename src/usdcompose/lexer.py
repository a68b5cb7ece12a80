"""Tokenizer for the USDA subset understood by the parser.

The lexer never fails: characters it does not recognize come out as
``UNKNOWN`` tokens and an unterminated literal ends at its line break, so
error recovery is left entirely to the parser.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class TokenKind(str, Enum):
    IDENT = "ident"
    NUMBER = "number"
    STRING = "string"
    ASSET = "asset"
    PATH = "path"
    LBRACE = "{"
    RBRACE = "}"
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    EQUALS = "="
    COMMA = ","
    COLON = ":"
    SEMICOLON = ";"
    UNKNOWN = "unknown"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int
    column: int

    def is_ident(self, *words: str) -> bool:
        return self.kind is TokenKind.IDENT and (not words or self.value in words)


_PUNCTUATION = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "=": TokenKind.EQUALS,
    ",": TokenKind.COMMA,
    ":": TokenKind.COLON,
    ";": TokenKind.SEMICOLON,
}

# Order matters: numbers before identifiers (``-inf`` is not supported),
# triple-quoted strings before plain ones.
_TOKEN_RE = re.compile(
    r"""
    (?P<newline>\n)
  | (?P<space>[ \t\r\f\v]+)
  | (?P<comment>\#[^\n]*)
  | (?P<number>[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_:]*(?:\.[A-Za-z_][A-Za-z0-9_:]*)*)
  | (?P<string>\"\"\"(?:\\.|[^\\])*?\"\"\"|'''(?:\\.|[^\\])*?'''
               |\"(?:\\.|[^\"\\\n])*\"?|'(?:\\.|[^'\\\n])*'?)
  | (?P<asset>@[^@\n]*@?)
  | (?P<path><[^<>\n]*>?)
  | (?P<punct>[{}()\[\]=,:;])
  | (?P<unknown>.)
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}


def _unquote(raw: str) -> str:
    if raw[:3] in ('"""', "'''"):
        body = raw[3:-3] if len(raw) >= 6 and raw[-3:] == raw[:3] else raw[3:]
    else:
        quote = raw[0]
        body = raw[1:-1] if len(raw) >= 2 and raw.endswith(quote) else raw[1:]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _strip_delimiters(raw: str, opening: str, closing: str) -> str:
    body = raw[len(opening):]
    if body.endswith(closing):
        body = body[: -len(closing)]
    return body


def iter_tokens(text: str) -> Iterator[Token]:
    """Yield tokens for ``text``, always ending with a single ``EOF`` token."""
    line = 1
    line_start = 0
    for match in _TOKEN_RE.finditer(text):
        group = match.lastgroup
        raw = match.group()
        column = match.start() - line_start + 1

        if group == "newline":
            line += 1
            line_start = match.end()
            continue
        if group in ("space", "comment"):
            continue

        if group == "number":
            yield Token(TokenKind.NUMBER, raw, line, column)
        elif group == "ident":
            yield Token(TokenKind.IDENT, raw, line, column)
        elif group == "string":
            yield Token(TokenKind.STRING, _unquote(raw), line, column)
            # Triple-quoted strings may span lines.
            newlines = raw.count("\n")
            if newlines:
                line += newlines
                line_start = match.start() + raw.rfind("\n") + 1
        elif group == "asset":
            yield Token(TokenKind.ASSET, _strip_delimiters(raw, "@", "@"), line, column)
        elif group == "path":
            yield Token(TokenKind.PATH, _strip_delimiters(raw, "<", ">"), line, column)
        elif group == "punct":
            yield Token(_PUNCTUATION[raw], raw, line, column)
        else:
            yield Token(TokenKind.UNKNOWN, raw, line, column)

    yield Token(TokenKind.EOF, "", line, len(text) - line_start + 1)


def tokenize(text: str) -> list[Token]:
    return list(iter_tokens(text))
