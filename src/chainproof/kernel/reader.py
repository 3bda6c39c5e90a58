"""S-expression reader: text -> Value."""

import re
from typing import List, Tuple

from .errors import ReadError
from .values import NIL, Num, Str, Sym, Value, make_list


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+|;[^\n]*)
  | (?P<open>\()
  | (?P<close>\))
  | (?P<quote>')
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<atom>[^\s()'";]+)
    """,
    re.VERBOSE,
)
_INT_RE = re.compile(r"^[+-]?\d+$")
MAX_DEPTH = 200
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


def tokenize(text: str) -> List[Tuple[str, str, int]]:
    """Split text into (kind, lexeme, offset) tokens, dropping whitespace and comments."""
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ReadError(f"Unexpected character {text[pos]!r} at offset {pos}")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append((kind, match.group(), pos))
        pos = match.end()
    return tokens


def _unescape(lexeme: str, offset: int) -> str:
    body = lexeme[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            i += 1
            if i >= len(body) or body[i] not in _ESCAPES:
                raise ReadError(f"Invalid escape in string at offset {offset}")
            out.append(_ESCAPES[body[i]])
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _atom(lexeme: str, offset: int) -> Value:
    if _INT_RE.match(lexeme):
        try:
            return Num(int(lexeme))
        except ValueError as e:
            raise ReadError(f"Integer literal at offset {offset} is too long: {e}") from e
    if lexeme == "nil":
        return NIL
    return Sym(lexeme)


class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def next(self):
        if self.at_end():
            raise ReadError("Unexpected end of input")
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def peek(self):
        return None if self.at_end() else self.tokens[self.pos]

    def parse(self) -> Value:
        if self.depth >= MAX_DEPTH:
            raise ReadError(f"Expression nested deeper than {MAX_DEPTH} levels")
        self.depth += 1
        try:
            return self._parse_one()
        finally:
            self.depth -= 1

    def _parse_one(self) -> Value:
        kind, lexeme, offset = self.next()
        if kind == "open":
            return self.parse_list(offset)
        if kind == "close":
            raise ReadError(f"Unexpected ')' at offset {offset}")
        if kind == "quote":
            return make_list([Sym("quote"), self.parse()])
        if kind == "string":
            return Str(_unescape(lexeme, offset))
        if lexeme == ".":
            raise ReadError(f"Unexpected '.' at offset {offset}")
        return _atom(lexeme, offset)

    def parse_list(self, start: int) -> Value:
        items: List[Value] = []
        tail: Value = NIL
        while True:
            token = self.peek()
            if token is None:
                raise ReadError(f"Unclosed '(' at offset {start}")
            kind, lexeme, offset = token
            if kind == "close":
                self.pos += 1
                return make_list(items, tail)
            if kind == "atom" and lexeme == ".":
                if not items:
                    raise ReadError(f"Dotted pair without head at offset {offset}")
                self.pos += 1
                tail = self.parse()
                closing = self.next()
                if closing[0] != "close":
                    raise ReadError(f"Expected ')' after dotted tail at offset {closing[2]}")
                return make_list(items, tail)
            items.append(self.parse())


def read(text: str) -> Value:
    """Read exactly one expression from text."""
    parser = _Parser(tokenize(text))
    if parser.at_end():
        raise ReadError("Empty expression")
    value = parser.parse()
    if not parser.at_end():
        raise ReadError(f"Trailing input at offset {parser.peek()[2]}")
    return value


def read_all(text: str) -> List[Value]:
    parser = _Parser(tokenize(text))
    values = []
    while not parser.at_end():
        values.append(parser.parse())
    return values
