"""
Recursive-descent parser for the filter surface syntax.

    expr       := or_expr
    or_expr    := and_expr (OR and_expr)*
    and_expr   := unary (AND unary)*
    unary      := NOT unary | '(' expr ')' | comparison
    comparison := IDENT op (scalar | list) | IDENT
    op         := == | != | > | >= | < | <= | IN | NOT IN

A bare identifier is shorthand for `IDENT == true`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import ParseError
from .nodes import (
    ComparisonNode,
    ComparisonOp,
    ConstantNode,
    Expression,
    LogicalNode,
    LogicalOp,
    VariableNode,
)

_KEYWORDS = {"and", "or", "not", "in"}
_BOOLEANS = {"true": True, "false": False}
_SYMBOL_OPS = {
    "==": ComparisonOp.EQ,
    "!=": ComparisonOp.NEQ,
    ">": ComparisonOp.GT,
    ">=": ComparisonOp.GTE,
    "<": ComparisonOp.LT,
    "<=": ComparisonOp.LTE,
}
_PUNCT = {"(": "lparen", ")": "rparen", "[": "lbracket", "]": "rbracket", ",": "comma"}


@dataclass(frozen=True)
class Token:
    kind: str  # ident | keyword | string | number | bool | op | lparen | ... | eof
    value: Any
    pos: int


class _Lexer:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _error(self, message: str, pos: int | None = None) -> ParseError:
        return ParseError(message, text=self.text, position=self.pos if pos is None else pos)

    def tokens(self) -> list[Token]:
        out: list[Token] = []
        text = self.text
        n = len(text)
        while True:
            while self.pos < n and text[self.pos].isspace():
                self.pos += 1
            if self.pos >= n:
                out.append(Token("eof", None, n))
                return out

            ch = text[self.pos]
            start = self.pos

            if ch in _PUNCT:
                self.pos += 1
                out.append(Token(_PUNCT[ch], ch, start))
            elif ch in "=!<>":
                two = text[self.pos : self.pos + 2]
                if two in _SYMBOL_OPS:
                    self.pos += 2
                    out.append(Token("op", _SYMBOL_OPS[two], start))
                elif ch in _SYMBOL_OPS:
                    self.pos += 1
                    out.append(Token("op", _SYMBOL_OPS[ch], start))
                else:
                    raise self._error(f"Unknown operator {ch!r}")
            elif ch in "'\"":
                out.append(Token("string", self._string(ch), start))
            elif ch.isdigit() or (ch == "-" and self.pos + 1 < n and text[self.pos + 1].isdigit()):
                out.append(Token("number", self._number(), start))
            elif ch.isalpha() or ch == "_":
                word = self._word()
                lowered = word.lower()
                if lowered in _KEYWORDS:
                    out.append(Token("keyword", lowered, start))
                elif lowered in _BOOLEANS:
                    out.append(Token("bool", _BOOLEANS[lowered], start))
                else:
                    out.append(Token("ident", word, start))
            else:
                raise self._error(f"Unexpected character {ch!r}")

    def _string(self, quote: str) -> str:
        start = self.pos
        self.pos += 1
        buf: list[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                buf.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            if ch == quote:
                self.pos += 1
                return "".join(buf)
            buf.append(ch)
            self.pos += 1
        raise self._error("Unterminated string literal", start)

    def _number(self) -> int | float:
        start = self.pos
        if self.text[self.pos] == "-":
            self.pos += 1
        while self.pos < len(self.text) and self.text[self.pos].isdigit():
            self.pos += 1
        is_float = False
        if (
            self.pos + 1 < len(self.text)
            and self.text[self.pos] == "."
            and self.text[self.pos + 1].isdigit()
        ):
            is_float = True
            self.pos += 1
            while self.pos < len(self.text) and self.text[self.pos].isdigit():
                self.pos += 1
        raw = self.text[start : self.pos]
        return float(raw) if is_float else int(raw)

    def _word(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and (
            self.text[self.pos].isalnum() or self.text[self.pos] in "_."
        ):
            self.pos += 1
        return self.text[start : self.pos]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _Lexer(text).tokens()
        self.i = 0

    # -------- token helpers ----------------------------------------------
    @property
    def cur(self) -> Token:
        return self.tokens[self.i]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        tok = self.cur
        if tok.kind != "eof":
            self.i += 1
        return tok

    def _is_keyword(self, word: str, tok: Token | None = None) -> bool:
        tok = tok or self.cur
        return tok.kind == "keyword" and tok.value == word

    def _error(self, message: str, tok: Token | None = None) -> ParseError:
        tok = tok or self.cur
        return ParseError(message, text=self.text, position=tok.pos)

    def _expect(self, kind: str, what: str) -> Token:
        if self.cur.kind != kind:
            found = "end of input" if self.cur.kind == "eof" else repr(self.cur.value)
            raise self._error(f"Expected {what}, found {found}")
        return self._advance()

    # -------- grammar ----------------------------------------------------
    def parse(self) -> Expression:
        if self.cur.kind == "eof":
            raise self._error("Empty filter expression")
        expr = self._or_expr()
        if self.cur.kind == "rparen":
            raise self._error("Unbalanced ')'")
        if self.cur.kind != "eof":
            raise self._error(f"Unexpected token {self.cur.value!r}")
        return expr

    def _or_expr(self) -> Expression:
        left = self._and_expr()
        while self._is_keyword("or"):
            self._advance()
            left = LogicalNode(LogicalOp.OR, left, self._and_expr())
        return left

    def _and_expr(self) -> Expression:
        left = self._unary()
        while self._is_keyword("and"):
            self._advance()
            left = LogicalNode(LogicalOp.AND, left, self._unary())
        return left

    def _unary(self) -> Expression:
        if self._is_keyword("not"):
            self._advance()
            return LogicalNode(LogicalOp.NOT, self._unary())
        if self.cur.kind == "lparen":
            opening = self._advance()
            expr = self._or_expr()
            if self.cur.kind != "rparen":
                raise self._error("Unbalanced '(' opened here", opening)
            self._advance()
            return expr
        return self._comparison()

    def _comparison(self) -> Expression:
        ident = self._expect("ident", "a field name")
        left = VariableNode(ident.value)
        tok = self.cur

        if tok.kind == "op":
            self._advance()
            return ComparisonNode(tok.value, left, ConstantNode(self._scalar()))
        if self._is_keyword("in"):
            self._advance()
            return ComparisonNode(ComparisonOp.IN, left, ConstantNode(self._list()))
        if self._is_keyword("not") and self._is_keyword("in", self._peek()):
            self._advance()
            self._advance()
            return ComparisonNode(ComparisonOp.NIN, left, ConstantNode(self._list()))
        if tok.kind in ("eof", "rparen") or self._is_keyword("and") or self._is_keyword("or"):
            return ComparisonNode(ComparisonOp.EQ, left, ConstantNode(True))
        if tok.kind == "ident":
            raise self._error(f"Unknown operator {tok.value!r}")
        raise self._error(f"Expected a comparison operator after {ident.value!r}")

    def _scalar(self) -> Any:
        tok = self.cur
        if tok.kind in ("string", "number", "bool"):
            self._advance()
            return tok.value
        if tok.kind == "ident":
            raise self._error(
                f"Right-hand side must be a constant, found field reference {tok.value!r}"
            )
        if tok.kind == "eof":
            raise self._error("Expected a value, found end of input")
        raise self._error(f"Expected a value, found {tok.value!r}")

    def _list(self) -> list[Any]:
        opening = self._expect("lbracket", "'['")
        if self.cur.kind == "rbracket":
            raise self._error("Empty value list")
        values = [self._scalar()]
        while self.cur.kind == "comma":
            self._advance()
            values.append(self._scalar())
        if self.cur.kind == "eof":
            raise self._error("Unterminated list literal opened here", opening)
        self._expect("rbracket", "',' or ']'")
        return values


def parse(text: str) -> Expression:
    """Parse filter text into an Expression; raises ParseError on malformed input."""
    if text is None:
        raise ParseError("Filter text is None", text="", position=0)
    return _Parser(text).parse()
