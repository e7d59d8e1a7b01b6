"""Parser for ``${...}`` expressions embedded in declaration values.

Grammar::

    expr        := conditional
    conditional := comparison ( "?" expr ":" expr )?
    comparison  := postfix ( ("==" | "!=") postfix )?
    postfix     := primary ( "." IDENT | "." INT | "[" expr "]" )*
    primary     := NUMBER | STRING | "null" | "true" | "false"
                 | IDENT "(" [ expr ("," expr)* ] ")"
                 | "var" "." IDENT
                 | IDENT "." IDENT                       (resource reference)
                 | "(" expr ")"
                 | "[" [ expr ("," expr)* ] "]"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from tierforge.errors import ExpressionSyntaxError
from tierforge.models.expressions import (
    Call,
    Compare,
    Conditional,
    Expr,
    GetAttr,
    Index,
    ListExpr,
    Literal,
    MapExpr,
    ResourceRef,
    Template,
    VarRef,
)

FUNCTIONS = frozenset({"try", "coalesce", "element", "join"})

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<ident>[A-Za-z_][A-Za-z0-9_-]*)
  | (?P<op>==|!=|[.\[\](),?:])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class _Token:
    kind: str  # number, string, ident, op, eof
    text: str
    pos: int


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ExpressionSyntaxError(source, pos, f"unexpected character {source[pos]!r}")
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(_Token("eof", "", len(source)))
    return tokens


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = _tokenize(source)
        self._i = 0

    @property
    def _current(self) -> _Token:
        return self._tokens[self._i]

    def _advance(self) -> _Token:
        token = self._tokens[self._i]
        self._i += 1
        return token

    def _accept(self, text: str) -> bool:
        if self._current.kind == "op" and self._current.text == text:
            self._i += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        if not self._accept(text):
            self._fail(f"expected {text!r}")

    def _expect_ident(self) -> str:
        token = self._current
        if token.kind != "ident":
            self._fail("expected identifier")
        self._i += 1
        return token.text

    def _fail(self, reason: str) -> None:
        token = self._current
        found = "end of expression" if token.kind == "eof" else repr(token.text)
        raise ExpressionSyntaxError(self._source, token.pos, f"{reason}, found {found}")

    def parse(self) -> Expr:
        expr = self._expression()
        if self._current.kind != "eof":
            self._fail("unexpected trailing input")
        return expr

    def _expression(self) -> Expr:
        condition = self._comparison()
        if self._accept("?"):
            then = self._expression()
            self._expect(":")
            otherwise = self._expression()
            return Conditional(condition, then, otherwise)
        return condition

    def _comparison(self) -> Expr:
        left = self._postfix()
        token = self._current
        if token.kind == "op" and token.text in ("==", "!="):
            self._advance()
            return Compare(token.text, left, self._postfix())
        return left

    def _postfix(self) -> Expr:
        expr = self._primary()
        while True:
            if self._accept("."):
                token = self._current
                if token.kind == "number" and token.text.isdigit():
                    self._advance()
                    expr = Index(expr, Literal(int(token.text)))
                else:
                    expr = GetAttr(expr, self._expect_ident())
            elif self._accept("["):
                key = self._expression()
                self._expect("]")
                expr = Index(expr, key)
            else:
                return expr

    def _primary(self) -> Expr:
        token = self._current
        if token.kind == "number":
            self._advance()
            return Literal(float(token.text) if "." in token.text else int(token.text))
        if token.kind == "string":
            self._advance()
            return Literal(_unquote(token.text))
        if token.kind == "ident":
            return self._identifier()
        if self._accept("("):
            inner = self._expression()
            self._expect(")")
            return inner
        if self._accept("["):
            return ListExpr(tuple(self._arguments("]")))
        self._fail("expected a value")
        raise AssertionError("unreachable")

    def _identifier(self) -> Expr:
        name = self._advance().text
        if name == "null":
            return Literal(None)
        if name in ("true", "false"):
            return Literal(name == "true")
        if self._accept("("):
            if name not in FUNCTIONS:
                raise ExpressionSyntaxError(self._source, self._tokens[self._i - 2].pos, f"unknown function {name!r}")
            return Call(name, tuple(self._arguments(")")))
        self._expect(".")
        if name == "var":
            return VarRef(self._expect_ident())
        return ResourceRef(name, self._expect_ident())

    def _arguments(self, closing: str) -> list[Expr]:
        args: list[Expr] = []
        if self._accept(closing):
            return args
        while True:
            args.append(self._expression())
            if self._accept(closing):
                return args
            self._expect(",")


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


def parse_expression(source: str) -> Expr:
    """Parse the body of a single ``${...}`` expression."""
    return _Parser(source).parse()


def _find_closing_brace(text: str, start: int) -> int:
    """Index of the ``}`` closing an interpolation opened just before *start*."""
    depth = 0
    in_string = False
    i = start
    while i < len(text):
        char = text[i]
        if in_string:
            if char == "\\":
                i += 1
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            if depth == 0:
                return i
            depth -= 1
        i += 1
    raise ExpressionSyntaxError(text, start - 2, "unterminated interpolation")


def parse_string(text: str) -> Expr:
    """Parse a declaration string, which may contain ``${...}`` interpolations.

    A string that is exactly one interpolation yields the bare expression so
    that non-string values (lists, numbers, null) pass through untouched.
    ``$${`` escapes a literal ``${``.
    """
    parts: list[Expr] = []
    buffer: list[str] = []
    i = 0
    while i < len(text):
        if text.startswith("$${", i):
            buffer.append("${")
            i += 3
        elif text.startswith("${", i):
            end = _find_closing_brace(text, i + 2)
            if buffer:
                parts.append(Literal("".join(buffer)))
                buffer = []
            parts.append(parse_expression(text[i + 2 : end]))
            i = end + 1
        else:
            buffer.append(text[i])
            i += 1
    if buffer:
        parts.append(Literal("".join(buffer)))
    if not parts:
        return Literal("")
    if len(parts) == 1:
        return parts[0]
    return Template(tuple(parts))


def parse_value(value: Any) -> Expr:
    """Convert a raw YAML value into an expression tree."""
    if isinstance(value, str):
        return parse_string(value)
    if isinstance(value, list):
        return ListExpr(tuple(parse_value(item) for item in value))
    if isinstance(value, dict):
        return MapExpr(tuple((str(key), parse_value(item)) for key, item in value.items()))
    return Literal(value)
