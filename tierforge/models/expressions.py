"""Intermediate representation of field values and expressions.

Every input field of a declared resource is held as an ``Expr`` tree.  Plain
YAML scalars become ``Literal``; lists and mappings become ``ListExpr`` and
``MapExpr``; ``${...}`` strings are parsed into the remaining node types.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class VarRef:
    name: str


@dataclass(frozen=True)
class ResourceRef:
    """Reference to a declared resource; evaluates to its output mapping."""

    kind: str
    name: str

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"


@dataclass(frozen=True)
class GetAttr:
    target: Expr
    name: str


@dataclass(frozen=True)
class Index:
    target: Expr
    key: Expr


@dataclass(frozen=True)
class Conditional:
    condition: Expr
    then: Expr
    otherwise: Expr


@dataclass(frozen=True)
class Compare:
    op: str  # "==" or "!="
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Call:
    function: str
    args: tuple[Expr, ...]


@dataclass(frozen=True)
class Template:
    """String interpolation; literal text parts are ``Literal`` nodes."""

    parts: tuple[Expr, ...]


@dataclass(frozen=True)
class ListExpr:
    items: tuple[Expr, ...]


@dataclass(frozen=True)
class MapExpr:
    items: tuple[tuple[str, Expr], ...]

    def get(self, key: str) -> Expr | None:
        for name, value in self.items:
            if name == key:
                return value
        return None


Expr = Literal | VarRef | ResourceRef | GetAttr | Index | Conditional | Compare | Call | Template | ListExpr | MapExpr


def children(expr: Expr) -> tuple[Expr, ...]:
    """Direct sub-expressions of *expr*, in source order."""
    match expr:
        case GetAttr(target=target):
            return (target,)
        case Index(target=target, key=key):
            return (target, key)
        case Conditional(condition=condition, then=then, otherwise=otherwise):
            return (condition, then, otherwise)
        case Compare(left=left, right=right):
            return (left, right)
        case Call(args=args):
            return args
        case Template(parts=parts):
            return parts
        case ListExpr(items=items):
            return items
        case MapExpr(items=items):
            return tuple(value for _, value in items)
    return ()


def walk(expr: Expr) -> Iterator[Expr]:
    """Pre-order traversal of every node, conditional branches included."""
    yield expr
    for child in children(expr):
        yield from walk(child)


def attribute_references(expr: Expr) -> Iterator[tuple[ResourceRef, str | None]]:
    """Yield each resource reference with the attribute read from it, if any."""
    if isinstance(expr, GetAttr) and isinstance(expr.target, ResourceRef):
        yield expr.target, expr.name
        return
    if isinstance(expr, ResourceRef):
        yield expr, None
        return
    for child in children(expr):
        yield from attribute_references(child)
