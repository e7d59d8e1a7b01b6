"""Expression evaluation against variables and resource outputs."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from tierforge.errors import EvaluationError
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


class _Unknown:
    """Placeholder for a value only known after a pending change is applied."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"


UNKNOWN = _Unknown()

# address -> output mapping, None for a resource that is absent (disabled),
# or UNKNOWN while the resource has a pending create/replace.
OutputLookup = Callable[[str], Mapping[str, Any] | _Unknown | None]


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, list):
        return any(contains_unknown(item) for item in value)
    if isinstance(value, dict):
        return any(contains_unknown(item) for item in value.values())
    return False


class Evaluator:
    """Evaluates expression trees.

    A reference to an absent resource yields ``None`` so that nullable fields
    degrade gracefully when a flag disables their producer.  Inside ``try()``
    the same reference is an evaluation error instead, so the next argument
    is used.
    """

    def __init__(self, variables: Mapping[str, Any], lookup: OutputLookup) -> None:
        self._variables = variables
        self._lookup = lookup
        self._try_depth = 0

    def evaluate(self, expr: Expr) -> Any:
        match expr:
            case Literal(value=value):
                return value
            case VarRef(name=name):
                if name not in self._variables:
                    raise EvaluationError(f"undefined variable var.{name}")
                return self._variables[name]
            case ResourceRef():
                outputs = self._lookup(expr.address)
                if outputs is None and self._try_depth:
                    raise EvaluationError(f"{expr.address} is absent")
                return outputs
            case GetAttr(target=target, name=name):
                return self._get_attr(self.evaluate(target), name)
            case Index(target=target, key=key):
                return self._index(self.evaluate(target), self.evaluate(key))
            case Conditional(condition=condition, then=then, otherwise=otherwise):
                cond = self.evaluate(condition)
                if cond is UNKNOWN:
                    return UNKNOWN
                return self.evaluate(then) if cond else self.evaluate(otherwise)
            case Compare(op=op, left=left, right=right):
                lhs, rhs = self.evaluate(left), self.evaluate(right)
                if lhs is UNKNOWN or rhs is UNKNOWN:
                    return UNKNOWN
                return (lhs == rhs) if op == "==" else (lhs != rhs)
            case Call(function=function, args=args):
                return self._call(function, args)
            case Template(parts=parts):
                values = [self.evaluate(part) for part in parts]
                if any(value is UNKNOWN for value in values):
                    return UNKNOWN
                return "".join("" if value is None else _render(value) for value in values)
            case ListExpr(items=items):
                return [self.evaluate(item) for item in items]
            case MapExpr(items=items):
                return {key: self.evaluate(value) for key, value in items}
        raise EvaluationError(f"unsupported expression node {type(expr).__name__}")

    def evaluate_fields(self, fields: Mapping[str, Expr]) -> dict[str, Any]:
        return {name: self.evaluate(expr) for name, expr in fields.items()}

    @staticmethod
    def _get_attr(value: Any, name: str) -> Any:
        if value is None or value is UNKNOWN:
            return value
        if isinstance(value, Mapping):
            if name not in value:
                raise EvaluationError(f"attribute {name!r} is not available")
            return value[name]
        raise EvaluationError(f"cannot read attribute {name!r} of {type(value).__name__}")

    @staticmethod
    def _index(value: Any, key: Any) -> Any:
        if value is None or value is UNKNOWN or key is UNKNOWN:
            return None if value is None else UNKNOWN
        if isinstance(value, list):
            if not isinstance(key, int) or isinstance(key, bool):
                raise EvaluationError(f"list index must be an integer, got {key!r}")
            if not -len(value) <= key < len(value):
                raise EvaluationError(f"index {key} out of range for list of length {len(value)}")
            return value[key]
        if isinstance(value, Mapping):
            if key not in value:
                raise EvaluationError(f"key {key!r} not found")
            return value[key]
        raise EvaluationError(f"cannot index {type(value).__name__}")

    def _call(self, function: str, args: tuple[Expr, ...]) -> Any:
        if function == "try":
            last_error: EvaluationError | None = None
            # the last argument has no fallback, so an absent resource there is None
            last = len(args) - 1
            for i, arg in enumerate(args):
                guard = 1 if i < last else 0
                self._try_depth += guard
                try:
                    return self.evaluate(arg)
                except EvaluationError as exc:
                    last_error = exc
                finally:
                    self._try_depth -= guard
            raise EvaluationError(f"no try() argument could be evaluated: {last_error}")
        if function == "coalesce":
            # coalesce skips absent resources itself, even inside try()
            depth, self._try_depth = self._try_depth, 0
            try:
                values = [self.evaluate(arg) for arg in args]
            finally:
                self._try_depth = depth
        else:
            values = [self.evaluate(arg) for arg in args]
        if function == "coalesce":
            for value in values:
                if value is UNKNOWN:
                    return UNKNOWN
                if value is not None and value != "":
                    return value
            return None
        if any(contains_unknown(value) for value in values):
            return UNKNOWN
        if function == "element":
            if len(values) != 2 or not isinstance(values[0], list) or not isinstance(values[1], int):
                raise EvaluationError("element() expects a list and an integer index")
            if not values[0]:
                raise EvaluationError("element() called on an empty list")
            return values[0][values[1] % len(values[0])]
        if function == "join":
            if len(values) != 2 or not isinstance(values[0], str) or not isinstance(values[1], list):
                raise EvaluationError("join() expects a separator and a list")
            return values[0].join(_render(item) for item in values[1] if item is not None)
        raise EvaluationError(f"unknown function {function!r}")


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
