"""Variable value resolution and type checking."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from tierforge.errors import DeclarationError
from tierforge.models.declarations import VariableDecl
from tierforge.schema.types import FieldType, literal_matches


def parse_var_assignments(assignments: Iterable[str]) -> dict[str, str]:
    """Parse ``name=value`` strings from the command line."""
    values: dict[str, str] = {}
    for assignment in assignments:
        name, sep, value = assignment.partition("=")
        if not sep or not name.strip():
            raise DeclarationError(f"invalid variable assignment {assignment!r}; expected name=value")
        values[name.strip()] = value
    return values


def load_var_file(path: str | Path) -> dict[str, Any]:
    """Load variable values from a YAML (or JSON) mapping."""
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise DeclarationError(f"cannot read variable file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DeclarationError(f"variable file {path} must contain a mapping")
    return data


def _coerce(decl: VariableDecl, raw: Any) -> Any:
    """Convert command-line strings into the declared type."""
    if not isinstance(raw, str) or decl.type in (FieldType.STRING, FieldType.ANY):
        return raw
    if decl.type is FieldType.NUMBER:
        try:
            return int(raw)
        except ValueError:
            try:
                return float(raw)
            except ValueError:
                return raw
    if decl.type is FieldType.BOOL:
        lowered = raw.lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return raw
    if raw.lower() == "null":
        return None
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def resolve_variables(declared: Mapping[str, VariableDecl], provided: Mapping[str, Any]) -> dict[str, Any]:
    """Merge provided values with defaults and validate each against its type."""
    unknown = sorted(set(provided) - set(declared))
    if unknown:
        raise DeclarationError(f"values provided for undeclared variables: {', '.join(unknown)}")

    resolved: dict[str, Any] = {}
    for name, decl in declared.items():
        if name in provided:
            value = _coerce(decl, provided[name])
        elif decl.has_default:
            value = decl.default
        else:
            raise DeclarationError(f"variable {name!r} is required but no value was provided")

        if value is None:
            if not decl.nullable and not (decl.has_default and decl.default is None):
                raise DeclarationError(f"variable {name!r} must not be null")
        elif not literal_matches(value, decl.type if decl.type is not FieldType.BLOCK else FieldType.MAP):
            raise DeclarationError(f"variable {name!r} expects type {decl.type}, got {type(value).__name__}")
        resolved[name] = value
    return resolved
