"""Load declaration documents (YAML) into a DeclarationSet.

Document layout::

    variables:
      location: {type: string, default: westeurope}
    resources:
      virtual_network:
        main:
          name: "${var.prefix}-vnet"
          depends_on: [resource_group.main]
          enabled: "${var.enable_network}"
    outputs:
      gateway_ip: {value: "${public_ip.gateway.ip_address}"}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from tierforge.declarations.parser import parse_string, parse_value
from tierforge.errors import DeclarationError
from tierforge.models.declarations import DeclarationSet, OutputDecl, ResourceDecl, VariableDecl
from tierforge.schema.types import FieldType

_log = structlog.get_logger(component="declarations.loader")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_ADDRESS = re.compile(r"^\$?\{?\s*([A-Za-z_][A-Za-z0-9_-]*)\.([A-Za-z_][A-Za-z0-9_-]*)\s*\}?$")
_TOP_LEVEL_KEYS = {"variables", "resources", "outputs"}
_VARIABLE_KEYS = {"type", "default", "nullable", "description", "sensitive"}
_VARIABLE_TYPES = {t.value for t in FieldType if t is not FieldType.BLOCK}


def load_declarations(*paths: str | Path) -> DeclarationSet:
    """Load and merge every document found at *paths*.

    A directory contributes all of its ``*.yaml`` / ``*.yml`` files in name
    order.  Declaring the same variable, resource or output twice is an error.
    """
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix in (".yaml", ".yml")))
        else:
            files.append(path)
    if not files:
        raise DeclarationError("no declaration files found", {"paths": [str(p) for p in paths]})

    merged = DeclarationSet()
    for file in files:
        try:
            document = yaml.safe_load(file.read_text(encoding="utf-8"))
        except OSError as exc:
            raise DeclarationError(f"cannot read {file}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise DeclarationError(f"{file}: invalid YAML: {exc}") from exc
        duplicates = merged.merge(parse_document(document or {}, source=str(file)))
        if duplicates:
            raise DeclarationError(f"{file}: declared more than once: {', '.join(duplicates)}")
    _log.debug(
        "declarations_loaded",
        files=len(files),
        resources=len(merged.resources),
        variables=len(merged.variables),
    )
    return merged


def parse_document(document: Mapping[str, Any], source: str = "<inline>") -> DeclarationSet:
    """Build a DeclarationSet from an already-decoded mapping."""
    if not isinstance(document, Mapping):
        raise DeclarationError(f"{source}: document must be a mapping")
    unknown = set(document) - _TOP_LEVEL_KEYS
    if unknown:
        raise DeclarationError(f"{source}: unknown top-level keys: {', '.join(sorted(unknown))}")
    return DeclarationSet(
        variables=_parse_variables(document.get("variables") or {}, source),
        resources=_parse_resources(document.get("resources") or {}, source),
        outputs=_parse_outputs(document.get("outputs") or {}, source),
    )


def _check_identifier(name: Any, what: str, source: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise DeclarationError(f"{source}: invalid {what} name {name!r}")
    return name


def _parse_variables(raw: Any, source: str) -> dict[str, VariableDecl]:
    if not isinstance(raw, Mapping):
        raise DeclarationError(f"{source}: 'variables' must be a mapping")
    variables: dict[str, VariableDecl] = {}
    for name, body in raw.items():
        _check_identifier(name, "variable", source)
        body = body or {}
        if not isinstance(body, Mapping):
            raise DeclarationError(f"{source}: variable {name!r} must be a mapping")
        unknown = set(body) - _VARIABLE_KEYS
        if unknown:
            raise DeclarationError(f"{source}: variable {name!r} has unknown keys: {', '.join(sorted(unknown))}")
        type_name = str(body.get("type", "any"))
        if type_name not in _VARIABLE_TYPES:
            raise DeclarationError(f"{source}: variable {name!r} has invalid type {type_name!r}")
        kwargs: dict[str, Any] = {
            "name": name,
            "type": FieldType(type_name),
            "nullable": bool(body.get("nullable", False)),
            "description": str(body.get("description", "")),
            "sensitive": bool(body.get("sensitive", False)),
        }
        if "default" in body:
            kwargs["default"] = body["default"]
        variables[name] = VariableDecl(**kwargs)
    return variables


def _parse_resources(raw: Any, source: str) -> dict[str, ResourceDecl]:
    if not isinstance(raw, Mapping):
        raise DeclarationError(f"{source}: 'resources' must be a mapping of kind -> name -> body")
    resources: dict[str, ResourceDecl] = {}
    for kind, named in raw.items():
        _check_identifier(kind, "resource kind", source)
        if kind == "var":
            raise DeclarationError(f"{source}: 'var' is reserved and cannot be a resource kind")
        if not isinstance(named, Mapping):
            raise DeclarationError(f"{source}: resources.{kind} must be a mapping of name -> body")
        for name, body in named.items():
            _check_identifier(name, "resource", source)
            resource = _parse_resource(kind, name, body or {}, source)
            resources[resource.address] = resource
    return resources


def _parse_resource(kind: str, name: str, body: Any, source: str) -> ResourceDecl:
    address = f"{kind}.{name}"
    if not isinstance(body, Mapping):
        raise DeclarationError(f"{source}: {address} must be a mapping")

    depends_on: list[str] = []
    raw_depends = body.get("depends_on") or []
    if not isinstance(raw_depends, list):
        raise DeclarationError(f"{source}: {address}.depends_on must be a list of addresses")
    for i, target in enumerate(raw_depends):
        match = _ADDRESS.match(str(target))
        if match is None:
            raise DeclarationError(f"{source}: {address}.depends_on[{i}]: invalid address {target!r}")
        depends_on.append(f"{match.group(1)}.{match.group(2)}")

    enabled = None
    if "enabled" in body:
        raw_enabled = body["enabled"]
        if isinstance(raw_enabled, bool):
            enabled = None if raw_enabled else parse_value(False)
        elif isinstance(raw_enabled, str):
            enabled = parse_string(raw_enabled)
        else:
            raise DeclarationError(f"{source}: {address}.enabled must be a boolean or an expression")

    fields = {
        str(key): parse_value(value) for key, value in body.items() if key not in ("depends_on", "enabled")
    }
    return ResourceDecl(kind=kind, name=name, fields=fields, depends_on=depends_on, enabled=enabled)


def _parse_outputs(raw: Any, source: str) -> dict[str, OutputDecl]:
    if not isinstance(raw, Mapping):
        raise DeclarationError(f"{source}: 'outputs' must be a mapping")
    outputs: dict[str, OutputDecl] = {}
    for name, body in raw.items():
        _check_identifier(name, "output", source)
        if isinstance(body, Mapping) and "value" in body:
            outputs[name] = OutputDecl(
                name=name,
                value=parse_value(body["value"]),
                sensitive=bool(body.get("sensitive", False)),
                description=str(body.get("description", "")),
            )
        else:
            outputs[name] = OutputDecl(name=name, value=parse_value(body))
    return outputs
