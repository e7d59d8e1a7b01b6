"""Declaration set data structures: resources, variables and outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tierforge.models.expressions import Expr
from tierforge.schema.types import FieldType

_NO_DEFAULT = object()


@dataclass(frozen=True)
class VariableDecl:
    """A named input to the declaration set."""

    name: str
    type: FieldType = FieldType.ANY
    default: Any = _NO_DEFAULT
    nullable: bool = False
    description: str = ""
    sensitive: bool = False

    @property
    def required(self) -> bool:
        return self.default is _NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT


@dataclass
class ResourceDecl:
    """A declared resource.

    Identity is the address ``kind.name``; it is stable across runs and a
    changed address is a different resource.
    """

    kind: str
    name: str
    fields: dict[str, Expr] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    enabled: Expr | None = None  # None means unconditionally present

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"

    @property
    def conditional(self) -> bool:
        return self.enabled is not None


@dataclass(frozen=True)
class OutputDecl:
    """A named value exposed to the caller after apply."""

    name: str
    value: Expr
    sensitive: bool = False
    description: str = ""


@dataclass
class DeclarationSet:
    """Everything loaded from one or more declaration documents."""

    variables: dict[str, VariableDecl] = field(default_factory=dict)
    resources: dict[str, ResourceDecl] = field(default_factory=dict)
    outputs: dict[str, OutputDecl] = field(default_factory=dict)

    def resource(self, address: str) -> ResourceDecl:
        return self.resources[address]

    def merge(self, other: DeclarationSet) -> list[str]:
        """Merge *other* into this set; returns names that were declared twice."""
        duplicates: list[str] = []
        for name, variable in other.variables.items():
            if name in self.variables:
                duplicates.append(f"var.{name}")
            self.variables[name] = variable
        for address, resource in other.resources.items():
            if address in self.resources:
                duplicates.append(address)
            self.resources[address] = resource
        for name, output in other.outputs.items():
            if name in self.outputs:
                duplicates.append(f"output.{name}")
            self.outputs[name] = output
        return duplicates
