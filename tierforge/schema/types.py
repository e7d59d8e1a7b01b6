"""Typed schema primitives for resource kinds."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

_PATH_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


class FieldType(StrEnum):
    """Value types accepted by resource inputs, outputs and variables."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"
    BLOCK = "block"
    ANY = "any"


def literal_matches(value: Any, field_type: FieldType) -> bool:
    """Return True if a plain Python *value* is an instance of *field_type*."""
    if field_type is FieldType.ANY:
        return True
    if field_type is FieldType.STRING:
        return isinstance(value, str)
    if field_type is FieldType.NUMBER:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if field_type is FieldType.BOOL:
        return isinstance(value, bool)
    if field_type is FieldType.LIST:
        return isinstance(value, list)
    return isinstance(value, dict)


@dataclass(frozen=True)
class FieldSpec:
    """Declared shape of one input field.

    ``force_new`` is static per-kind metadata: a change to such a field cannot
    be applied in place and forces destroy-and-recreate.  ``block`` describes
    the nested fields of a ``BLOCK`` (or of each element of a ``LIST`` of
    blocks).
    """

    type: FieldType
    required: bool = False
    nullable: bool = False
    force_new: bool = False
    element: FieldType = FieldType.ANY
    block: dict[str, FieldSpec] | None = field(default=None, compare=False, hash=False)
    description: str = ""

    def element_spec(self) -> FieldSpec:
        """Spec of a single element when this field is a list."""
        if self.block is not None:
            return FieldSpec(type=FieldType.BLOCK, block=self.block, nullable=self.nullable)
        return FieldSpec(type=self.element, nullable=self.nullable)


@dataclass(frozen=True)
class ResourceSchema:
    """Inputs and outputs declared by a resource kind."""

    kind: str
    inputs: dict[str, FieldSpec] = field(default_factory=dict, compare=False, hash=False)
    outputs: dict[str, FieldType] = field(default_factory=dict, compare=False, hash=False)
    description: str = ""

    def __post_init__(self) -> None:
        # Every remote object carries a provider-assigned id.
        self.outputs.setdefault("id", FieldType.STRING)

    @property
    def required_inputs(self) -> list[str]:
        return [name for name, spec in self.inputs.items() if spec.required]

    @property
    def force_new_inputs(self) -> set[str]:
        return {name for name, spec in self.inputs.items() if spec.force_new}

    def field_at(self, path: str | Iterable[str | int]) -> FieldSpec | None:
        """Return the deepest FieldSpec addressed by *path*.

        List indices descend into the list's element spec; a segment that the
        schema does not describe stops the walk and the last resolved spec is
        returned.
        """
        segments = split_field_path(path) if isinstance(path, str) else list(path)
        if not segments or not isinstance(segments[0], str):
            return None
        spec = self.inputs.get(segments[0])
        for segment in segments[1:]:
            if spec is None:
                return None
            if isinstance(segment, int):
                if spec.type is not FieldType.LIST:
                    return spec
                spec = spec.element_spec()
            elif spec.block is not None and spec.type is FieldType.BLOCK:
                nested = spec.block.get(segment)
                if nested is None:
                    return spec
                spec = nested
            else:
                return spec
        return spec


def split_field_path(path: str) -> list[str | int]:
    """Split ``"a.b[0].c"`` into ``["a", "b", 0, "c"]``."""
    segments: list[str | int] = []
    for name, index in _PATH_SEGMENT.findall(path):
        segments.append(int(index) if index else name)
    return segments


class SchemaRegistry:
    """Lookup table from resource kind to its schema."""

    def __init__(self, schemas: Iterable[ResourceSchema] = ()) -> None:
        self._schemas: dict[str, ResourceSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: ResourceSchema) -> None:
        if schema.kind in self._schemas:
            raise ValueError(f"resource kind {schema.kind!r} is already registered")
        self._schemas[schema.kind] = schema

    def get(self, kind: str) -> ResourceSchema | None:
        return self._schemas.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._schemas

    @property
    def kinds(self) -> list[str]:
        return sorted(self._schemas)
