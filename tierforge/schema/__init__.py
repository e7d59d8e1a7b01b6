"""Typed resource schemas.

Exposes:
    FieldType, FieldSpec, ResourceSchema, SchemaRegistry -- schema primitives.
    default_registry -- registry holding the built-in three-tier catalog.
"""

from tierforge.schema.catalog import CATALOG, default_registry
from tierforge.schema.types import FieldSpec, FieldType, ResourceSchema, SchemaRegistry, split_field_path

__all__ = [
    "CATALOG",
    "FieldSpec",
    "FieldType",
    "ResourceSchema",
    "SchemaRegistry",
    "default_registry",
    "split_field_path",
]
