"""Parse-time validation of resource blocks against their kind's schema."""

from __future__ import annotations

from tierforge.errors import SchemaValidationError
from tierforge.models.declarations import DeclarationSet, ResourceDecl
from tierforge.models.expressions import (
    Call,
    Compare,
    Conditional,
    Expr,
    GetAttr,
    ListExpr,
    Literal,
    MapExpr,
    ResourceRef,
    Template,
    attribute_references,
)
from tierforge.schema.types import FieldSpec, FieldType, SchemaRegistry, literal_matches


class SchemaValidator:
    """Checks field names, required fields, literal types and referenced outputs.

    References to undeclared resources are left to the reference resolver,
    which reports them with their field path as dangling references.
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry

    def validate(self, declarations: DeclarationSet) -> None:
        for resource in declarations.resources.values():
            self.validate_resource(resource)

    def validate_resource(self, resource: ResourceDecl) -> None:
        address = resource.address
        schema = self._registry.get(resource.kind)
        if schema is None:
            raise SchemaValidationError(address, resource.kind, f"unknown resource kind {resource.kind!r}")

        for name, expr in resource.fields.items():
            spec = schema.inputs.get(name)
            if spec is None:
                raise SchemaValidationError(address, name, f"unknown field for kind {resource.kind!r}")
            self._check_references(address, name, expr)
            self._check(address, name, expr, spec)

        for name in schema.required_inputs:
            if name not in resource.fields:
                raise SchemaValidationError(address, name, "required field is missing")

    def _check_references(self, address: str, path: str, expr: Expr) -> None:
        for ref, attr in attribute_references(expr):
            target = self._registry.get(ref.kind)
            if target is None or attr is None:
                continue
            if attr not in target.outputs:
                raise SchemaValidationError(
                    address,
                    path,
                    f"{ref.address} has no output attribute {attr!r} "
                    f"(kind {ref.kind!r} exposes {sorted(target.outputs)})",
                )

    def _check(self, address: str, path: str, expr: Expr, spec: FieldSpec) -> None:
        if isinstance(expr, Literal):
            self._check_literal(address, path, expr.value, spec)
            return
        if isinstance(expr, ListExpr):
            if spec.type not in (FieldType.LIST, FieldType.ANY):
                raise SchemaValidationError(address, path, f"expected {spec.type}, got a list")
            element = spec.element_spec() if spec.type is FieldType.LIST else spec
            for i, item in enumerate(expr.items):
                self._check(address, f"{path}[{i}]", item, element)
            return
        if isinstance(expr, MapExpr):
            self._check_mapping(address, path, expr, spec)
            return
        if spec.type is FieldType.ANY:
            return
        static = self._static_type(expr)
        if static is None or static is FieldType.ANY:
            return
        if static is spec.type or (spec.type is FieldType.BLOCK and static is FieldType.MAP):
            return
        raise SchemaValidationError(address, path, f"expected {spec.type}, expression yields {static}")

    def _check_literal(self, address: str, path: str, value: object, spec: FieldSpec) -> None:
        if value is None:
            if spec.required and not spec.nullable:
                raise SchemaValidationError(address, path, "must not be null")
            return
        expected = FieldType.MAP if spec.type is FieldType.BLOCK else spec.type
        if not literal_matches(value, expected):
            raise SchemaValidationError(address, path, f"expected {spec.type}, got {type(value).__name__}")

    def _check_mapping(self, address: str, path: str, expr: MapExpr, spec: FieldSpec) -> None:
        if spec.type is FieldType.ANY:
            return
        if spec.type is FieldType.MAP:
            element = FieldSpec(type=spec.element, nullable=True)
            for key, value in expr.items:
                self._check(address, f"{path}.{key}", value, element)
            return
        if spec.type is not FieldType.BLOCK or spec.block is None:
            raise SchemaValidationError(address, path, f"expected {spec.type}, got a mapping")
        for key, value in expr.items:
            nested = spec.block.get(key)
            if nested is None:
                raise SchemaValidationError(address, f"{path}.{key}", "unknown field in block")
            self._check(address, f"{path}.{key}", value, nested)
        for key, nested in spec.block.items():
            if nested.required and expr.get(key) is None:
                raise SchemaValidationError(address, f"{path}.{key}", "required field is missing")

    def _static_type(self, expr: Expr) -> FieldType | None:
        """Best-effort type of *expr* without evaluating it; None when unknown."""
        match expr:
            case GetAttr(target=ResourceRef(kind=kind), name=name):
                schema = self._registry.get(kind)
                return schema.outputs.get(name) if schema is not None else None
            case Compare():
                return FieldType.BOOL
            case Template():
                return FieldType.STRING
            case Literal(value=None):
                return None
            case Literal(value=value):
                for candidate in (FieldType.BOOL, FieldType.NUMBER, FieldType.STRING, FieldType.LIST, FieldType.MAP):
                    if literal_matches(value, candidate):
                        return candidate
                return None
            case ListExpr():
                return FieldType.LIST
            case MapExpr():
                return FieldType.MAP
            case Conditional(then=then, otherwise=otherwise):
                left, right = self._static_type(then), self._static_type(otherwise)
                if left is None or left == right:
                    return right
                return left if right is None else None
            case Call(function="join"):
                return FieldType.STRING
            case Call(function="try" | "coalesce", args=args) if args:
                return self._static_type(args[0])
        return None
