"""Unit tests for declaration loading and schema validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from tierforge.declarations.loader import load_declarations, parse_document
from tierforge.declarations.validation import SchemaValidator
from tierforge.errors import DeclarationError, SchemaValidationError
from tierforge.models.expressions import Literal, VarRef
from tierforge.schema.catalog import default_registry
from tierforge.schema.types import FieldType

from ..conftest import make_declarations, make_registry

THREE_TIER = Path(__file__).resolve().parents[2] / "declarations" / "three_tier.yaml"

# ---------------------------------------------------------------------------
# parse_document
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_resources_are_keyed_by_address(self) -> None:
        declarations = make_declarations({"network": {"main": {"cidr": "10.0.0.0/16"}}})
        resource = declarations.resource("network.main")
        assert resource.kind == "network"
        assert resource.name == "main"
        assert resource.fields["cidr"] == Literal("10.0.0.0/16")

    def test_depends_on_accepts_bare_and_interpolated_addresses(self) -> None:
        declarations = make_declarations(
            {
                "network": {"a": {"cidr": "x"}, "b": {"cidr": "y"}},
                "compute": {
                    "api": {"network_id": "${network.a.id}", "depends_on": ["network.b", "${network.a}"]},
                },
            }
        )
        resource = declarations.resource("compute.api")
        assert resource.depends_on == ["network.b", "network.a"]
        assert "depends_on" not in resource.fields

    def test_invalid_depends_on_address(self) -> None:
        with pytest.raises(DeclarationError, match=r"depends_on\[0\]"):
            make_declarations({"compute": {"api": {"network_id": "x", "depends_on": ["not an address"]}}})

    def test_enabled_expression(self) -> None:
        declarations = make_declarations(
            {"network": {"main": {"cidr": "x", "enabled": "${var.on}"}}},
            variables={"on": {"type": "bool", "default": True}},
        )
        resource = declarations.resource("network.main")
        assert resource.enabled == VarRef("on")
        assert resource.conditional

    def test_enabled_true_literal_is_unconditional(self) -> None:
        declarations = make_declarations({"network": {"main": {"cidr": "x", "enabled": True}}})
        assert declarations.resource("network.main").enabled is None

    def test_enabled_false_literal(self) -> None:
        declarations = make_declarations({"network": {"main": {"cidr": "x", "enabled": False}}})
        assert declarations.resource("network.main").enabled == Literal(False)

    def test_enabled_must_be_bool_or_expression(self) -> None:
        with pytest.raises(DeclarationError, match="enabled must be"):
            make_declarations({"network": {"main": {"cidr": "x", "enabled": 1}}})

    def test_unknown_top_level_key(self) -> None:
        with pytest.raises(DeclarationError, match="unknown top-level keys: modules"):
            parse_document({"resources": {}, "modules": {}})

    def test_var_is_reserved(self) -> None:
        with pytest.raises(DeclarationError, match="reserved"):
            make_declarations({"var": {"x": {}}})

    def test_invalid_resource_name(self) -> None:
        with pytest.raises(DeclarationError, match="invalid resource name"):
            make_declarations({"network": {"has space": {"cidr": "x"}}})

    def test_variable_declarations(self) -> None:
        declarations = make_declarations(
            {},
            variables={
                "count": {"type": "number", "default": 2, "description": "How many."},
                "token": {"type": "string", "sensitive": True},
            },
        )
        count = declarations.variables["count"]
        assert count.type is FieldType.NUMBER
        assert count.default == 2
        assert not count.required
        assert declarations.variables["token"].required
        assert declarations.variables["token"].sensitive

    def test_variable_with_unknown_key(self) -> None:
        with pytest.raises(DeclarationError, match="unknown keys: validation"):
            make_declarations({}, variables={"x": {"type": "string", "validation": {}}})

    def test_variable_with_invalid_type(self) -> None:
        with pytest.raises(DeclarationError, match="invalid type 'block'"):
            make_declarations({}, variables={"x": {"type": "block"}})

    def test_outputs_short_and_long_form(self) -> None:
        declarations = make_declarations(
            {"network": {"main": {"cidr": "x"}}},
            outputs={
                "cidr": "${network.main.cidr}",
                "secret": {"value": "${network.main.id}", "sensitive": True, "description": "id"},
            },
        )
        assert not declarations.outputs["cidr"].sensitive
        assert declarations.outputs["secret"].sensitive
        assert declarations.outputs["secret"].description == "id"


# ---------------------------------------------------------------------------
# load_declarations
# ---------------------------------------------------------------------------


class TestLoadDeclarations:
    def test_directory_merges_files_in_name_order(self, tmp_path: Path) -> None:
        (tmp_path / "a.yaml").write_text("resources:\n  network:\n    main:\n      cidr: 10.0.0.0/16\n")
        (tmp_path / "b.yml").write_text(
            "resources:\n  database:\n    main:\n      network_id: ${network.main.id}\n"
        )
        (tmp_path / "notes.txt").write_text("ignored")
        declarations = load_declarations(tmp_path)
        assert sorted(declarations.resources) == ["database.main", "network.main"]

    def test_duplicate_address_across_files(self, tmp_path: Path) -> None:
        body = "resources:\n  network:\n    main:\n      cidr: x\n"
        (tmp_path / "a.yaml").write_text(body)
        (tmp_path / "b.yaml").write_text(body)
        with pytest.raises(DeclarationError, match="declared more than once: network.main"):
            load_declarations(tmp_path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(DeclarationError, match="invalid YAML"):
            load_declarations(path)

    def test_empty_directory(self, tmp_path: Path) -> None:
        with pytest.raises(DeclarationError, match="no declaration files"):
            load_declarations(tmp_path)

    def test_empty_file_is_empty_set(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_declarations(path).resources == {}

    def test_bundled_three_tier_document(self) -> None:
        declarations = load_declarations(THREE_TIER)
        assert "application_gateway.main" in declarations.resources
        assert declarations.outputs["db_admin_password"].sensitive
        SchemaValidator(default_registry()).validate(declarations)


# ---------------------------------------------------------------------------
# SchemaValidator
# ---------------------------------------------------------------------------


class TestSchemaValidator:
    def _validate(self, resources: dict) -> None:
        SchemaValidator(make_registry()).validate(make_declarations(resources))

    def test_valid_set(self) -> None:
        self._validate(
            {
                "network": {"main": {"cidr": "10.0.0.0/16", "tags": {"env": "dev"}}},
                "database": {"main": {"network_id": "${network.main.id}", "size": 10}},
            }
        )

    def test_unknown_kind(self) -> None:
        with pytest.raises(SchemaValidationError, match="unknown resource kind 'bucket'"):
            self._validate({"bucket": {"main": {}}})

    def test_unknown_field(self) -> None:
        with pytest.raises(SchemaValidationError, match="network.main: colour: unknown field"):
            self._validate({"network": {"main": {"cidr": "x", "colour": "red"}}})

    def test_missing_required_field(self) -> None:
        with pytest.raises(SchemaValidationError, match="network.main: cidr: required field is missing"):
            self._validate({"network": {"main": {}}})

    def test_literal_type_mismatch(self) -> None:
        with pytest.raises(SchemaValidationError, match="size: expected number, got str"):
            self._validate({"database": {"main": {"network_id": "x", "size": "large"}}})

    def test_map_element_type_mismatch(self) -> None:
        with pytest.raises(SchemaValidationError, match=r"tags\.env: expected string, got int"):
            self._validate({"network": {"main": {"cidr": "x", "tags": {"env": 3}}}})

    def test_reference_to_missing_output(self) -> None:
        with pytest.raises(SchemaValidationError, match="has no output attribute 'endpoint'"):
            self._validate(
                {
                    "network": {"main": {"cidr": "x"}},
                    "compute": {"api": {"network_id": "${network.main.endpoint}"}},
                }
            )

    def test_static_type_of_reference(self) -> None:
        with pytest.raises(SchemaValidationError, match="expected number, expression yields string"):
            self._validate(
                {
                    "network": {"main": {"cidr": "x"}},
                    "compute": {"api": {"network_id": "x", "instances": "${network.main.cidr}"}},
                }
            )

    def test_null_for_required_non_nullable_field(self) -> None:
        with pytest.raises(SchemaValidationError, match="must not be null"):
            self._validate({"network": {"main": {"cidr": None}}})

    def test_null_for_optional_field(self) -> None:
        self._validate({"database": {"main": {"network_id": "x", "size": None}}})

    @staticmethod
    def _gateway(backend_pools: list) -> dict:
        return {
            "application_gateway": {
                "main": {
                    "name": "agw",
                    "location": "westeurope",
                    "resource_group_name": "rg",
                    "sku": "WAF_v2",
                    "capacity": 2,
                    "subnet_id": "subnet",
                    "public_ip_address_id": "pip",
                    "backend_pools": backend_pools,
                    "routing_rules": [],
                }
            }
        }

    def test_unknown_block_field(self) -> None:
        declarations = parse_document({"resources": self._gateway([{"name": "api", "weight": 3}])})
        with pytest.raises(SchemaValidationError, match=r"backend_pools\[0\]\.weight: unknown field in block"):
            SchemaValidator(default_registry()).validate(declarations)

    def test_missing_required_block_field(self) -> None:
        declarations = parse_document({"resources": self._gateway([{"ip_addresses": []}])})
        with pytest.raises(SchemaValidationError, match=r"backend_pools\[0\]\.name: required field is missing"):
            SchemaValidator(default_registry()).validate(declarations)
