"""Unit tests for the ``${...}`` expression parser."""

from __future__ import annotations

import pytest

from tierforge.declarations.parser import parse_expression, parse_string, parse_value
from tierforge.errors import ExpressionSyntaxError
from tierforge.models.expressions import (
    Call,
    Compare,
    Conditional,
    GetAttr,
    Index,
    ListExpr,
    Literal,
    MapExpr,
    ResourceRef,
    Template,
    VarRef,
    attribute_references,
    walk,
)

# ---------------------------------------------------------------------------
# parse_expression
# ---------------------------------------------------------------------------


class TestParseExpression:
    def test_variable_reference(self) -> None:
        assert parse_expression("var.location") == VarRef("location")

    def test_resource_attribute(self) -> None:
        expr = parse_expression("subnet.backend.id")
        assert expr == GetAttr(ResourceRef("subnet", "backend"), "id")

    def test_bare_resource_reference(self) -> None:
        assert parse_expression("vm_scale_set.frontend") == ResourceRef("vm_scale_set", "frontend")

    def test_literals(self) -> None:
        assert parse_expression("null") == Literal(None)
        assert parse_expression("true") == Literal(True)
        assert parse_expression("false") == Literal(False)
        assert parse_expression("42") == Literal(42)
        assert parse_expression("1.5") == Literal(1.5)
        assert parse_expression('"a \\"quoted\\" word"') == Literal('a "quoted" word')

    def test_numeric_index_after_dot(self) -> None:
        expr = parse_expression("virtual_network.main.address_space.0")
        assert expr == Index(GetAttr(ResourceRef("virtual_network", "main"), "address_space"), Literal(0))

    def test_bracket_index(self) -> None:
        expr = parse_expression("var.zones[1]")
        assert expr == Index(VarRef("zones"), Literal(1))

    def test_conditional(self) -> None:
        expr = parse_expression('var.enable_waf ? "Prevention" : null')
        assert expr == Conditional(VarRef("enable_waf"), Literal("Prevention"), Literal(None))

    def test_nested_conditional_is_right_associative(self) -> None:
        expr = parse_expression("var.a ? 1 : var.b ? 2 : 3")
        assert isinstance(expr, Conditional)
        assert expr.then == Literal(1)
        assert isinstance(expr.otherwise, Conditional)

    def test_comparison(self) -> None:
        expr = parse_expression('var.tier != "dev"')
        assert expr == Compare("!=", VarRef("tier"), Literal("dev"))

    def test_function_call(self) -> None:
        expr = parse_expression("try(internal_load_balancer.frontend.private_ip, null)")
        assert expr == Call(
            "try",
            (GetAttr(ResourceRef("internal_load_balancer", "frontend"), "private_ip"), Literal(None)),
        )

    def test_list_literal(self) -> None:
        expr = parse_expression("[var.a, 2]")
        assert expr == ListExpr((VarRef("a"), Literal(2)))

    def test_empty_list(self) -> None:
        assert parse_expression("[]") == ListExpr(())

    def test_parentheses(self) -> None:
        assert parse_expression("(var.a)") == VarRef("a")

    def test_unknown_function_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="unknown function 'lookup'"):
            parse_expression("lookup(var.a, 1)")

    def test_trailing_input_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="trailing input"):
            parse_expression("var.a var.b")

    def test_unexpected_character_reports_position(self) -> None:
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("var.a + 1")
        assert exc_info.value.position == 6

    def test_bare_identifier_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="expected '.'"):
            parse_expression("subnet")

    def test_missing_else_branch(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="expected ':'"):
            parse_expression("var.a ? 1")


# ---------------------------------------------------------------------------
# parse_string / parse_value
# ---------------------------------------------------------------------------


class TestParseString:
    def test_plain_text_is_literal(self) -> None:
        assert parse_string("westeurope") == Literal("westeurope")

    def test_single_interpolation_is_bare_expression(self) -> None:
        assert parse_string("${var.address_space}") == VarRef("address_space")

    def test_template(self) -> None:
        expr = parse_string("${var.prefix}-vnet")
        assert expr == Template((VarRef("prefix"), Literal("-vnet")))

    def test_escaped_interpolation(self) -> None:
        assert parse_string("cost: $${var.x}") == Literal("cost: ${var.x}")

    def test_braces_inside_string_literal(self) -> None:
        expr = parse_string('${var.a ? "}" : "{"}')
        assert expr == Conditional(VarRef("a"), Literal("}"), Literal("{"))

    def test_unterminated(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="unterminated"):
            parse_string("${var.a")

    def test_empty_string(self) -> None:
        assert parse_string("") == Literal("")


class TestParseValue:
    def test_nested_structures(self) -> None:
        expr = parse_value({"pools": [{"ip": "${compute.api.private_ip}"}], "port": 80})
        assert isinstance(expr, MapExpr)
        pools = expr.get("pools")
        assert isinstance(pools, ListExpr)
        assert pools.items[0] == MapExpr((("ip", GetAttr(ResourceRef("compute", "api"), "private_ip")),))
        assert expr.get("port") == Literal(80)

    def test_scalars_pass_through(self) -> None:
        assert parse_value(3) == Literal(3)
        assert parse_value(None) == Literal(None)


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------


class TestTreeHelpers:
    def test_walk_visits_both_conditional_branches(self) -> None:
        expr = parse_string("${var.x ? network.a.id : network.b.id}")
        refs = {node.address for node in walk(expr) if isinstance(node, ResourceRef)}
        assert refs == {"network.a", "network.b"}

    def test_attribute_references(self) -> None:
        expr = parse_string("${network.a.cidr}/${database.main}")
        found = [(ref.address, attr) for ref, attr in attribute_references(expr)]
        assert found == [("network.a", "cidr"), ("database.main", None)]
