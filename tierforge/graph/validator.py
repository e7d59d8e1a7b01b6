"""Graph validation over the realized node set.

Conditional resources whose ``enabled`` flag evaluates false are pruned
first.  An edge leaving a pruned producer is dropped only when the consumer
can live without the value: the edge is ordering-only, every reference it
stands for has a ``try``/``coalesce`` fallback, or the consumer field is
nullable in its kind's schema.  The remaining graph must be acyclic.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from tierforge.errors import CycleError, DeclarationError, DisabledDependencyError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType
from tierforge.models.declarations import DeclarationSet, ResourceDecl
from tierforge.schema.types import SchemaRegistry

_log = structlog.get_logger(component="graph.validator")

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class ValidatedGraph:
    """A DAG over the realized resources plus the addresses that were pruned."""

    graph: DependencyGraph
    pruned: list[str] = field(default_factory=list)


def find_cycle(graph: DependencyGraph) -> list[str] | None:
    """Depth-first search with an on-stack marker.

    Returns the cycle as a closed path (first node repeated at the end), or
    None if the graph is acyclic.
    """
    color = dict.fromkeys(graph, _WHITE)
    stack: list[str] = []

    def visit(address: str) -> list[str] | None:
        color[address] = _GRAY
        stack.append(address)
        for successor in sorted(graph.successors(address)):
            if color[successor] == _GRAY:
                return stack[stack.index(successor) :] + [successor]
            if color[successor] == _WHITE:
                cycle = visit(successor)
                if cycle is not None:
                    return cycle
        stack.pop()
        color[address] = _BLACK
        return None

    for address in sorted(graph):
        if color[address] == _WHITE:
            cycle = visit(address)
            if cycle is not None:
                return cycle
    return None


class GraphValidator:
    """Prunes disabled resources and confirms the rest forms a DAG."""

    def __init__(self, registry: SchemaRegistry, variables: Mapping[str, Any]) -> None:
        self._registry = registry
        self._variables = variables

    def validate(self, graph: DependencyGraph, declarations: DeclarationSet) -> ValidatedGraph:
        pruned = {r.address for r in declarations.resources.values() if not self.is_enabled(r)}

        for address in sorted(pruned):
            for edge in graph.edges_from(address):
                consumer = edge.target.address
                if consumer in pruned or edge.edge_type is EdgeType.ORDERING or edge.guarded:
                    continue
                if not self._accepts_absent(declarations.resource(consumer), edge.source_field):
                    raise DisabledDependencyError(consumer, edge.source_field, address)

        realized = graph.subgraph(a for a in graph if a not in pruned)
        cycle = find_cycle(realized)
        if cycle is not None:
            raise CycleError(cycle)

        _log.debug("graph_validated", realized=realized.node_count, pruned=len(pruned))
        return ValidatedGraph(graph=realized, pruned=sorted(pruned))

    def is_enabled(self, resource: ResourceDecl) -> bool:
        if resource.enabled is None:
            return True
        from tierforge.declarations.evaluator import Evaluator

        value = Evaluator(self._variables, _no_resources).evaluate(resource.enabled)
        if not isinstance(value, bool):
            raise DeclarationError(f"{resource.address}: enabled must evaluate to a boolean, got {value!r}")
        return value

    def _accepts_absent(self, consumer: ResourceDecl, field_path: str) -> bool:
        schema = self._registry.get(consumer.kind)
        if schema is None:
            return False
        spec = schema.field_at(field_path)
        return spec is not None and spec.nullable


def _no_resources(address: str) -> None:
    raise DeclarationError(f"enabled flags cannot reference resources ({address})")
