"""Merge explicit ``depends_on`` constraints into the resolved graph."""

from __future__ import annotations

import structlog

from tierforge.errors import DanglingReferenceError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType, GraphEdge, GraphNode
from tierforge.models.declarations import DeclarationSet

_log = structlog.get_logger(component="graph.ordering")


def merge_explicit_ordering(graph: DependencyGraph, declarations: DeclarationSet) -> int:
    """Add an ordering edge B -> A for every ``A.depends_on: [B]``.

    Every constraint is kept even when a data edge already implies the same
    order; whether a constraint is redundant cannot be told from the
    declaration alone.  Returns the number of edges actually added.
    """
    added = 0
    for resource in declarations.resources.values():
        consumer = GraphNode(kind=resource.kind, name=resource.name)
        for i, target in enumerate(resource.depends_on):
            if target not in declarations.resources:
                raise DanglingReferenceError(resource.address, f"depends_on[{i}]", target)
            edge = GraphEdge(
                source=GraphNode.from_address(target),
                target=consumer,
                edge_type=EdgeType.ORDERING,
                source_field=f"depends_on[{i}]",
            )
            if graph.add_edge(edge):
                added += 1
    _log.debug("explicit_ordering_merged", added=added)
    return added
