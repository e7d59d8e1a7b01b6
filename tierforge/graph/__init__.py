"""Resource dependency graph.

Built in three passes over a parsed declaration set: reference resolution
(implicit data edges), explicit ordering merge (``depends_on``), and
validation over the realized node set (flag pruning, cycle detection).
"""

from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType, GraphEdge, GraphNode
from tierforge.graph.ordering import merge_explicit_ordering
from tierforge.graph.resolver import ReferenceResolver, iter_references
from tierforge.graph.validator import GraphValidator, ValidatedGraph, find_cycle

__all__ = [
    "DependencyGraph",
    "EdgeType",
    "GraphEdge",
    "GraphNode",
    "GraphValidator",
    "ReferenceResolver",
    "ValidatedGraph",
    "find_cycle",
    "iter_references",
    "merge_explicit_ordering",
]
