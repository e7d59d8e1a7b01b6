"""In-memory directed graph of declared resources."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from tierforge.errors import CycleError
from tierforge.graph.models import EdgeType, GraphEdge, GraphNode


class DependencyGraph:
    """Directed graph whose edges point from producer to consumer.

    Adjacency is kept as sets so parallel edges (several fields reading the
    same producer, or a data edge plus a redundant ``depends_on``) never
    affect scheduling; the typed edge list is kept for diagnostics.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[tuple[str, ...], GraphEdge] = {}
        self._successors: dict[str, set[str]] = {}
        self._predecessors: dict[str, set[str]] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: GraphNode) -> None:
        if node.address in self._nodes:
            return
        self._nodes[node.address] = node
        self._successors[node.address] = set()
        self._predecessors[node.address] = set()

    def add_edge(self, edge: GraphEdge) -> bool:
        """Add *edge*; returns False when an identical edge already exists."""
        self.add_node(edge.source)
        self.add_node(edge.target)
        if edge.key in self._edges:
            return False
        self._edges[edge.key] = edge
        self._successors[edge.source.address].add(edge.target.address)
        self._predecessors[edge.target.address].add(edge.source.address)
        return True

    def connect(self, producer: str, consumer: str, edge_type: EdgeType = EdgeType.ORDERING, field: str = "") -> bool:
        """Convenience wrapper around add_edge() taking addresses."""
        return self.add_edge(
            GraphEdge(
                source=GraphNode.from_address(producer),
                target=GraphNode.from_address(consumer),
                edge_type=edge_type,
                source_field=field,
            )
        )

    def remove_node(self, address: str) -> list[GraphEdge]:
        """Remove a node and every edge touching it; returns the removed edges."""
        if address not in self._nodes:
            return []
        removed = [e for e in self._edges.values() if address in (e.source.address, e.target.address)]
        for edge in removed:
            del self._edges[edge.key]
        for other in self._successors.pop(address):
            self._predecessors[other].discard(address)
        for other in self._predecessors.pop(address):
            self._successors[other].discard(address)
        del self._nodes[address]
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, address: object) -> bool:
        return address in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def node(self, address: str) -> GraphNode:
        return self._nodes[address]

    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def edges_into(self, address: str) -> list[GraphEdge]:
        return [e for e in self._edges.values() if e.target.address == address]

    def edges_from(self, address: str) -> list[GraphEdge]:
        return [e for e in self._edges.values() if e.source.address == address]

    def predecessors(self, address: str) -> set[str]:
        return set(self._predecessors[address])

    def successors(self, address: str) -> set[str]:
        return set(self._successors[address])

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ties broken by address so the order is stable.

        Raises CycleError if the graph is not acyclic.  The validator reports
        the exact cycle path before this is ever reached on user input.
        """
        return [address for wave in self.waves() for address in wave]

    def waves(self) -> list[list[str]]:
        """Group nodes into layers whose members have no ordering relationship."""
        in_degree = {address: len(preds) for address, preds in self._predecessors.items()}
        current = sorted(a for a, degree in in_degree.items() if degree == 0)
        layers: list[list[str]] = []
        visited = 0
        while current:
            layers.append(current)
            visited += len(current)
            following: list[str] = []
            for address in current:
                for successor in self._successors[address]:
                    in_degree[successor] -= 1
                    if in_degree[successor] == 0:
                        following.append(successor)
            current = sorted(following)
        if visited != len(self._nodes):
            stuck = sorted(a for a, degree in in_degree.items() if degree > 0)
            raise CycleError(stuck)
        return layers

    def reversed(self) -> DependencyGraph:
        """Copy with every edge flipped; used for teardown ordering."""
        flipped = DependencyGraph()
        for node in self._nodes.values():
            flipped.add_node(node)
        for edge in self._edges.values():
            flipped.add_edge(
                GraphEdge(
                    source=edge.target,
                    target=edge.source,
                    edge_type=edge.edge_type,
                    source_field=edge.source_field,
                    guarded=edge.guarded,
                )
            )
        return flipped

    def subgraph(self, addresses: Iterable[str]) -> DependencyGraph:
        """Induced subgraph over *addresses*."""
        keep = set(addresses)
        sub = DependencyGraph()
        for address, node in self._nodes.items():
            if address in keep:
                sub.add_node(node)
        for edge in self._edges.values():
            if edge.source.address in keep and edge.target.address in keep:
                sub.add_edge(edge)
        return sub

    def to_dot(self) -> str:
        """Render as Graphviz DOT; ordering edges are dashed."""
        lines = ["digraph tierforge {", "  rankdir=LR;"]
        for address in sorted(self._nodes):
            lines.append(f'  "{address}";')
        for edge in sorted(self._edges.values(), key=lambda e: e.key):
            style = ' [style=dashed, label="depends_on"]' if edge.edge_type is EdgeType.ORDERING else (
                f' [label="{edge.source_field}"]'
            )
            lines.append(f'  "{edge.source.address}" -> "{edge.target.address}"{style};')
        lines.append("}")
        return "\n".join(lines)
