"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class EdgeType(StrEnum):
    """Why one resource must be provisioned before another."""

    DATA = "data"  # consumer copies a value from the producer's outputs
    ORDERING = "ordering"  # declared in depends_on; no value is transferred


@dataclass(frozen=True)
class GraphNode:
    """A node in the dependency graph representing a declared resource."""

    kind: str
    name: str

    @property
    def address(self) -> str:
        """Return the stable identity key for this node."""
        return f"{self.kind}.{self.name}"

    @classmethod
    def from_address(cls, address: str) -> GraphNode:
        kind, _, name = address.partition(".")
        return cls(kind=kind, name=name)


@dataclass(frozen=True)
class GraphEdge:
    """A typed edge from producer (``source``) to consumer (``target``)."""

    source: GraphNode
    target: GraphNode
    edge_type: EdgeType
    source_field: str  # consumer field path that creates this relationship
    guarded: bool = False  # every occurrence sits inside try() or coalesce()

    @property
    def key(self) -> tuple[str, ...]:
        """Identity used for de-duplication.

        Ordering edges collapse regardless of where they were declared; data
        edges stay distinct per field so diagnostics can name every field.
        """
        if self.edge_type is EdgeType.ORDERING:
            return (self.source.address, self.target.address, self.edge_type.value)
        return (self.source.address, self.target.address, self.edge_type.value, self.source_field)
