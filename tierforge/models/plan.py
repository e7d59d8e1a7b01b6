"""Plan data structures produced by the drift reconciler."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType

if TYPE_CHECKING:
    from tierforge.providers.base import RemoteResource


class Action(StrEnum):
    """Planned action for one resource."""

    NOOP = "no-op"
    CREATE = "create"
    UPDATE = "update-in-place"
    RECREATE = "destroy-and-recreate"
    DESTROY = "destroy"


@dataclass(frozen=True)
class DriftConflict:
    """Remote state changed outside tierforge since it was last recorded."""

    address: str
    fields: tuple[str, ...]
    recorded: dict[str, Any] = field(compare=False, hash=False)
    remote: dict[str, Any] = field(compare=False, hash=False)


@dataclass
class PlannedChange:
    """Action for one address.

    ``observed`` is the remote object read while planning, when there was one;
    a no-op writes it back so the record matches what the provider reports.
    """

    address: str
    kind: str
    name: str
    action: Action
    changed_fields: list[str] = field(default_factory=list)
    reason: str = ""
    observed: RemoteResource | None = field(default=None, repr=False)


@dataclass
class Plan:
    """Per-resource actions plus the graphs that order them.

    ``graph`` orders the realized resources for apply; ``destroy_graph``
    holds resources that are recorded but no longer realized, with edges in
    their recorded dependency direction (teardown runs it reversed).
    ``releases`` pairs a realized resource with an orphan it was recorded as
    depending on.
    """

    changes: dict[str, PlannedChange] = field(default_factory=dict)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    destroy_graph: DependencyGraph = field(default_factory=DependencyGraph)
    drift: list[DriftConflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    releases: list[tuple[str, str]] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(change.action is not Action.NOOP for change in self.changes.values())

    def summary(self) -> dict[str, int]:
        counts = Counter(change.action.value for change in self.changes.values())
        return {action.value: counts.get(action.value, 0) for action in Action}

    def action(self, address: str) -> Action:
        return self.changes[address].action

    def execution_graph(self) -> DependencyGraph:
        """Single graph covering apply and teardown.

        Orphans are destroyed dependents-first; a realized resource that was
        recorded as depending on an orphan is applied before that orphan is
        destroyed, so it stops using the orphan's values first.
        """
        combined = self.graph.subgraph(self.graph)
        teardown = self.destroy_graph.reversed()
        for node in teardown.nodes():
            combined.add_node(node)
        for edge in teardown.edges():
            combined.add_edge(edge)
        for consumer, orphan in self.releases:
            combined.connect(consumer, orphan, EdgeType.ORDERING, "released")
        return combined
