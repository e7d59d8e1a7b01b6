"""Run outcome data structures."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum


class NodeState(StrEnum):
    """Scheduler state of a node within one run."""

    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in-progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class Outcome(StrEnum):
    """User-visible per-resource result of a run."""

    CREATED = "created"
    UPDATED = "updated"
    REPLACED = "replaced"
    DESTROYED = "destroyed"
    NOOP = "no-op"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NodeRun:
    """Execution record of one node; timestamps are monotonic seconds."""

    address: str
    state: NodeState = NodeState.PENDING
    outcome: Outcome | None = None
    error: str | None = None
    dispatched_at: float | None = None
    finished_at: float | None = None

    @property
    def terminal(self) -> bool:
        return self.state in (NodeState.SUCCEEDED, NodeState.FAILED, NodeState.SKIPPED)


@dataclass
class RunReport:
    """Itemized outcome of a plan/apply/destroy run."""

    command: str
    results: dict[str, NodeRun] = field(default_factory=dict)
    aborted: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """False if any node failed, even when the rest of the graph succeeded."""
        return not self.aborted and all(r.state is not NodeState.FAILED for r in self.results.values())

    def outcome_counts(self) -> dict[str, int]:
        counts = Counter(r.outcome.value for r in self.results.values() if r.outcome is not None)
        return {outcome.value: counts.get(outcome.value, 0) for outcome in Outcome}

    def addresses_with(self, outcome: Outcome) -> list[str]:
        return [address for address, r in self.results.items() if r.outcome is outcome]
