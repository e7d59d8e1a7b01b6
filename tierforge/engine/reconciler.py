"""Drift reconciler: desired declarations vs. recorded and remote state.

For every realized resource, in topological order:

* no record                         -> create
* tainted record (or no remote id)  -> destroy-and-recreate
* recorded but gone remotely        -> create, with a warning
* remote inputs differ from record  -> drift conflict (needs confirmation)
* desired inputs differ from remote -> update-in-place, or
                                       destroy-and-recreate when a changed
                                       field is force-new for the kind
* otherwise                         -> no-op

Recorded resources that are no longer realized (removed or pruned by a
flag) are planned for destroy.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from typing import Any

import structlog

from tierforge.declarations.evaluator import UNKNOWN, Evaluator, contains_unknown
from tierforge.engine.retry import call_with_retry
from tierforge.errors import OrphanReferencedError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType, GraphNode
from tierforge.graph.validator import ValidatedGraph
from tierforge.models.config import RetryConfig
from tierforge.models.declarations import DeclarationSet
from tierforge.models.plan import Action, DriftConflict, Plan, PlannedChange
from tierforge.models.state import ResourceRecord
from tierforge.observability.metrics import drift_conflicts_total
from tierforge.providers.base import CloudProvider, RemoteResource
from tierforge.schema.types import SchemaRegistry
from tierforge.state.store import StateStore

_log = structlog.get_logger(component="engine.reconciler")

_PENDING = (Action.CREATE, Action.RECREATE)


def diff_fields(desired: Mapping[str, Any], baseline: Mapping[str, Any]) -> list[str]:
    """Top-level field names whose values differ; None and missing are equal."""
    changed = []
    for name in sorted(set(desired) | set(baseline)):
        value = desired.get(name)
        if contains_unknown(value) or value != baseline.get(name):
            changed.append(name)
    return changed


class DriftReconciler:
    """Compares declarations with state and produces a Plan.

    Only ``read`` is called on the provider; planning never mutates anything.
    """

    def __init__(
        self,
        provider: CloudProvider,
        state: StateStore,
        registry: SchemaRegistry,
        retry_config: RetryConfig | None = None,
        max_concurrent_reads: int = 10,
    ) -> None:
        self._provider = provider
        self._state = state
        self._registry = registry
        self._retry = retry_config or RetryConfig()
        self._read_limit = asyncio.Semaphore(max_concurrent_reads)

    async def reconcile(
        self,
        declarations: DeclarationSet,
        validated: ValidatedGraph,
        variables: Mapping[str, Any],
    ) -> Plan:
        plan = Plan(graph=validated.graph, pruned=list(validated.pruned))
        pruned = set(validated.pruned)
        records = self._state.records()
        remotes = await self._read_all(
            [records[a] for a in validated.graph if a in records and records[a].id and not records[a].tainted]
        )
        observed: dict[str, dict[str, Any]] = {}

        def lookup(address: str) -> Any:
            if address in pruned:
                return None
            change = plan.changes.get(address)
            if change is None or change.action in _PENDING:
                return UNKNOWN
            return observed.get(address)

        evaluator = Evaluator(variables, lookup)
        desired_by_address: dict[str, dict[str, Any]] = {}

        for address in validated.graph.topological_order():
            resource = declarations.resource(address)
            desired = evaluator.evaluate_fields(resource.fields)
            desired_by_address[address] = desired
            record = records.get(address)
            change = self._plan_resource(address, resource.kind, resource.name, desired, record, remotes, plan)
            plan.changes[address] = change
            if change.action not in _PENDING:
                remote = remotes[address]
                observed[address] = remote.outputs if remote is not None else {}

        self._plan_orphans(plan, records, desired_by_address)
        _log.info("plan_computed", **plan.summary(), drift=len(plan.drift))
        return plan

    def plan_destroy(self) -> Plan:
        """Plan the teardown of every recorded resource."""
        records = self._state.records()
        plan = Plan()
        plan.destroy_graph = _recorded_graph(records, set(records))
        for address, record in records.items():
            plan.changes[address] = PlannedChange(
                address=address, kind=record.kind, name=record.name, action=Action.DESTROY, reason="destroy requested"
            )
        return plan

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan_resource(
        self,
        address: str,
        kind: str,
        name: str,
        desired: dict[str, Any],
        record: ResourceRecord | None,
        remotes: dict[str, RemoteResource | None],
        plan: Plan,
    ) -> PlannedChange:
        def change(
            action: Action, reason: str, fields: list[str] | None = None, observed: RemoteResource | None = None
        ) -> PlannedChange:
            return PlannedChange(
                address=address,
                kind=kind,
                name=name,
                action=action,
                changed_fields=fields or [],
                reason=reason,
                observed=observed,
            )

        if record is None:
            return change(Action.CREATE, "not yet provisioned")
        if record.tainted or not record.id:
            return change(Action.RECREATE, "tainted by an interrupted run")

        remote = remotes.get(address)
        if remote is None:
            plan.warnings.append(f"{address} was deleted outside tierforge and will be created again")
            return change(Action.CREATE, "missing remotely")

        drifted = diff_fields(remote.inputs, record.inputs)
        if drifted:
            drift_conflicts_total.inc()
            plan.drift.append(
                DriftConflict(address=address, fields=tuple(drifted), recorded=record.inputs, remote=remote.inputs)
            )
            _log.warning("drift_detected", address=address, fields=drifted)

        changed = diff_fields(desired, remote.inputs)
        if not changed:
            reason = "remote change matches declarations" if drifted else "up to date"
            return change(Action.NOOP, reason, observed=remote)
        schema = self._registry.get(kind)
        forcing = [f for f in changed if schema is not None and f in schema.force_new_inputs]
        if forcing:
            return change(Action.RECREATE, f"{', '.join(forcing)} cannot be changed in place", changed)
        return change(Action.UPDATE, "inputs changed", changed)

    def _plan_orphans(
        self,
        plan: Plan,
        records: dict[str, ResourceRecord],
        desired_by_address: dict[str, dict[str, Any]],
    ) -> None:
        orphans = {address for address in records if address not in plan.graph}
        if not orphans:
            return

        for orphan in sorted(orphans):
            resource_id = records[orphan].id
            holders = sorted(
                address
                for address, desired in desired_by_address.items()
                if resource_id and resource_id in _strings(desired)
            )
            if holders:
                raise OrphanReferencedError(orphan, holders)
            record = records[orphan]
            plan.changes[orphan] = PlannedChange(
                address=orphan,
                kind=record.kind,
                name=record.name,
                action=Action.DESTROY,
                reason="pruned by flag" if orphan in plan.pruned else "no longer declared",
            )

        plan.destroy_graph = _recorded_graph(records, orphans)
        for address in sorted(plan.graph):
            record = records.get(address)
            if record is None:
                continue
            for dependency in sorted(set(record.dependencies) & orphans):
                plan.releases.append((address, dependency))

    async def _read_all(self, records: list[ResourceRecord]) -> dict[str, RemoteResource | None]:
        async def read(record: ResourceRecord) -> tuple[str, RemoteResource | None]:
            async with self._read_limit:
                remote = await call_with_retry(
                    self._provider.read,
                    record.kind,
                    record.id,
                    config=self._retry,
                    kind="read",
                    address=record.address,
                )
            return record.address, remote

        results = await asyncio.gather(*(read(record) for record in records))
        return dict(results)


def _recorded_graph(records: dict[str, ResourceRecord], addresses: set[str]) -> DependencyGraph:
    """Graph over *addresses* built from the dependencies captured in state."""
    graph = DependencyGraph()
    for address in sorted(addresses):
        record = records[address]
        graph.add_node(GraphNode(kind=record.kind, name=record.name))
        for dependency in record.dependencies:
            if dependency in addresses:
                graph.connect(dependency, address, EdgeType.ORDERING, "recorded")
    return graph


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from _strings(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _strings(item)
