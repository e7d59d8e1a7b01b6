"""Per-node provider operations driven by the scheduler.

Inputs are evaluated when the node is dispatched, from the outputs recorded
by its already-finished predecessors, never from plan-time placeholders.
Every terminal result is written to state before the node is reported done.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from tierforge.declarations.evaluator import Evaluator
from tierforge.engine.reconciler import diff_fields
from tierforge.engine.retry import call_with_retry
from tierforge.errors import EvaluationError, ResourceNotFoundError
from tierforge.models.config import RetryConfig
from tierforge.models.declarations import DeclarationSet
from tierforge.models.outcomes import Outcome
from tierforge.models.plan import Action, Plan
from tierforge.models.state import ResourceRecord
from tierforge.providers.base import CloudProvider
from tierforge.state.store import StateStore

_log = structlog.get_logger(component="engine.executor")


class NodeExecutor:
    """Carries out the planned action of one address at a time."""

    def __init__(
        self,
        provider: CloudProvider,
        state: StateStore,
        plan: Plan,
        declarations: DeclarationSet | None = None,
        variables: Mapping[str, Any] | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._provider = provider
        self._state = state
        self._plan = plan
        self._declarations = declarations or DeclarationSet()
        self._retry = retry_config or RetryConfig()
        self._pruned = set(plan.pruned)
        self._evaluator = Evaluator(variables or {}, self._recorded_outputs)

    async def execute(self, address: str) -> Outcome:
        action = self._plan.action(address)
        try:
            match action:
                case Action.NOOP:
                    return await self._keep(address)
                case Action.CREATE:
                    return await self._create(address)
                case Action.UPDATE:
                    return await self._update(address)
                case Action.RECREATE:
                    return await self._replace(address)
                case Action.DESTROY:
                    return await self._destroy(address)
        except asyncio.CancelledError:
            await self._taint(address)
            raise
        raise ValueError(f"unsupported action {action!r} for {address}")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _keep(self, address: str) -> Outcome:
        record = self._state.get(address)
        if record is None:
            return Outcome.NOOP
        dependencies = self._dependencies(address)
        observed = self._plan.changes[address].observed
        refreshed = False
        if observed is not None and (record.inputs, record.outputs) != (observed.inputs, observed.outputs):
            # apply only runs once drift is confirmed, so the remote view becomes the record
            record.inputs = dict(observed.inputs)
            record.outputs = dict(observed.outputs)
            refreshed = True
            _log.info("record_refreshed", address=address)
        if refreshed or sorted(record.dependencies) != dependencies:
            record.dependencies = dependencies
            await self._state.put(record)
        return Outcome.NOOP

    async def _create(self, address: str) -> Outcome:
        resource = self._declarations.resource(address)
        inputs = self._evaluator.evaluate_fields(resource.fields)
        remote = await self._call(self._provider.create, resource.kind, resource.name, inputs, address=address)
        await self._state.put(
            ResourceRecord(
                kind=resource.kind,
                name=resource.name,
                id=remote.id,
                inputs=remote.inputs,
                outputs=remote.outputs,
                dependencies=self._dependencies(address),
            )
        )
        _log.info("resource_created", address=address, id=remote.id)
        return Outcome.CREATED

    async def _update(self, address: str) -> Outcome:
        resource = self._declarations.resource(address)
        record = self._require_record(address)
        inputs = self._evaluator.evaluate_fields(resource.fields)
        changed = sorted(set(diff_fields(inputs, record.inputs)) | set(self._plan.changes[address].changed_fields))
        remote = await self._call(self._provider.update, resource.kind, record.id, inputs, changed, address=address)
        record.inputs = remote.inputs
        record.outputs = remote.outputs
        record.dependencies = self._dependencies(address)
        await self._state.put(record)
        _log.info("resource_updated", address=address, changed=changed)
        return Outcome.UPDATED

    async def _replace(self, address: str) -> Outcome:
        record = self._state.get(address)
        if record is not None and record.id:
            await self._delete(record)
        await self._state.remove(address)
        await self._create(address)
        return Outcome.REPLACED

    async def _destroy(self, address: str) -> Outcome:
        record = self._state.get(address)
        if record is None:
            return Outcome.NOOP
        if record.id:
            await self._delete(record)
        await self._state.remove(address)
        _log.info("resource_destroyed", address=address, id=record.id)
        return Outcome.DESTROYED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _delete(self, record: ResourceRecord) -> None:
        try:
            await self._call(self._provider.delete, record.kind, record.id, address=record.address)
        except ResourceNotFoundError:
            _log.info("resource_already_gone", address=record.address, id=record.id)

    async def _call(self, fn: Any, *args: Any, address: str) -> Any:
        kind = getattr(fn, "__name__", "call")
        return await call_with_retry(fn, *args, config=self._retry, kind=kind, address=address)

    async def _taint(self, address: str) -> None:
        if address in self._state:
            await self._state.mark_tainted(address)
        elif address in self._declarations.resources:
            resource = self._declarations.resource(address)
            await self._state.put(ResourceRecord(kind=resource.kind, name=resource.name, id="", tainted=True))
        _log.warning("node_interrupted", address=address)

    def _require_record(self, address: str) -> ResourceRecord:
        record = self._state.get(address)
        if record is None:
            raise ResourceNotFoundError(f"{address} has no state record to update")
        return record

    def _dependencies(self, address: str) -> list[str]:
        if address not in self._plan.graph:
            return []
        return sorted(self._plan.graph.predecessors(address))

    def _recorded_outputs(self, address: str) -> Mapping[str, Any] | None:
        if address in self._pruned:
            return None
        outputs = self._state.outputs(address)
        if outputs is None:
            raise EvaluationError(f"{address} has no recorded outputs")
        return outputs
