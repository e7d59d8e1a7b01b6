"""Run coordination: compile, plan, apply, destroy, outputs.

Compilation order: schema validation -> variable resolution -> reference
resolution -> explicit ordering -> pruning and cycle check.  Any error up to
that point is a ConfigurationError and no provider call has been made.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from tierforge.declarations.evaluator import Evaluator
from tierforge.declarations.validation import SchemaValidator
from tierforge.declarations.variables import resolve_variables
from tierforge.engine.executor import NodeExecutor
from tierforge.engine.reconciler import DriftReconciler
from tierforge.engine.scheduler import Scheduler, TerminalCallback
from tierforge.errors import DriftConflictError, EvaluationError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.ordering import merge_explicit_ordering
from tierforge.graph.resolver import ReferenceResolver
from tierforge.graph.validator import GraphValidator, ValidatedGraph
from tierforge.models.config import TierforgeConfig
from tierforge.models.declarations import DeclarationSet
from tierforge.models.outcomes import NodeRun, RunReport
from tierforge.models.plan import DriftConflict, Plan
from tierforge.observability.logging import run_context
from tierforge.observability.metrics import node_operations_total, run_duration_seconds
from tierforge.providers.base import CloudProvider
from tierforge.schema.catalog import default_registry
from tierforge.schema.types import SchemaRegistry
from tierforge.state.store import StateStore

_log = structlog.get_logger(component="engine.orchestrator")

DriftConfirmation = Callable[[list[DriftConflict]], bool]


@dataclass
class CompiledConfiguration:
    """A validated declaration set ready for planning."""

    declarations: DeclarationSet
    variables: dict[str, Any]
    graph: DependencyGraph
    validated: ValidatedGraph
    ordering_edges: int = 0

    @property
    def realized(self) -> DependencyGraph:
        return self.validated.graph

    @property
    def pruned(self) -> list[str]:
        return self.validated.pruned


class Orchestrator:
    """Owns the provider, state store and scheduler for a sequence of runs."""

    def __init__(
        self,
        provider: CloudProvider,
        state: StateStore,
        registry: SchemaRegistry | None = None,
        config: TierforgeConfig | None = None,
    ) -> None:
        self._provider = provider
        self._state = state
        self._registry = registry or default_registry()
        self._config = config or TierforgeConfig()
        self._scheduler: Scheduler | None = None
        self._abort_requested = False

    @property
    def provider(self) -> CloudProvider:
        return self._provider

    @property
    def state(self) -> StateStore:
        return self._state

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Compile / plan
    # ------------------------------------------------------------------

    def compile(self, declarations: DeclarationSet, provided: Mapping[str, Any] | None = None) -> CompiledConfiguration:
        SchemaValidator(self._registry).validate(declarations)
        variables = resolve_variables(declarations.variables, provided or {})
        graph = ReferenceResolver(declarations).resolve()
        ordering_edges = merge_explicit_ordering(graph, declarations)
        validated = GraphValidator(self._registry, variables).validate(graph, declarations)
        _log.info(
            "configuration_compiled",
            resources=len(declarations.resources),
            realized=validated.graph.node_count,
            pruned=len(validated.pruned),
            edges=graph.edge_count,
        )
        return CompiledConfiguration(
            declarations=declarations,
            variables=variables,
            graph=graph,
            validated=validated,
            ordering_edges=ordering_edges,
        )

    async def plan(self, compiled: CompiledConfiguration) -> Plan:
        started = time.monotonic()
        try:
            return await self._reconciler().reconcile(compiled.declarations, compiled.validated, compiled.variables)
        finally:
            run_duration_seconds.labels(command="plan").observe(time.monotonic() - started)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def apply(
        self,
        compiled: CompiledConfiguration,
        confirm_drift: DriftConfirmation | None = None,
        on_terminal: TerminalCallback | None = None,
    ) -> RunReport:
        """Plan and apply under the state lock.

        Raises DriftConflictError when drift is found and *confirm_drift* is
        missing or declines.
        """
        started = time.monotonic()
        try:
            async with self._state.lock:
                self._state.load()
                plan = await self._reconciler().reconcile(
                    compiled.declarations, compiled.validated, compiled.variables
                )
                if plan.drift and (confirm_drift is None or not confirm_drift(plan.drift)):
                    raise DriftConflictError(sorted(conflict.address for conflict in plan.drift))
                executor = NodeExecutor(
                    self._provider,
                    self._state,
                    plan,
                    declarations=compiled.declarations,
                    variables=compiled.variables,
                    retry_config=self._config.retry,
                )
                return await self._run("apply", plan, executor, on_terminal)
        finally:
            run_duration_seconds.labels(command="apply").observe(time.monotonic() - started)

    async def destroy(self, on_terminal: TerminalCallback | None = None) -> RunReport:
        """Destroy every recorded resource, dependents first."""
        started = time.monotonic()
        try:
            async with self._state.lock:
                self._state.load()
                plan = self._reconciler().plan_destroy()
                executor = NodeExecutor(self._provider, self._state, plan, retry_config=self._config.retry)
                return await self._run("destroy", plan, executor, on_terminal)
        finally:
            run_duration_seconds.labels(command="destroy").observe(time.monotonic() - started)

    def outputs(self, compiled: CompiledConfiguration) -> dict[str, Any]:
        """Evaluate declared outputs against the recorded state.

        Outputs that depend on a resource not yet provisioned are None.
        """
        pruned = set(compiled.pruned)

        def lookup(address: str) -> Mapping[str, Any] | None:
            if address in pruned:
                return None
            return self._state.outputs(address)

        evaluator = Evaluator(compiled.variables, lookup)
        values: dict[str, Any] = {}
        for name, output in sorted(compiled.declarations.outputs.items()):
            try:
                values[name] = evaluator.evaluate(output.value)
            except EvaluationError as exc:
                _log.debug("output_unavailable", output=name, error=str(exc))
                values[name] = None
        return values

    def abort(self) -> None:
        """Stop dispatching nodes in the current run."""
        self._abort_requested = True
        if self._scheduler is not None:
            self._scheduler.abort()

    async def close(self) -> None:
        await self._provider.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reconciler(self) -> DriftReconciler:
        return DriftReconciler(
            self._provider,
            self._state,
            self._registry,
            retry_config=self._config.retry,
            max_concurrent_reads=self._config.scheduler.max_concurrency,
        )

    async def _run(
        self,
        command: str,
        plan: Plan,
        executor: NodeExecutor,
        on_terminal: TerminalCallback | None,
    ) -> RunReport:
        scheduler = Scheduler(
            max_concurrency=self._config.scheduler.max_concurrency,
            wait_in_flight_on_abort=self._config.scheduler.wait_in_flight_on_abort,
        )
        self._scheduler = scheduler
        if self._abort_requested:
            scheduler.abort()

        def record(run: NodeRun) -> None:
            change = plan.changes.get(run.address)
            action = change.action.value if change is not None else "unknown"
            node_operations_total.labels(action=action, outcome=run.outcome.value if run.outcome else "none").inc()
            if on_terminal is not None:
                on_terminal(run)

        with run_context(command) as run_id:
            _log.info("run_started", run_id=run_id, **plan.summary())
            try:
                results = await scheduler.run(plan.execution_graph(), executor.execute, on_terminal=record)
            finally:
                self._scheduler = None
                self._abort_requested = False

        report = RunReport(command=command, results=results, aborted=scheduler.aborted, warnings=list(plan.warnings))
        if scheduler.halted_by is not None:
            report.warnings.append(f"authorization failure on {scheduler.halted_by} stopped further changes")
        log = _log.info if report.succeeded else _log.error
        log(
            "run_finished",
            command=command,
            succeeded=report.succeeded,
            aborted=report.aborted,
            **report.outcome_counts(),
        )
        return report
