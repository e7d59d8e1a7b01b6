"""Bounded-concurrency execution over a dependency graph.

A node is dispatched once every predecessor has succeeded, up to
``max_concurrency`` at a time.  The loop blocks on the first completion,
records the terminal state and recomputes the ready set.  A failed node
never stops independent branches; its dependents end up ``skipped``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from tierforge.errors import AuthorizationError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.models.outcomes import NodeRun, NodeState, Outcome

_log = structlog.get_logger(component="engine.scheduler")

NodeAction = Callable[[str], Awaitable[Outcome]]
TerminalCallback = Callable[[NodeRun], None]


class Scheduler:
    """Runs one graph; create a fresh scheduler per run."""

    def __init__(
        self,
        max_concurrency: int = 10,
        wait_in_flight_on_abort: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._max_concurrency = max_concurrency
        self._wait_in_flight = wait_in_flight_on_abort
        self._clock = clock
        self._abort = asyncio.Event()
        self._halted_by: str | None = None

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    @property
    def halted_by(self) -> str | None:
        """Address whose authorization failure stopped further dispatch."""
        return self._halted_by

    def abort(self) -> None:
        """Stop dispatching new nodes as soon as possible."""
        if not self._abort.is_set():
            _log.warning("run_abort_requested", wait_in_flight=self._wait_in_flight)
        self._abort.set()

    async def run(
        self,
        graph: DependencyGraph,
        execute: NodeAction,
        on_terminal: TerminalCallback | None = None,
    ) -> dict[str, NodeRun]:
        """Execute every node of *graph*; returns the run of each node."""
        order = graph.topological_order()
        runs = {address: NodeRun(address=address) for address in order}
        in_flight: dict[asyncio.Task[Outcome], str] = {}
        abort_waiter = asyncio.create_task(self._abort.wait())
        watch_abort = True

        def finish(run: NodeRun, state: NodeState, outcome: Outcome, error: str | None = None) -> None:
            run.state = state
            run.outcome = outcome
            run.error = error
            run.finished_at = self._clock()
            if on_terminal is not None:
                on_terminal(run)

        try:
            while True:
                if not self._abort.is_set() and self._halted_by is None:
                    for address in order:
                        run = runs[address]
                        if run.state is not NodeState.PENDING:
                            continue
                        states = {runs[p].state for p in graph.predecessors(address)}
                        if NodeState.FAILED in states or NodeState.SKIPPED in states:
                            finish(run, NodeState.SKIPPED, Outcome.SKIPPED, "dependency did not succeed")
                        elif states <= {NodeState.SUCCEEDED}:
                            run.state = NodeState.READY

                    for address in order:
                        if len(in_flight) >= self._max_concurrency:
                            break
                        run = runs[address]
                        if run.state is not NodeState.READY:
                            continue
                        run.state = NodeState.IN_PROGRESS
                        run.dispatched_at = self._clock()
                        task = asyncio.create_task(execute(address), name=address)
                        in_flight[task] = address
                        _log.debug("node_dispatched", address=address, in_flight=len(in_flight))

                if not in_flight:
                    break

                waiting: set[asyncio.Future[object]] = set(in_flight)  # type: ignore[arg-type]
                if watch_abort:
                    waiting.add(abort_waiter)
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is abort_waiter:
                        continue
                    address = in_flight.pop(task)  # type: ignore[arg-type]
                    self._settle(address, task, runs[address], finish)  # type: ignore[arg-type]

                if abort_waiter in done:
                    watch_abort = False
                    if not self._wait_in_flight:
                        await self._cancel(in_flight, runs, finish)
        finally:
            abort_waiter.cancel()
            for task in in_flight:
                task.cancel()

        for run in runs.values():
            if not run.terminal:
                finish(run, NodeState.SKIPPED, Outcome.SKIPPED, "not dispatched")
        return runs

    def _settle(
        self,
        address: str,
        task: asyncio.Task[Outcome],
        run: NodeRun,
        finish: Callable[..., None],
    ) -> None:
        try:
            outcome = task.result()
        except asyncio.CancelledError:
            finish(run, NodeState.FAILED, Outcome.FAILED, "cancelled")
            return
        except AuthorizationError as exc:
            self._halted_by = address
            _log.error("authorization_failed_halting", address=address, error=str(exc))
            finish(run, NodeState.FAILED, Outcome.FAILED, str(exc))
            return
        except Exception as exc:
            _log.error("node_failed", address=address, error=str(exc), error_type=type(exc).__name__)
            finish(run, NodeState.FAILED, Outcome.FAILED, str(exc))
            return
        finish(run, NodeState.SUCCEEDED, outcome)
        _log.debug("node_succeeded", address=address, outcome=outcome.value)

    async def _cancel(
        self,
        in_flight: dict[asyncio.Task[Outcome], str],
        runs: dict[str, NodeRun],
        finish: Callable[..., None],
    ) -> None:
        for task in in_flight:
            task.cancel()
        await asyncio.gather(*in_flight, return_exceptions=True)
        for task, address in in_flight.items():
            if task.cancelled():
                finish(runs[address], NodeState.FAILED, Outcome.FAILED, "cancelled by abort")
            else:
                self._settle(address, task, runs[address], finish)
        in_flight.clear()
