"""tierforge command-line interface.

Every command that touches declarations compiles them first, so a
configuration error (exit code 2) is reported before any provider call.
A run in which any resource failed exits with code 1.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import json
import signal
import sys
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import click

from tierforge.config import load_config
from tierforge.declarations.loader import load_declarations
from tierforge.declarations.variables import load_var_file, parse_var_assignments
from tierforge.engine.orchestrator import CompiledConfiguration, Orchestrator
from tierforge.errors import ConfigurationError, TierforgeError
from tierforge.models.config import TierforgeConfig
from tierforge.models.outcomes import NodeRun, NodeState, RunReport
from tierforge.models.plan import Action, DriftConflict, Plan
from tierforge.observability.logging import get_logger, setup_logging
from tierforge.providers import build_provider
from tierforge.schema.catalog import default_registry
from tierforge.state import StateStore, build_state_store

T = TypeVar("T")

_ACTION_MARKS = {
    Action.NOOP: " ",
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.RECREATE: "-/+",
    Action.DESTROY: "-",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _handle_errors(fn: Callable[..., None]) -> Callable[..., None]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except ConfigurationError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(2)
        except TierforgeError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)

    return wrapper


def declaration_options(fn: Callable[..., None]) -> Callable[..., None]:
    """Options shared by every command that reads declarations."""
    fn = click.option(
        "--var-file",
        "var_files",
        multiple=True,
        type=click.Path(exists=True, dir_okay=False),
        help="YAML file of variable values.",
    )(fn)
    fn = click.option("--var", "variables", multiple=True, metavar="NAME=VALUE", help="Set a variable.")(fn)
    fn = click.option(
        "--file",
        "-f",
        "files",
        multiple=True,
        required=True,
        type=click.Path(exists=True),
        help="Declaration file or directory of *.yaml files.",
    )(fn)
    return fn


def _settings(ctx: click.Context) -> TierforgeConfig:
    return ctx.obj["config"]  # type: ignore[no-any-return]


def _orchestrator(config: TierforgeConfig, operation: str) -> Orchestrator:
    registry = default_registry()
    return Orchestrator(
        provider=build_provider(config.provider, registry),
        state=build_state_store(config.state, operation=operation),
        registry=registry,
        config=config,
    )


def _compile(
    orchestrator: Orchestrator,
    files: tuple[str, ...],
    variables: tuple[str, ...],
    var_files: tuple[str, ...],
) -> CompiledConfiguration:
    provided: dict[str, Any] = {}
    for path in var_files:
        provided.update(load_var_file(path))
    provided.update(parse_var_assignments(variables))
    return orchestrator.compile(load_declarations(*files), provided)


def _run(orchestrator: Orchestrator, main: Callable[[], Coroutine[Any, Any, T]]) -> T:
    """Run *main* on a fresh loop with SIGINT wired to abort."""

    async def runner() -> T:
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, _request_abort, orchestrator)
        try:
            return await main()
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            await orchestrator.close()

    return asyncio.run(runner())


def _request_abort(orchestrator: Orchestrator) -> None:
    click.echo("\nInterrupt received; no new changes will be started.", err=True)
    orchestrator.abort()


def _echo_plan(plan: Plan) -> None:
    changes = [c for c in plan.changes.values() if c.action is not Action.NOOP]
    for change in changes:
        detail = f" ({', '.join(change.changed_fields)})" if change.changed_fields else ""
        click.echo(f"  {_ACTION_MARKS[change.action]:>3} {change.address}: {change.action.value}{detail}")
    if not changes:
        click.echo("No changes. Infrastructure matches the declarations.")
    for warning in plan.warnings:
        click.echo(f"Warning: {warning}", err=True)
    summary = plan.summary()
    click.echo(
        f"\nPlan: {summary['create']} to create, {summary['update-in-place']} to update, "
        f"{summary['destroy-and-recreate']} to replace, {summary['destroy']} to destroy."
    )


def _echo_drift(conflicts: list[DriftConflict]) -> None:
    click.echo("Remote state changed outside tierforge:", err=True)
    for conflict in conflicts:
        for name in conflict.fields:
            click.echo(
                f"  {conflict.address}.{name}: recorded {conflict.recorded.get(name)!r}, "
                f"remote {conflict.remote.get(name)!r}",
                err=True,
            )


def _echo_progress(run: NodeRun) -> None:
    if run.state is NodeState.SKIPPED:
        return
    label = run.outcome.value if run.outcome else run.state.value
    suffix = f": {run.error}" if run.error else ""
    click.echo(f"{run.address}: {label}{suffix}")


def _echo_report(report: RunReport) -> None:
    click.echo("")
    width = max((len(a) for a in report.results), default=10)
    for address in sorted(report.results):
        run = report.results[address]
        outcome = run.outcome.value if run.outcome else run.state.value
        line = f"  {address:<{width}}  {outcome}"
        if run.error and run.state is not NodeState.SUCCEEDED:
            line += f"  ({run.error})"
        click.echo(line)
    for warning in report.warnings:
        click.echo(f"Warning: {warning}", err=True)
    counts = ", ".join(f"{n} {o}" for o, n in report.outcome_counts().items() if n)
    status = "succeeded" if report.succeeded else ("aborted" if report.aborted else "failed")
    click.echo(f"\n{report.command.capitalize()} {status}: {counts or 'nothing to do'}.")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group()
@click.option("--state", "state_path", type=click.Path(dir_okay=False), help="State file path.")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.version_option(package_name="tierforge")
@click.pass_context
def cli(ctx: click.Context, state_path: str | None, log_level: str | None) -> None:
    """Provision a dependency-ordered resource graph."""
    config = load_config()
    if state_path:
        config.state.path = state_path
    if log_level:
        config.log.level = log_level
    setup_logging(config.log.level, config.log.format)
    ctx.obj = {"config": config}


@cli.command()
@declaration_options
@click.pass_context
@_handle_errors
def validate(
    ctx: click.Context, files: tuple[str, ...], variables: tuple[str, ...], var_files: tuple[str, ...]
) -> None:
    """Check declarations without contacting the provider."""
    orchestrator = _orchestrator(_settings(ctx), "validate")
    compiled = _compile(orchestrator, files, variables, var_files)
    click.echo(
        f"Valid: {len(compiled.declarations.resources)} resources, "
        f"{compiled.realized.node_count} realized, {len(compiled.pruned)} disabled by flags."
    )
    for address in compiled.pruned:
        click.echo(f"  disabled: {address}")


@cli.command()
@declaration_options
@click.option("--format", "fmt", type=click.Choice(["waves", "dot"]), default="waves", show_default=True)
@click.pass_context
@_handle_errors
def graph(
    ctx: click.Context,
    files: tuple[str, ...],
    variables: tuple[str, ...],
    var_files: tuple[str, ...],
    fmt: str,
) -> None:
    """Print the realized dependency graph."""
    orchestrator = _orchestrator(_settings(ctx), "graph")
    compiled = _compile(orchestrator, files, variables, var_files)
    if fmt == "dot":
        click.echo(compiled.realized.to_dot())
        return
    for i, wave in enumerate(compiled.realized.waves(), start=1):
        click.echo(f"wave {i}: {', '.join(wave)}")


@cli.command()
@declaration_options
@click.pass_context
@_handle_errors
def plan(ctx: click.Context, files: tuple[str, ...], variables: tuple[str, ...], var_files: tuple[str, ...]) -> None:
    """Show what apply would change."""
    orchestrator = _orchestrator(_settings(ctx), "plan")
    compiled = _compile(orchestrator, files, variables, var_files)
    result = _run(orchestrator, lambda: orchestrator.plan(compiled))
    if result.drift:
        _echo_drift(result.drift)
    _echo_plan(result)


@cli.command()
@declaration_options
@click.option("--parallelism", type=click.IntRange(1, 64), default=None, help="Maximum concurrent operations.")
@click.option("--auto-approve", is_flag=True, help="Skip the interactive confirmation.")
@click.option("--allow-drift", is_flag=True, help="Overwrite changes made outside tierforge.")
@click.pass_context
@_handle_errors
def apply(
    ctx: click.Context,
    files: tuple[str, ...],
    variables: tuple[str, ...],
    var_files: tuple[str, ...],
    parallelism: int | None,
    auto_approve: bool,
    allow_drift: bool,
) -> None:
    """Create, update and destroy resources to match the declarations."""
    config = _settings(ctx)
    if parallelism:
        config.scheduler.max_concurrency = parallelism
    orchestrator = _orchestrator(config, "apply")
    compiled = _compile(orchestrator, files, variables, var_files)

    def confirm_drift(conflicts: list[DriftConflict]) -> bool:
        _echo_drift(conflicts)
        if allow_drift:
            return True
        if auto_approve:
            return False
        return click.confirm("Overwrite these remote changes?", default=False)

    async def main() -> RunReport | None:
        if not auto_approve:
            preview = await orchestrator.plan(compiled)
            _echo_plan(preview)
            if not preview.has_changes:
                return None
            if not click.confirm("Apply these changes?", default=False):
                click.echo("Apply cancelled.")
                return None
        return await orchestrator.apply(compiled, confirm_drift=confirm_drift, on_terminal=_echo_progress)

    report = _run(orchestrator, main)
    if report is None:
        return
    _echo_report(report)
    if not report.succeeded:
        sys.exit(1)


@cli.command()
@click.option("--parallelism", type=click.IntRange(1, 64), default=None, help="Maximum concurrent operations.")
@click.option("--auto-approve", is_flag=True, help="Skip the interactive confirmation.")
@click.pass_context
@_handle_errors
def destroy(ctx: click.Context, parallelism: int | None, auto_approve: bool) -> None:
    """Destroy every resource recorded in state."""
    config = _settings(ctx)
    if parallelism:
        config.scheduler.max_concurrency = parallelism
    orchestrator = _orchestrator(config, "destroy")
    addresses = orchestrator.state.addresses()
    if not addresses:
        click.echo("Nothing to destroy.")
        return
    if not auto_approve:
        for address in addresses:
            click.echo(f"  - {address}")
        click.confirm(f"Destroy {len(addresses)} resources?", default=False, abort=True)
    report = _run(orchestrator, lambda: orchestrator.destroy(on_terminal=_echo_progress))
    _echo_report(report)
    if not report.succeeded:
        sys.exit(1)


@cli.command()
@declaration_options
@click.option("--json", "as_json", is_flag=True, help="Print outputs as JSON.")
@click.option("--show-sensitive", is_flag=True, help="Do not mask sensitive outputs.")
@click.pass_context
@_handle_errors
def outputs(
    ctx: click.Context,
    files: tuple[str, ...],
    variables: tuple[str, ...],
    var_files: tuple[str, ...],
    as_json: bool,
    show_sensitive: bool,
) -> None:
    """Print declared outputs from the recorded state."""
    orchestrator = _orchestrator(_settings(ctx), "outputs")
    compiled = _compile(orchestrator, files, variables, var_files)
    values = orchestrator.outputs(compiled)
    if not show_sensitive:
        for name, output in compiled.declarations.outputs.items():
            if output.sensitive and values.get(name) is not None:
                values[name] = "(sensitive)"
    if as_json:
        click.echo(json.dumps(values, indent=2, sort_keys=True, default=str))
        return
    for name, value in values.items():
        click.echo(f"{name} = {json.dumps(value, default=str)}")


@cli.group()
def state() -> None:
    """Inspect the recorded state."""


@state.command("list")
@click.pass_context
@_handle_errors
def state_list(ctx: click.Context) -> None:
    """List recorded resource addresses."""
    store = StateStore(_settings(ctx).state.path)
    for address in store.addresses():
        record = store.get(address)
        marker = " (tainted)" if record is not None and record.tainted else ""
        click.echo(f"{address}{marker}")


@state.command("show")
@click.argument("address")
@click.pass_context
@_handle_errors
def state_show(ctx: click.Context, address: str) -> None:
    """Show the recorded attributes of ADDRESS."""
    store = StateStore(_settings(ctx).state.path)
    record = store.get(address)
    if record is None:
        click.echo(f"Error: {address} is not in state", err=True)
        sys.exit(1)
    click.echo(json.dumps(record.to_dict(), indent=2, sort_keys=True, default=str))


@cli.command()
@click.option("--file", "-f", "files", multiple=True, type=click.Path(exists=True), help="Declarations for /outputs.")
@click.option("--var", "variables", multiple=True, metavar="NAME=VALUE", help="Set a variable.")
@click.option("--var-file", "var_files", multiple=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--port", type=click.IntRange(1024, 65535), default=None, help="Listen port.")
@click.pass_context
@_handle_errors
def serve(
    ctx: click.Context,
    files: tuple[str, ...],
    variables: tuple[str, ...],
    var_files: tuple[str, ...],
    port: int | None,
) -> None:
    """Serve the REST API."""
    import uvicorn

    from tierforge.api import build_app

    config = _settings(ctx)
    if port:
        config.api.port = port
    orchestrator = _orchestrator(config, "serve")
    compiled = _compile(orchestrator, files, variables, var_files) if files else None
    app = build_app(orchestrator=orchestrator, compiled=compiled, config=config)
    uv_config = uvicorn.Config(
        app=app,
        host="0.0.0.0",
        port=config.api.port,
        log_config=None,  # structlog handles all logging
        access_log=False,
    )
    get_logger("cli").info("rest_api_starting", port=config.api.port)
    asyncio.run(uvicorn.Server(uv_config).serve())
